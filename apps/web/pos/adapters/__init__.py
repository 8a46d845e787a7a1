"""POS adapters - implementations for each POS provider."""

from typing import Any

from menusync_schemas import POSProvider

from apps.web.pos.adapters.base import POSAdapter
from apps.web.pos.adapters.mock import MockPOSAdapter
from apps.web.pos.adapters.rest import RestPOSAdapter


def get_adapter(provider: POSProvider | str, **kwargs: Any) -> POSAdapter:
    """
    Get a POS adapter instance for the specified provider.

    This is the main entry point for obtaining POS adapters. Use this
    factory function rather than instantiating adapters directly.

    Args:
        provider: The POS provider to get an adapter for.
        **kwargs: Additional arguments passed to the adapter constructor.
            For RestPOSAdapter: base_url, http_client.

    Returns:
        An adapter instance implementing the POSAdapter protocol.

    Raises:
        ValueError: If the provider is not supported.

    Example:
        adapter = get_adapter(POSProvider.REST)
        session = await adapter.authenticate(credentials)
        products = await adapter.get_products(session, branch_id)
    """
    if provider == POSProvider.MOCK:
        return MockPOSAdapter(**kwargs)
    elif provider == POSProvider.REST:
        return RestPOSAdapter(**kwargs)
    else:
        supported = ", ".join(p.value for p in POSProvider)
        raise ValueError(
            f"Unsupported POS provider: {provider}. Supported: {supported}"
        )


__all__ = [
    "MockPOSAdapter",
    "POSAdapter",
    "RestPOSAdapter",
    "get_adapter",
]
