"""
Custom managers for account scoping.

AccountScopedManager filters queries by POS account.
"""

from typing import TYPE_CHECKING, Any, TypeVar

from django.db import models

if TYPE_CHECKING:
    from .models import AccountScopedModel

_T = TypeVar("_T", bound="AccountScopedModel")


class AccountScopedManager(models.Manager[_T]):
    """
    Manager that filters by POS account.

    Usage in services:
        mappings = StableMapping.objects.for_account(account).filter(is_active=True)
    """

    def for_account(self, account: Any) -> models.QuerySet[_T]:
        """
        Filter queryset by POS account.

        Args:
            account: POSAccount instance or its primary key.

        Returns:
            QuerySet filtered to the account.

        Raises:
            ValueError: If no account is given.
        """
        if account is None:
            msg = "An account is required for account-scoped queries."
            raise ValueError(msg)
        account_id = getattr(account, "pk", account)
        return self.filter(account_id=account_id)
