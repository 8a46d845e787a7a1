"""
Branch resolution for order creation.

Resolution is two-phase: `resolve()` returns the branch id to use, reading
the account's configured branch or discovering one from the POS catalog,
and only then does the caller create the order against it.
"""

import logging
from typing import TYPE_CHECKING

from menusync_schemas import POSBranch, POSProduct

from apps.web.pos.exceptions import BranchResolutionError

if TYPE_CHECKING:
    from apps.web.core.models import POSAccount
    from apps.web.pos.services.credentials import CredentialService

logger = logging.getLogger(__name__)


def first_active_branch(products: list[POSProduct]) -> POSBranch | None:
    """Return the first active branch assigned to any product."""
    for product in products:
        for branch in product.branches:
            if branch.is_active:
                return branch
    return None


class BranchResolver:
    """Resolves and caches the POS branch an account's orders go to."""

    def __init__(self, credentials: "CredentialService") -> None:
        self._credentials = credentials

    def discover(self, account: "POSAccount") -> POSBranch | None:
        """Look for an active branch in the account's POS catalog."""
        products = self._credentials.call_with_auth_refresh(
            account,
            lambda adapter, session: adapter.get_products(session),
        )
        return first_active_branch(products)

    def resolve(self, account: "POSAccount") -> str:
        """
        Return the branch id for an account.

        A discovered branch is persisted on the account so discovery runs
        at most once.

        Raises:
            BranchResolutionError: If no branch is configured or discoverable.
        """
        if account.branch_id:
            return account.branch_id

        branch = self.discover(account)
        if branch is None:
            raise BranchResolutionError(
                f"No active branch found for POS account {account.pk}",
                provider=account.provider,
            )

        account.branch_id = branch.external_id
        account.branch_name = branch.name
        account.save(update_fields=["branch_id", "branch_name", "updated_at"])

        logger.info(
            "Discovered POS branch %s (%s) for account %s",
            branch.external_id,
            branch.name,
            account.pk,
        )
        return account.branch_id
