"""POS services - credential sessions and branch resolution."""

from apps.web.pos.services.branch_resolver import BranchResolver, first_active_branch
from apps.web.pos.services.credentials import CredentialService, get_pos_credentials

__all__ = [
    "BranchResolver",
    "CredentialService",
    "first_active_branch",
    "get_pos_credentials",
]
