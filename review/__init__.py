"""Human review workflow and account freezes."""

from .case_manager import ReviewCaseManager
from .account_freeze import AccountFreezeManager

__all__ = ["ReviewCaseManager", "AccountFreezeManager"]
