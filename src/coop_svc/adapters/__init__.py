"""Domain synchronization adapters."""

from .base import DomainAdapter, LedgerAdapter
from .registry import AdapterRegistry, default_registry
from .loan import LoanAdapter
from .withdrawal import SavingsWithdrawalAdapter
from .personal_savings import PersonalSavingsAdapter
from .account import AccountAdapter

__all__ = [
    "DomainAdapter",
    "LedgerAdapter",
    "AdapterRegistry",
    "default_registry",
    "LoanAdapter",
    "SavingsWithdrawalAdapter",
    "PersonalSavingsAdapter",
    "AccountAdapter",
]
