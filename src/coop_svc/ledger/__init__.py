"""
Domain books

In-memory records owned by the loan, savings, personal savings and account
modules. Each has its own status machine; the workflow only reaches them
through the domain adapters.
"""

from .base import LedgerError, StatusChange, StatusMachine, UnknownEntityError
from .loans import Loan, LoanBook, LoanStatus
from .savings import SavingsBook, SavingsWithdrawal, WithdrawalStatus
from .personal_savings import (
    PersonalSavingsBook,
    PlanStatus,
    PlanWithdrawal,
    PlanWithdrawalStatus,
    SavingsPlan,
)
from .accounts import AccountBook, AccountChange, ChangeKind, ChangeStatus, Member, MemberStatus

__all__ = [
    "LedgerError",
    "StatusChange",
    "StatusMachine",
    "UnknownEntityError",
    "Loan",
    "LoanBook",
    "LoanStatus",
    "SavingsBook",
    "SavingsWithdrawal",
    "WithdrawalStatus",
    "PersonalSavingsBook",
    "PlanStatus",
    "PlanWithdrawal",
    "PlanWithdrawalStatus",
    "SavingsPlan",
    "AccountBook",
    "AccountChange",
    "ChangeKind",
    "ChangeStatus",
    "Member",
    "MemberStatus",
]
