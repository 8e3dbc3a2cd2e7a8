"""
Coop Service - Cooperative Society Approval Workflow

A back-office request engine providing:
- Generic requests (loans, withdrawals, personal savings, account changes)
- Configurable multi-level approval chains gated by role and approval level
- Synchronization with domain records that own their own status machines
- Dashboard metrics over the request queue
"""

__version__ = "0.1.0"
