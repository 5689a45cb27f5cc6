"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .membership import MembershipDirectory
from .store import AttendeeStore, EventTransaction, TransactionConflict

__all__ = ['AttendeeStore', 'EventTransaction', 'TransactionConflict', 'MembershipDirectory']
