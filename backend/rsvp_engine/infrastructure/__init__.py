"""
Infrastructure layer - store and directory implementations.
Keeps business logic clean from implementation details.
"""

from .memory_store import InMemoryAttendeeStore
from .membership import SqlMembershipDirectory, StaticMembershipDirectory
from .sql_store import SqlAttendeeStore

__all__ = [
    'InMemoryAttendeeStore',
    'SqlAttendeeStore',
    'StaticMembershipDirectory',
    'SqlMembershipDirectory',
]
