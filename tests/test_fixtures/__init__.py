"""
Test Fixtures Package

Shared test data for queue, session and API tests.
"""

from .entry_factory import (
    MANAGER_IDENTIFIER,
    MANAGER_SECRET,
    STAFF_IDENTIFIER,
    STAFF_SECRET,
    EntryFactory,
    FakeSender,
    ResponseFactory,
)

__all__ = [
    "EntryFactory",
    "FakeSender",
    "ResponseFactory",
    "MANAGER_IDENTIFIER",
    "MANAGER_SECRET",
    "STAFF_IDENTIFIER",
    "STAFF_SECRET",
]
