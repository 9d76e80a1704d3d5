"""
Exception Module

Structured exception hierarchy for the compliance sync subsystem.

Module Structure:
-----------------
- **base.py**: ComplianceSyncError base class
- **storage.py**: Durable store exceptions

Expected failure categories (validation, authentication, quota, transient
network) are NOT exceptions; they are carried by ApiResponse envelopes and
result objects. Only storage problems raise.

Usage:
------
```python
from compliance_sync.core.exceptions import StorageWriteError
```
"""

from compliance_sync.core.exceptions.base import ComplianceSyncError
from compliance_sync.core.exceptions.storage import (
    StorageError,
    StorageUnavailableError,
    StorageWriteError,
)

__all__ = [
    # Base
    "ComplianceSyncError",
    # Storage
    "StorageError",
    "StorageUnavailableError",
    "StorageWriteError",
]
