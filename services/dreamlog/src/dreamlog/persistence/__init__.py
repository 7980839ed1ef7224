"""Dream record persistence: remote for accounts, local for guests."""

from .base import RecordStore
from .local import LocalRecordStore
from .remote import RemoteRecordStore
from .router import DEFAULT_TITLE, PersistenceRouter

__all__ = [
    "RecordStore",
    "LocalRecordStore",
    "RemoteRecordStore",
    "PersistenceRouter",
    "DEFAULT_TITLE",
]
