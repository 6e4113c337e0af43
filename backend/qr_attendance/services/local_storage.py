"""Key/value storage for the attendance store's JSON snapshots."""
import logging
from typing import Dict, List, Optional

from qr_attendance import db
from qr_attendance.models.storage_item import StorageItem

logger = logging.getLogger(__name__)


class SnapshotStorage:
    """String-keyed blob storage; every write replaces the whole value."""

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError


class MemoryStorage(SnapshotStorage):
    """Process-local storage used by tests and one-off CLI runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._items)


class DatabaseStorage(SnapshotStorage):
    """
    Storage backed by the ``storage_items`` table.

    Needs an application context; the store only touches it from request
    handlers and CLI commands, which always have one.
    """

    def get_item(self, key: str) -> Optional[str]:
        item = StorageItem.query.filter_by(key=key).first()
        return item.value if item else None

    def set_item(self, key: str, value: str) -> None:
        item = StorageItem.query.filter_by(key=key).first()
        if item is None:
            item = StorageItem(key=key, value=value)
            db.session.add(item)
        else:
            item.value = value
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    def remove_item(self, key: str) -> None:
        StorageItem.query.filter_by(key=key).delete()
        db.session.commit()

    def keys(self) -> List[str]:
        return [row.key for row in StorageItem.query.with_entities(StorageItem.key).all()]


def create_storage(kind: str) -> SnapshotStorage:
    """Build the storage named by the SNAPSHOT_STORAGE setting."""
    if kind == 'memory':
        return MemoryStorage()
    if kind == 'database':
        return DatabaseStorage()
    raise ValueError(f"Unknown snapshot storage: {kind}")
