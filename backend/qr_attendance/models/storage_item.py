"""Key/value rows holding the attendance store's JSON snapshots."""
from qr_attendance import db
from qr_attendance.models.base import BaseModel


class StorageItem(BaseModel):
    """One snapshot blob, overwritten in full on every store mutation."""

    __tablename__ = 'storage_items'

    key = db.Column(db.String(128), unique=True, nullable=False, index=True)
    value = db.Column(db.Text, nullable=False)

    def __repr__(self) -> str:
        return f'<StorageItem {self.key}>'
