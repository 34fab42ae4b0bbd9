"""
Journal entry model
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, Column, DateTime, Float, Index, Integer, String, Text

from ..database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite drops tzinfo anyway)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() + 'Z' if value else None


class JournalEntry(Base):
    """A journal record plus its sync metadata."""
    __tablename__ = 'records'

    __table_args__ = (
        Index('ix_records_synced_deleted', 'synced', 'deleted'),
    )

    id = Column(String(64), primary_key=True)
    owner_id = Column(Integer, nullable=True)

    # Payload
    date = Column(String(64), nullable=False, index=True)
    temperature = Column(Float, nullable=False, default=0.0)
    description = Column(Text, nullable=False, default='')
    photo_ref = Column(String(1024))
    latitude = Column(Float, nullable=False, default=0.0)
    longitude = Column(Float, nullable=False, default=0.0)

    # Sync metadata
    synced = Column(Boolean, nullable=False, default=False)
    last_modified = Column(DateTime, nullable=False, default=utcnow)
    deleted = Column(Boolean, nullable=False, default=False)

    PAYLOAD_FIELDS = ('date', 'temperature', 'description', 'photo_ref', 'latitude', 'longitude')
    COLUMN_FIELDS = ('owner_id',) + PAYLOAD_FIELDS + ('synced', 'last_modified', 'deleted')

    @classmethod
    def create_new(cls, **fields) -> 'JournalEntry':
        """A locally created entry: fresh UUID, not yet known to the server."""
        entry = cls(
            id=str(uuid.uuid4()),
            date=fields['date'],
            temperature=fields.get('temperature', 0.0),
            description=fields.get('description', ''),
            photo_ref=fields.get('photo_ref'),
            latitude=fields.get('latitude', 0.0),
            longitude=fields.get('longitude', 0.0),
            synced=False,
            deleted=False,
            last_modified=utcnow(),
        )
        return entry

    @classmethod
    def from_remote(cls, data: Dict[str, Any]) -> 'JournalEntry':
        """Build a synced entry from a remote record.

        The remote API is not consistent about key casing, so both the
        camelCase and snake_case spellings are accepted.
        """
        record_id = data.get('id')
        if not record_id:
            raise ValueError('remote record has no id')

        coords = data.get('coords') or {}
        owner_id = data.get('user_id', data.get('ownerId', data.get('owner_id')))

        return cls(
            id=str(record_id),
            owner_id=int(owner_id) if owner_id is not None else None,
            date=str(data.get('date') or ''),
            temperature=float(data.get('temperature') or 0.0),
            description=data.get('description') or '',
            photo_ref=data.get('photoUrl') or data.get('photo_url'),
            latitude=float(coords.get('latitude', data.get('latitude')) or 0.0),
            longitude=float(coords.get('longitude', data.get('longitude')) or 0.0),
            synced=True,
            deleted=False,
            last_modified=utcnow(),
        )

    def to_payload(self) -> Dict[str, Any]:
        """Wire representation sent to the remote API."""
        return {
            'id': self.id,
            'date': self.date,
            'temperature': self.temperature,
            'description': self.description,
            'photoUrl': self.photo_ref,
            'coords': {
                'latitude': self.latitude,
                'longitude': self.longitude,
            },
        }

    def copy_from(self, other: 'JournalEntry') -> None:
        """Full replace of every column except the primary key."""
        for field in self.COLUMN_FIELDS:
            setattr(self, field, getattr(other, field))

    def apply_changes(self, fields: Dict[str, Any]) -> None:
        """Apply a local edit; the entry is unsynced afterwards."""
        for field in self.PAYLOAD_FIELDS:
            if field in fields:
                setattr(self, field, fields[field])
        self.synced = False
        self.last_modified = utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'date': self.date,
            'temperature': self.temperature,
            'description': self.description,
            'photo_ref': self.photo_ref,
            'coords': {
                'latitude': self.latitude,
                'longitude': self.longitude,
            },
            'synced': bool(self.synced),
            'deleted': bool(self.deleted),
            'last_modified': _isoformat(self.last_modified),
        }

    def __repr__(self):
        return f'<JournalEntry {self.id} synced={self.synced} deleted={self.deleted}>'
