"""
Sync queue model
"""
import json
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text

from ..database import Base
from .entry import _isoformat, utcnow

# Attempts before an operation is abandoned
MAX_RETRY = 5

# Suggested retry delay bounds (seconds)
RETRY_BASE_DELAY = 1.0
RETRY_MAX_DELAY = 60.0
RETRY_MAX_EXPONENT = 6

MAX_ERROR_LENGTH = 500


class OperationKind(str, Enum):
    ADD = 'add'
    UPDATE = 'update'
    DELETE = 'delete'


class SyncStatus(str, Enum):
    PENDING = 'pending'          # waiting for the next drain
    IN_PROGRESS = 'in_progress'  # being sent right now
    COMPLETED = 'completed'      # accepted by the server
    FAILED = 'failed'            # last attempt failed


def retry_delay(retry_count: int) -> float:
    """Suggested delay before the next attempt: 1s doubling, capped at 60s."""
    exponent = min(max(retry_count, 0), RETRY_MAX_EXPONENT)
    return min(RETRY_BASE_DELAY * (2 ** exponent), RETRY_MAX_DELAY)


class SyncOperation(Base):
    """A queued local mutation waiting to be replayed against the server."""
    __tablename__ = 'operation_queue'

    __table_args__ = (
        Index('ix_operation_queue_status_created', 'status', 'created_at'),
    )

    queue_id = Column(Integer, primary_key=True, autoincrement=True)
    record_id = Column(
        String(64),
        ForeignKey('records.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    kind = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False, default=SyncStatus.PENDING.value)
    # JSON snapshot of the record taken when the user acted
    payload = Column(Text, nullable=False, default='')

    created_at = Column(DateTime, nullable=False, default=utcnow)
    last_attempt_at = Column(DateTime)
    retry_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text)

    @property
    def operation_kind(self) -> OperationKind:
        return OperationKind(self.kind)

    @property
    def sync_status(self) -> SyncStatus:
        return SyncStatus(self.status)

    @property
    def exhausted(self) -> bool:
        return self.retry_count >= MAX_RETRY

    def should_retry(self) -> bool:
        return self.status == SyncStatus.FAILED.value and self.retry_count < MAX_RETRY

    def retry_delay(self) -> float:
        return retry_delay(self.retry_count)

    def payload_data(self) -> Optional[Dict[str, Any]]:
        """Decoded payload, None for operations that carry none (deletes)."""
        if not self.payload:
            return None
        return json.loads(self.payload)

    def summary(self) -> Dict[str, Any]:
        """Compact description used in logs, events and abandoned lists."""
        return {
            'queue_id': self.queue_id,
            'record_id': self.record_id,
            'kind': self.kind,
            'status': self.status,
            'retry_count': self.retry_count,
            'last_error': self.last_error,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.summary()
        data.update({
            'created_at': _isoformat(self.created_at),
            'last_attempt_at': _isoformat(self.last_attempt_at),
            'retry_delay': self.retry_delay(),
        })
        return data

    def __repr__(self):
        return f'<SyncOperation {self.queue_id} {self.kind} {self.record_id} {self.status}>'
