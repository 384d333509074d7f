"""Event SQLAlchemy ORM model for raw device detection events"""
import json
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Column, String, Integer, BigInteger, Text, DateTime, Index
from app.core.database import Base

# BIGINT autoincrement is only honoured as INTEGER PRIMARY KEY on SQLite
BigIntId = BigInteger().with_variant(Integer, "sqlite")

# Event type codes used by the image-processing listings
EVENT_TYPE_RECOGNIZED = 29
EVENT_TYPE_UNRECOGNIZED = 33
IMAGE_PROCESSING_EVENT_TYPES = (EVENT_TYPE_RECOGNIZED, EVENT_TYPE_UNRECOGNIZED)


class Event(Base):
    """
    Raw detection event written by a monitoring device's ingester.

    Rows are append-only; this service never creates or modifies them, it only
    reads them when listing, labeling and reporting.

    Attributes:
        id: Monotonic integer primary key
        device_id: Identifier of the monitoring device
        timestamp: Seconds since epoch (64-bit) when the frame was captured
        type: Opaque integer classification code (29 recognized, 33 unrecognized)
        details: JSON object - {"score", "image_path", "channel_name", ...extras}
        created_at: Record creation timestamp (UTC)
    """

    __tablename__ = "events"

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    device_id = Column(String(100), nullable=False, index=True)
    timestamp = Column(BigInteger, nullable=False, index=True)
    type = Column(Integer, nullable=False, index=True)
    details = Column(Text, nullable=True)  # JSON object, shape owned by the ingester
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index('idx_events_device_timestamp', 'device_id', 'timestamp'),
    )

    @property
    def details_data(self) -> Optional[Any]:
        """Decoded details payload, or None when absent or not valid JSON."""
        if self.details is None:
            return None
        if isinstance(self.details, (dict, list)):
            return self.details
        try:
            return json.loads(self.details)
        except (TypeError, ValueError):
            return None

    def __repr__(self):
        return f"<Event(id={self.id}, device_id={self.device_id}, timestamp={self.timestamp}, type={self.type})>"
