"""LabeledSegment SQLAlchemy ORM models for operator-labeled broadcast segments"""
import json
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import (
    Column, String, Integer, BigInteger, Text, DateTime, Boolean, ForeignKey,
    CheckConstraint, Index, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.models.event import BigIntId


class LabeledSegment(Base):
    """
    One operator labeling action over one or more events.

    Segments are written once by the labeling engine and never updated;
    a correction is a new segment.

    Attributes:
        id: Integer primary key
        device_id: Device of the member events
        original_event_ids: JSON array of member event ids, ordered by timestamp
        timestamp_start: Earliest member event timestamp (seconds)
        timestamp_end: Latest member event timestamp (seconds)
        date: Display date, e.g. "05 Mar 2025"
        begin: Display time, e.g. "14:30:05"
        format: Optional 2-digit format code
        content: Optional 3-digit content code
        title: Optional programme/spot title
        episode_id: Programme episode (Program Content only)
        season_id: Programme season (Program Content only)
        repeat: Whether the broadcast is a repeat
        detection_type: One of the DetectionType values
        details: JSON object - base event details + category fields + images + duration
        labeled_by: Opaque labeler identity
        labeled_at: When the label was applied
        created_at: Record creation timestamp
    """

    __tablename__ = "labeled_segments"

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    device_id = Column(String(100), nullable=False, index=True)
    original_event_ids = Column(Text, nullable=False)  # JSON array: [101, 102, ...]
    timestamp_start = Column(BigInteger, nullable=False, index=True)
    timestamp_end = Column(BigInteger, nullable=False)
    date = Column(String(20), nullable=False)
    begin = Column(String(8), nullable=False)
    format = Column(String(2), nullable=True)
    content = Column(String(3), nullable=True)
    title = Column(String(500), nullable=True)
    episode_id = Column(String(100), nullable=True)
    season_id = Column(String(100), nullable=True)
    repeat = Column(Boolean, nullable=False, default=False)
    detection_type = Column(String(40), nullable=False, index=True)
    details = Column(Text, nullable=False)  # JSON object
    labeled_by = Column(String(255), nullable=True, index=True)
    labeled_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    members = relationship(
        "LabeledSegmentEvent",
        back_populates="segment",
        cascade="all, delete-orphan",
        order_by="LabeledSegmentEvent.position",
    )

    __table_args__ = (
        CheckConstraint('timestamp_start <= timestamp_end', name='check_segment_time_order'),
        Index('idx_labeled_segments_device_start', 'device_id', 'timestamp_start'),
    )

    @property
    def event_ids(self) -> List[int]:
        return [int(i) for i in json.loads(self.original_event_ids or "[]")]

    @property
    def details_data(self) -> Optional[Any]:
        """Decoded details payload, or None when not valid JSON."""
        try:
            return json.loads(self.details)
        except (TypeError, ValueError):
            return None

    def __repr__(self):
        return (
            f"<LabeledSegment(id={self.id}, device_id={self.device_id}, "
            f"detection_type={self.detection_type}, start={self.timestamp_start}, end={self.timestamp_end})>"
        )


class LabeledSegmentEvent(Base):
    """
    Membership of a raw event in a labeled segment.

    Mirrors LabeledSegment.original_event_ids so reports can find unlabeled
    events with a subquery.
    """

    __tablename__ = "labeled_segment_events"

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    segment_id = Column(BigInteger, ForeignKey('labeled_segments.id', ondelete='CASCADE'), nullable=False, index=True)
    event_id = Column(BigInteger, ForeignKey('events.id'), nullable=False, index=True)
    position = Column(Integer, nullable=False)

    segment = relationship("LabeledSegment", back_populates="members")

    __table_args__ = (
        UniqueConstraint('segment_id', 'event_id', name='uq_segment_event'),
    )

    def __repr__(self):
        return f"<LabeledSegmentEvent(segment_id={self.segment_id}, event_id={self.event_id}, position={self.position})>"
