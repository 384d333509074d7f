"""SQLAlchemy ORM models"""
from app.models.event import Event
from app.models.labeled_segment import LabeledSegment, LabeledSegmentEvent

__all__ = [
    "Event",
    "LabeledSegment",
    "LabeledSegmentEvent",
]
