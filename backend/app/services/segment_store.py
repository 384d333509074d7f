"""
Persistence access for events and labeled segments.

The labeling engine and the reconciler only talk to storage through
SegmentRepository, which wraps a request-scoped SQLAlchemy session.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import asc, desc
from sqlalchemy.orm import Session

from app.models.event import Event
from app.models.labeled_segment import LabeledSegment, LabeledSegmentEvent

logger = logging.getLogger(__name__)


@dataclass
class LabeledSegmentDraft:
    """Everything the engine computes for a segment before it is inserted."""
    device_id: str
    original_event_ids: List[int]
    timestamp_start: int
    timestamp_end: int
    date: str
    begin: str
    repeat: bool
    detection_type: str
    details: Dict[str, Any]
    format: Optional[str] = None
    content: Optional[str] = None
    title: Optional[str] = None
    episode_id: Optional[str] = None
    season_id: Optional[str] = None
    labeled_by: Optional[str] = None


@dataclass
class SegmentFilter:
    """Filters for the labeled segment reader; unset fields do not filter."""
    device_id: Optional[str] = None
    labeled_by: Optional[str] = None
    detection_type: Optional[str] = None
    timestamp_from: Optional[int] = None
    timestamp_to: Optional[int] = None


SEGMENT_SORT_FIELDS = {
    "id": LabeledSegment.id,
    "timestamp": LabeledSegment.timestamp_start,
    "timestampStart": LabeledSegment.timestamp_start,
    "labeledAt": LabeledSegment.labeled_at,
    "createdAt": LabeledSegment.created_at,
}


class SegmentRepository:
    """Reads events and reads/writes labeled segments."""

    def __init__(self, db: Session):
        self.db = db

    def fetch_events_by_ids(self, ids: Iterable[int]) -> List[Event]:
        """Return the existing events among ``ids``; callers compute the diff."""
        id_list = list(ids)
        if not id_list:
            return []
        return self.db.query(Event).filter(Event.id.in_(id_list)).all()

    def add_segment(self, draft: LabeledSegmentDraft) -> LabeledSegment:
        """
        Stage a segment and its membership rows in the current transaction.

        The row gets its id, labeled_at and created_at on flush; the caller
        owns the commit so a batch of segments lands atomically.
        """
        segment = LabeledSegment(
            device_id=draft.device_id,
            original_event_ids=json.dumps(draft.original_event_ids),
            timestamp_start=draft.timestamp_start,
            timestamp_end=draft.timestamp_end,
            date=draft.date,
            begin=draft.begin,
            format=draft.format,
            content=draft.content,
            title=draft.title,
            episode_id=draft.episode_id,
            season_id=draft.season_id,
            repeat=draft.repeat,
            detection_type=draft.detection_type,
            details=json.dumps(draft.details),
            labeled_by=draft.labeled_by,
        )
        segment.members = [
            LabeledSegmentEvent(event_id=event_id, position=position)
            for position, event_id in enumerate(draft.original_event_ids)
        ]
        self.db.add(segment)
        self.db.flush()
        return segment

    def _filtered(self, segment_filter: SegmentFilter):
        query = self.db.query(LabeledSegment)
        if segment_filter.device_id:
            query = query.filter(LabeledSegment.device_id == segment_filter.device_id)
        if segment_filter.labeled_by:
            query = query.filter(LabeledSegment.labeled_by == segment_filter.labeled_by)
        if segment_filter.detection_type:
            query = query.filter(LabeledSegment.detection_type == segment_filter.detection_type)
        if segment_filter.timestamp_from is not None:
            query = query.filter(LabeledSegment.timestamp_start >= segment_filter.timestamp_from)
        if segment_filter.timestamp_to is not None:
            query = query.filter(LabeledSegment.timestamp_start <= segment_filter.timestamp_to)
        return query

    def query_segments(
        self,
        segment_filter: Optional[SegmentFilter] = None,
        sort: str = "timestamp",
        order: str = "asc",
        offset: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[LabeledSegment]:
        """
        Return filtered segments in the requested order.

        Ties are broken by id so equal timestamps keep insertion order.
        """
        column = SEGMENT_SORT_FIELDS.get(sort, LabeledSegment.timestamp_start)
        direction = desc if order == "desc" else asc
        query = self._filtered(segment_filter or SegmentFilter()).order_by(
            direction(column), direction(LabeledSegment.id)
        )
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def count_segments(self, segment_filter: Optional[SegmentFilter] = None) -> int:
        return self._filtered(segment_filter or SegmentFilter()).count()


def list_events(
    db: Session,
    device_id: Optional[str] = None,
    types: Optional[List[int]] = None,
    sort: str = "timestamp",
    order: str = "desc",
    offset: int = 0,
    limit: int = 10,
) -> Tuple[List[Event], int]:
    """Page through raw events; returns (events, total matching)."""
    sort_columns = {"id": Event.id, "timestamp": Event.timestamp, "createdAt": Event.created_at}
    column = sort_columns.get(sort, Event.timestamp)
    direction = asc if order == "asc" else desc

    query = db.query(Event)
    if device_id:
        query = query.filter(Event.device_id == device_id)
    if types:
        query = query.filter(Event.type.in_(types))

    total = query.count()
    events = query.order_by(direction(column), direction(Event.id)).offset(offset).limit(limit).all()
    return events, total
