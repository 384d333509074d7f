"""
Events API endpoints

Read and label detection events:
- GET /events - List raw events with filtering and pagination
- GET /events/image-processing - Recognized (29) and unrecognized (33) events
- GET /events/unrecognized - Unrecognized (33) events
- GET /events/labeled - Labeled segments, reconciled into display groups by default
- POST /events/label - Label a batch of events as one segment
- POST /events/label/per-event - Label each event of a batch as its own segment

Label handlers are plain ``def`` routes: the engine blocks on the database
and S3, so they run on the threadpool.
"""
import logging
import math
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import ValidationError
from app.models.event import EVENT_TYPE_RECOGNIZED, EVENT_TYPE_UNRECOGNIZED, IMAGE_PROCESSING_EVENT_TYPES
from app.schemas.labeling import (
    DetectionType,
    EventListResponse,
    EventResponse,
    LabeledSegmentListResponse,
    LabeledSegmentResponse,
    Pagination,
    PerEventLabelResponse,
    SegmentGroupListResponse,
    SegmentGroupResponse,
)
from app.services.labeling_service import LabelingEngine
from app.services.object_relocator import ObjectRelocator, get_object_relocator
from app.services.segment_reconciler import reconcile_segments
from app.services.segment_store import SegmentFilter, SegmentRepository, list_events

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])

_PROCESSING_TYPES = {
    EVENT_TYPE_RECOGNIZED: "recognized",
    EVENT_TYPE_UNRECOGNIZED: "processed",
}


def get_relocator() -> ObjectRelocator:
    """Object relocator dependency (overridden in tests)."""
    return get_object_relocator()


def get_labeling_engine(
    db: Session = Depends(get_db),
    relocator: ObjectRelocator = Depends(get_relocator),
) -> LabelingEngine:
    return LabelingEngine(db, relocator=relocator)


def _pagination(page: int, limit: int, total: int) -> Pagination:
    return Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit) if limit else 0)


def _parse_types(value: Optional[str]) -> Optional[List[int]]:
    """Parse a comma-separated list of integer type codes."""
    if not value:
        return None
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise ValidationError("type must be a comma-separated list of integers", details={"type": value})


def _parse_detection_type(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        return DetectionType(value).value
    except ValueError:
        raise ValidationError(
            f"Unknown detection type: {value}",
            details={"allowed": [member.value for member in DetectionType]},
        )


def _event_response(event, processing_type: Optional[str] = None) -> EventResponse:
    return EventResponse(
        id=event.id,
        device_id=event.device_id,
        timestamp=event.timestamp,
        type=event.type,
        details=event.details_data,
        created_at=event.created_at,
        processing_type=processing_type,
    )


@router.get("", response_model=EventListResponse)
def list_all_events(
    device_id: Optional[str] = Query(None, alias="deviceId", description="Filter by device"),
    type: Optional[str] = Query(None, description="Comma-separated event type codes (e.g. '29,33')"),
    page: int = Query(1, ge=1, description="Page number (1-based)"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, description="Page size"),
    sort: str = Query("timestamp", description="Sort field: id, timestamp or createdAt"),
    order: str = Query("desc", pattern="^(asc|desc)$", description="Sort direction"),
    db: Session = Depends(get_db)
):
    """
    List raw detection events.

    **Examples:**
    - GET /events?deviceId=dev-1&type=29,33&page=2&limit=50
    - GET /events?sort=id&order=asc
    """
    events, total = list_events(
        db,
        device_id=device_id,
        types=_parse_types(type),
        sort=sort,
        order=order,
        offset=(page - 1) * limit,
        limit=limit,
    )
    return EventListResponse(
        data=[_event_response(event) for event in events],
        pagination=_pagination(page, limit, total),
    )


@router.get("/image-processing", response_model=EventListResponse)
def list_image_processing_events(
    device_id: Optional[str] = Query(None, alias="deviceId"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db)
):
    """Recognized and unrecognized events, tagged with their processing type."""
    events, total = list_events(
        db,
        device_id=device_id,
        types=list(IMAGE_PROCESSING_EVENT_TYPES),
        order=order,
        offset=(page - 1) * limit,
        limit=limit,
    )
    return EventListResponse(
        data=[_event_response(event, _PROCESSING_TYPES.get(event.type)) for event in events],
        pagination=_pagination(page, limit, total),
    )


@router.get("/unrecognized", response_model=EventListResponse)
def list_unrecognized_events(
    device_id: Optional[str] = Query(None, alias="deviceId"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db)
):
    """Events the recognizer could not match, oldest or newest first."""
    events, total = list_events(
        db,
        device_id=device_id,
        types=[EVENT_TYPE_UNRECOGNIZED],
        order=order,
        offset=(page - 1) * limit,
        limit=limit,
    )
    return EventListResponse(
        data=[_event_response(event, "unrecognized") for event in events],
        pagination=_pagination(page, limit, total),
    )


@router.get("/labeled")
def list_labeled_segments(
    device_id: Optional[str] = Query(None, alias="deviceId"),
    labeled_by: Optional[str] = Query(None, alias="labeledBy"),
    detection_type: Optional[str] = Query(None, alias="detectionType"),
    start: Optional[int] = Query(None, ge=0, description="Earliest segment start (epoch seconds)"),
    end: Optional[int] = Query(None, ge=0, description="Latest segment start (epoch seconds)"),
    grouped: bool = Query(True, description="Merge adjacent identical segments into display groups"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    db: Session = Depends(get_db)
):
    """
    List labeled segments.

    With ``grouped=true`` (default) every matching segment is reconciled into
    display groups first and the groups are paginated; segments with invalid
    stored details are left out and counted in ``skipped``.

    Grouping needs the whole filtered set, so every matching segment is
    loaded before slicing the page. Narrow large listings with
    ``deviceId`` and ``start``/``end``.
    """
    if start is not None and end is not None and start > end:
        raise ValidationError("start must not be after end", details={"start": start, "end": end})

    segment_filter = SegmentFilter(
        device_id=device_id,
        labeled_by=labeled_by,
        detection_type=_parse_detection_type(detection_type),
        timestamp_from=start,
        timestamp_to=end,
    )
    repository = SegmentRepository(db)
    offset = (page - 1) * limit

    if not grouped:
        segments = repository.query_segments(segment_filter, sort="timestamp", order="asc", offset=offset, limit=limit)
        total = repository.count_segments(segment_filter)
        return LabeledSegmentListResponse(
            data=[LabeledSegmentResponse.from_segment(segment) for segment in segments],
            pagination=_pagination(page, limit, total),
        )

    result = reconcile_segments(repository.query_segments(segment_filter, sort="timestamp", order="asc"))
    window = result.groups[offset:offset + limit]
    return SegmentGroupListResponse(
        data=[SegmentGroupResponse(**group.to_dict()) for group in window],
        pagination=_pagination(page, limit, len(result.groups)),
        skipped=result.skipped,
    )


@router.post("/label", response_model=LabeledSegmentResponse, status_code=status.HTTP_201_CREATED)
def label_events(
    payload: Dict[str, Any] = Body(..., examples=[{
        "eventIds": [1201, 1202, 1203],
        "detectionType": "Song",
        "repeat": False,
        "songDetails": {"songName": "Resham Firiri", "artistName": "Traditional"},
    }]),
    engine: LabelingEngine = Depends(get_labeling_engine)
):
    """
    Label a batch of events as one segment.

    Images are copied into the labeled area before the segment is written.

    **Status Codes:**
    - 201: Segment created
    - 400: Invalid request or event details
    - 404: One or more events do not exist
    - 502: Image copy failed (safe to retry)
    - 500: Segment could not be saved
    """
    segment = engine.label_events(payload)
    return LabeledSegmentResponse.from_segment(segment)


@router.post("/label/per-event", response_model=PerEventLabelResponse, status_code=status.HTTP_201_CREATED)
def label_events_per_event(
    payload: Dict[str, Any] = Body(...),
    engine: LabelingEngine = Depends(get_labeling_engine)
):
    """Label each event of a batch as its own segment (same request body as /label)."""
    segments = engine.label_events_per_event(payload)
    return PerEventLabelResponse(data=[LabeledSegmentResponse.from_segment(segment) for segment in segments])