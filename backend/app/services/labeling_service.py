"""
Labeling Engine

Turns an operator's label request over a batch of detection events into
persisted labeled segments.

Flow (single_segment mode):
    LabelRequest → validate request fields and category details
                    ↓
           Fetch events (all-or-nothing, NotFoundError lists missing ids)
                    ↓
           Sort by timestamp → timestamp_start / timestamp_end
                    ↓
           Validate every event's details and plan every image copy
                    ↓
           Copy each image to labeled_frames (in timestamp order)
                    ↓
           Merge details, insert one segment, commit

per_event mode runs the same validation and relocation but writes one
segment per event, all in one transaction.

Failure semantics:
    - Validation and lookup failures happen before any S3 copy.
    - A RelocationError aborts the batch; copies already made are kept
      (sources are untouched, so the request is safe to retry).
    - A PersistenceError after all copies leaves the copied images orphaned;
      their URIs are logged at ERROR level and carried on the exception.
"""
import logging
from dataclasses import dataclass
from datetime import tzinfo
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    LabelingError, NotFoundError, PersistenceError, ValidationError,
)
from app.core.logging_config import sanitize_log_value
from app.core.metrics import record_labeling_failure, record_segments_labeled
from app.models.event import Event
from app.models.labeled_segment import LabeledSegment
from app.schemas.labeling import EventDetails, LabelMode, LabelRequest
from app.services.object_relocator import ObjectRelocator, RelocationPlan, get_object_relocator
from app.services.segment_details import (
    compute_duration,
    format_display_date,
    format_display_time,
    merge_details,
    pydantic_errors,
    validate_event_details,
)
from app.services.segment_store import LabeledSegmentDraft, SegmentRepository

logger = logging.getLogger(__name__)


@dataclass
class PreparedEvent:
    """An event whose details validated and whose image copy is planned."""
    event: Event
    details: EventDetails
    plan: RelocationPlan
    display_date: str
    display_time: str


def parse_label_request(payload: Union[LabelRequest, Mapping[str, Any]]) -> LabelRequest:
    """
    Validate a raw label payload.

    Raises:
        ValidationError: with the pydantic error list in ``details``
    """
    if isinstance(payload, LabelRequest):
        return payload
    if not isinstance(payload, Mapping):
        raise ValidationError("Label request body must be a JSON object")
    try:
        return LabelRequest.model_validate(dict(payload))
    except PydanticValidationError as e:
        errors = pydantic_errors(e)
        first = errors[0]["msg"] if errors else "Invalid label request"
        raise ValidationError(f"Invalid label request: {first}", details=errors)


class LabelingEngine:
    """
    Creates labeled segments from batches of events.

    One engine is built per request around that request's database session;
    it holds no state between calls.
    """

    def __init__(
        self,
        db: Session,
        relocator: Optional[ObjectRelocator] = None,
        display_tz: Optional[tzinfo] = None,
    ):
        self.db = db
        self.repository = SegmentRepository(db)
        self.relocator = relocator or get_object_relocator()
        self.display_tz = display_tz or settings.display_tz

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def label_events(self, payload: Union[LabelRequest, Mapping[str, Any]]) -> LabeledSegment:
        """
        Label a batch of events as one segment.

        Returns:
            The persisted LabeledSegment

        Raises:
            ValidationError, NotFoundError, RelocationError, PersistenceError
        """
        try:
            request = parse_label_request(payload)
            prepared = self._prepare(request)
            images = self._relocate(prepared)

            timestamps = [item.event.timestamp for item in prepared]
            draft = self._build_draft(
                request,
                prepared,
                images,
                timestamp_start=timestamps[0],
                timestamp_end=timestamps[-1],
                duration=compute_duration(timestamps),
            )
            segments = self._persist([draft], images)
        except LabelingError as e:
            record_labeling_failure(e.kind)
            raise

        segment = segments[0]
        record_segments_labeled(request.detection_type.value, LabelMode.SINGLE_SEGMENT.value, 1, len(prepared))
        logger.info(
            f"Labeled {len(prepared)} events as segment {segment.id} ({request.detection_type.value})",
            extra={
                "event_type": "segment_labeled",
                "segment_id": segment.id,
                "device_id": segment.device_id,
                "event_count": len(prepared),
                "detection_type": request.detection_type.value,
                "labeled_by": sanitize_log_value(request.labeled_by or "-"),
                "duration": segment.timestamp_end - segment.timestamp_start,
            }
        )
        return segment

    def label_events_per_event(self, payload: Union[LabelRequest, Mapping[str, Any]]) -> List[LabeledSegment]:
        """
        Label every event of the batch as its own segment.

        Returns:
            Persisted segments in event timestamp order
        """
        try:
            request = parse_label_request(payload)
            prepared = self._prepare(request)
            images = self._relocate(prepared)

            drafts = [
                self._build_draft(
                    request,
                    [item],
                    [image],
                    timestamp_start=item.event.timestamp,
                    timestamp_end=item.event.timestamp,
                    duration=0,
                )
                for item, image in zip(prepared, images)
            ]
            segments = self._persist(drafts, images)
        except LabelingError as e:
            record_labeling_failure(e.kind)
            raise

        record_segments_labeled(
            request.detection_type.value, LabelMode.PER_EVENT.value, len(segments), len(prepared)
        )
        logger.info(
            f"Labeled {len(prepared)} events as {len(segments)} segments ({request.detection_type.value})",
            extra={
                "event_type": "segments_labeled_per_event",
                "segment_ids": [segment.id for segment in segments],
                "event_count": len(prepared),
                "detection_type": request.detection_type.value,
                "labeled_by": sanitize_log_value(request.labeled_by or "-"),
            }
        )
        return segments

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _load_events(self, request: LabelRequest) -> List[Event]:
        """Fetch all requested events sorted by timestamp (ties by id)."""
        events = self.repository.fetch_events_by_ids(request.event_ids)
        found = {event.id for event in events}
        missing = [event_id for event_id in request.event_ids if event_id not in found]
        if missing:
            logger.warning(
                f"Label request references {len(missing)} missing events",
                extra={"event_type": "label_events_missing", "missing_event_ids": missing}
            )
            raise NotFoundError(missing)

        devices = {event.device_id for event in events}
        if len(devices) > 1:
            raise ValidationError(
                "All events in a label request must come from the same device",
                details={"device_ids": sorted(devices)},
            )

        return sorted(events, key=lambda event: (event.timestamp, event.id))

    def _prepare(self, request: LabelRequest) -> List[PreparedEvent]:
        """
        Validate every event's details and plan every copy.

        Runs to completion before the first copy so a malformed event in the
        batch leaves storage untouched.
        """
        prepared = []
        for event in self._load_events(request):
            details = validate_event_details(event.details_data, event.id)
            try:
                plan = self.relocator.plan(details.image_path)
            except ValueError as e:
                raise ValidationError(
                    f"Event {event.id} image cannot be relocated: {e}",
                    details={"event_id": event.id, "image_path": details.image_path},
                )
            display_date, display_time = self._display_values(event)
            prepared.append(PreparedEvent(
                event=event,
                details=details,
                plan=plan,
                display_date=display_date,
                display_time=display_time,
            ))
        return prepared

    def _display_values(self, event: Event) -> Tuple[str, str]:
        """Display date and time of an event, in the display timezone."""
        try:
            return (
                format_display_date(event.timestamp, self.display_tz),
                format_display_time(event.timestamp, self.display_tz),
            )
        except (ValueError, OverflowError, OSError) as e:
            raise ValidationError(
                f"Event {event.id} timestamp cannot be displayed as a date: {e}",
                details={"event_id": event.id, "timestamp": str(event.timestamp)},
            )

    def _relocate(self, prepared: Sequence[PreparedEvent]) -> List[str]:
        """Copy images one at a time in timestamp order; the list keeps that order."""
        images = []
        for item in prepared:
            images.append(self.relocator.execute(item.plan))
        return images

    def _build_draft(
        self,
        request: LabelRequest,
        members: Sequence[PreparedEvent],
        images: List[str],
        timestamp_start: int,
        timestamp_end: int,
        duration: int,
    ) -> LabeledSegmentDraft:
        base = members[0]
        return LabeledSegmentDraft(
            device_id=base.event.device_id,
            original_event_ids=[item.event.id for item in members],
            timestamp_start=timestamp_start,
            timestamp_end=timestamp_end,
            date=request.date or base.display_date,
            begin=request.begin or base.display_time,
            format=request.format,
            content=request.content,
            title=request.title,
            episode_id=request.episode_id,
            season_id=request.season_id,
            repeat=request.repeat,
            detection_type=request.detection_type.value,
            details=merge_details(base.details, request.category_fields(), images, duration),
            labeled_by=request.labeled_by,
        )

    def _persist(self, drafts: Sequence[LabeledSegmentDraft], images: List[str]) -> List[LabeledSegment]:
        """Insert all drafts in one transaction."""
        try:
            segments = [self.repository.add_segment(draft) for draft in drafts]
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Failed to persist labeled segment; {len(images)} relocated images are orphaned: {e}",
                extra={
                    "event_type": "segment_persist_failed",
                    "orphaned_images": images,
                    "error_type": type(e).__name__,
                },
                exc_info=True
            )
            raise PersistenceError("Failed to save labeled segment", orphaned_images=images) from e

        for segment in segments:
            self.db.refresh(segment)
        return segments
