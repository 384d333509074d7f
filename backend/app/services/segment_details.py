"""
Shared detail-validation and time-formatting helpers.

Used by the labeling engine (write path) and the segment reconciler (read
path) so both sides agree on what a valid detail payload looks like and how
display dates are rendered.
"""
import logging
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import ValidationError
from app.schemas.labeling import EventDetails, SegmentDetails

logger = logging.getLogger(__name__)

# Fixed English abbreviations; strftime("%b") follows the process locale
MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


def pydantic_errors(exc: PydanticValidationError) -> List[Dict[str, Any]]:
    """Compact, JSON-safe view of pydantic errors for API responses."""
    return [
        {
            "loc": ".".join(str(part) for part in error.get("loc", ())),
            "msg": error.get("msg"),
            "type": error.get("type"),
        }
        for error in exc.errors()
    ]


def validate_event_details(raw: Any, event_id: int) -> EventDetails:
    """
    Validate an event's details against the base shape.

    Raises:
        ValidationError: naming the event when details are absent or malformed
    """
    if not isinstance(raw, dict):
        raise ValidationError(
            f"Event {event_id} has no valid details payload",
            details={"event_id": event_id},
        )
    try:
        return EventDetails.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Event {event_id} details do not contain required image information",
            details={"event_id": event_id, "errors": pydantic_errors(e)},
        )


def parse_segment_details(raw: Any) -> Optional[SegmentDetails]:
    """Parse a stored segment payload, returning None when it is invalid."""
    if not isinstance(raw, dict):
        return None
    try:
        return SegmentDetails.model_validate(raw)
    except PydanticValidationError:
        return None


def merge_details(
    base: EventDetails,
    category_fields: Dict[str, Any],
    images: List[str],
    duration: int,
) -> Dict[str, Any]:
    """
    Build the persisted details payload of a segment.

    The earliest event's details are the base; category fields overlay it and
    win on key collision. ``image_path`` points at the first relocated image
    and the source URI is kept as ``original_image_path``.
    """
    merged = base.model_dump()
    merged.update(category_fields)
    if images:
        merged["original_image_path"] = base.image_path
        merged["image_path"] = images[0]
    merged["images"] = list(images)
    merged["duration"] = duration
    return merged


def compute_duration(timestamps: Iterable[int]) -> int:
    """Span in seconds between the earliest and latest timestamp (0 for one)."""
    values = list(timestamps)
    if not values:
        return 0
    return max(values) - min(values)


def _to_local(timestamp: int, tz: tzinfo) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).astimezone(tz)


def format_display_date(timestamp: int, tz: tzinfo = timezone.utc) -> str:
    """Render seconds-since-epoch as 'DD Mon YYYY', e.g. '05 Mar 2025'."""
    local = _to_local(timestamp, tz)
    return f"{local.day:02d} {MONTH_ABBREVIATIONS[local.month - 1]} {local.year:04d}"


def format_display_time(timestamp: int, tz: tzinfo = timezone.utc) -> str:
    """Render seconds-since-epoch as 24-hour 'HH:MM:SS'."""
    local = _to_local(timestamp, tz)
    return f"{local.hour:02d}:{local.minute:02d}:{local.second:02d}"
