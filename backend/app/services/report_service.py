"""
Daily per-device labeling report.

Counts, for one device and one calendar day (in REPORT_TIMEZONE):
    - labeled segments per detection type (by segment start time)
    - total events captured that day
    - events of that day not attached to any labeled segment
"""
import csv
import io
import logging
import re
from dataclasses import dataclass, asdict
from datetime import date as date_type, datetime, time, tzinfo
from typing import Dict, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.models.event import Event
from app.models.labeled_segment import LabeledSegment, LabeledSegmentEvent
from app.schemas.labeling import DetectionType

logger = logging.getLogger(__name__)

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# detection type -> report attribute
_COUNT_FIELDS: Dict[DetectionType, str] = {
    DetectionType.PROGRAM_CONTENT: "program_content_count",
    DetectionType.COMMERCIAL_BREAK: "commercial_break_count",
    DetectionType.SPOTS_OUTSIDE_BREAKS: "spots_outside_breaks_count",
    DetectionType.AUTO_PROMO: "auto_promo_count",
    DetectionType.SONG: "song_count",
    DetectionType.ERROR: "error_count",
}

# (CSV header, report attribute)
CSV_COLUMNS = (
    ("Date", "date"),
    ("Device ID", "device_id"),
    ("Program Content Count", "program_content_count"),
    ("Commercial Break Count", "commercial_break_count"),
    ("Spots Outside Breaks Count", "spots_outside_breaks_count"),
    ("Auto-promo Count", "auto_promo_count"),
    ("Song Count", "song_count"),
    ("Error Count", "error_count"),
    ("Unlabeled Count", "unlabeled_count"),
    ("Total Events", "total_events"),
)


@dataclass
class DailyReport:
    """Counts for one device and one day."""
    date: str
    device_id: str
    program_content_count: int = 0
    commercial_break_count: int = 0
    spots_outside_breaks_count: int = 0
    auto_promo_count: int = 0
    song_count: int = 0
    error_count: int = 0
    unlabeled_count: int = 0
    total_events: int = 0

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def parse_report_date(value: Optional[str]) -> date_type:
    """
    Parse a YYYY-MM-DD report date.

    Raises:
        ValidationError: on a missing, malformed or impossible date
    """
    if not value or not _DATE_PATTERN.match(value):
        raise ValidationError("Date must be in YYYY-MM-DD format", details={"date": value})
    try:
        return date_type.fromisoformat(value)
    except ValueError:
        raise ValidationError("Invalid date provided", details={"date": value})


def day_bounds(day: date_type, tz: tzinfo) -> Tuple[int, int]:
    """First and last second (inclusive, epoch seconds) of ``day`` in ``tz``."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day, time(23, 59, 59), tzinfo=tz)
    return int(start.timestamp()), int(end.timestamp())


def generate_daily_report(
    db: Session,
    report_date: Optional[str],
    device_id: Optional[str],
    tz: Optional[tzinfo] = None,
) -> DailyReport:
    """
    Build the labeling report for one device and day.

    Raises:
        ValidationError: if date or device is missing or malformed
    """
    if not device_id:
        raise ValidationError("Date and deviceId are required", details={"deviceId": device_id})
    day = parse_report_date(report_date)
    start_ts, end_ts = day_bounds(day, tz or settings.report_tz)

    report = DailyReport(date=day.isoformat(), device_id=device_id)

    labeled_counts = (
        db.query(LabeledSegment.detection_type, func.count(LabeledSegment.id))
        .filter(
            LabeledSegment.device_id == device_id,
            LabeledSegment.timestamp_start >= start_ts,
            LabeledSegment.timestamp_start <= end_ts,
        )
        .group_by(LabeledSegment.detection_type)
        .all()
    )
    for detection_type, count in labeled_counts:
        try:
            attribute = _COUNT_FIELDS[DetectionType(detection_type)]
        except ValueError:
            logger.warning(f"Unknown detection type in labeled segments: {detection_type}")
            continue
        setattr(report, attribute, count)

    day_events = db.query(Event).filter(
        Event.device_id == device_id,
        Event.timestamp >= start_ts,
        Event.timestamp <= end_ts,
    )
    report.total_events = day_events.count()

    labeled_event_ids = db.query(LabeledSegmentEvent.event_id)
    report.unlabeled_count = day_events.filter(~Event.id.in_(labeled_event_ids)).count()

    logger.info(
        f"Generated report for device {device_id} on {report.date}",
        extra={"event_type": "report_generated", **report.to_dict()}
    )
    return report


def render_report_csv(report: DailyReport) -> str:
    """Render a report as a two-line CSV (header + values)."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow([header for header, _ in CSV_COLUMNS])
    writer.writerow([getattr(report, attribute) for _, attribute in CSV_COLUMNS])
    return buffer.getvalue()
