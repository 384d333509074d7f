"""
Segment Reconciler

Operators often label one continuous broadcast unit (a programme, a song,
an ad break) in several separate actions, each producing its own segment.
For display, consecutive segments that carry the same labels and start
within the adjacency window of each other are merged into one group.

The merge is a heuristic: segments more than the window apart are never
merged, while segments within the window are split if any compared field
differs.

Architecture:
    ordered segments → drop those with invalid details
                    ↓
           fold: extend the open group or start a new one
                    ↓
           groups (ordered by timestamp_start, partitioning the valid input)
"""
import logging
from dataclasses import dataclass, field, replace
from functools import reduce
from typing import Any, Dict, Iterable, List, Optional, Tuple

from app.core.config import settings
from app.core.metrics import record_segments_skipped
from app.schemas.labeling import COMPARABLE_DETAIL_FIELDS, SegmentDetails
from app.services.segment_details import parse_segment_details

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComparableSegmentKey:
    """Label fields two segments must share to belong to one display group.

    ``detail_fields`` holds every comparable category field as a
    (name, value) pair; a field missing from the payload is None, so
    missing equals missing.
    """
    device_id: str
    detection_type: str
    date: str
    begin: str
    format: Optional[str]
    content: Optional[str]
    title: Optional[str]
    episode_id: Optional[str]
    season_id: Optional[str]
    repeat: bool
    detail_fields: Tuple[Tuple[str, Any], ...]

    @classmethod
    def from_segment(cls, segment, details: SegmentDetails) -> "ComparableSegmentKey":
        payload = details.model_dump()
        return cls(
            device_id=segment.device_id,
            detection_type=segment.detection_type,
            date=segment.date,
            begin=segment.begin,
            format=segment.format,
            content=segment.content,
            title=segment.title,
            episode_id=segment.episode_id,
            season_id=segment.season_id,
            repeat=bool(segment.repeat),
            detail_fields=tuple((name, payload.get(name)) for name in COMPARABLE_DETAIL_FIELDS),
        )


def is_similar(left: ComparableSegmentKey, right: ComparableSegmentKey) -> bool:
    """True when two segments carry identical labels."""
    return left == right


@dataclass(frozen=True)
class SegmentGroup:
    """A display group of one or more adjacent, identically labeled segments."""
    key: ComparableSegmentKey
    segment_ids: Tuple[int, ...]
    event_ids: Tuple[int, ...]
    timestamp_start: int
    timestamp_end: int
    anchor: int  # timestamp_start of the last absorbed segment
    images: Tuple[str, ...]
    labeled_by: Optional[str]
    details: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def duration(self) -> int:
        return self.timestamp_end - self.timestamp_start

    def to_dict(self) -> Dict[str, Any]:
        """Display payload; details carry the group's images and duration."""
        details = dict(self.details)
        details["images"] = list(self.images)
        details["duration"] = self.duration
        return {
            "segment_ids": list(self.segment_ids),
            "original_event_ids": list(self.event_ids),
            "device_id": self.key.device_id,
            "detection_type": self.key.detection_type,
            "date": self.key.date,
            "begin": self.key.begin,
            "format": self.key.format,
            "content": self.key.content,
            "title": self.key.title,
            "episode_id": self.key.episode_id,
            "season_id": self.key.season_id,
            "repeat": self.key.repeat,
            "labeled_by": self.labeled_by,
            "timestamp_start": self.timestamp_start,
            "timestamp_end": self.timestamp_end,
            "duration": self.duration,
            "images": list(self.images),
            "details": details,
        }


@dataclass(frozen=True)
class ReconcileCandidate:
    """A segment that passed detail validation, ready to be folded."""
    segment: Any
    details: SegmentDetails
    key: ComparableSegmentKey


@dataclass
class ReconcileResult:
    groups: List[SegmentGroup]
    skipped: int = 0


def open_group(candidate: ReconcileCandidate) -> SegmentGroup:
    segment = candidate.segment
    return SegmentGroup(
        key=candidate.key,
        segment_ids=(segment.id,),
        event_ids=tuple(segment.event_ids),
        timestamp_start=segment.timestamp_start,
        timestamp_end=segment.timestamp_end,
        anchor=segment.timestamp_start,
        images=tuple(candidate.details.images),
        labeled_by=segment.labeled_by,
        details=candidate.details.model_dump(),
    )


def can_absorb(group: SegmentGroup, candidate: ReconcileCandidate, window_seconds: int) -> bool:
    """Similarity predicate: identical labels and a start within the window of the anchor."""
    return (
        is_similar(group.key, candidate.key)
        and abs(candidate.segment.timestamp_start - group.anchor) <= window_seconds
    )


def absorb(group: SegmentGroup, candidate: ReconcileCandidate) -> SegmentGroup:
    segment = candidate.segment
    return replace(
        group,
        segment_ids=group.segment_ids + (segment.id,),
        event_ids=group.event_ids + tuple(segment.event_ids),
        timestamp_end=max(group.timestamp_end, segment.timestamp_end),
        anchor=segment.timestamp_start,
        images=group.images + tuple(candidate.details.images),
    )


def prepare_candidates(segments: Iterable[Any]) -> Tuple[List[ReconcileCandidate], int]:
    """Parse each segment's details; invalid ones are dropped and counted."""
    candidates = []
    skipped = 0
    for segment in segments:
        details = parse_segment_details(segment.details_data)
        if details is None:
            skipped += 1
            logger.debug(
                f"Skipping segment {segment.id} with invalid details",
                extra={"segment_id": segment.id}
            )
            continue
        candidates.append(ReconcileCandidate(
            segment=segment,
            details=details,
            key=ComparableSegmentKey.from_segment(segment, details),
        ))
    return candidates, skipped


def reconcile_segments(
    segments: Iterable[Any],
    window_seconds: Optional[int] = None,
) -> ReconcileResult:
    """
    Merge adjacent segments into display groups.

    Args:
        segments: Segments ordered ascending by timestamp_start
        window_seconds: Adjacency window (settings.SEGMENT_MERGE_WINDOW_SECONDS)

    Returns:
        ReconcileResult with groups in input order and the skipped count
    """
    window = settings.SEGMENT_MERGE_WINDOW_SECONDS if window_seconds is None else window_seconds
    candidates, skipped = prepare_candidates(segments)

    def step(groups: List[SegmentGroup], candidate: ReconcileCandidate) -> List[SegmentGroup]:
        if groups and can_absorb(groups[-1], candidate, window):
            return groups[:-1] + [absorb(groups[-1], candidate)]
        return groups + [open_group(candidate)]

    groups = reduce(step, candidates, [])

    if skipped:
        record_segments_skipped(skipped)
        logger.warning(
            f"Dropped {skipped} labeled segments with invalid details from display grouping",
            extra={"event_type": "segments_skipped", "skipped": skipped}
        )

    return ReconcileResult(groups=groups, skipped=skipped)
