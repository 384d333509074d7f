"""Labeling API Pydantic schemas for request/response validation

Detail payloads are a tagged union keyed by detection type: every event
carries the base ``EventDetails`` shape and a label request carries exactly
one category object (``programContentDetails``, ``songDetails``, ...) whose
required fields depend on the detection type.
"""
import re
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Tuple, Type, Union
from urllib.parse import urlparse

from pydantic import (
    BaseModel, ConfigDict, Field, PlainSerializer, StrictBool, StrictFloat, StrictInt, StrictStr,
    field_validator, model_validator,
)
from pydantic.alias_generators import to_camel

# Integer seconds serialized as decimal strings so 64-bit values survive JSON clients
TimestampStr = Annotated[int, PlainSerializer(lambda v: str(v), return_type=str)]

DISPLAY_DATE_PATTERN = r"^\d{2} [A-Z][a-z]{2} \d{4}$"
DISPLAY_TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d:[0-5]\d$"

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def _compact(value: str) -> str:
    return _NON_ALNUM.sub("", value.lower())


class DetectionType(str, Enum):
    """Broadcast-content categories an operator can assign.

    Values are the stored/reported strings; lookups also accept the compact
    member spelling ("ProgramContent", "AUTO_PROMO", "auto promo").
    """

    PROGRAM_CONTENT = "Program Content"
    COMMERCIAL_BREAK = "Commercial Break"
    SPOTS_OUTSIDE_BREAKS = "Spots outside breaks"
    AUTO_PROMO = "Auto-promo"
    SONG = "Song"
    ERROR = "Error"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            compact = _compact(value)
            for member in cls:
                if compact in (_compact(member.value), _compact(member.name)):
                    return member
        return None


class LabelMode(str, Enum):
    """Labeling engine modes."""
    SINGLE_SEGMENT = "single_segment"  # One segment for the whole batch
    PER_EVENT = "per_event"  # One segment per event


class CamelModel(BaseModel):
    """Accepts camelCase (dashboard) and snake_case keys; serializes camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Detail payloads
# =============================================================================

def _check_uri(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https", "s3") or not parsed.netloc:
        raise ValueError("image_path must be an absolute http(s) or s3 URI")
    if not parsed.path.strip("/"):
        raise ValueError("image_path must reference an object key")
    return value


class EventDetails(BaseModel):
    """Base shape every event's details must satisfy to be labeled.

    Extra keys written by the ingester (brand_name, advertiser, ...) are kept.
    """
    model_config = ConfigDict(extra="allow")

    score: Union[StrictInt, StrictFloat]
    image_path: StrictStr
    channel_name: StrictStr

    @field_validator("image_path")
    @classmethod
    def validate_image_path(cls, v: str) -> str:
        return _check_uri(v)


class SegmentDetails(EventDetails):
    """Merged details persisted on a labeled segment."""

    images: List[StrictStr] = Field(default_factory=list)
    duration: Optional[StrictInt] = None


class ProgramContentDetails(CamelModel):
    description: str = Field(..., min_length=1)
    format_type: str = Field(..., min_length=1)
    content_type: str = Field(..., min_length=1)


class CommercialBreakDetails(CamelModel):
    category: Optional[str] = None
    sector: Optional[str] = None


class SpotsOutsideBreaksDetails(CamelModel):
    format_type: str = Field(..., min_length=1)
    category: Optional[str] = None
    sector: Optional[str] = None


class AutoPromoDetails(CamelModel):
    content_type: str = Field(..., min_length=1)
    category: Optional[str] = None
    sector: Optional[str] = None


class SongDetails(CamelModel):
    song_name: str = Field(..., min_length=1)
    artist_name: str = Field(..., min_length=1)
    movie_name_or_album_name: Optional[str] = None
    year_of_publication: Optional[str] = None
    genre: Optional[str] = None
    tempo: Optional[str] = None

    @field_validator("year_of_publication", "tempo", mode="before")
    @classmethod
    def stringify_numbers(cls, v):
        """Dashboards send years and BPM as numbers"""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class ErrorDetails(CamelModel):
    error_type: str = Field(..., min_length=1)


# detection type -> (request attribute, variant model)
CATEGORY_DETAILS: Dict[DetectionType, Tuple[str, Type[CamelModel]]] = {
    DetectionType.PROGRAM_CONTENT: ("program_content_details", ProgramContentDetails),
    DetectionType.COMMERCIAL_BREAK: ("commercial_break_details", CommercialBreakDetails),
    DetectionType.SPOTS_OUTSIDE_BREAKS: ("spots_outside_breaks_details", SpotsOutsideBreaksDetails),
    DetectionType.AUTO_PROMO: ("auto_promo_details", AutoPromoDetails),
    DetectionType.SONG: ("song_details", SongDetails),
    DetectionType.ERROR: ("error_details", ErrorDetails),
}

# Category detail keys compared when grouping segments for display
COMPARABLE_DETAIL_FIELDS = (
    "description",
    "format_type",
    "content_type",
    "category",
    "sector",
    "song_name",
    "movie_name_or_album_name",
    "artist_name",
    "year_of_publication",
    "genre",
    "tempo",
    "error_type",
)


# =============================================================================
# Label request
# =============================================================================

EventId = Annotated[StrictInt, Field(gt=0)]


class LabelRequest(CamelModel):
    """Schema for POST /api/v1/events/label"""
    event_ids: List[EventId] = Field(..., min_length=1, description="Events to label, any order")
    detection_type: DetectionType = Field(..., description="Broadcast-content category")
    repeat: StrictBool = Field(..., description="Whether the broadcast is a repeat")
    format: Optional[str] = Field(None, pattern=r"^\d{2}$", description="2-digit format code")
    content: Optional[str] = Field(None, pattern=r"^\d{3}$", description="3-digit content code")
    title: Optional[str] = Field(None, max_length=500)
    episode_id: Optional[str] = Field(None, max_length=100)
    season_id: Optional[str] = Field(None, max_length=100)
    labeled_by: Optional[str] = Field(None, max_length=255, description="Opaque labeler identity")
    # Operator-entered schedule values; derived from the first event when omitted
    date: Optional[str] = Field(None, pattern=DISPLAY_DATE_PATTERN, description="Display date, e.g. '05 Mar 2025'")
    begin: Optional[str] = Field(None, pattern=DISPLAY_TIME_PATTERN, description="Display time, e.g. '14:30:05'")

    program_content_details: Optional[ProgramContentDetails] = None
    commercial_break_details: Optional[CommercialBreakDetails] = None
    spots_outside_breaks_details: Optional[SpotsOutsideBreaksDetails] = None
    auto_promo_details: Optional[AutoPromoDetails] = None
    song_details: Optional[SongDetails] = None
    error_details: Optional[ErrorDetails] = None

    @field_validator("event_ids", mode="after")
    @classmethod
    def dedupe_event_ids(cls, v: List[int]) -> List[int]:
        """Collapse duplicates, keeping first position"""
        return list(dict.fromkeys(v))

    @field_validator("title", "episode_id", "season_id", "labeled_by", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def validate_category(self) -> "LabelRequest":
        attribute, _ = CATEGORY_DETAILS[self.detection_type]
        if getattr(self, attribute) is None:
            raise ValueError(
                f"{to_camel(attribute)} is required when detectionType is '{self.detection_type.value}'"
            )
        if (
            self.detection_type is DetectionType.PROGRAM_CONTENT
            and (self.episode_id or self.season_id)
            and self.program_content_details is None
        ):
            raise ValueError("episodeId/seasonId require programContentDetails")
        return self

    @property
    def category_details(self) -> CamelModel:
        attribute, _ = CATEGORY_DETAILS[self.detection_type]
        return getattr(self, attribute)

    def category_fields(self) -> Dict[str, Any]:
        """Category fields as snake_case keys, unset fields omitted"""
        return self.category_details.model_dump(exclude_none=True)

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "eventIds": [1201, 1202, 1203],
                    "detectionType": "Song",
                    "repeat": False,
                    "title": "Evening Music Hour",
                    "labeledBy": "operator-7",
                    "songDetails": {
                        "songName": "Resham Firiri",
                        "artistName": "Traditional",
                        "genre": "Folk"
                    }
                }
            ]
        },
    )


# =============================================================================
# Responses
# =============================================================================

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class EventResponse(CamelModel):
    """Raw detection event"""
    id: int
    device_id: str
    timestamp: TimestampStr
    type: int
    details: Optional[Any] = None
    created_at: datetime
    processing_type: Optional[str] = Field(None, description="recognized/processed/unrecognized for image-processing listings")


class EventListResponse(BaseModel):
    data: List[EventResponse]
    pagination: Pagination


class LabeledSegmentResponse(CamelModel):
    """Persisted labeled segment"""
    id: int
    device_id: str
    original_event_ids: List[int]
    timestamp_start: TimestampStr
    timestamp_end: TimestampStr
    date: str
    begin: str
    format: Optional[str] = None
    content: Optional[str] = None
    title: Optional[str] = None
    episode_id: Optional[str] = None
    season_id: Optional[str] = None
    repeat: bool
    detection_type: str
    details: Optional[Any] = None
    images: List[str] = Field(default_factory=list)
    duration: int = 0
    labeled_by: Optional[str] = None
    labeled_at: datetime
    created_at: datetime

    @classmethod
    def from_segment(cls, segment) -> "LabeledSegmentResponse":
        """Build from a LabeledSegment row, exposing images and duration."""
        details = segment.details_data
        images = details.get("images") if isinstance(details, dict) else None
        return cls(
            id=segment.id,
            device_id=segment.device_id,
            original_event_ids=segment.event_ids,
            timestamp_start=segment.timestamp_start,
            timestamp_end=segment.timestamp_end,
            date=segment.date,
            begin=segment.begin,
            format=segment.format,
            content=segment.content,
            title=segment.title,
            episode_id=segment.episode_id,
            season_id=segment.season_id,
            repeat=segment.repeat,
            detection_type=segment.detection_type,
            details=details,
            images=images if isinstance(images, list) else [],
            duration=segment.timestamp_end - segment.timestamp_start,
            labeled_by=segment.labeled_by,
            labeled_at=segment.labeled_at,
            created_at=segment.created_at,
        )


class LabeledSegmentListResponse(BaseModel):
    data: List[LabeledSegmentResponse]
    pagination: Pagination


class SegmentGroupResponse(CamelModel):
    """Display group of adjacent segments describing one broadcast unit"""
    segment_ids: List[int]
    original_event_ids: List[int]
    device_id: str
    detection_type: str
    date: str
    begin: str
    format: Optional[str] = None
    content: Optional[str] = None
    title: Optional[str] = None
    episode_id: Optional[str] = None
    season_id: Optional[str] = None
    repeat: bool
    labeled_by: Optional[str] = None
    timestamp_start: TimestampStr
    timestamp_end: TimestampStr
    duration: int
    images: List[str]
    details: Dict[str, Any]


class SegmentGroupListResponse(BaseModel):
    data: List[SegmentGroupResponse]
    pagination: Pagination
    skipped: int = Field(0, description="Segments dropped for invalid details")


class PerEventLabelResponse(BaseModel):
    data: List[LabeledSegmentResponse]
