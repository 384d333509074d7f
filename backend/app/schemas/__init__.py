"""Pydantic schemas for labeling requests and API responses"""
from app.schemas.labeling import (
    DetectionType,
    LabelMode,
    LabelRequest,
    EventDetails,
    SegmentDetails,
    EventResponse,
    EventListResponse,
    LabeledSegmentResponse,
    LabeledSegmentListResponse,
    SegmentGroupResponse,
    SegmentGroupListResponse,
    PerEventLabelResponse,
    Pagination,
)

__all__ = [
    "DetectionType",
    "LabelMode",
    "LabelRequest",
    "EventDetails",
    "SegmentDetails",
    "EventResponse",
    "EventListResponse",
    "LabeledSegmentResponse",
    "LabeledSegmentListResponse",
    "SegmentGroupResponse",
    "SegmentGroupListResponse",
    "PerEventLabelResponse",
    "Pagination",
]
