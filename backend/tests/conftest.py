"""Pytest fixtures and configuration for test suite

This module provides:
1. Database session fixtures for test isolation
2. Factory functions for creating test objects with sensible defaults
3. Pytest fixtures that use the factory functions

Factory Functions:
    - make_event_details(**overrides) -> dict
    - make_event(**overrides) -> Event
    - make_segment_details(**overrides) -> dict
    - make_segment(**overrides) -> LabeledSegment

Each factory accepts an optional db_session parameter to persist objects.
"""
import json
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.models.event import Event, EVENT_TYPE_RECOGNIZED
from app.models.labeled_segment import LabeledSegment, LabeledSegmentEvent
from app.services.object_relocator import ObjectRelocator

# 2025-03-05 14:20:00 UTC
BASE_TS = 1741184400
TEST_BUCKET = "apm-captured-images"
TEST_REGION = "ap-south-1"
S3_HOST = f"https://{TEST_BUCKET}.s3.{TEST_REGION}.amazonaws.com"


def frame_uri(name: str = "frame_1.jpg", area: str = "unrecognized_frames", device_id: str = "device-001") -> str:
    return f"{S3_HOST}/{device_id}/{area}/2025-03-05/{name}"


# =============================================================================
# Factory Functions for Test Objects
# =============================================================================

def make_event_details(**overrides) -> dict:
    """Valid base details as written by the ingester."""
    details = {
        "score": 0.92,
        "image_path": frame_uri(),
        "channel_name": "Kantipur TV",
        "brand_name": "Wai Wai",
    }
    details.update(overrides)
    return details


def make_event(
    db_session=None,
    id: int = None,
    device_id: str = "device-001",
    timestamp: int = BASE_TS,
    type: int = EVENT_TYPE_RECOGNIZED,
    details=None,
    **overrides
) -> Event:
    """
    Factory function to create Event instances for testing.

    Args:
        db_session: Optional SQLAlchemy session. If provided, adds and commits the event.
        id: Explicit id; autoincrement when None.
        device_id: Device the event came from.
        timestamp: Capture time in epoch seconds.
        type: Event type code.
        details: Dict (JSON-encoded) or raw string. Defaults to valid details.
        **overrides: Any additional Event model fields.

    Returns:
        Event instance (persisted if db_session provided).

    Example:
        event = make_event(db_session=session, timestamp=BASE_TS + 30)
    """
    if details is None:
        details = make_event_details()
    event = Event(
        id=id,
        device_id=device_id,
        timestamp=timestamp,
        type=type,
        details=details if isinstance(details, str) else json.dumps(details),
        **overrides
    )

    if db_session:
        db_session.add(event)
        db_session.commit()

    return event


def make_segment_details(**overrides) -> dict:
    """Valid merged segment details for a Song segment."""
    details = make_event_details(
        image_path=frame_uri(area="labeled_frames"),
        original_image_path=frame_uri(),
        song_name="Resham Firiri",
        artist_name="Traditional",
        images=[frame_uri(area="labeled_frames")],
        duration=0,
    )
    details.update(overrides)
    return details


def make_segment(
    db_session=None,
    id: int = None,
    device_id: str = "device-001",
    timestamp_start: int = BASE_TS,
    timestamp_end: int = None,
    event_ids: list = None,
    detection_type: str = "Song",
    date: str = "05 Mar 2025",
    begin: str = "14:20:00",
    repeat: bool = False,
    details=None,
    **overrides
) -> LabeledSegment:
    """
    Factory function to create LabeledSegment instances for testing.

    Unsaved instances work with the reconciler directly; pass db_session to
    persist the segment (member rows are written for ``event_ids``).

    Example:
        segment = make_segment(id=1, timestamp_start=BASE_TS + 30)
    """
    if timestamp_end is None:
        timestamp_end = timestamp_start
    if event_ids is None:
        event_ids = []
    if details is None:
        details = make_segment_details()

    segment = LabeledSegment(
        id=id,
        device_id=device_id,
        original_event_ids=json.dumps(event_ids),
        timestamp_start=timestamp_start,
        timestamp_end=timestamp_end,
        date=date,
        begin=begin,
        repeat=repeat,
        detection_type=detection_type,
        details=details if isinstance(details, str) else json.dumps(details),
        **overrides
    )

    if db_session:
        segment.members = [
            LabeledSegmentEvent(event_id=event_id, position=position)
            for position, event_id in enumerate(event_ids)
        ]
        db_session.add(segment)
        db_session.commit()

    return segment


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def db_session():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def s3_client():
    """MagicMock standing in for the boto3 S3 client."""
    return MagicMock()


@pytest.fixture
def relocator(s3_client):
    return ObjectRelocator(client=s3_client, bucket=TEST_BUCKET, region=TEST_REGION)
