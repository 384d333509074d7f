"""Tests for Event and LabeledSegment ORM models"""
import json

import pytest
from sqlalchemy.exc import IntegrityError

from app.models.event import Event
from app.models.labeled_segment import LabeledSegment
from tests.conftest import BASE_TS, make_event, make_segment


class TestEventModel:

    def test_details_data_decodes_json(self, db_session):
        event = make_event(db_session, id=5)
        stored = db_session.get(Event, 5)
        assert stored.details_data["channel_name"] == "Kantipur TV"
        assert stored.created_at is not None
        assert event.timestamp == BASE_TS

    def test_details_data_none_when_invalid(self):
        assert make_event(details="{not json").details_data is None
        assert Event(device_id="d", timestamp=1, type=29, details=None).details_data is None

    def test_large_timestamps(self, db_session):
        make_event(db_session, id=6, timestamp=2 ** 40)
        assert db_session.get(Event, 6).timestamp == 2 ** 40


class TestLabeledSegmentModel:

    def test_members_ordered_by_position(self, db_session):
        for event_id in (3, 1, 2):
            make_event(db_session, id=event_id)
        segment = make_segment(db_session, event_ids=[3, 1, 2])

        stored = db_session.get(LabeledSegment, segment.id)
        assert stored.event_ids == [3, 1, 2]
        assert [member.event_id for member in stored.members] == [3, 1, 2]
        assert stored.labeled_at is not None

    def test_start_must_not_exceed_end(self, db_session):
        with pytest.raises(IntegrityError):
            make_segment(db_session, timestamp_start=BASE_TS + 10, timestamp_end=BASE_TS)

    def test_details_data(self):
        segment = make_segment(details={"duration": 5})
        assert segment.details_data == {"duration": 5}
        segment.details = "["
        assert segment.details_data is None

    def test_event_ids_parsed_as_ints(self):
        segment = make_segment(event_ids=[])
        segment.original_event_ids = json.dumps(["7", 8])
        assert segment.event_ids == [7, 8]
