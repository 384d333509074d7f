"""Tests for detail validation and display formatting helpers"""
from datetime import timezone
from zoneinfo import ZoneInfo

import pytest

from app.core.exceptions import ValidationError
from app.schemas.labeling import EventDetails
from app.services.segment_details import (
    compute_duration,
    format_display_date,
    format_display_time,
    merge_details,
    parse_segment_details,
    validate_event_details,
)
from tests.conftest import BASE_TS, frame_uri, make_event_details, make_segment_details


class TestValidateEventDetails:

    def test_valid_details_keep_extras(self):
        details = validate_event_details(make_event_details(), event_id=5)
        assert details.image_path == frame_uri()
        assert details.model_dump()["brand_name"] == "Wai Wai"

    @pytest.mark.parametrize("raw", [
        None,
        "a string",
        {"score": 0.9, "channel_name": "NTV"},
        {"score": "high", "image_path": frame_uri(), "channel_name": "NTV"},
        {"score": 0.9, "image_path": "/relative/unrecognized_frames/a.jpg", "channel_name": "NTV"},
        {"score": 0.9, "image_path": "https://bucket.s3.amazonaws.com/", "channel_name": "NTV"},
        {"score": 0.9, "image_path": frame_uri(), "channel_name": 7},
    ])
    def test_invalid_details(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            validate_event_details(raw, event_id=5)
        assert exc_info.value.details["event_id"] == 5

    def test_integer_score_accepted(self):
        assert validate_event_details(make_event_details(score=1), event_id=1).score == 1


class TestParseSegmentDetails:

    def test_valid(self):
        details = parse_segment_details(make_segment_details(duration=30))
        assert details.duration == 30
        assert details.images == [frame_uri(area="labeled_frames")]

    def test_invalid_returns_none(self):
        raw = make_segment_details()
        del raw["channel_name"]
        assert parse_segment_details(raw) is None
        assert parse_segment_details(None) is None


class TestMergeDetails:

    def test_overlay_and_images(self):
        base = EventDetails.model_validate(make_event_details(category="ingested"))
        images = [frame_uri("a.jpg", area="labeled_frames"), frame_uri("b.jpg", area="labeled_frames")]

        merged = merge_details(base, {"category": "FMCG", "sector": "Food"}, images, duration=30)

        assert merged["category"] == "FMCG"
        assert merged["sector"] == "Food"
        assert merged["image_path"] == images[0]
        assert merged["original_image_path"] == frame_uri()
        assert merged["images"] == images
        assert merged["duration"] == 30
        assert merged["channel_name"] == "Kantipur TV"


class TestDisplayFormatting:

    def test_utc(self):
        assert format_display_date(BASE_TS, timezone.utc) == "05 Mar 2025"
        assert format_display_time(BASE_TS, timezone.utc) == "14:20:00"

    def test_zone_offset_applied(self):
        kathmandu = ZoneInfo("Asia/Kathmandu")  # UTC+05:45
        assert format_display_time(BASE_TS, kathmandu) == "20:05:00"

    def test_date_rolls_over_in_zone(self):
        last_second_of_march_4_utc = BASE_TS - 14 * 3600 - 20 * 60 - 1
        assert format_display_date(last_second_of_march_4_utc, timezone.utc) == "04 Mar 2025"
        assert format_display_date(last_second_of_march_4_utc, ZoneInfo("Asia/Kathmandu")) == "05 Mar 2025"

    def test_single_digit_day_is_padded(self):
        assert format_display_date(1735689600, timezone.utc) == "01 Jan 2025"
        assert format_display_time(1735689600, timezone.utc) == "00:00:00"


class TestComputeDuration:

    def test_span(self):
        assert compute_duration([BASE_TS + 60, BASE_TS, BASE_TS + 30]) == 60

    def test_single_and_empty(self):
        assert compute_duration([BASE_TS]) == 0
        assert compute_duration([]) == 0
