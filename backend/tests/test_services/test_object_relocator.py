"""Tests for S3 image relocation into the labeled area"""
from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from app.core.exceptions import RelocationError
from app.services.object_relocator import (
    ObjectLocation,
    ObjectRelocator,
    derive_labeled_key,
    get_object_relocator,
    parse_object_uri,
    reset_object_relocator,
)
from tests.conftest import TEST_BUCKET, frame_uri


class TestDeriveLabeledKey:
    """Pure key mapping"""

    def test_unrecognized_frames(self):
        assert derive_labeled_key("dev-1/unrecognized_frames/2025-03-05/a.jpg") == "dev-1/labeled_frames/2025-03-05/a.jpg"

    def test_analyzed_frames(self):
        assert derive_labeled_key("analayzed_frames/dev-1/a.jpg") == "labeled_frames/dev-1/a.jpg"

    def test_only_first_segment_replaced(self):
        key = "unrecognized_frames/dev-1/unrecognized_frames/a.jpg"
        assert derive_labeled_key(key) == "labeled_frames/dev-1/unrecognized_frames/a.jpg"

    def test_deterministic(self):
        key = "dev-9/analayzed_frames/2025-03-05/frame_000123.jpg"
        assert derive_labeled_key(key) == derive_labeled_key(key)

    @pytest.mark.parametrize("key", [
        "dev-1/thumbnails/a.jpg",
        "dev-1/unrecognized_frames_old/a.jpg",
        "dev-1/labeled_frames/a.jpg",
    ])
    def test_non_relocatable_keys(self, key):
        with pytest.raises(ValueError):
            derive_labeled_key(key)


class TestParseObjectUri:
    """URI styles"""

    def test_virtual_hosted(self):
        location = parse_object_uri(
            "https://frames.s3.ap-south-1.amazonaws.com/dev-1/unrecognized_frames/a.jpg", "fallback"
        )
        assert location == ObjectLocation(bucket="frames", key="dev-1/unrecognized_frames/a.jpg")

    def test_path_style(self):
        location = parse_object_uri(
            "https://s3.ap-south-1.amazonaws.com/frames/dev-1/unrecognized_frames/a.jpg", "fallback"
        )
        assert location == ObjectLocation(bucket="frames", key="dev-1/unrecognized_frames/a.jpg")

    def test_s3_scheme(self):
        location = parse_object_uri("s3://frames/dev-1/unrecognized_frames/a.jpg", "fallback")
        assert location == ObjectLocation(bucket="frames", key="dev-1/unrecognized_frames/a.jpg")

    def test_other_host_uses_default_bucket(self):
        location = parse_object_uri("https://cdn.example.com/dev-1/unrecognized_frames/a.jpg", "fallback")
        assert location == ObjectLocation(bucket="fallback", key="dev-1/unrecognized_frames/a.jpg")

    def test_percent_encoded_key(self):
        location = parse_object_uri("s3://frames/dev-1/unrecognized_frames/frame%201.jpg", "fallback")
        assert location.key == "dev-1/unrecognized_frames/frame 1.jpg"

    def test_missing_key(self):
        with pytest.raises(ValueError):
            parse_object_uri("https://frames.s3.ap-south-1.amazonaws.com/", "fallback")


class TestObjectRelocator:
    """Copy behaviour against a mocked S3 client"""

    def test_plan_touches_no_storage(self, relocator, s3_client):
        plan = relocator.plan(frame_uri())
        assert plan.destination_uri == frame_uri(area="labeled_frames")
        s3_client.copy_object.assert_not_called()

    def test_relocate_copies_within_bucket(self, relocator, s3_client):
        destination = relocator.relocate(frame_uri())

        assert destination == frame_uri(area="labeled_frames")
        s3_client.copy_object.assert_called_once_with(
            Bucket=TEST_BUCKET,
            Key="device-001/labeled_frames/2025-03-05/frame_1.jpg",
            CopySource={"Bucket": TEST_BUCKET, "Key": "device-001/unrecognized_frames/2025-03-05/frame_1.jpg"},
        )
        s3_client.delete_object.assert_not_called()

    def test_source_bucket_taken_from_uri(self, relocator, s3_client):
        destination = relocator.relocate("s3://other-frames/dev-2/analayzed_frames/a.jpg")

        assert destination == "https://other-frames.s3.ap-south-1.amazonaws.com/dev-2/labeled_frames/a.jpg"
        assert s3_client.copy_object.call_args.kwargs["Bucket"] == "other-frames"

    def test_client_error_wrapped(self, relocator, s3_client):
        s3_client.copy_object.side_effect = ClientError(
            {"Error": {"Code": "NoSuchKey", "Message": "The specified key does not exist."}}, "CopyObject"
        )

        with pytest.raises(RelocationError) as exc_info:
            relocator.relocate(frame_uri())

        assert exc_info.value.kind == "relocation_error"
        assert exc_info.value.source_uri == frame_uri()
        assert isinstance(exc_info.value.cause, ClientError)

    def test_connection_error_wrapped(self, relocator, s3_client):
        s3_client.copy_object.side_effect = EndpointConnectionError(endpoint_url="https://s3.ap-south-1.amazonaws.com")
        with pytest.raises(RelocationError):
            relocator.relocate(frame_uri())

    def test_non_relocatable_uri(self, relocator, s3_client):
        with pytest.raises(RelocationError):
            relocator.relocate(frame_uri(area="thumbnails"))
        s3_client.copy_object.assert_not_called()


class TestObjectRelocatorSingleton:
    """get/reset singleton helpers"""

    def test_singleton_built_once(self):
        reset_object_relocator()
        try:
            with patch("app.services.object_relocator.boto3") as mock_boto3:
                first = get_object_relocator()
                second = get_object_relocator()

            assert first is second
            mock_boto3.client.assert_called_once()
            assert mock_boto3.client.call_args.args == ("s3",)
        finally:
            reset_object_relocator()

    def test_explicit_client_skips_boto3(self, s3_client):
        with patch("app.services.object_relocator.boto3") as mock_boto3:
            ObjectRelocator(client=s3_client, bucket=TEST_BUCKET)
        mock_boto3.client.assert_not_called()
