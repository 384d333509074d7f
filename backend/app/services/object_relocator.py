"""
Object Relocator for labeled frame images.

Copies a captured frame from the unlabeled area of the frames bucket
(``.../unrecognized_frames/...`` or ``.../analayzed_frames/...``) to the
labeled area (``.../labeled_frames/...``) and returns the new URI.

The source object is never deleted, so a failed relocation can simply be
retried with the same source URI.

Usage:
    from app.services.object_relocator import get_object_relocator

    relocator = get_object_relocator()
    labeled_uri = relocator.relocate(event_details.image_path)
"""
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import unquote, urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings
from app.core.exceptions import RelocationError
from app.core.metrics import record_relocation

logger = logging.getLogger(__name__)

UNLABELED_SEGMENTS = ("unrecognized_frames", "analayzed_frames")
LABELED_SEGMENT = "labeled_frames"

# First whole path segment naming an unlabeled area
_UNLABELED_PATTERN = re.compile(
    r"(^|/)(" + "|".join(re.escape(s) for s in UNLABELED_SEGMENTS) + r")(?=/|$)"
)
# <bucket>.s3.<region>.amazonaws.com or <bucket>.s3.amazonaws.com
_VIRTUAL_HOST_PATTERN = re.compile(r"^(?P<bucket>.+)\.s3(?:[.-](?P<region>[a-z0-9-]+))?\.amazonaws\.com$")
# s3.<region>.amazonaws.com / s3.amazonaws.com (path-style)
_PATH_STYLE_HOST_PATTERN = re.compile(r"^s3(?:[.-][a-z0-9-]+)?\.amazonaws\.com$")


@dataclass(frozen=True)
class ObjectLocation:
    """A bucket/key pair parsed from an image URI."""
    bucket: str
    key: str


@dataclass(frozen=True)
class RelocationPlan:
    """Resolved source/destination for one image copy."""
    source_uri: str
    source: ObjectLocation
    destination: ObjectLocation
    destination_uri: str


def derive_labeled_key(source_key: str) -> str:
    """
    Map an unlabeled object key to its labeled counterpart.

    Only the first ``unrecognized_frames``/``analayzed_frames`` path segment is
    substituted, so the same source key always yields the same destination.

    Raises:
        ValueError: if the key is not under an unlabeled area
    """
    labeled_key, count = _UNLABELED_PATTERN.subn(r"\1" + LABELED_SEGMENT, source_key, count=1)
    if count == 0:
        raise ValueError(f"Key is not under an unlabeled frames area: {source_key}")
    return labeled_key


def parse_object_uri(uri: str, default_bucket: str) -> ObjectLocation:
    """
    Split an image URI into bucket and key.

    Supports virtual-hosted (https://<bucket>.s3.<region>.amazonaws.com/<key>),
    path-style (https://s3.<region>.amazonaws.com/<bucket>/<key>) and
    s3://<bucket>/<key> URIs. Any other host (CDN, custom endpoint) is
    treated as fronting ``default_bucket``.

    Raises:
        ValueError: if no object key can be extracted
    """
    parsed = urlparse(uri)
    host = (parsed.hostname or "").lower()
    path = unquote(parsed.path).lstrip("/")

    if parsed.scheme == "s3":
        bucket, key = parsed.netloc, path
    elif _VIRTUAL_HOST_PATTERN.match(host):
        bucket, key = _VIRTUAL_HOST_PATTERN.match(host).group("bucket"), path
    elif _PATH_STYLE_HOST_PATTERN.match(host):
        bucket, _, key = path.partition("/")
    else:
        bucket, key = default_bucket, path

    if not bucket or not key:
        raise ValueError(f"Cannot determine bucket and key from URI: {uri}")
    return ObjectLocation(bucket=bucket, key=key)


class ObjectRelocator:
    """
    Copies frame images into the labeled area of their bucket.

    Attributes:
        bucket: Default bucket for URIs whose host does not name one
        region: Region used to build destination URLs
    """

    def __init__(
        self,
        client: Optional[Any] = None,
        bucket: Optional[str] = None,
        region: Optional[str] = None,
    ):
        """
        Args:
            client: boto3 S3 client; built from settings when not provided
            bucket: Default bucket (settings.S3_BUCKET)
            region: AWS region (settings.AWS_REGION)
        """
        self.bucket = bucket or settings.S3_BUCKET
        self.region = region or settings.AWS_REGION
        self._client = client or boto3.client(
            "s3",
            region_name=self.region,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            endpoint_url=settings.S3_ENDPOINT_URL,
        )
        logger.debug("ObjectRelocator initialized", extra={"bucket": self.bucket, "region": self.region})

    def plan(self, source_uri: str) -> RelocationPlan:
        """
        Resolve source and destination locations without touching storage.

        Raises:
            ValueError: if the URI cannot be parsed or is not relocatable
        """
        source = parse_object_uri(source_uri, self.bucket)
        destination = ObjectLocation(bucket=source.bucket, key=derive_labeled_key(source.key))
        return RelocationPlan(
            source_uri=source_uri,
            source=source,
            destination=destination,
            destination_uri=self.object_url(destination),
        )

    def object_url(self, location: ObjectLocation) -> str:
        return f"https://{location.bucket}.s3.{self.region}.amazonaws.com/{location.key}"

    def relocate(self, source_uri: str) -> str:
        """
        Copy an image into the labeled area and return its URI.

        Raises:
            RelocationError: if the URI is not relocatable or the copy fails
        """
        try:
            plan = self.plan(source_uri)
        except ValueError as e:
            record_relocation("error")
            raise RelocationError(str(e), source_uri=source_uri, cause=e)
        return self.execute(plan)

    def execute(self, plan: RelocationPlan) -> str:
        """Issue the copy for a resolved plan and return the destination URI."""
        start = time.perf_counter()
        try:
            self._client.copy_object(
                Bucket=plan.destination.bucket,
                Key=plan.destination.key,
                CopySource={"Bucket": plan.source.bucket, "Key": plan.source.key},
            )
        except (ClientError, BotoCoreError) as e:
            record_relocation("error", time.perf_counter() - start)
            logger.error(
                f"Failed to copy {plan.source.key} to labeled area: {e}",
                extra={
                    "event_type": "relocation_failed",
                    "bucket": plan.source.bucket,
                    "source_key": plan.source.key,
                    "destination_key": plan.destination.key,
                    "error_type": type(e).__name__,
                }
            )
            raise RelocationError(
                f"Failed to copy image to labeled folder: {e}",
                source_uri=plan.source_uri,
                cause=e,
            ) from e

        record_relocation("success", time.perf_counter() - start)
        logger.debug(
            "Copied image to labeled area",
            extra={
                "bucket": plan.source.bucket,
                "source_key": plan.source.key,
                "destination_key": plan.destination.key,
            }
        )
        return plan.destination_uri


# Global singleton instance
_object_relocator: Optional[ObjectRelocator] = None


def get_object_relocator() -> ObjectRelocator:
    """Get the global ObjectRelocator singleton instance."""
    global _object_relocator
    if _object_relocator is None:
        _object_relocator = ObjectRelocator()
    return _object_relocator


def reset_object_relocator() -> None:
    """Reset the singleton instance (useful for testing)."""
    global _object_relocator
    _object_relocator = None
