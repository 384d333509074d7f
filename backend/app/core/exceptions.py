"""
Labeling error taxonomy.

Every failure surfaced by the labeling engine carries a machine-readable
``kind`` and a human-readable ``message``. The API layer maps each kind to an
HTTP status (see ``STATUS_BY_KIND``); nothing is retried internally.

- ValidationError: malformed or missing request fields (caller's fault)
- NotFoundError: referenced events are absent (caller's fault)
- RelocationError: storage failure during image copy (transient, retryable)
- PersistenceError: database write failed after relocation succeeded
"""
from typing import Any, Dict, Iterable, List, Optional


class LabelingError(Exception):
    """Base class for all labeling engine errors."""

    kind = "labeling_error"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"detail": self.message, "kind": self.kind}
        if self.details is not None:
            payload["errors"] = self.details
        return payload


class ValidationError(LabelingError):
    """Request or stored payload failed validation."""

    kind = "validation_error"


class NotFoundError(LabelingError):
    """One or more referenced events do not exist."""

    kind = "not_found"

    def __init__(self, missing_ids: Iterable[int]):
        self.missing_ids: List[int] = sorted(missing_ids)
        ids = ", ".join(str(i) for i in self.missing_ids)
        super().__init__(
            f"Events not found: {ids}",
            details={"missing_event_ids": self.missing_ids},
        )


class RelocationError(LabelingError):
    """Copying an image into the labeled area failed.

    The source object is never deleted, so the request can be retried as-is.
    """

    kind = "relocation_error"

    def __init__(self, message: str, source_uri: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message, details={"source_uri": source_uri} if source_uri else None)
        self.source_uri = source_uri
        self.cause = cause


class PersistenceError(LabelingError):
    """Writing the labeled segment failed after all relocations succeeded.

    ``orphaned_images`` lists destination objects that now exist without a
    segment referencing them.
    """

    kind = "persistence_error"

    def __init__(self, message: str, orphaned_images: Optional[List[str]] = None):
        super().__init__(message)
        self.orphaned_images = list(orphaned_images or [])


STATUS_BY_KIND = {
    ValidationError.kind: 400,
    NotFoundError.kind: 404,
    RelocationError.kind: 502,
    PersistenceError.kind: 500,
    LabelingError.kind: 500,
}
