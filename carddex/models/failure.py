"""
Failure classification for the integrity and sync subsystem.

Nothing here is fatal to the hosting process. Service-level errors
(unknown profile, malformed snapshot) are raised and mapped to HTTP
responses at the API boundary. Local storage errors are raised only
inside the cache layer and converted to False/None results before they
reach a caller.

Checksum drift and partial restores are NOT exceptions. They are values
(an in_sync flag, a RestoreResult with errors) that the caller decides on.
"""

from enum import Enum

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    NOT_FOUND = "not_found"
    MALFORMED_SNAPSHOT = "malformed_snapshot"

    STORAGE_UNAVAILABLE = "storage_unavailable"
    STORAGE_WRITE_FAILURE = "storage_write_failure"
    CORRUPT_PAYLOAD = "corrupt_payload"


class FailureDetail(BaseModel):
    """Error body returned by the API for known failures."""

    kind: FailureKind = Field(..., description="Classification of the failure")
    message: str = Field(..., description="User-appropriate explanation of what went wrong")
    detail: str | None = Field(default=None, description="Additional technical detail")


class CarddexError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        status_code: int = 400,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.status_code = status_code
        super().__init__(message)

    def to_detail(self) -> FailureDetail:
        return FailureDetail(kind=self.kind, message=self.message, detail=self.detail)


class ProfileNotFoundError(CarddexError):
    """Raised when an operation targets a profile the store does not know."""

    def __init__(self, profile_id: str):
        self.profile_id = profile_id
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message="Profile not found",
            detail=f"profile_id={profile_id}",
            status_code=404,
        )


class MalformedSnapshotError(CarddexError):
    """
    Raised when a snapshot fails the shape check.

    Rejection happens before any mutation.
    """

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(
            kind=FailureKind.MALFORMED_SNAPSHOT,
            message="Snapshot is malformed and was not applied",
            detail="; ".join(errors[:10]),
            status_code=422,
        )


# --- Local storage (cache layer only) ---


class StorageUnavailableError(CarddexError):
    """The local store cannot be used at all."""

    def __init__(self, reason: str):
        super().__init__(
            kind=FailureKind.STORAGE_UNAVAILABLE,
            message="Local storage is not available",
            detail=reason,
            status_code=503,
        )


class StorageWriteError(CarddexError):
    """A write to one key failed (quota exceeded, I/O error)."""

    def __init__(self, key: str, reason: str):
        self.key = key
        super().__init__(
            kind=FailureKind.STORAGE_WRITE_FAILURE,
            message=f"Failed to write {key}",
            detail=reason,
            status_code=507,
        )


class CorruptPayloadError(CarddexError):
    """A stored value failed to parse or validate."""

    def __init__(self, key: str, reason: str):
        self.key = key
        super().__init__(
            kind=FailureKind.CORRUPT_PAYLOAD,
            message=f"Stored value for {key} is corrupt",
            detail=reason,
            status_code=500,
        )
