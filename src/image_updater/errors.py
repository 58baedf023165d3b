"""Error taxonomy shared by version checks and update operations.

Every error carries a stable machine code (``ErrorCode``) and a human
readable message.  Transport and decoding failures are normalised to
``VERSION_SOURCE_UNAVAILABLE`` so callers only ever see the closed set
of codes below.
"""

from __future__ import annotations

from enum import StrEnum
from typing import ClassVar


class ErrorCode(StrEnum):
    """Stable machine codes for version management errors."""

    INVALID_INPUT = "VERSION_INVALID_INPUT"
    SOURCE_TIMEOUT = "VERSION_SOURCE_TIMEOUT"
    SOURCE_UNAVAILABLE = "VERSION_SOURCE_UNAVAILABLE"
    NO_VALID_SOURCE_RESULT = "VERSION_NO_VALID_SOURCE_RESULT"
    UPDATE_CONFLICT = "VERSION_UPDATE_CONFLICT"
    STEP_FAILED = "VERSION_STEP_FAILED"
    ROLLBACK_FAILED = "VERSION_ROLLBACK_FAILED"

    @property
    def user_message(self) -> str:
        return _USER_MESSAGES[self]


_USER_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.INVALID_INPUT: "Invalid input, please check the configuration",
    ErrorCode.SOURCE_TIMEOUT: "Version check timed out, please retry later",
    ErrorCode.SOURCE_UNAVAILABLE: "Version source unavailable, please check the network",
    ErrorCode.NO_VALID_SOURCE_RESULT: "All version sources failed, please check the configuration",
    ErrorCode.UPDATE_CONFLICT: "This image is already being updated, please retry later",
    ErrorCode.STEP_FAILED: "Update step failed",
    ErrorCode.ROLLBACK_FAILED: "Rollback failed, manual recovery required",
}


class VersionError(Exception):
    """Base class for all version management errors."""

    code: ClassVar[ErrorCode] = ErrorCode.SOURCE_UNAVAILABLE
    prefix: ClassVar[str] = "Version error"

    def __init__(self, message: str = "") -> None:
        self.message = message
        super().__init__(f"{self.prefix}: {message}" if message else self.prefix)

    @property
    def user_message(self) -> str:
        return f"{self.code.user_message}: {self}"


class InvalidInputError(VersionError):
    """Raised when a request or source configuration is malformed."""

    code = ErrorCode.INVALID_INPUT
    prefix = "Invalid input"


class SourceTimeoutError(VersionError):
    """Raised when a version source (or the whole check) runs out of time."""

    code = ErrorCode.SOURCE_TIMEOUT
    prefix = "Source timeout"


class SourceUnavailableError(VersionError):
    """Raised on transport failures and non-success HTTP responses."""

    code = ErrorCode.SOURCE_UNAVAILABLE
    prefix = "Source unavailable"


class ParseError(VersionError):
    """Raised when a source response cannot be decoded or has no usable version."""

    code = ErrorCode.SOURCE_UNAVAILABLE
    prefix = "Parse error"


class NoValidSourceResultError(VersionError):
    """Raised when every configured source failed."""

    code = ErrorCode.NO_VALID_SOURCE_RESULT
    prefix = "No valid source result"


class UpdateConflictError(VersionError):
    """Raised when another operation already holds the image's update lock."""

    code = ErrorCode.UPDATE_CONFLICT
    prefix = "Update conflict"

    def __init__(self, image_key: str, operation_id: str) -> None:
        self.image_key = image_key
        self.operation_id = operation_id
        super().__init__(f"image {image_key} is being updated by operation {operation_id}")


class StepFailedError(VersionError):
    """Raised when a git/docker step exits unsuccessfully."""

    code = ErrorCode.STEP_FAILED
    prefix = "Step failed"

    def __init__(self, step: str, message: str) -> None:
        self.step = step
        super().__init__(f"{step} - {message}")
        self.message = message


class RollbackFailedError(VersionError):
    """Raised when a failed update could not be reverted."""

    code = ErrorCode.ROLLBACK_FAILED
    prefix = "Rollback failed"
