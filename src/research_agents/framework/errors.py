"""Error taxonomy shared by tasks, steps, cache and extraction."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ErrorKind(str, Enum):
    """Machine-distinguishable error categories reported in task results."""

    VALIDATION = "validation"
    EXTRACTION = "extraction"
    STEP_EXECUTION = "step_execution"
    CANCELLED = "cancelled"
    CACHE = "cache"


class ExtractionFailure(str, Enum):
    """Reason codes for document extraction failures."""

    UNSUPPORTED_TYPE = "unsupported_type"
    FILE_TOO_LARGE = "file_too_large"
    IMAGE_ONLY = "image_only"
    PASSWORD_PROTECTED = "password_protected"
    CORRUPTED = "corrupted"
    INVALID_URL = "invalid_url"
    PRIVATE_NETWORK = "private_network"
    NOT_FOUND = "not_found"
    ACCESS_RESTRICTED = "access_restricted"
    FETCH_FAILED = "fetch_failed"
    INSUFFICIENT_TEXT = "insufficient_text"


@dataclass(slots=True)
class ErrorDetail:
    """One entry of ``TaskResult.errors``."""

    kind: ErrorKind
    message: str
    code: str | None = None
    step_id: str | None = None
    source: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "code": self.code,
            "step_id": self.step_id,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, payload: dict) -> ErrorDetail:
        return cls(
            kind=ErrorKind(payload["kind"]),
            message=payload["message"],
            code=payload.get("code"),
            step_id=payload.get("step_id"),
            source=payload.get("source"),
        )


@dataclass(slots=True)
class TaskError(Exception):
    """Base framework error."""

    message: str
    code: str = "task_error"

    kind = ErrorKind.STEP_EXECUTION

    def __str__(self) -> str:
        return self.message

    def to_detail(self, *, step_id: str | None = None) -> ErrorDetail:
        return ErrorDetail(kind=self.kind, message=self.message, code=self.code, step_id=step_id)


@dataclass(slots=True)
class ValidationError(TaskError):
    """Bad or missing task inputs."""

    code: str = "invalid_input"

    kind = ErrorKind.VALIDATION


@dataclass(slots=True)
class ExtractionError(TaskError):
    """Document could not be ingested."""

    reason: ExtractionFailure = ExtractionFailure.FETCH_FAILED
    source: str | None = None

    kind = ErrorKind.EXTRACTION

    def __post_init__(self) -> None:
        self.code = self.reason.value

    def to_detail(self, *, step_id: str | None = None) -> ErrorDetail:
        return ErrorDetail(
            kind=self.kind,
            message=self.message,
            code=self.code,
            step_id=step_id,
            source=self.source,
        )


@dataclass(slots=True)
class CapabilityUnsupportedError(TaskError):
    """The host lacks a capability the operation needs."""

    code: str = "capability_unsupported"


@dataclass(slots=True)
class StepExecutionError(TaskError):
    """A required pipeline step failed and aborted the run."""

    step_id: str = ""
    error_kind: ErrorKind = ErrorKind.STEP_EXECUTION
    details: list[ErrorDetail] = field(default_factory=list)

    def to_detail(self, *, step_id: str | None = None) -> ErrorDetail:
        return ErrorDetail(
            kind=self.error_kind,
            message=self.message,
            code=self.code,
            step_id=step_id or self.step_id,
        )


@dataclass(slots=True)
class CancellationError(TaskError):
    """The run was stopped through its cancellation token."""

    message: str = "Task execution was cancelled"
    code: str = "cancelled"

    kind = ErrorKind.CANCELLED


@dataclass(slots=True)
class CacheError(TaskError):
    """Cache backing store failure; always degraded to a miss by callers."""

    code: str = "cache_unavailable"

    kind = ErrorKind.CACHE


class UnknownTaskError(KeyError):
    """No task is registered under the requested id."""

    def __init__(self, task_id: str) -> None:
        super().__init__(task_id)
        self.task_id = task_id

    def __str__(self) -> str:
        return f"Task {self.task_id!r} is not registered"
