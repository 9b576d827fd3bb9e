"""Plain data types describing tasks, runs and their outcomes."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from research_agents.framework.cancellation import CancellationToken
from research_agents.framework.errors import ErrorDetail, ErrorKind


class TaskState(str, Enum):
    """Externally observed task lifecycle states."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    EXECUTING = "executing"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    @property
    def is_active(self) -> bool:
        return self in {TaskState.INITIALIZING, TaskState.EXECUTING}


TERMINAL_STATES = frozenset({TaskState.COMPLETED, TaskState.ERROR, TaskState.CANCELLED})


class OutputFormat(str, Enum):
    MARKDOWN = "markdown"
    JSON = "json"
    TEXT = "text"


_PYTHON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list, tuple),
    "object": (dict,),
}


@dataclass(frozen=True, slots=True)
class InputSpec:
    """Declared shape of one task input."""

    type: str
    required: bool = False
    default: Any = None
    description: str = ""
    validator: Callable[[Any], bool] | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.type not in _PYTHON_TYPES:
            raise ValueError(f"Unsupported input type: {self.type!r}")

    def matches_type(self, value: Any) -> bool:
        if self.type == "number" and isinstance(value, bool):
            return False
        return isinstance(value, _PYTHON_TYPES[self.type])


@dataclass(frozen=True, slots=True)
class TaskConfig:
    """Immutable task description created once at registration time."""

    id: str
    name: str
    description: str
    version: str
    inputs: Mapping[str, InputSpec] = field(default_factory=dict)
    output_format: OutputFormat = OutputFormat.JSON
    output_schema: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "inputs", MappingProxyType(dict(self.inputs)))
        object.__setattr__(self, "output_schema", MappingProxyType(dict(self.output_schema)))


@dataclass(slots=True)
class ResultMetadata:
    duration_ms: int = 0
    cache_hit: bool = False
    steps_completed: int = 0
    steps_total: int = 0
    completed_at: datetime | None = None


@dataclass(slots=True)
class TaskResult:
    """Outcome of one task run."""

    success: bool
    data: Any = None
    errors: list[ErrorDetail] = field(default_factory=list)
    metadata: ResultMetadata = field(default_factory=ResultMetadata)

    @property
    def cancelled(self) -> bool:
        return any(error.kind is ErrorKind.CANCELLED for error in self.errors)

    @property
    def first_error(self) -> ErrorDetail | None:
        return self.errors[0] if self.errors else None

    def to_dict(self) -> dict[str, Any]:
        completed_at = self.metadata.completed_at
        return {
            "success": self.success,
            "data": self.data,
            "errors": [error.to_dict() for error in self.errors],
            "metadata": {
                "duration_ms": self.metadata.duration_ms,
                "cache_hit": self.metadata.cache_hit,
                "steps_completed": self.metadata.steps_completed,
                "steps_total": self.metadata.steps_total,
                "completed_at": completed_at.isoformat() if completed_at else None,
            },
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> TaskResult:
        meta = payload.get("metadata") or {}
        completed_at = meta.get("completed_at")
        return cls(
            success=bool(payload["success"]),
            data=payload.get("data"),
            errors=[ErrorDetail.from_dict(item) for item in payload.get("errors") or []],
            metadata=ResultMetadata(
                duration_ms=int(meta.get("duration_ms") or 0),
                cache_hit=bool(meta.get("cache_hit", False)),
                steps_completed=int(meta.get("steps_completed") or 0),
                steps_total=int(meta.get("steps_total") or 0),
                completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
            ),
        )


@dataclass(slots=True)
class StepRecord:
    """History entry for one executed step."""

    step_id: str
    name: str
    started_at: datetime
    finished_at: datetime
    success: bool


@dataclass(slots=True)
class ExecutionContext:
    """Per-run state owned by exactly one ``Task.run`` invocation."""

    inputs: dict[str, Any]
    results: dict[str, Any] = field(default_factory=dict)
    token: CancellationToken = field(default_factory=CancellationToken)
    started_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    progress: float = 0.0
    current_step: str | None = None
    steps_total: int = 0
    history: list[StepRecord] = field(default_factory=list)

    @property
    def steps_completed(self) -> int:
        return sum(1 for record in self.history if record.success)
