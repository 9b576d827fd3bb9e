"""In-process task framework: typed, cancellable, cacheable step pipelines.

A run is owned by one ``Task`` instance and flows through
``TaskRunner -> ResultCache -> Task.run -> StepExecutor``. Everything is
in-process asyncio; there is no broker or scheduler. Durable reuse across
restarts comes from the SQLite-backed result cache only.
"""

from research_agents.framework.cache import ResultCache, create_key
from research_agents.framework.cancellation import CancellationToken
from research_agents.framework.errors import (
    CacheError,
    CancellationError,
    ErrorDetail,
    ErrorKind,
    ExtractionError,
    ExtractionFailure,
    StepExecutionError,
    TaskError,
    UnknownTaskError,
    ValidationError,
)
from research_agents.framework.events import (
    Cancelled,
    Complete,
    ErrorEvent,
    EventChannel,
    Progress,
    StateChanged,
    StepComplete,
    TaskEvent,
)
from research_agents.framework.models import (
    ExecutionContext,
    InputSpec,
    OutputFormat,
    ResultMetadata,
    TaskConfig,
    TaskResult,
    TaskState,
)
from research_agents.framework.registry import TaskRegistry
from research_agents.framework.runner import RunHandle, RunHooks, TaskRunner
from research_agents.framework.steps import RetryPolicy, Step, StepErr, StepExecutor, StepOk
from research_agents.framework.storage import MemoryCacheStore, SqlCacheStore
from research_agents.framework.task import Task

__all__ = [
    "CacheError",
    "CancellationError",
    "CancellationToken",
    "Cancelled",
    "Complete",
    "ErrorDetail",
    "ErrorEvent",
    "ErrorKind",
    "EventChannel",
    "ExecutionContext",
    "ExtractionError",
    "ExtractionFailure",
    "InputSpec",
    "MemoryCacheStore",
    "OutputFormat",
    "Progress",
    "ResultCache",
    "ResultMetadata",
    "RetryPolicy",
    "RunHandle",
    "RunHooks",
    "SqlCacheStore",
    "StateChanged",
    "Step",
    "StepComplete",
    "StepErr",
    "StepExecutionError",
    "StepExecutor",
    "StepOk",
    "Task",
    "TaskConfig",
    "TaskError",
    "TaskEvent",
    "TaskRegistry",
    "TaskResult",
    "TaskRunner",
    "TaskState",
    "UnknownTaskError",
    "ValidationError",
    "create_key",
]
