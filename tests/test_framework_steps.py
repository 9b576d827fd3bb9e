from __future__ import annotations

import asyncio

import allure
import pytest

from research_agents.framework.errors import (
    CancellationError,
    ErrorKind,
    StepExecutionError,
    ValidationError,
)
from research_agents.framework.events import ErrorEvent, Progress, StepComplete
from research_agents.framework.models import ExecutionContext
from research_agents.framework.steps import RetryPolicy, Step, StepErr, StepExecutor, StepOk

pytestmark = [
    allure.epic("Task Framework"),
    allure.feature("Step Pipeline"),
]


def _ok(value, calls: list[str] | None = None, step_id: str = ""):
    async def _execute(_context: ExecutionContext):
        if calls is not None:
            calls.append(step_id)
        return StepOk(value)

    return _execute


def _err(message: str, calls: list[str] | None = None, step_id: str = ""):
    async def _execute(_context: ExecutionContext):
        if calls is not None:
            calls.append(step_id)
        return StepErr(message, code="boom")

    return _execute


def _run(steps, context: ExecutionContext | None = None):
    context = context or ExecutionContext(inputs={})
    events: list = []
    asyncio.run(StepExecutor.execute_steps(steps, context, events.append))
    return context, events


def test_steps_run_in_order_with_progress_before_each_step() -> None:
    calls: list[str] = []
    steps = [
        Step(id=name, name=name.title(), execute=_ok(index, calls, name))
        for index, name in enumerate(("a", "b", "c"))
    ]

    context, events = _run(steps)

    assert calls == ["a", "b", "c"]
    assert context.results == {"a": 0, "b": 1, "c": 2}
    progress = [(event.percent, event.label) for event in events if isinstance(event, Progress)]
    assert progress == [(0.0, "A"), (33.33, "B"), (66.67, "C"), (100.0, "Completed")]
    assert [event.step_id for event in events if isinstance(event, StepComplete)] == [
        "a",
        "b",
        "c",
    ]
    assert [record.step_id for record in context.history] == ["a", "b", "c"]
    assert context.steps_completed == 3


def test_required_failure_stops_pipeline() -> None:
    calls: list[str] = []
    steps = [
        Step(id="a", name="A", execute=_ok(1, calls, "a")),
        Step(id="b", name="B", execute=_err("b failed", calls, "b")),
        Step(id="c", name="C", execute=_ok(3, calls, "c")),
    ]
    context = ExecutionContext(inputs={})
    events: list = []

    with pytest.raises(StepExecutionError) as excinfo:
        asyncio.run(StepExecutor.execute_steps(steps, context, events.append))

    assert calls == ["a", "b"]
    assert excinfo.value.step_id == "b"
    assert excinfo.value.message == "b failed"
    assert excinfo.value.code == "boom"
    assert "c" not in context.results
    errors = [event for event in events if isinstance(event, ErrorEvent)]
    assert len(errors) == 1
    assert errors[0].step_id == "b"


def test_optional_failure_continues_without_result_key() -> None:
    calls: list[str] = []
    steps = [
        Step(id="a", name="A", execute=_ok(1, calls, "a")),
        Step(id="b", name="B", execute=_err("optional", calls, "b"), required=False),
        Step(id="c", name="C", execute=_ok(3, calls, "c")),
    ]

    context, events = _run(steps)

    assert calls == ["a", "b", "c"]
    assert "b" not in context.results
    assert context.results["c"] == 3
    assert [event.step_id for event in events if isinstance(event, ErrorEvent)] == ["b"]
    assert context.steps_completed == 2


def test_duplicate_step_ids_rejected_before_running() -> None:
    calls: list[str] = []
    steps = [
        Step(id="a", name="A", execute=_ok(1, calls, "a")),
        Step(id="a", name="Again", execute=_ok(2, calls, "a")),
    ]

    with pytest.raises(ValueError, match="Duplicate step id"):
        _run(steps)
    assert calls == []


def test_validator_rejection_becomes_step_error() -> None:
    steps = [Step(id="a", name="A", execute=_ok(""), validate=bool)]

    with pytest.raises(StepExecutionError) as excinfo:
        _run(steps)
    assert excinfo.value.code == "invalid_output"


def test_exceptions_are_converted_to_step_errors() -> None:
    async def _raises(_context: ExecutionContext):
        raise RuntimeError("kaput")

    async def _invalid_input(_context: ExecutionContext):
        raise ValidationError("bad input")

    context, events = _run(
        [
            Step(id="a", name="A", execute=_raises, required=False),
            Step(id="b", name="B", execute=_invalid_input, required=False),
        ],
    )

    errors = [event.error for event in events if isinstance(event, ErrorEvent)]
    assert [(error.code, error.kind) for error in errors] == [
        ("RuntimeError", ErrorKind.STEP_EXECUTION),
        ("invalid_input", ErrorKind.VALIDATION),
    ]
    assert context.results == {}


def test_retry_policy_retries_until_success() -> None:
    attempts: list[int] = []

    async def _flaky(_context: ExecutionContext):
        attempts.append(len(attempts))
        if len(attempts) < 3:
            return StepErr("transient")
        return StepOk("done")

    context, _ = _run(
        [Step(id="a", name="A", execute=_flaky, retry=RetryPolicy(max_retries=3, delays=(0,)))],
    )

    assert len(attempts) == 3
    assert context.results["a"] == "done"


def test_retry_policy_gives_up_after_max_retries() -> None:
    attempts: list[int] = []

    async def _always_fails(_context: ExecutionContext):
        attempts.append(1)
        return StepErr("still broken")

    with pytest.raises(StepExecutionError):
        _run(
            [
                Step(
                    id="a",
                    name="A",
                    execute=_always_fails,
                    retry=RetryPolicy(max_retries=2, delays=(0,)),
                ),
            ],
        )
    assert len(attempts) == 3


def test_cancellation_inside_optional_step_is_not_swallowed() -> None:
    calls: list[str] = []

    async def _cancels(context: ExecutionContext):
        context.token.cancel()
        context.token.raise_if_cancelled()
        return StepOk(None)

    steps = [
        Step(id="a", name="A", execute=_cancels, required=False),
        Step(id="b", name="B", execute=_ok(2, calls, "b")),
    ]

    with pytest.raises(CancellationError):
        _run(steps)
    assert calls == []


def test_cancelled_token_stops_before_next_step() -> None:
    calls: list[str] = []
    context = ExecutionContext(inputs={})

    async def _cancel_after(ctx: ExecutionContext):
        calls.append("a")
        ctx.token.cancel()
        return StepOk(1)

    with pytest.raises(CancellationError):
        _run(
            [
                Step(id="a", name="A", execute=_cancel_after),
                Step(id="b", name="B", execute=_ok(2, calls, "b")),
            ],
            context,
        )
    assert calls == ["a"]
    assert context.results == {"a": 1}


def test_retry_delay_uses_last_value_for_later_attempts() -> None:
    policy = RetryPolicy(max_retries=5, delays=(1.0, 2.0, 4.0))

    assert [policy.delay_for(attempt) for attempt in range(5)] == [1.0, 2.0, 4.0, 4.0, 4.0]
    assert RetryPolicy(delays=()).delay_for(3) == 0.0
