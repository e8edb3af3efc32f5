"""Sequential step pipeline with progress reporting and resumption."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Union

logger = logging.getLogger(__name__)

Context = Dict[str, Any]
ProgressCallback = Callable[[int, int, str], None]
StepAction = Callable[[Context], Awaitable[Optional[Mapping[str, Any]]]]


class PipelineStatus(Enum):
    """Pipeline run status."""

    IDLE = "idle"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class StepStatus(Enum):
    """Outcome of a single step."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class StepDescriptor:
    """One step of a pipeline.

    Attributes:
        label: Short human label, used in errors and logs
        action: Coroutine function receiving the shared context; a returned
            mapping is merged into the context
        message: Progress message, or a callable building it from the context
        is_complete: Artifact check; when it returns True the step is skipped
    """

    label: str
    action: StepAction
    message: Union[str, Callable[[Context], str], None] = None
    is_complete: Optional[Callable[[Context], bool]] = None

    def render_message(self, context: Context) -> str:
        if callable(self.message):
            return self.message(context)
        return self.message or self.label


@dataclass
class StepResult:
    """Result of a step execution."""

    index: int
    label: str
    status: StepStatus
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    error: Optional[BaseException] = None

    @property
    def duration(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    def complete(self, status: StepStatus, error: Optional[BaseException] = None) -> None:
        self.end_time = datetime.now()
        self.status = status
        self.error = error


@dataclass
class PipelineRun:
    """Live state of one pipeline execution.

    ``current_step_index`` is 1-based and only moves forward; after a
    failure it stays on the failing step.
    """

    total_steps: int
    status: PipelineStatus = PipelineStatus.IDLE
    current_step_index: int = 0
    last_completed_step: int = 0
    error: Optional[BaseException] = None
    results: List[StepResult] = field(default_factory=list)

    def advance_to(self, index: int) -> None:
        if index < self.current_step_index:
            raise ValueError(f"Step index cannot move back from {self.current_step_index} to {index}")
        self.current_step_index = index

    @property
    def is_terminal(self) -> bool:
        return self.status in (PipelineStatus.DONE, PipelineStatus.FAILED)

    def snapshot(self) -> Dict[str, Any]:
        """Serializable view of the run."""
        return {
            "status": self.status.value,
            "current_step_index": self.current_step_index,
            "last_completed_step": self.last_completed_step,
            "total_steps": self.total_steps,
            "error": str(self.error) if self.error else None,
            "steps": [
                {"index": r.index, "label": r.label, "status": r.status.value, "duration": r.duration}
                for r in self.results
            ],
        }


@dataclass
class RunResult:
    """Outcome of :meth:`StepPipeline.run`."""

    failed: bool
    last_completed_step: int
    context: Context
    at_step: Optional[int] = None
    failed_label: Optional[str] = None
    error: Optional[BaseException] = None
    run: Optional[PipelineRun] = None


class StepPipeline:
    """Runs steps strictly in order and halts at the first failure.

    The pipeline never retries a step on its own. Callers resume a failed
    run by calling :meth:`run` again with ``from_step`` and the context they
    persisted.
    """

    def __init__(self, name: str = "pipeline"):
        self.name = name
        self.current: Optional[PipelineRun] = None

    @property
    def status(self) -> PipelineStatus:
        return self.current.status if self.current else PipelineStatus.IDLE

    async def run(
        self,
        steps: Sequence[StepDescriptor],
        on_progress: Optional[ProgressCallback] = None,
        from_step: int = 0,
        context: Optional[Context] = None,
        message_prefix: str = "",
    ) -> RunResult:
        """Execute ``steps`` starting at position ``from_step``.

        Args:
            steps: Ordered step descriptors
            on_progress: Called as ``(step_number, total, message)`` before each step runs
            from_step: 0-based position of the first step to execute
            context: Shared mutable context, seeded from persisted state on resume
            message_prefix: Prepended to every progress message

        Returns:
            RunResult describing success or the first failure

        Raises:
            ValueError: If ``from_step`` is out of range
            asyncio.CancelledError: If the run is cancelled; the run is marked failed first
        """
        total = len(steps)
        if not 0 <= from_step <= total:
            raise ValueError(f"from_step must be between 0 and {total}, got {from_step}")

        context = context if context is not None else {}
        run = PipelineRun(total_steps=total, status=PipelineStatus.RUNNING, last_completed_step=from_step)
        self.current = run

        for position in range(from_step, total):
            step = steps[position]
            number = position + 1
            run.advance_to(number)

            if step.is_complete is not None and step.is_complete(context):
                logger.debug(f"[{self.name}] Skipping step {number}/{total} ({step.label}): already done")
                run.results.append(StepResult(number, step.label, StepStatus.SKIPPED, end_time=datetime.now()))
                run.last_completed_step = number
                continue

            self._notify_progress(on_progress, number, total, message_prefix + step.render_message(context))
            result = StepResult(number, step.label, StepStatus.COMPLETED)
            run.results.append(result)
            logger.info(f"[{self.name}] Step {number}/{total}: {step.label}")

            try:
                output = await step.action(context)
            except asyncio.CancelledError as e:
                result.complete(StepStatus.FAILED, e)
                run.status = PipelineStatus.FAILED
                run.error = e
                logger.warning(f"[{self.name}] Cancelled during step {number} ({step.label})")
                raise
            except Exception as e:
                result.complete(StepStatus.FAILED, e)
                run.status = PipelineStatus.FAILED
                run.error = e
                logger.error(f"[{self.name}] Step {number} ({step.label}) failed: {e}")
                return RunResult(
                    failed=True,
                    last_completed_step=run.last_completed_step,
                    context=context,
                    at_step=number,
                    failed_label=step.label,
                    error=e,
                    run=run,
                )

            if output:
                context.update(output)
            result.complete(StepStatus.COMPLETED)
            run.last_completed_step = number

        run.status = PipelineStatus.DONE
        logger.info(f"[{self.name}] Completed {total - from_step} of {total} steps")
        return RunResult(failed=False, last_completed_step=run.last_completed_step, context=context, run=run)

    def _notify_progress(self, on_progress: Optional[ProgressCallback], step: int, total: int, message: str) -> None:
        if on_progress is None:
            return
        try:
            on_progress(step, total, message)
        except Exception as e:
            logger.warning(f"[{self.name}] Progress callback failed: {e}")
