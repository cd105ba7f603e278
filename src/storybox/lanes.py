"""Latest-wins asynchronous lanes with explicit cancellation tokens."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Generic, TypeVar

InputT = TypeVar("InputT")
ResultT = TypeVar("ResultT")


class OperationCancelled(Exception):
    """Raised inside an operation whose lane has moved on to newer input."""


class CancellationToken:
    """Cooperative cancellation signal owned by a single lane operation."""

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on cancellation, immediately if already cancelled."""
        if self._cancelled:
            callback()
            return
        self._callbacks.append(callback)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelled("operation was superseded")


class LaneOutcome(str, Enum):
    """How a lane operation ended."""

    APPLIED = "applied"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(slots=True)
class LaneRun:
    """Bookkeeping for one triggered operation."""

    sequence: int
    token: CancellationToken = field(default_factory=CancellationToken)
    outcome: LaneOutcome | None = None
    error: str | None = None


Operation = Callable[[InputT, CancellationToken], Awaitable[ResultT]]
ResultHandler = Callable[[ResultT], None]


class CancellableLane(Generic[InputT, ResultT]):
    """One producer's task slot: each trigger supersedes the previous operation.

    ``operation`` performs the external call and may take snapshots of shared
    state when it starts. ``on_result`` applies the result to shared state; it
    only runs while the operation's token is still live.
    """

    def __init__(
        self,
        name: str,
        operation: Operation[InputT, ResultT],
        on_result: ResultHandler[ResultT] | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self.name = name
        self._operation = operation
        self._on_result = on_result
        self._logger = logger or logging.getLogger(f"storybox.lanes.{name}")
        self._sequence = 0
        self._run: LaneRun | None = None
        self._task: asyncio.Task[None] | None = None
        self.last_run: LaneRun | None = None

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger(self, value: InputT) -> asyncio.Task[None]:
        """Cancel the live operation, if any, and start a new one for ``value``."""
        self._cancel_live(reason="superseded")

        self._sequence += 1
        run = LaneRun(sequence=self._sequence)
        self._run = run
        self._task = asyncio.create_task(self._execute(run, value), name=f"lane-{self.name}-{run.sequence}")
        self._logger.info("lane_triggered", extra={"lane": self.name, "sequence": run.sequence})
        return self._task

    async def wait(self) -> LaneRun | None:
        """Wait for the live operation to settle and return its record."""
        task = self._task
        if task is not None:
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
        return self.last_run

    async def stop(self) -> None:
        """Tear the lane down, cancelling any live operation."""
        task = self._task
        self._cancel_live(reason="stopped")
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._run = None
        self._logger.info("lane_stopped", extra={"lane": self.name})

    def _cancel_live(self, *, reason: str) -> None:
        run, task = self._run, self._task
        if run is None or task is None or task.done():
            return
        run.token.cancel()
        task.cancel()
        self._logger.info("lane_cancelled", extra={"lane": self.name, "sequence": run.sequence, "reason": reason})

    async def _execute(self, run: LaneRun, value: InputT) -> None:
        try:
            result = await self._operation(value, run.token)
            run.token.raise_if_cancelled()
            if self._on_result is not None:
                self._on_result(result)
            run.outcome = LaneOutcome.APPLIED
            self._logger.info("lane_completed", extra={"lane": self.name, "sequence": run.sequence})
        except (asyncio.CancelledError, OperationCancelled):
            run.outcome = LaneOutcome.CANCELLED
            if not run.token.cancelled:
                # Cancelled from outside the lane (loop shutdown); keep propagating.
                run.token.cancel()
                raise
        except Exception as exc:  # noqa: BLE001 - a failed call must not kill the lane.
            run.outcome = LaneOutcome.FAILED
            run.error = f"{type(exc).__name__}: {exc}"
            self._logger.exception("lane_failed", extra={"lane": self.name, "sequence": run.sequence})
        finally:
            if run is self._run:
                self.last_run = run
