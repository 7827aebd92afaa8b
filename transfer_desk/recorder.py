from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from .backend import Backend, BackendError, Err, Ok, PersistResult
from .models import StepTiming, TimingRecord
from .session import SessionContext
from .timeutil import to_utc, utc_now

STEP_NAMES = {
    1: "Documents",
    2: "Verification",
    3: "Payment",
    4: "Processing",
    5: "Completed",
}


def step_name(step_id: int) -> str:
    return STEP_NAMES.get(step_id, f"Step {step_id}")


def duration_seconds(start: datetime, end: datetime) -> int:
    """Whole seconds between two instants, floored and never negative."""
    return max(0, (end - start) // timedelta(seconds=1))


class StepRecorder:
    """Tracks step timings for the customer currently in the workflow.

    Steps run one at a time. Completing a step persists its timing record and
    opens the next step immediately. There is no terminal step: completing
    the last named step opens ``Step 6``.
    """

    def __init__(
        self,
        backend: Backend,
        context: SessionContext,
        clock: Callable[[], datetime] = utc_now,
        logger: logging.Logger | None = None,
    ) -> None:
        self.backend = backend
        self.context = context
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self._timings: dict[int, StepTiming] = {}
        self._current_step = 1

    @property
    def current_step(self) -> int:
        return self._current_step

    def set_current_step(self, step_id: int) -> None:
        if step_id < 1:
            raise ValueError(f"step_id must be >= 1, got {step_id}")
        self._current_step = step_id

    @property
    def timings(self) -> tuple[StepTiming, ...]:
        # dicts keep insertion order, which is first-start order here.
        return tuple(self._timings.values())

    def get_timing(self, step_id: int) -> StepTiming | None:
        return self._timings.get(step_id)

    def start_step(self, step_id: int) -> bool:
        if step_id in self._timings:
            self.logger.debug("Ignoring duplicate start for step %s", step_id)
            return False

        self._timings[step_id] = StepTiming(step_id=step_id, start_time=self.clock())
        return True

    async def complete_step(self, step_id: int) -> PersistResult:
        end_time = self.clock()
        timing = self._timings.get(step_id)

        if timing is not None and timing.completed:
            self.logger.warning("Step %s already completed; ignoring", step_id)
            return Err(f"Step {step_id} already completed")

        if timing is not None:
            timing.end_time = end_time

        result: PersistResult = Ok(None)
        if self.context.customer_id and timing is not None:
            result = await self._persist(timing, end_time)

        self._current_step = step_id + 1
        self.start_step(step_id + 1)
        return result

    async def _persist(self, timing: StepTiming, end_time: datetime) -> PersistResult:
        record = TimingRecord(
            customer_id=self.context.customer_id,
            service_id=self.context.service_id,
            step_id=timing.step_id,
            step_name=step_name(timing.step_id),
            start_time=to_utc(timing.start_time).isoformat(),
            end_time=to_utc(end_time).isoformat(),
            duration_seconds=duration_seconds(timing.start_time, end_time),
        )

        try:
            created = await self.backend.timings.create(record)
        except BackendError as exc:
            self.logger.warning(
                "Error saving step timing: customer=%s step=%s: %s",
                record.customer_id,
                record.step_id,
                exc,
            )
            return Err(str(exc))

        self.logger.info(
            "Step timing saved: customer=%s step=%s duration=%ss",
            record.customer_id,
            record.step_id,
            record.duration_seconds,
        )
        return Ok(created)
