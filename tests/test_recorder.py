import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from transfer_desk.backend import Err, FetchError, Ok, SqliteBackend
from transfer_desk.db import Database
from transfer_desk.models import CustomerDetails, TimingRecord
from transfer_desk.recorder import StepRecorder, duration_seconds, step_name
from transfer_desk.session import SessionContext


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 2, 1, 10, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FailingTimingService:
    def __init__(self) -> None:
        self.attempts: list[TimingRecord] = []

    async def create(self, record: TimingRecord) -> TimingRecord:
        self.attempts.append(record)
        raise FetchError("backend unavailable")


class FailingBackend:
    def __init__(self) -> None:
        self.timings = FailingTimingService()


def make_backend() -> tuple[Database, SqliteBackend, str]:
    db = Database(":memory:")
    db.initialize()
    backend = SqliteBackend(db)
    customer = asyncio.run(
        backend.customers.create(CustomerDetails(full_name="Alice Perera", contact_number="0771234567"))
    )
    return db, backend, customer.id


def test_step_name_falls_back_for_unknown_steps() -> None:
    assert step_name(1) == "Documents"
    assert step_name(5) == "Completed"
    assert step_name(6) == "Step 6"


def test_duration_seconds_floors_and_never_negative() -> None:
    start = datetime(2026, 2, 1, 10, 0, 0, tzinfo=timezone.utc)

    assert duration_seconds(start, start + timedelta(milliseconds=999)) == 0
    assert duration_seconds(start, start + timedelta(seconds=90, milliseconds=700)) == 90
    assert duration_seconds(start, start - timedelta(seconds=5)) == 0


def test_start_step_is_idempotent() -> None:
    clock = FakeClock()
    recorder = StepRecorder(FailingBackend(), SessionContext(), clock=clock)

    assert recorder.start_step(1) is True
    first_start = recorder.get_timing(1).start_time
    clock.advance(seconds=30)
    assert recorder.start_step(1) is False

    assert len(recorder.timings) == 1
    assert recorder.get_timing(1).start_time == first_start


def test_complete_step_persists_record_and_opens_next_step() -> None:
    db, backend, customer_id = make_backend()
    clock = FakeClock()
    started = clock.now
    recorder = StepRecorder(backend, SessionContext(customer_id=customer_id, service_id="svc-1"), clock=clock)

    recorder.start_step(1)
    clock.advance(seconds=125)
    result = asyncio.run(recorder.complete_step(1))

    assert isinstance(result, Ok)
    assert result.value.duration_seconds == 125
    assert result.value.step_name == "Documents"

    stored = db.list_step_timings(customer_id)
    assert len(stored) == 1
    assert stored[0].duration_seconds == 125
    assert stored[0].service_id == "svc-1"
    assert stored[0].created_at is not None

    assert recorder.current_step == 2
    assert recorder.get_timing(1).end_time == started + timedelta(seconds=125)
    next_timing = recorder.get_timing(2)
    assert next_timing.end_time is None
    assert next_timing.start_time - started == timedelta(milliseconds=125000)


def test_sub_second_step_records_zero_seconds() -> None:
    db, backend, customer_id = make_backend()
    clock = FakeClock()
    recorder = StepRecorder(backend, SessionContext(customer_id=customer_id), clock=clock)

    recorder.start_step(1)
    clock.advance(milliseconds=400)
    asyncio.run(recorder.complete_step(1))

    assert db.list_step_timings(customer_id)[0].duration_seconds == 0


def test_complete_terminal_step_rolls_over_to_unnamed_step() -> None:
    _, backend, customer_id = make_backend()
    clock = FakeClock()
    recorder = StepRecorder(backend, SessionContext(customer_id=customer_id), clock=clock)

    recorder.start_step(1)
    for step_id in range(1, 6):
        clock.advance(seconds=10)
        asyncio.run(recorder.complete_step(step_id))

    assert recorder.current_step == 6
    assert [timing.step_id for timing in recorder.timings] == [1, 2, 3, 4, 5, 6]
    assert recorder.get_timing(6).end_time is None


def test_duplicate_completion_is_rejected_without_second_write() -> None:
    db, backend, customer_id = make_backend()
    clock = FakeClock()
    recorder = StepRecorder(backend, SessionContext(customer_id=customer_id), clock=clock)

    recorder.start_step(1)
    clock.advance(seconds=20)
    asyncio.run(recorder.complete_step(1))
    clock.advance(seconds=20)
    result = asyncio.run(recorder.complete_step(1))

    assert isinstance(result, Err)
    assert len(db.list_step_timings(customer_id)) == 1
    assert recorder.current_step == 2


def test_persistence_failure_does_not_block_progression() -> None:
    backend = FailingBackend()
    clock = FakeClock()
    recorder = StepRecorder(backend, SessionContext(customer_id="c-1"), clock=clock)

    recorder.start_step(1)
    clock.advance(seconds=5)
    result = asyncio.run(recorder.complete_step(1))

    assert isinstance(result, Err)
    assert "backend unavailable" in result.reason
    assert len(backend.timings.attempts) == 1
    assert recorder.get_timing(1).end_time is not None
    assert recorder.current_step == 2
    assert recorder.get_timing(2) is not None


def test_unknown_customer_skips_persistence() -> None:
    backend = FailingBackend()
    clock = FakeClock()
    recorder = StepRecorder(backend, SessionContext(), clock=clock)

    recorder.start_step(1)
    clock.advance(seconds=5)
    result = asyncio.run(recorder.complete_step(1))

    assert result == Ok(None)
    assert backend.timings.attempts == []
    assert recorder.current_step == 2


def test_completing_unstarted_step_still_advances() -> None:
    backend = FailingBackend()
    recorder = StepRecorder(backend, SessionContext(customer_id="c-1"), clock=FakeClock())

    result = asyncio.run(recorder.complete_step(3))

    assert result == Ok(None)
    assert backend.timings.attempts == []
    assert recorder.current_step == 4
    assert [timing.step_id for timing in recorder.timings] == [4]


def test_rejected_record_is_reported_as_err() -> None:
    _, backend, _ = make_backend()
    clock = FakeClock()
    recorder = StepRecorder(backend, SessionContext(customer_id="missing-customer"), clock=clock)

    recorder.start_step(1)
    clock.advance(seconds=5)
    result = asyncio.run(recorder.complete_step(1))

    assert isinstance(result, Err)
    assert recorder.current_step == 2


def test_set_current_step_rejects_non_positive() -> None:
    recorder = StepRecorder(FailingBackend(), SessionContext(), clock=FakeClock())

    recorder.set_current_step(3)
    assert recorder.current_step == 3

    with pytest.raises(ValueError):
        recorder.set_current_step(0)
