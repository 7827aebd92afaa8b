from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar, Union

from .db import Database
from .models import Customer, CustomerDetails, TimingRecord

T = TypeVar("T")


class BackendError(Exception):
    """Base error for the persistence backend."""


class FetchError(BackendError):
    """Storage or transport failure while reading or writing."""


class ValidationError(BackendError):
    """The backend rejected a record."""


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True, slots=True)
class Err:
    reason: str


PersistResult = Union[Ok[TimingRecord | None], Err]


class CustomerService(Protocol):
    async def get_all(self) -> list[Customer]: ...

    async def get(self, customer_id: str) -> Customer | None: ...

    async def create(self, details: CustomerDetails) -> Customer: ...


class StepTimingService(Protocol):
    async def create(self, record: TimingRecord) -> TimingRecord: ...

    async def get_by_customer_id(self, customer_id: str) -> list[TimingRecord]: ...


class Backend(Protocol):
    customers: CustomerService
    timings: StepTimingService


class SqliteCustomerService:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def get_all(self) -> list[Customer]:
        try:
            return self.db.list_customers()
        except sqlite3.Error as exc:
            raise FetchError(f"Failed to fetch customers: {exc}") from exc

    async def get(self, customer_id: str) -> Customer | None:
        try:
            return self.db.get_customer(customer_id)
        except sqlite3.Error as exc:
            raise FetchError(f"Failed to fetch customer {customer_id}: {exc}") from exc

    async def create(self, details: CustomerDetails) -> Customer:
        if not details.full_name.strip():
            raise ValidationError("Customer name is required")
        if not details.contact_number.strip():
            raise ValidationError("Customer phone is required")

        try:
            return self.db.insert_customer(
                details.full_name.strip(),
                details.contact_number.strip(),
                vehicle_number=details.vehicle_number,
                service_type=details.service_type.value,
                transfer_type=details.transfer_type,
            )
        except sqlite3.Error as exc:
            raise FetchError(f"Failed to create customer: {exc}") from exc


class SqliteStepTimingService:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def create(self, record: TimingRecord) -> TimingRecord:
        if record.step_id < 1:
            raise ValidationError(f"step_id must be >= 1, got {record.step_id}")
        if record.duration_seconds < 0:
            raise ValidationError(f"duration_seconds must be >= 0, got {record.duration_seconds}")

        try:
            return self.db.insert_step_timing(record)
        except sqlite3.IntegrityError as exc:
            raise ValidationError(f"Rejected timing record for customer {record.customer_id}: {exc}") from exc
        except sqlite3.Error as exc:
            raise FetchError(f"Failed to store timing record: {exc}") from exc

    async def get_by_customer_id(self, customer_id: str) -> list[TimingRecord]:
        try:
            return self.db.list_step_timings(customer_id)
        except sqlite3.Error as exc:
            raise FetchError(f"Failed to fetch timings for customer {customer_id}: {exc}") from exc


class SqliteBackend:
    """Backend implementation storing everything in the local SQLite database."""

    def __init__(self, db: Database) -> None:
        self.customers = SqliteCustomerService(db)
        self.timings = SqliteStepTimingService(db)
