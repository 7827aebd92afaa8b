from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import datetime
from enum import Enum


class ServiceType(str, Enum):
    ONE_DAY = "one_day"
    NORMAL = "normal"
    UNSET = ""


@dataclass(frozen=True, slots=True)
class CustomerDetails:
    vehicle_number: str = ""
    full_name: str = ""
    contact_number: str = ""
    service_type: ServiceType = ServiceType.UNSET
    transfer_type: str = ""

    def merged(self, **changes) -> CustomerDetails:
        """Return a copy with only the given fields replaced."""
        known = {item.name for item in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise TypeError(f"Unknown customer detail fields: {', '.join(sorted(unknown))}")

        if "service_type" in changes:
            changes["service_type"] = ServiceType(changes["service_type"] or "")
        return replace(self, **changes)


@dataclass(frozen=True, slots=True)
class Customer:
    id: str
    name: str
    phone: str
    vehicle_number: str = ""
    service_type: ServiceType = ServiceType.UNSET
    transfer_type: str = ""
    created_at: str | None = None


@dataclass(slots=True)
class StepTiming:
    step_id: int
    start_time: datetime
    end_time: datetime | None = None

    @property
    def completed(self) -> bool:
        return self.end_time is not None


@dataclass(frozen=True, slots=True)
class TimingRecord:
    customer_id: str
    step_id: int
    step_name: str
    start_time: str
    end_time: str
    duration_seconds: int
    service_id: str | None = None
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True, slots=True)
class CustomerTimingSummary:
    customer_id: str
    customer_name: str
    customer_phone: str
    total_seconds: int
    step_count: int
    last_activity: str


@dataclass(frozen=True, slots=True)
class TimingStats:
    total_customers: int
    average_seconds: int
    total_steps: int
