from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime
from pathlib import Path

from .models import Customer, ServiceType, TimingRecord
from .timeutil import to_utc, utc_now


class Database:
    """Thin SQLite access layer for customers, step timings and session keys."""

    def __init__(self, db_path: str | Path) -> None:
        self._conn = sqlite3.connect(str(db_path))
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._conn.close()
        self._closed = True

    def initialize(self) -> None:
        # customers: registered customers, one row per workflow customer.
        # step_timings: one row per completed workflow step, never updated.
        # meta: session key/value store (customer id, service id, preferences).
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS customers (
              id TEXT PRIMARY KEY,
              name TEXT NOT NULL,
              phone TEXT NOT NULL,
              vehicle_number TEXT NOT NULL DEFAULT '',
              service_type TEXT NOT NULL DEFAULT '',
              transfer_type TEXT NOT NULL DEFAULT '',
              created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS step_timings (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              customer_id TEXT NOT NULL REFERENCES customers(id),
              service_id TEXT,
              step_id INTEGER NOT NULL CHECK (step_id >= 1),
              step_name TEXT NOT NULL,
              start_time TEXT NOT NULL,
              end_time TEXT NOT NULL,
              duration_seconds INTEGER NOT NULL CHECK (duration_seconds >= 0),
              created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_step_timings_customer
              ON step_timings (customer_id);

            CREATE TABLE IF NOT EXISTS meta (
              key TEXT PRIMARY KEY,
              value TEXT NOT NULL
            );
            """
        )
        self._conn.commit()

    def insert_customer(
        self,
        name: str,
        phone: str,
        *,
        vehicle_number: str = "",
        service_type: str = "",
        transfer_type: str = "",
        created_at: datetime | None = None,
    ) -> Customer:
        customer_id = uuid.uuid4().hex
        created = to_utc(created_at or utc_now()).isoformat()
        self._conn.execute(
            """
            INSERT INTO customers (id, name, phone, vehicle_number, service_type, transfer_type, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (customer_id, name, phone, vehicle_number, service_type, transfer_type, created),
        )
        self._conn.commit()
        return Customer(
            id=customer_id,
            name=name,
            phone=phone,
            vehicle_number=vehicle_number,
            service_type=ServiceType(service_type),
            transfer_type=transfer_type,
            created_at=created,
        )

    def get_customer(self, customer_id: str) -> Customer | None:
        row = self._conn.execute("SELECT * FROM customers WHERE id = ?", (customer_id,)).fetchone()
        if row is None:
            return None
        return _customer_from_row(row)

    def list_customers(self) -> list[Customer]:
        rows = self._conn.execute("SELECT * FROM customers ORDER BY created_at DESC").fetchall()
        return [_customer_from_row(row) for row in rows]

    def insert_step_timing(self, record: TimingRecord, created_at: datetime | None = None) -> TimingRecord:
        created = to_utc(created_at or utc_now()).isoformat()
        cursor = self._conn.execute(
            """
            INSERT INTO step_timings (
              customer_id, service_id, step_id, step_name,
              start_time, end_time, duration_seconds, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.customer_id,
                record.service_id,
                record.step_id,
                record.step_name,
                record.start_time,
                record.end_time,
                record.duration_seconds,
                created,
            ),
        )
        self._conn.commit()
        return TimingRecord(
            customer_id=record.customer_id,
            service_id=record.service_id,
            step_id=record.step_id,
            step_name=record.step_name,
            start_time=record.start_time,
            end_time=record.end_time,
            duration_seconds=record.duration_seconds,
            id=cursor.lastrowid,
            created_at=created,
        )

    def list_step_timings(self, customer_id: str) -> list[TimingRecord]:
        rows = self._conn.execute(
            """
            SELECT id, customer_id, service_id, step_id, step_name,
                   start_time, end_time, duration_seconds, created_at
            FROM step_timings
            WHERE customer_id = ?
            ORDER BY id ASC
            """,
            (customer_id,),
        ).fetchall()

        return [
            TimingRecord(
                id=row["id"],
                customer_id=row["customer_id"],
                service_id=row["service_id"],
                step_id=row["step_id"],
                step_name=row["step_name"],
                start_time=row["start_time"],
                end_time=row["end_time"],
                duration_seconds=row["duration_seconds"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    def get_meta(self, key: str) -> str | None:
        row = self._conn.execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return str(row["value"])

    def set_meta(self, key: str, value: str) -> None:
        self._conn.execute(
            """
            INSERT INTO meta (key, value)
            VALUES (?, ?)
            ON CONFLICT(key)
            DO UPDATE SET value=excluded.value
            """,
            (key, value),
        )
        self._conn.commit()

    def delete_meta(self, key: str) -> None:
        self._conn.execute("DELETE FROM meta WHERE key = ?", (key,))
        self._conn.commit()


def _customer_from_row(row: sqlite3.Row) -> Customer:
    return Customer(
        id=row["id"],
        name=row["name"],
        phone=row["phone"],
        vehicle_number=row["vehicle_number"],
        service_type=ServiceType(row["service_type"]),
        transfer_type=row["transfer_type"],
        created_at=row["created_at"],
    )
