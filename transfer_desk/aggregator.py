from __future__ import annotations

import logging
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from .backend import Backend
from .models import CustomerTimingSummary, TimingRecord, TimingStats
from .timeutil import parse_iso_utc

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)
# Discord rejects messages longer than this.
MESSAGE_LIMIT = 2000


def format_duration(total_seconds: int) -> str:
    """Render a duration as ``{h}h {m}m {s}s`` without padding."""
    hours, remainder = divmod(int(total_seconds), 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours}h {minutes}m {seconds}s"


def latest_activity(records: list[TimingRecord]) -> str:
    if not records:
        return ""
    ordered = sorted(records, key=lambda item: parse_iso_utc(item.created_at) or _OLDEST, reverse=True)
    return ordered[0].created_at or ""


def filter_summaries(summaries: list[CustomerTimingSummary], term: str) -> list[CustomerTimingSummary]:
    """Match the term against names (case-insensitive) or phones (literal)."""
    if term.strip() == "":
        return summaries

    needle = term.lower()
    return [
        item
        for item in summaries
        if needle in item.customer_name.lower() or term in item.customer_phone
    ]


def summarize(summaries: list[CustomerTimingSummary]) -> TimingStats:
    if not summaries:
        return TimingStats(total_customers=0, average_seconds=0, total_steps=0)

    total_seconds = sum(item.total_seconds for item in summaries)
    return TimingStats(
        total_customers=len(summaries),
        average_seconds=total_seconds // len(summaries),
        total_steps=sum(item.step_count for item in summaries),
    )


class TimingAggregator:
    def __init__(self, backend: Backend, logger: logging.Logger | None = None) -> None:
        self.backend = backend
        self.logger = logger or logging.getLogger(__name__)

    async def fetch_summaries(self) -> list[CustomerTimingSummary]:
        customers = await self.backend.customers.get_all()
        if not customers:
            return []

        # One sequential round-trip per customer.
        summaries: list[CustomerTimingSummary] = []
        for customer in customers:
            records = await self.backend.timings.get_by_customer_id(customer.id)
            if not records:
                continue

            summaries.append(
                CustomerTimingSummary(
                    customer_id=customer.id,
                    customer_name=customer.name,
                    customer_phone=customer.phone,
                    total_seconds=sum(record.duration_seconds or 0 for record in records),
                    step_count=len(records),
                    last_activity=latest_activity(records),
                )
            )

        summaries.sort(key=lambda item: item.total_seconds, reverse=True)
        self.logger.debug("Aggregated timings for %d of %d customers", len(summaries), len(customers))
        return summaries


class TimingsBoard:
    """Displayed admin state: the base summary list and its filtered view.

    Every refresh is tagged with a generation number. A result is applied only
    when its generation is newer than the last one applied, so a slow refresh
    finishing late cannot overwrite a newer list.
    """

    def __init__(self, aggregator: TimingAggregator) -> None:
        self.aggregator = aggregator
        self.summaries: list[CustomerTimingSummary] = []
        self.filtered: list[CustomerTimingSummary] = []
        self.search_term = ""
        self._generation = 0
        self._applied_generation = 0

    async def refresh(self) -> bool:
        self._generation += 1
        generation = self._generation

        summaries = await self.aggregator.fetch_summaries()

        if generation <= self._applied_generation:
            self.aggregator.logger.debug("Discarding stale timings refresh %d", generation)
            return False

        self._applied_generation = generation
        self.summaries = summaries
        self.filtered = filter_summaries(summaries, self.search_term)
        return True

    def search(self, term: str) -> list[CustomerTimingSummary]:
        self.search_term = term
        self.filtered = filter_summaries(self.summaries, term)
        return self.filtered

    def stats(self) -> TimingStats:
        return summarize(self.summaries)


def format_activity_date(value: str, tz: ZoneInfo) -> str:
    parsed = parse_iso_utc(value)
    if parsed is None:
        return "unknown"
    local = parsed.astimezone(tz)
    return f"{local.strftime('%b')} {local.day}, {local.year}"


def build_board_content(board: TimingsBoard, tz: ZoneInfo, limit: int, max_length: int = MESSAGE_LIMIT) -> str:
    stats = board.stats()
    header = "**Customer Timings**"
    stats_line = (
        f"Customers tracked: `{stats.total_customers}` | "
        f"Average per customer: `{format_duration(stats.average_seconds)}` | "
        f"Steps completed: `{stats.total_steps}`"
    )
    footer = f"Showing {len(board.filtered)} of {len(board.summaries)} customers"

    if not board.filtered:
        empty = "No matching customers found" if board.search_term else "No timing data available"
        return f"{header}\n{stats_line}\n{empty}\n{footer}"

    total = len(board.filtered)
    lines: list[str] = []
    # Reserve room for the header, footer and the longest possible overflow line.
    used = len(header) + len(stats_line) + len(footer) + len(_overflow_line(total)) + 4
    for index, item in enumerate(board.filtered[:limit], start=1):
        line = (
            f"{index}. {item.customer_name} ({item.customer_phone}): "
            f"`{format_duration(item.total_seconds)}` over {item.step_count} steps, "
            f"last activity {format_activity_date(item.last_activity, tz)}"
        )
        if used + len(line) + 1 > max_length:
            break
        lines.append(line)
        used += len(line) + 1

    if len(lines) < total:
        lines.append(_overflow_line(total - len(lines)))

    body = "\n".join(lines)
    return f"{header}\n{stats_line}\n{body}\n{footer}"


def _overflow_line(hidden: int) -> str:
    return f"... and {hidden} more"
