"""Filtered views over the record collection and dashboard statistics."""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from boleto_flow.models import Record, RecordStatus

DISPATCHABLE_STATUSES = frozenset({RecordStatus.PENDING, RecordStatus.FAILED})


class StatusFilter(str, Enum):
    """Queue tabs: everything, not yet sent, or sent."""

    ALL = "all"
    PENDING = "pending"
    SENT = "sent"


@dataclass
class RecordFilter:
    """The operator's current view of the queue."""

    status: StatusFilter = StatusFilter.ALL
    search: str = ""

    def matches(self, record: Record) -> bool:
        if self.status == StatusFilter.SENT and record.status != RecordStatus.SENT:
            return False
        if self.status == StatusFilter.PENDING and record.status == RecordStatus.SENT:
            return False
        term = self.search.strip().lower()
        if term:
            return term in record.customer_name.lower() or term in record.salesperson.lower()
        return True

    def apply(self, records: Iterable[Record]) -> list[Record]:
        return [r for r in records if self.matches(r)]


def select_dispatchable(records: Iterable[Record]) -> list[Record]:
    """Records a bulk send should pick up: pending or failed with a dialable phone."""
    return [r for r in records if r.status in DISPATCHABLE_STATUSES and r.has_dialable_phone]


@dataclass
class DashboardStats:
    total: int
    sent: int
    failed: int
    pending: int
    total_amount: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "sent": self.sent,
            "failed": self.failed,
            "pending": self.pending,
            "total_amount": str(self.total_amount),
        }


def compute_stats(records: Iterable[Record]) -> DashboardStats:
    """Aggregate counts; in-flight records count as pending."""
    items = list(records)
    return DashboardStats(
        total=len(items),
        sent=sum(1 for r in items if r.status == RecordStatus.SENT),
        failed=sum(1 for r in items if r.status == RecordStatus.FAILED),
        pending=sum(
            1 for r in items if r.status in (RecordStatus.PENDING, RecordStatus.PROCESSING)
        ),
        total_amount=sum((r.amount for r in items), Decimal("0")),
    )


def recent_records(records: Iterable[Record], limit: int = 5) -> list[Record]:
    """Latest records by identifier, descending."""
    return sorted(records, key=lambda r: r.id, reverse=True)[:limit]
