"""Order status vocabulary and the append-only status history value object.

The history is stored as an ordered JSON array on ``orders.status_history``;
``StatusHistoryType`` is the only place that (de)serialises it, so the rest of
the code only ever sees immutable ``StatusHistory`` values.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterator

from sqlalchemy.types import JSON, TypeDecorator


class OrderStatus(str, Enum):
    PENDING = "pending"
    ORDER_PLACED = "order_placed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


# Forward progression; skipping ahead is allowed (a vendor may ship a pending order)
_PROGRESSION = [
    OrderStatus.PENDING,
    OrderStatus.ORDER_PLACED,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
]

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

_VALID_TRANSITIONS = {
    status: set(_PROGRESSION[index + 1:]) | {OrderStatus.CANCELLED}
    for index, status in enumerate(_PROGRESSION)
    if status not in TERMINAL_STATUSES
}
_VALID_TRANSITIONS[OrderStatus.DELIVERED] = set()
_VALID_TRANSITIONS[OrderStatus.CANCELLED] = set()


def parse_status(value: str) -> OrderStatus | None:
    try:
        return OrderStatus(str(value).strip().lower())
    except ValueError:
        return None


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in _VALID_TRANSITIONS.get(current, set())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class StatusEntry:
    status: OrderStatus
    timestamp: datetime
    actor: str | None = None
    # Raw vocabulary of an external actor (e.g. the courier's own status)
    source_status: str | None = None
    note: str | None = None

    def to_dict(self) -> dict:
        data = {"status": self.status.value, "timestamp": self.timestamp.isoformat()}
        if self.actor:
            data["actor"] = self.actor
        if self.source_status:
            data["source_status"] = self.source_status
        if self.note:
            data["note"] = self.note
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "StatusEntry":
        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            parsed = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        elif isinstance(timestamp, datetime):
            parsed = timestamp
        else:
            parsed = datetime.fromtimestamp(0, timezone.utc)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return cls(
            status=OrderStatus(data["status"]),
            timestamp=parsed,
            actor=data.get("actor"),
            source_status=data.get("source_status") or data.get("porter_status"),
            note=data.get("note"),
        )


@dataclass(frozen=True)
class StatusHistory:
    entries: tuple[StatusEntry, ...] = field(default_factory=tuple)

    @classmethod
    def start(cls, status: OrderStatus = OrderStatus.PENDING, actor: str | None = None,
              at: datetime | None = None) -> "StatusHistory":
        return cls((StatusEntry(status=status, timestamp=at or utcnow(), actor=actor),))

    def append(self, status: OrderStatus, *, actor: str | None = None, source_status: str | None = None,
               note: str | None = None, at: datetime | None = None) -> "StatusHistory":
        entry = StatusEntry(
            status=status,
            timestamp=at or utcnow(),
            actor=actor,
            source_status=source_status,
            note=note,
        )
        if self.entries and entry.timestamp < self.entries[-1].timestamp:
            # keep the log ordered even if the caller's clock lags the last entry
            entry = StatusEntry(entry.status, self.entries[-1].timestamp, actor, source_status, note)
        return StatusHistory(self.entries + (entry,))

    @property
    def latest(self) -> StatusEntry | None:
        return self.entries[-1] if self.entries else None

    def __iter__(self) -> Iterator[StatusEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def to_list(self) -> list[dict]:
        return [entry.to_dict() for entry in self.entries]

    @classmethod
    def from_list(cls, raw: list | None) -> "StatusHistory":
        return cls(tuple(StatusEntry.from_dict(item) for item in raw or []))


class StatusHistoryType(TypeDecorator):
    """Persists a StatusHistory as an ordered JSON array."""

    impl = JSON
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return []
        if isinstance(value, StatusHistory):
            return value.to_list()
        raise TypeError("status_history must be a StatusHistory")

    def process_result_value(self, value, dialect):
        return StatusHistory.from_list(value)
