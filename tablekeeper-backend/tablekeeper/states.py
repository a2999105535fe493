"""Dining state machine and queue prediction.

Everything here is pure: callers pass in table/session snapshots and the
current time in epoch milliseconds, nothing touches the database.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping, Optional

from .utils.time import minutes_to_ms

WARNING_THRESHOLD_MS = 900_000
ALERT_DEBOUNCE_MS = 180_000


class TableStatus(str, Enum):
    IDLE = "idle"
    DINING = "dining"
    WARNING = "warning"
    TIMEOUT = "timeout"
    BUFFER = "buffer"
    DISABLED = "disabled"


# Transitions triggered by an explicit action. Elapsed time only ever moves
# dining -> warning -> timeout (or back, after an extension).
ACTION_TRANSITIONS = {
    "start": ({TableStatus.IDLE}, TableStatus.DINING),
    "complete": ({TableStatus.DINING, TableStatus.WARNING, TableStatus.TIMEOUT}, TableStatus.BUFFER),
    "end_buffer": ({TableStatus.BUFFER}, TableStatus.IDLE),
    "release": (set(TableStatus) - {TableStatus.DISABLED}, TableStatus.IDLE),
}


def can_apply(action: str, status: str) -> bool:
    allowed, _ = ACTION_TRANSITIONS[action]
    return TableStatus(status) in allowed


def target_of(action: str) -> TableStatus:
    return ACTION_TRANSITIONS[action][1]


def timed_status(remaining_ms: int, warning_threshold_ms: int = WARNING_THRESHOLD_MS) -> TableStatus:
    if remaining_ms <= 0:
        return TableStatus.TIMEOUT
    if remaining_ms <= warning_threshold_ms:
        return TableStatus.WARNING
    return TableStatus.DINING


def derive_status(
    current_status: str,
    is_active: int,
    session_end_time: Optional[int],
    now: int,
    warning_threshold_ms: int = WARNING_THRESHOLD_MS,
) -> TableStatus:
    """Status a table should display given its active session (if any) at ``now``.

    ``session_end_time`` is the planned end of the table's non-completed
    session, or None when the table has no active session. Inactive tables
    are always ``disabled``. ``buffer`` is only left through an explicit
    action, so a buffer table without a session stays in buffer.
    """
    if not is_active or current_status == TableStatus.DISABLED:
        return TableStatus.DISABLED
    if session_end_time is not None:
        return timed_status(session_end_time - now, warning_threshold_ms)
    if current_status == TableStatus.BUFFER:
        return TableStatus.BUFFER
    return TableStatus.IDLE


def alert_due(last_alert_time: Optional[int], now: int, debounce_ms: int = ALERT_DEBOUNCE_MS) -> bool:
    return not last_alert_time or now - last_alert_time >= debounce_ms


@dataclass(frozen=True)
class QueueEntry:
    table_id: int
    table_number: str
    available_at: int
    status: str

    def to_dict(self) -> dict:
        return {
            "tableId": self.table_id,
            "tableNumber": self.table_number,
            "availableAt": self.available_at,
            "status": self.status,
        }


def predict_queue(tables: Iterable, session_end_times: Mapping[int, int], now: int) -> list[QueueEntry]:
    """Order enabled tables by the time they become available.

    ``tables`` are objects with ``id``, ``table_number``, ``status``,
    ``is_active`` and ``buffer_duration``; ``session_end_times`` maps a table
    id to the planned end of its active session. Ties keep input order.
    """
    entries = []
    for table in tables:
        if not table.is_active or table.status == TableStatus.DISABLED:
            continue
        end_time = session_end_times.get(table.id)
        if table.status == TableStatus.IDLE or end_time is None:
            available_at = now
        else:
            available_at = end_time + minutes_to_ms(table.buffer_duration)
        entries.append(QueueEntry(table.id, table.table_number, available_at, TableStatus(table.status).value))
    return sorted(entries, key=lambda e: e.available_at)
