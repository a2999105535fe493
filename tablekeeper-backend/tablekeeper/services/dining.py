"""Dining sessions: start, extend, complete and the buffer period that follows."""
import logging

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..http import InvalidState, NotFound
from ..models import DiningSession, DiningTable
from ..states import TableStatus, can_apply, derive_status, target_of
from ..store import now, reading, table_lock, writing
from ..utils.time import minutes_to_ms
from .tables import get_table

logger = logging.getLogger(__name__)


def _active_session_query(table_id: int):
    return (
        select(DiningSession)
        .where(DiningSession.table_id == table_id, DiningSession.is_completed == 0)
        .order_by(DiningSession.start_time)
        .limit(1)
    )


def get_active_session(table_id: int) -> DiningSession | None:
    return reading(lambda: db.session.scalars(_active_session_query(table_id)).first(), None, "active session")


def get_all_active_sessions() -> list[DiningSession]:
    return reading(
        lambda: list(
            db.session.scalars(
                select(DiningSession).where(DiningSession.is_completed == 0).order_by(DiningSession.start_time)
            )
        ),
        [],
        "active sessions",
    )


def get_session(session_id: int) -> DiningSession:
    session = db.session.get(DiningSession, session_id)
    if session is None:
        raise NotFound("Dining session not found.")
    return session


def open_session(table: DiningTable, remarks: str | None = None) -> DiningSession:
    """Adds a session for ``table`` and marks it dining, without committing.

    The caller holds ``table_lock(table.id)`` and commits through ``writing``.
    """
    if not can_apply("start", table.status):
        raise InvalidState(f"Table {table.table_number} is not available.")
    if db.session.scalars(_active_session_query(table.id)).first() is not None:
        raise InvalidState(f"Table {table.table_number} already has dining in progress.")

    started = now()
    session = DiningSession(
        table_id=table.id,
        start_time=started,
        end_time=started + minutes_to_ms(table.default_duration),
        extension_count=0,
        total_extension_minutes=0,
        is_completed=0,
        remarks=remarks,
    )
    db.session.add(session)
    table.status = target_of("start").value
    db.session.flush()
    return session


def start_dining(table_id: int, remarks: str | None = None) -> DiningSession:
    with table_lock(table_id):
        try:
            with writing("start dining"):
                table = get_table(table_id)
                session = open_session(table, remarks)
        except IntegrityError:
            raise InvalidState("The table already has dining in progress.")

    logger.info("Dining started at table %s, planned end %s", table.table_number, session.end_time)
    return session


def extend_dining(session_id: int, minutes: int) -> DiningSession:
    session = get_session(session_id)
    with table_lock(session.table_id):
        with writing("extend dining"):
            db.session.refresh(session)
            if session.is_completed:
                raise InvalidState("Cannot extend a completed dining session.")
            session.end_time += minutes_to_ms(minutes)
            session.extension_count += 1
            session.total_extension_minutes += minutes

            table = db.session.get(DiningTable, session.table_id)
            if table is not None and table.status in (TableStatus.DINING, TableStatus.WARNING, TableStatus.TIMEOUT):
                table.status = derive_status(
                    table.status,
                    table.is_active,
                    session.end_time,
                    now(),
                    current_app.config["WARNING_THRESHOLD_MS"],
                ).value
    return session


def complete_dining(session_id: int) -> DiningSession:
    session = get_session(session_id)
    with table_lock(session.table_id):
        with writing("complete dining"):
            db.session.refresh(session)
            if session.is_completed:
                raise InvalidState("Dining session is already completed.")

            finished = now()
            table = db.session.get(DiningTable, session.table_id)
            session.actual_end_time = finished
            session.is_completed = 1
            if table is not None:
                session.buffer_end_time = finished + minutes_to_ms(table.buffer_duration)
                if can_apply("complete", table.status):
                    table.status = target_of("complete").value

    logger.info("Dining session %s completed", session_id)
    return session


def end_buffer(table_id: int) -> DiningTable:
    with table_lock(table_id):
        with writing("end the buffer period"):
            table = get_table(table_id)
            if not can_apply("end_buffer", table.status):
                raise InvalidState(f"Table {table.table_number} is not in its buffer period.")
            table.status = target_of("end_buffer").value
    return table


def update_alert_time(session_id: int, time: int) -> None:
    session = get_session(session_id)
    with writing("record the alert time"):
        session.last_alert_time = time
