"""Reservation book: guarded creation, audited edits, capacity and table seating."""
import json
import logging

from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..http import Conflict, Forbidden, InvalidState, NotFound
from ..models import BlacklistEntry, CapacityConfig, DiningSession, DiningTable, OperationLog, Reservation
from ..schemas import CapacityCheckRequest, CreateReservationRequest, UpdateReservationRequest
from ..states import can_apply, target_of
from ..store import now, reading, table_lock, writing
from . import dining
from .tables import get_table

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("pending", "confirmed", "arrived")
NULLABLE_FIELDS = ("table_id", "remarks", "tags")

STATUS_TRANSITIONS = {
    "pending": {"confirmed", "arrived", "cancelled"},
    "confirmed": {"arrived", "cancelled"},
    "arrived": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}

_SNAPSHOT_KEYS = {
    "reservation_date": "reservationDate",
    "reservation_time": "reservationTime",
    "guest_name": "guestName",
    "guest_phone": "guestPhone",
    "party_size": "partySize",
    "is_high_risk": "isHighRisk",
    "table_id": "tableId",
}


def _snapshot(fields: dict) -> str:
    return json.dumps({_SNAPSHOT_KEYS.get(k, k): v for k, v in fields.items()}, ensure_ascii=False)


def _log(operation: str, reservation_id: int, operated_by: int, details: str) -> None:
    db.session.add(OperationLog(
        operation_type=operation,
        reservation_id=reservation_id,
        operated_by=operated_by,
        details=details,
    ))


def get_reservation(reservation_id: int) -> Reservation:
    reservation = db.session.get(Reservation, reservation_id)
    if reservation is None:
        raise NotFound("Reservation not found.")
    return reservation


# --- guard ---
# Guard reads propagate store errors; callers run them inside ``writing``.

def is_blacklisted(phone: str) -> bool:
    return db.session.scalar(select(BlacklistEntry.id).where(BlacklistEntry.guest_phone == phone).limit(1)) is not None


def has_duplicate(phone: str, date: str, exclude_id: int | None = None) -> bool:
    """True when the phone already holds a live reservation on that date."""
    q = select(Reservation.id).where(
        Reservation.guest_phone == phone,
        Reservation.reservation_date == date,
        Reservation.status.in_(ACTIVE_STATUSES),
    )
    if exclude_id:
        q = q.where(Reservation.id != exclude_id)
    return db.session.scalar(q.limit(1)) is not None


def booked_party_size(date: str, start_time: str, end_time: str) -> int:
    q = select(Reservation.party_size).where(
        Reservation.reservation_date == date,
        Reservation.reservation_time >= start_time,
        Reservation.reservation_time <= end_time,
        Reservation.status.in_(ACTIVE_STATUSES),
    )
    return reading(lambda: sum(size or 0 for size in db.session.scalars(q)), 0, "capacity")


def check_capacity(data: CapacityCheckRequest) -> dict:
    current = booked_party_size(data.date, data.start_time, data.end_time)
    return {
        "currentCapacity": current,
        "maxCapacity": data.max_capacity,
        "isOverCapacity": current >= data.max_capacity,
        "availableSeats": max(0, data.max_capacity - current),
    }


def get_capacity_config() -> list[CapacityConfig]:
    return reading(
        lambda: list(db.session.scalars(select(CapacityConfig).order_by(CapacityConfig.start_time))),
        [],
        "capacity config",
    )


# --- mutations ---

def create_reservation(data: CreateReservationRequest, operated_by: int) -> Reservation:
    fields = data.model_dump(exclude_none=True)
    with writing("create the reservation"):
        if is_blacklisted(data.guest_phone):
            raise Forbidden("This guest is blacklisted and cannot make a reservation.")
        if has_duplicate(data.guest_phone, data.reservation_date):
            raise Conflict("This guest already has a reservation on the same day. Please check for a duplicate booking.")
        if data.table_id is not None:
            get_table(data.table_id)

        reservation = Reservation(**fields, status="pending", created_by=operated_by, updated_by=operated_by)
        db.session.add(reservation)
        db.session.flush()
        _log("create", reservation.id, operated_by, _snapshot(fields))
    logger.info("Reservation %s created for %s on %s", reservation.id, reservation.guest_phone, reservation.reservation_date)
    return reservation


def update_reservation(reservation_id: int, data: UpdateReservationRequest, operated_by: int) -> Reservation:
    # Explicit nulls only clear the nullable fields.
    changes = {
        k: v for k, v in data.model_dump(exclude_unset=True).items()
        if v is not None or k in NULLABLE_FIELDS
    }

    with writing("update the reservation"):
        reservation = get_reservation(reservation_id)
        new_status = changes.get("status")
        if new_status and new_status != reservation.status and new_status not in STATUS_TRANSITIONS[reservation.status]:
            raise InvalidState(f"Cannot change a {reservation.status} reservation to {new_status}.")

        if "guest_phone" in changes or "reservation_date" in changes:
            phone = changes.get("guest_phone", reservation.guest_phone)
            date = changes.get("reservation_date", reservation.reservation_date)
            if (new_status or reservation.status) in ACTIVE_STATUSES and has_duplicate(phone, date, exclude_id=reservation_id):
                raise Conflict("This guest already has a reservation on the same day. Please check for a duplicate booking.")

        if changes.get("table_id") is not None:
            get_table(changes["table_id"])

        for field, value in changes.items():
            setattr(reservation, field, value)
        reservation.updated_by = operated_by
        _log("update", reservation_id, operated_by, _snapshot(changes))
    return reservation


def delete_reservation(reservation_id: int, operated_by: int) -> None:
    with writing("delete the reservation"):
        reservation = get_reservation(reservation_id)
        db.session.delete(reservation)
        _log("delete", reservation_id, operated_by, json.dumps({"deletedReservationId": reservation_id}))
    logger.info("Reservation %s deleted by operator %s", reservation_id, operated_by)


# --- queries ---

def by_date(date: str) -> list[Reservation]:
    q = select(Reservation).where(Reservation.reservation_date == date).order_by(Reservation.reservation_time)
    return reading(lambda: list(db.session.scalars(q)), [], "reservations by date")


def by_date_range(start_date: str, end_date: str) -> list[Reservation]:
    q = (
        select(Reservation)
        .where(Reservation.reservation_date >= start_date, Reservation.reservation_date <= end_date)
        .order_by(Reservation.reservation_date, Reservation.reservation_time)
    )
    return reading(lambda: list(db.session.scalars(q)), [], "reservations by date range")


def search(query: str, date: str | None = None) -> list[Reservation]:
    pattern = f"%{query}%"
    q = select(Reservation).where(or_(Reservation.guest_name.like(pattern), Reservation.guest_phone.like(pattern)))
    if date:
        q = q.where(Reservation.reservation_date == date).order_by(Reservation.reservation_time)
    else:
        q = q.order_by(Reservation.reservation_date, Reservation.reservation_time)
    return reading(lambda: list(db.session.scalars(q)), [], "reservation search")


def day_stats(date: str) -> dict:
    rows = by_date(date)
    return {
        "totalReservations": len(rows),
        "totalPeople": sum(r.party_size for r in rows),
        "arrivedCount": sum(1 for r in rows if r.status == "arrived"),
        "pendingCount": sum(1 for r in rows if r.status == "pending"),
        "cancelledCount": sum(1 for r in rows if r.status == "cancelled"),
        "noShowCount": sum(1 for r in rows if r.is_high_risk == 1 and r.status == "cancelled"),
    }


# --- table seating ---

def assign_table(reservation_id: int, table_id: int) -> Reservation:
    with writing("assign the table"):
        reservation = get_reservation(reservation_id)
        get_table(table_id)
        reservation.table_id = table_id
    return reservation


def start_dining(reservation_id: int, operated_by: int) -> DiningSession:
    """Seats the reservation: opens a session on its table and links it, in one commit."""
    reservation = get_reservation(reservation_id)
    table_id = reservation.table_id
    if not table_id:
        raise InvalidState("The reservation has no table assigned, dining cannot start.")

    with table_lock(table_id):
        try:
            with writing("start dining for the reservation"):
                db.session.refresh(reservation)
                if reservation.table_id != table_id:
                    raise InvalidState("The reservation's table changed, please retry.")
                if reservation.status not in ACTIVE_STATUSES:
                    raise InvalidState(f"Cannot seat a {reservation.status} reservation.")

                session = dining.open_session(
                    get_table(table_id),
                    remarks=f"From reservation #{reservation.id} - {reservation.guest_name}",
                )
                reservation.dining_session_id = session.id
                reservation.status = "arrived"
                reservation.updated_by = operated_by
                _log("update", reservation.id, operated_by, _snapshot({"status": "arrived", "diningSessionId": session.id}))
        except IntegrityError:
            raise InvalidState("The table already has dining in progress.")
    return session


def _cancel(reservation: Reservation, operated_by: int) -> None:
    reservation.status = "cancelled"
    reservation.table_id = None
    reservation.dining_session_id = None
    reservation.updated_by = operated_by
    _log("update", reservation.id, operated_by, _snapshot({"status": "cancelled", "tableId": None}))


def release_table(reservation_id: int, operated_by: int) -> Reservation:
    """Cancels the reservation, closes its session and frees its table, in one commit."""
    reservation = get_reservation(reservation_id)
    table_id = reservation.table_id
    if not table_id:
        with writing("cancel the reservation"):
            _cancel(reservation, operated_by)
        return reservation

    with table_lock(table_id):
        with writing("release the table"):
            db.session.refresh(reservation)
            if reservation.dining_session_id:
                session = db.session.get(DiningSession, reservation.dining_session_id, populate_existing=True)
                if session is not None and not session.is_completed:
                    session.is_completed = 1
                    session.actual_end_time = now()
            table = db.session.get(DiningTable, table_id, populate_existing=True)
            if table is not None and can_apply("release", table.status):
                table.status = target_of("release").value
            _cancel(reservation, operated_by)
    return reservation


def table_info(reservation_id: int) -> dict:
    reservation = get_reservation(reservation_id)
    table = db.session.get(DiningTable, reservation.table_id) if reservation.table_id else None
    session = None
    if table is not None and reservation.dining_session_id:
        session = db.session.get(DiningSession, reservation.dining_session_id)
    return {
        "reservation": reservation.to_dict(),
        "table": table.to_dict() if table else None,
        "diningSession": session.to_dict() if session else None,
    }
