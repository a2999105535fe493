from flask import Blueprint, jsonify, request

from ..auth import check_admin, operator_id
from ..http import jerror
from ..schemas import (
    AssignTableRequest,
    CapacityCheckRequest,
    CreateReservationRequest,
    UpdateReservationRequest,
)
from ..services import reservations
from ._payload import parse, str_arg

bp = Blueprint("reservations", __name__)


@bp.before_request
def _require_admin():
    if not check_admin():
        return jerror(401, "UNAUTHORIZED", "Missing or invalid bearer token.")


@bp.post("")
def create_reservation():
    data = parse(CreateReservationRequest)
    reservation = reservations.create_reservation(data, operator_id())
    return jsonify(reservation.to_dict()), 201


@bp.patch("/<int:reservation_id>")
def update_reservation(reservation_id: int):
    data = parse(UpdateReservationRequest)
    reservations.update_reservation(reservation_id, data, operator_id())
    return jsonify(success=True)


@bp.delete("/<int:reservation_id>")
def delete_reservation(reservation_id: int):
    reservations.delete_reservation(reservation_id, operator_id())
    return jsonify(success=True)


@bp.get("")
def list_reservations():
    """
    Reservations for a single day ordered by time.
    Query: ?date=YYYY-MM-DD
    """
    return jsonify([r.to_dict() for r in reservations.by_date(str_arg("date"))])


@bp.get("/range")
def list_reservations_in_range():
    """Query: ?startDate=YYYY-MM-DD&endDate=YYYY-MM-DD (inclusive)."""
    rows = reservations.by_date_range(str_arg("startDate"), str_arg("endDate"))
    return jsonify([r.to_dict() for r in rows])


@bp.get("/search")
def search_reservations():
    """Match guest name or phone. Query: ?q=...&date=YYYY-MM-DD (optional)."""
    rows = reservations.search(str_arg("q"), request.args.get("date") or None)
    return jsonify([r.to_dict() for r in rows])


@bp.get("/capacity")
def check_capacity():
    data = parse(CapacityCheckRequest, payload=dict(request.args))
    return jsonify(reservations.check_capacity(data))


@bp.get("/capacity-config")
def capacity_config():
    return jsonify([c.to_dict() for c in reservations.get_capacity_config()])


@bp.get("/stats")
def day_stats():
    return jsonify(reservations.day_stats(str_arg("date")))


@bp.post("/<int:reservation_id>/table")
def assign_table(reservation_id: int):
    data = parse(AssignTableRequest)
    reservations.assign_table(reservation_id, data.table_id)
    return jsonify(success=True, message="Table assigned.")


@bp.post("/<int:reservation_id>/start-dining")
def start_dining(reservation_id: int):
    session = reservations.start_dining(reservation_id, operator_id())
    return jsonify(success=True, message="Dining started.", diningSessionId=session.id), 201


@bp.post("/<int:reservation_id>/release")
def release_table(reservation_id: int):
    reservations.release_table(reservation_id, operator_id())
    return jsonify(success=True, message="Reservation cancelled and table released.")


@bp.get("/<int:reservation_id>/table-info")
def table_info(reservation_id: int):
    return jsonify(reservations.table_info(reservation_id))
