from flask import Blueprint, jsonify

from ..schemas import AlertTimeRequest, ExtendDiningRequest, StartDiningRequest
from ..services import dining
from ._payload import parse

bp = Blueprint("dining", __name__)


@bp.post("/start")
def start():
    data = parse(StartDiningRequest)
    return jsonify(dining.start_dining(data.table_id).to_dict()), 201


@bp.post("/sessions/<int:session_id>/extend")
def extend(session_id: int):
    data = parse(ExtendDiningRequest)
    return jsonify(dining.extend_dining(session_id, data.extension_minutes).to_dict())


@bp.post("/sessions/<int:session_id>/complete")
def complete(session_id: int):
    return jsonify(dining.complete_dining(session_id).to_dict())


@bp.post("/tables/<int:table_id>/end-buffer")
def end_buffer(table_id: int):
    return jsonify(dining.end_buffer(table_id).to_dict())


@bp.get("/tables/<int:table_id>/session")
def active_session(table_id: int):
    session = dining.get_active_session(table_id)
    return jsonify(session.to_dict() if session else None)


@bp.get("/sessions")
def all_active_sessions():
    return jsonify([s.to_dict() for s in dining.get_all_active_sessions()])


@bp.put("/sessions/<int:session_id>/alert-time")
def update_alert_time(session_id: int):
    data = parse(AlertTimeRequest)
    dining.update_alert_time(session_id, data.time)
    return jsonify(success=True)
