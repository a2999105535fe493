from flask import Blueprint, jsonify

from ..services import dining, tables
from ..states import predict_queue
from ..store import now

bp = Blueprint("monitor", __name__)


def _snapshot():
    all_tables = tables.list_tables()
    session_by_table = {}
    for session in dining.get_all_active_sessions():
        session_by_table.setdefault(session.table_id, session)
    return all_tables, session_by_table


@bp.get("/status")
def all_status():
    all_tables, session_by_table = _snapshot()
    return jsonify([
        {
            "table": t.to_dict(),
            "session": session_by_table[t.id].to_dict() if t.id in session_by_table else None,
        }
        for t in all_tables
    ])


@bp.get("/queue")
def queue_prediction():
    """Tables ordered by when they free up; the full list, callers pick how many to show."""
    all_tables, session_by_table = _snapshot()
    end_times = {table_id: s.end_time for table_id, s in session_by_table.items()}
    return jsonify([e.to_dict() for e in predict_queue(all_tables, end_times, now())])
