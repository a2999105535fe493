from flask import Blueprint, jsonify

from ..auth import admin_required
from ..http import jerror
from ..schemas import CreateTableRequest, UpdateTableRequest
from ..services import tables
from ._payload import parse

bp = Blueprint("tables", __name__)


@bp.get("")
def list_tables():
    return jsonify([t.to_dict() for t in tables.list_tables()])


@bp.get("/<int:table_id>")
def get_table(table_id: int):
    table = tables.find_table(table_id)
    if table is None:
        return jerror(404, "NOT_FOUND", "Table not found.")
    return jsonify(table.to_dict())


@bp.post("")
@admin_required
def create_table():
    data = parse(CreateTableRequest)
    return jsonify(tables.create_table(data).to_dict()), 201


@bp.patch("/<int:table_id>")
@admin_required
def update_table(table_id: int):
    data = parse(UpdateTableRequest)
    return jsonify(tables.update_table(table_id, data).to_dict())


@bp.delete("/<int:table_id>")
@admin_required
def delete_table(table_id: int):
    tables.delete_table(table_id)
    return jsonify(success=True)
