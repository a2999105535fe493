import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..http import Conflict, InvalidState, NotFound
from ..models import DiningSession, DiningTable
from ..schemas import CreateTableRequest, UpdateTableRequest
from ..states import TableStatus
from ..store import reading, table_lock, writing

logger = logging.getLogger(__name__)


def list_tables() -> list[DiningTable]:
    return reading(
        lambda: list(db.session.scalars(select(DiningTable).order_by(DiningTable.table_number))),
        [],
        "tables",
    )


def find_table(table_id: int) -> DiningTable | None:
    """Read-only lookup; ``None`` when missing or when the store is unreachable."""
    return reading(lambda: db.session.get(DiningTable, table_id), None, "table")


def get_table(table_id: int) -> DiningTable:
    """Lookup for mutations. Store errors propagate to the caller's ``writing`` block."""
    table = db.session.get(DiningTable, table_id)
    if table is None:
        raise NotFound("Table not found.")
    return table


def create_table(data: CreateTableRequest) -> DiningTable:
    table = DiningTable(
        table_number=data.table_number,
        max_capacity=data.max_capacity,
        default_duration=data.default_duration,
        buffer_duration=data.buffer_duration,
        status=TableStatus.IDLE.value,
        is_active=1,
    )
    try:
        with writing("create the table"):
            db.session.add(table)
    except IntegrityError:
        raise Conflict(f"Table number {data.table_number} already exists.")
    logger.info("Created table %s", table.table_number)
    return table


def update_table(table_id: int, data: UpdateTableRequest) -> DiningTable:
    changes = data.model_dump(exclude_unset=True)
    with table_lock(table_id):
        try:
            with writing("update the table"):
                table = get_table(table_id)
                for field, value in changes.items():
                    if value is not None:
                        setattr(table, field, value)
                if changes.get("is_active") == 0:
                    table.status = TableStatus.DISABLED.value
                elif changes.get("is_active") == 1 and table.status == TableStatus.DISABLED:
                    table.status = TableStatus.IDLE.value
        except IntegrityError:
            raise Conflict(f"Table number {changes.get('table_number')} already exists.")
    return table


def delete_table(table_id: int) -> None:
    with table_lock(table_id):
        with writing("delete the table"):
            table = get_table(table_id)
            active = db.session.scalar(
                select(DiningSession.id).where(DiningSession.table_id == table_id, DiningSession.is_completed == 0)
            )
            if active is not None:
                raise InvalidState("Cannot delete a table with dining in progress.")
            db.session.delete(table)
    logger.info("Deleted table %s", table_id)
