import logging
import threading
from contextlib import contextmanager
from typing import Callable, TypeVar

from flask import current_app
from sqlalchemy.exc import OperationalError

from .extensions import db
from .http import Unavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

_locks_guard = threading.Lock()
_table_locks: dict[int, threading.Lock] = {}


@contextmanager
def table_lock(table_id: int):
    """Serialises mutations of one table within this process."""
    with _locks_guard:
        lock = _table_locks.setdefault(table_id, threading.Lock())
    with lock:
        yield


@contextmanager
def writing(action: str):
    """Commits on success; an unreachable store surfaces as ``Unavailable``."""
    try:
        yield
        db.session.commit()
    except OperationalError as e:
        db.session.rollback()
        logger.error("Store unavailable while trying to %s: %s", action, e)
        raise Unavailable(f"Could not {action}: the database is unavailable.") from e
    except Exception:
        db.session.rollback()
        raise


def reading(fn: Callable[[], T], default: T, what: str) -> T:
    """Runs a read; an unreachable store yields ``default`` instead of an error."""
    try:
        return fn()
    except OperationalError as e:
        db.session.rollback()
        logger.warning("Store unavailable while reading %s, returning empty result: %s", what, e)
        return default


def now() -> int:
    return current_app.config["CLOCK"]()
