"""
Background table monitor: every MONITOR_INTERVAL_SECONDS re-derive each
table's status from its active session, persist transitions, and send one
aggregated notification for tables that have run over time.

Timeout alerts for a session are debounced by ALERT_DEBOUNCE_MS through its
last_alert_time. Tables without an active session are left alone, so a
table in its buffer period only leaves it through an explicit action.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy import select, update

from .extensions import db
from .models import DiningSession, DiningTable
from .notify import send_notification
from .states import alert_due, derive_status

logger = logging.getLogger(__name__)

MONITOR_JOB_ID = "table_monitor"
TIMEOUT_TITLE = "Table timeout alert"


@dataclass
class TickReport:
    now: int
    status_changes: list[tuple[str, str, str]] = field(default_factory=list)  # (table, old, new)
    alerted: list[str] = field(default_factory=list)
    notified: Optional[bool] = None


class TableMonitor:
    def __init__(self, app, notifier: Callable[[str, str], bool] = send_notification, interval_seconds: Optional[int] = None):
        self.app = app
        self.notifier = notifier
        self.interval_seconds = interval_seconds or app.config["MONITOR_INTERVAL_SECONDS"]
        self._scheduler: Optional[BackgroundScheduler] = None
        self._tick_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        if self.running:
            return
        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            self.tick,
            "interval",
            seconds=self.interval_seconds,
            id=MONITOR_JOB_ID,
            next_run_time=datetime.now(),
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info("Table monitor started; checking every %ss", self.interval_seconds)

    def stop(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Table monitor stopped")
        self._scheduler = None

    def tick(self, now: Optional[int] = None) -> Optional[TickReport]:
        """Run one pass. Returns None when the pass was skipped or failed."""
        if not self._tick_lock.acquire(blocking=False):
            logger.warning("Previous monitor tick still running; skipping this one")
            return None
        try:
            with self.app.app_context():
                try:
                    return self._check_all_tables(now)
                except Exception as e:
                    logger.exception("Monitor tick failed: %s", e)
                    db.session.rollback()
                    return None
        finally:
            self._tick_lock.release()

    def _check_all_tables(self, now: Optional[int]) -> TickReport:
        config = self.app.config
        if now is None:
            now = config["CLOCK"]()
        report = TickReport(now=now)

        tables = list(db.session.scalars(select(DiningTable).order_by(DiningTable.table_number)))
        sessions = db.session.scalars(
            select(DiningSession).where(DiningSession.is_completed == 0).order_by(DiningSession.start_time)
        )
        session_by_table = {}
        for session in sessions:
            session_by_table.setdefault(session.table_id, session)

        for table in tables:
            session = session_by_table.get(table.id)
            if session is None:
                continue

            new_status = derive_status(
                table.status, table.is_active, session.end_time, now, config["WARNING_THRESHOLD_MS"]
            ).value
            if new_status != table.status and self._set_status(table, new_status):
                report.status_changes.append((table.table_number, table.status, new_status))
                logger.info("Table %s: %s -> %s", table.table_number, table.status, new_status)

            if session.end_time <= now and alert_due(session.last_alert_time, now, config["ALERT_DEBOUNCE_MS"]):
                session.last_alert_time = now
                report.alerted.append(table.table_number)
        db.session.commit()

        if report.alerted:
            table_list = ", ".join(report.alerted)
            content = f"The following tables have run over time, please follow up: {table_list}"
            try:
                report.notified = bool(self.notifier(TIMEOUT_TITLE, content))
            except Exception as e:
                logger.exception("Timeout notifier raised: %s", e)
                report.notified = False
            if report.notified:
                logger.info("Sent timeout notification: %s", table_list)
            else:
                logger.warning("Failed to send timeout notification: %s", table_list)
        return report

    @staticmethod
    def _set_status(table: DiningTable, new_status: str) -> bool:
        # Only overwrite the status this pass observed; a request handler may
        # have moved the table since.
        result = db.session.execute(
            update(DiningTable)
            .where(DiningTable.id == table.id, DiningTable.status == table.status)
            .values(status=new_status)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
