from sqlalchemy import Index, UniqueConstraint, func, text

from .extensions import db
from .utils.time import api_iso_z

TABLE_STATUSES = ("idle", "dining", "warning", "timeout", "buffer", "disabled")
RESERVATION_SOURCES = ("phone", "wechat", "walk-in", "platform", "other")
RESERVATION_STATUSES = ("pending", "confirmed", "arrived", "completed", "cancelled")
OPERATION_TYPES = ("create", "update", "delete")


class DiningTable(db.Model):
    __tablename__ = "tables"
    id = db.Column(db.Integer, primary_key=True)
    table_number = db.Column(db.String(20), nullable=False, unique=True)
    max_capacity = db.Column(db.Integer, nullable=False, default=4)
    default_duration = db.Column(db.Integer, nullable=False, default=90)
    buffer_duration = db.Column(db.Integer, nullable=False, default=15)
    status = db.Column(db.Enum(*TABLE_STATUSES, name="table_status"), nullable=False, default="idle")
    is_active = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    sessions = db.relationship("DiningSession", back_populates="table", cascade="all, delete-orphan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tableNumber": self.table_number,
            "maxCapacity": self.max_capacity,
            "defaultDuration": self.default_duration,
            "bufferDuration": self.buffer_duration,
            "status": self.status,
            "isActive": self.is_active,
        }


class DiningSession(db.Model):
    __tablename__ = "dining_sessions"
    id = db.Column(db.Integer, primary_key=True)
    table_id = db.Column(db.Integer, db.ForeignKey("tables.id", ondelete="CASCADE"), nullable=False, index=True)
    # Epoch milliseconds.
    start_time = db.Column(db.BigInteger, nullable=False)
    end_time = db.Column(db.BigInteger, nullable=False)
    actual_end_time = db.Column(db.BigInteger)
    buffer_end_time = db.Column(db.BigInteger)
    last_alert_time = db.Column(db.BigInteger)
    extension_count = db.Column(db.Integer, nullable=False, default=0)
    total_extension_minutes = db.Column(db.Integer, nullable=False, default=0)
    is_completed = db.Column(db.Integer, nullable=False, default=0)
    remarks = db.Column(db.Text)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    table = db.relationship("DiningTable", back_populates="sessions")

    __table_args__ = (
        Index(
            "uq_dining_sessions_active_table",
            "table_id",
            unique=True,
            sqlite_where=text("is_completed = 0"),
            postgresql_where=text("is_completed = 0"),
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tableId": self.table_id,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "actualEndTime": self.actual_end_time,
            "bufferEndTime": self.buffer_end_time,
            "lastAlertTime": self.last_alert_time,
            "extensionCount": self.extension_count,
            "totalExtensionMinutes": self.total_extension_minutes,
            "isCompleted": self.is_completed,
            "remarks": self.remarks,
        }


class Reservation(db.Model):
    __tablename__ = "reservations"
    id = db.Column(db.Integer, primary_key=True)
    reservation_date = db.Column(db.String(10), nullable=False, index=True)
    reservation_time = db.Column(db.String(5), nullable=False)
    guest_name = db.Column(db.String(120), nullable=False)
    guest_phone = db.Column(db.String(32), nullable=False, index=True)
    party_size = db.Column(db.Integer, nullable=False)
    source = db.Column(db.Enum(*RESERVATION_SOURCES, name="reservation_source"), nullable=False, default="phone")
    status = db.Column(db.Enum(*RESERVATION_STATUSES, name="reservation_status"), nullable=False, default="pending")
    remarks = db.Column(db.Text)
    tags = db.Column(db.String(255))
    table_id = db.Column(db.Integer, db.ForeignKey("tables.id", ondelete="SET NULL"))
    dining_session_id = db.Column(db.Integer, db.ForeignKey("dining_sessions.id", ondelete="SET NULL"))
    is_high_risk = db.Column(db.Integer, nullable=False, default=0)
    created_by = db.Column(db.Integer)
    updated_by = db.Column(db.Integer)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reservationDate": self.reservation_date,
            "reservationTime": self.reservation_time,
            "guestName": self.guest_name,
            "guestPhone": self.guest_phone,
            "partySize": self.party_size,
            "source": self.source,
            "status": self.status,
            "remarks": self.remarks,
            "tags": self.tags,
            "tableId": self.table_id,
            "diningSessionId": self.dining_session_id,
            "isHighRisk": self.is_high_risk,
            "createdBy": self.created_by,
            "updatedBy": self.updated_by,
            "createdAt": api_iso_z(self.created_at),
        }


class OperationLog(db.Model):
    __tablename__ = "operation_logs"
    id = db.Column(db.Integer, primary_key=True)
    operation_type = db.Column(db.Enum(*OPERATION_TYPES, name="operation_type"), nullable=False)
    # No FK: the log outlives hard-deleted reservations.
    reservation_id = db.Column(db.Integer, nullable=False, index=True)
    operated_by = db.Column(db.Integer, nullable=False)
    details = db.Column(db.Text)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())


class CapacityConfig(db.Model):
    __tablename__ = "capacity_config"
    id = db.Column(db.Integer, primary_key=True)
    period_name = db.Column(db.String(50), nullable=False)
    start_time = db.Column(db.String(5), nullable=False)
    end_time = db.Column(db.String(5), nullable=False)
    max_capacity = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "periodName": self.period_name,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "maxCapacity": self.max_capacity,
        }


class BlacklistEntry(db.Model):
    __tablename__ = "blacklist"
    id = db.Column(db.Integer, primary_key=True)
    guest_phone = db.Column(db.String(32), nullable=False)
    guest_name = db.Column(db.String(120))
    reason = db.Column(db.Text)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("guest_phone", name="uq_blacklist_phone"),
    )
