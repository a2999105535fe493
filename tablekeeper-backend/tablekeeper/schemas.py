from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

TableStatusName = Literal["idle", "dining", "warning", "timeout", "buffer", "disabled"]
SourceName = Literal["phone", "wechat", "walk-in", "platform", "other"]
ReservationStatusName = Literal["pending", "confirmed", "arrived", "completed", "cancelled"]

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class _Request(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)


def _check_calendar_date(v: str | None) -> str | None:
    if v is not None:
        date.fromisoformat(v)
    return v


class CreateTableRequest(_Request):
    table_number: str = Field(..., alias="tableNumber", min_length=1, max_length=20)
    max_capacity: int = Field(4, alias="maxCapacity", ge=1)
    default_duration: int = Field(90, alias="defaultDuration", ge=1)
    buffer_duration: int = Field(15, alias="bufferDuration", ge=0)


class UpdateTableRequest(_Request):
    table_number: str | None = Field(None, alias="tableNumber", min_length=1, max_length=20)
    max_capacity: int | None = Field(None, alias="maxCapacity", ge=1)
    default_duration: int | None = Field(None, alias="defaultDuration", ge=1)
    buffer_duration: int | None = Field(None, alias="bufferDuration", ge=0)
    status: TableStatusName | None = None
    is_active: Literal[0, 1] | None = Field(None, alias="isActive")


class StartDiningRequest(_Request):
    table_id: int = Field(..., alias="tableId")


class ExtendDiningRequest(_Request):
    extension_minutes: int = Field(..., alias="extensionMinutes", ge=1)


class AlertTimeRequest(_Request):
    time: int = Field(..., ge=0)


class CreateReservationRequest(_Request):
    reservation_date: str = Field(..., alias="reservationDate", pattern=DATE_PATTERN)
    reservation_time: str = Field(..., alias="reservationTime", pattern=TIME_PATTERN)
    guest_name: str = Field(..., alias="guestName", min_length=1, max_length=120)
    guest_phone: str = Field(..., alias="guestPhone", min_length=1, max_length=32)
    party_size: int = Field(..., alias="partySize", ge=1)
    source: SourceName
    remarks: str | None = None
    tags: str | None = Field(None, max_length=255)
    table_id: int | None = Field(None, alias="tableId")

    @field_validator("reservation_date")
    @classmethod
    def validate_calendar_date(cls, v):
        return _check_calendar_date(v)


class UpdateReservationRequest(_Request):
    reservation_date: str | None = Field(None, alias="reservationDate", pattern=DATE_PATTERN)
    reservation_time: str | None = Field(None, alias="reservationTime", pattern=TIME_PATTERN)
    guest_name: str | None = Field(None, alias="guestName", min_length=1, max_length=120)
    guest_phone: str | None = Field(None, alias="guestPhone", min_length=1, max_length=32)
    party_size: int | None = Field(None, alias="partySize", ge=1)
    source: SourceName | None = None
    status: ReservationStatusName | None = None
    remarks: str | None = None
    tags: str | None = Field(None, max_length=255)
    table_id: int | None = Field(None, alias="tableId")
    is_high_risk: Literal[0, 1] | None = Field(None, alias="isHighRisk")

    @field_validator("reservation_date")
    @classmethod
    def validate_calendar_date(cls, v):
        return _check_calendar_date(v)


class CapacityCheckRequest(_Request):
    date: str = Field(..., pattern=DATE_PATTERN)
    start_time: str = Field(..., alias="startTime", pattern=TIME_PATTERN)
    end_time: str = Field(..., alias="endTime", pattern=TIME_PATTERN)
    max_capacity: int = Field(..., alias="maxCapacity", ge=0)


class AssignTableRequest(_Request):
    table_id: int = Field(..., alias="tableId")
