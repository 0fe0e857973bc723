# app/models/appointment.py

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.utils.date_utils import is_valid_date, is_valid_time


class AppointmentStatus(str, Enum):
    PROPOSED = "proposed"
    CONFIRMED = "confirmed"
    PENDING_CHANGE = "pending_change"


class Appointment(BaseModel):
    """The single current appointment embedded in a client document.

    Stored under ``next_appointment`` and replaced as a whole on every
    mutation, never patched field by field.
    """

    date: str
    time: str
    location: str = ""
    status: AppointmentStatus
    token: str
    proposed_date: Optional[str] = None
    proposed_time: Optional[str] = None
    reminders_sent: List[int] = Field(default_factory=list)
    created_at: datetime

    @field_validator("reminders_sent")
    @classmethod
    def normalize_reminders(cls, v):
        return sorted(set(v), reverse=True)

    @model_validator(mode="after")
    def check_proposal_fields(self):
        has_proposal = self.proposed_date is not None or self.proposed_time is not None
        if self.status == AppointmentStatus.PENDING_CHANGE:
            if self.proposed_date is None or self.proposed_time is None:
                raise ValueError("pending_change requires proposed_date and proposed_time")
        elif has_proposal:
            raise ValueError("proposed_date/proposed_time are only allowed while pending_change")
        return self

    def to_document(self) -> dict:
        doc = self.model_dump()
        doc["status"] = self.status.value
        return doc

    @classmethod
    def from_document(cls, doc: Optional[dict]) -> Optional["Appointment"]:
        if not doc:
            return None
        return cls.model_validate(doc)


class ScheduleRequest(BaseModel):
    date: str = Field(..., description="Appointment date in YYYY-MM-DD format")
    time: str = Field(..., description="Wall-clock time in HH:MM format")
    location: Optional[str] = Field(None, max_length=200)

    @field_validator("date")
    @classmethod
    def validate_date_format(cls, v):
        if not is_valid_date(v):
            raise ValueError("Date must be in YYYY-MM-DD format")
        return v

    @field_validator("time")
    @classmethod
    def validate_time_format(cls, v):
        if not is_valid_time(v):
            raise ValueError("Time must be in HH:MM format")
        return v


class ConfirmRequest(BaseModel):
    token: str = Field(..., min_length=1)


class ProposeRequest(BaseModel):
    token: str = Field(..., min_length=1)
    proposed_date: str
    proposed_time: str


class ScheduleResult(BaseModel):
    client_id: str
    token: str
    email_queued: bool
    confirm_url: str
    propose_url: str
    message: str


class AppointmentView(BaseModel):
    """Appointment as shown to callers; the token is never echoed back."""

    date: str
    time: str
    location: str = ""
    status: AppointmentStatus
    proposed_date: Optional[str] = None
    proposed_time: Optional[str] = None
    reminders_sent: List[int] = Field(default_factory=list)
    created_at: datetime

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> "AppointmentView":
        return cls.model_validate(appointment.model_dump(exclude={"token"}))


class UpcomingAppointment(BaseModel):
    client_id: str
    client_name: str
    appointment: AppointmentView


class ReminderRunSummary(BaseModel):
    run_date: str
    scanned: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
