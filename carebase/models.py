"""
Scheduling domain models.
"""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field

# Day-granularity bucketing key; the canonical string form is isoformat().
CalendarDate = date


class ShiftStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# statuses that block the caregiver from taking an overlapping shift
ACTIVE_STATUSES = frozenset({ShiftStatus.SCHEDULED, ShiftStatus.IN_PROGRESS})

# statuses after which only the status itself may change
LOCKED_STATUSES = frozenset({ShiftStatus.COMPLETED, ShiftStatus.CANCELLED})


class CaregiverRef(BaseModel):
    id: str
    first_name: str
    last_name: str


class ClientRef(BaseModel):
    id: str
    first_name: str
    last_name: str
    address: str | None = None


class VisitNoteSummary(BaseModel):
    id: str
    submitted_at: datetime
    qa_status: str | None = None


class Shift(BaseModel):
    id: str
    scheduled_start: datetime
    scheduled_end: datetime
    actual_start: datetime | None = None  # set on check-in
    actual_end: datetime | None = None  # set on check-out
    status: ShiftStatus = ShiftStatus.SCHEDULED
    caregiver: CaregiverRef
    client: ClientRef
    visit_notes: list[VisitNoteSummary] = Field(default_factory=list)
    client_signature: str | None = None


DateBucketMap = dict[CalendarDate, list[Shift]]
