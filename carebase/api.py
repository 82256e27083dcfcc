import logging
from datetime import UTC, date, datetime, time, tzinfo
from typing import Annotated, NamedTuple
from uuid import uuid4

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from pydantic import AwareDatetime, BaseModel, Field, field_validator

from carebase.config import Settings, configure_logging
from carebase.database import InMemoryKeyValueDatabase
from carebase.dates import ViewMode, recurring_dates, to_calendar_date
from carebase.models import (
    LOCKED_STATUSES,
    CaregiverRef,
    ClientRef,
    Shift,
    ShiftStatus,
)
from carebase.view_state import CalendarViewState, build_calendar

logger = logging.getLogger(__name__)

router = APIRouter()

Record = Shift | CaregiverRef | ClientRef


class ShiftCreateRequest(BaseModel):
    caregiver_id: str
    client_id: str
    scheduled_start: AwareDatetime
    scheduled_end: AwareDatetime
    status: ShiftStatus = ShiftStatus.SCHEDULED


class ShiftUpdateRequest(BaseModel):
    caregiver_id: str | None = None
    client_id: str | None = None
    scheduled_start: AwareDatetime | None = None
    scheduled_end: AwareDatetime | None = None
    status: ShiftStatus | None = None


class CheckOutRequest(BaseModel):
    client_signature: str | None = None


class BulkShiftRequest(BaseModel):
    """
    A weekly pattern: the same hours on the chosen weekdays for a run of
    weeks, starting at `start_date`. Weekdays count 0=Sunday .. 6=Saturday.
    """

    caregiver_id: str
    client_id: str
    start_date: date
    number_of_weeks: int = Field(ge=1, le=12)
    selected_days: list[Annotated[int, Field(ge=0, le=6)]] = Field(min_length=1)
    start_time: time
    end_time: time
    skip_conflicts: bool = False

    @field_validator("start_time", "end_time")
    @classmethod
    def _wall_clock(cls, value: time) -> time:
        # times are read in the configured timezone
        if value.tzinfo is not None:
            raise ValueError("time of day must not carry a UTC offset")
        return value


def _database(request: Request) -> InMemoryKeyValueDatabase[str, Record]:
    return request.app.state.database


def _get_shift(db: InMemoryKeyValueDatabase[str, Record], shift_id: str) -> Shift:
    shift = db.get(f"shift:{shift_id}")
    if not shift or not isinstance(shift, Shift):
        raise HTTPException(status_code=404, detail="Shift not found")
    return shift


def _get_caregiver(
    db: InMemoryKeyValueDatabase[str, Record], caregiver_id: str
) -> CaregiverRef:
    caregiver = db.get(f"caregiver:{caregiver_id}")
    if not caregiver or not isinstance(caregiver, CaregiverRef):
        raise HTTPException(status_code=404, detail="Caregiver not found")
    return caregiver


def _get_client(db: InMemoryKeyValueDatabase[str, Record], client_id: str) -> ClientRef:
    client = db.get(f"client:{client_id}")
    if not client or not isinstance(client, ClientRef):
        raise HTTPException(status_code=404, detail="Client not found")
    return client


def _check_window(
    db: InMemoryKeyValueDatabase[str, Record],
    caregiver_id: str,
    start: datetime,
    end: datetime,
    *,
    exclude_id: str | None = None,
) -> None:
    if end <= start:
        raise HTTPException(
            status_code=400, detail="End time must be after start time"
        )

    conflict = db.find_conflicting_shift(
        caregiver_id, start, end, exclude_id=exclude_id
    )
    if conflict is not None:
        logger.warning(
            "caregiver %s already booked by shift %s", caregiver_id, conflict.id
        )
        raise HTTPException(
            status_code=409,
            detail="Caregiver has a conflicting shift at this time",
        )


class PlannedShift(NamedTuple):
    day: date
    start: datetime
    end: datetime
    conflict: Shift | None


def _plan_bulk(
    db: InMemoryKeyValueDatabase[str, Record], body: BulkShiftRequest, tz: tzinfo
) -> list[PlannedShift]:
    if body.end_time <= body.start_time:
        raise HTTPException(
            status_code=400, detail="End time must be after start time"
        )

    plan = []
    for day in recurring_dates(
        body.start_date, body.number_of_weeks, body.selected_days
    ):
        start = datetime.combine(day, body.start_time, tzinfo=tz)
        end = datetime.combine(day, body.end_time, tzinfo=tz)
        conflict = db.find_conflicting_shift(body.caregiver_id, start, end)
        plan.append(PlannedShift(day, start, end, conflict))
    return plan


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/shifts")
async def list_shifts(
    request: Request,
    start: AwareDatetime | None = None,
    end: AwareDatetime | None = None,
    caregiver_id: str | None = None,
    client_id: str | None = None,
    status: ShiftStatus | None = None,
) -> dict:
    shifts = _database(request).find_shifts(
        start=start,
        end=end,
        caregiver_id=caregiver_id,
        client_id=client_id,
        status=status,
    )
    return {"shifts": [s.model_dump(mode="json") for s in shifts]}


@router.get("/shifts/bulk/preview")
async def preview_bulk_shifts(
    request: Request, params: Annotated[BulkShiftRequest, Query()]
) -> dict:
    db = _database(request)
    settings: Settings = request.app.state.settings
    _get_caregiver(db, params.caregiver_id)
    _get_client(db, params.client_id)

    plan = _plan_bulk(db, params, settings.tzinfo)
    conflicts = sum(1 for p in plan if p.conflict is not None)
    return {
        "valid": conflicts == 0,
        "total_shifts": len(plan),
        "shifts_to_create": len(plan) - conflicts,
        "shifts": [
            {
                "date": p.day.isoformat(),
                "scheduled_start": p.start.isoformat(),
                "scheduled_end": p.end.isoformat(),
                "has_conflict": p.conflict is not None,
                "conflicting_shift_id": p.conflict.id if p.conflict else None,
            }
            for p in plan
        ],
    }


@router.post("/shifts/bulk", status_code=201)
async def create_bulk_shifts(body: BulkShiftRequest, request: Request) -> dict:
    db = _database(request)
    settings: Settings = request.app.state.settings
    caregiver = _get_caregiver(db, body.caregiver_id)
    client = _get_client(db, body.client_id)

    today = to_calendar_date(request.app.state.now_fn(), settings.tzinfo)
    if body.start_date < today:
        raise HTTPException(
            status_code=400, detail="Start date cannot be in the past"
        )

    plan = _plan_bulk(db, body, settings.tzinfo)
    clashes = [p for p in plan if p.conflict is not None]

    # without skip_conflicts one clash cancels the whole batch
    if clashes and not body.skip_conflicts:
        first = clashes[0]
        logger.warning(
            "bulk schedule for caregiver %s refused: %s clashes with shift %s",
            caregiver.id,
            first.day.isoformat(),
            first.conflict.id,
        )
        raise HTTPException(
            status_code=409,
            detail=f"Caregiver has a conflicting shift on {first.day.isoformat()}",
        )

    created: list[Shift] = []
    for p in plan:
        if p.conflict is not None:
            continue
        shift = Shift(
            id=uuid4().hex,
            scheduled_start=p.start,
            scheduled_end=p.end,
            caregiver=caregiver,
            client=client,
        )
        db.put(f"shift:{shift.id}", shift)
        created.append(shift)

    logger.info(
        "bulk created %d shifts for caregiver %s at client %s, skipped %d",
        len(created),
        caregiver.id,
        client.id,
        len(clashes),
    )
    hours = sum(
        (s.scheduled_end - s.scheduled_start).total_seconds() for s in created
    )
    return {
        "created": len(created),
        "skipped": len(clashes),
        "shifts": [s.model_dump(mode="json") for s in created],
        "skipped_dates": [
            {
                "date": p.day.isoformat(),
                "reason": "Caregiver has a conflicting shift",
                "conflicting_shift_id": p.conflict.id,
            }
            for p in clashes
        ],
        "total_hours": hours / 3600,
    }


@router.get("/shifts/{shift_id}")
async def get_shift(shift_id: str, request: Request) -> dict:
    shift = _get_shift(_database(request), shift_id)
    return {"shift": shift.model_dump(mode="json")}


@router.post("/shifts", status_code=201)
async def create_shift(body: ShiftCreateRequest, request: Request) -> dict:
    db = _database(request)
    caregiver = _get_caregiver(db, body.caregiver_id)
    client = _get_client(db, body.client_id)

    _check_window(db, caregiver.id, body.scheduled_start, body.scheduled_end)

    shift = Shift(
        id=uuid4().hex,
        scheduled_start=body.scheduled_start,
        scheduled_end=body.scheduled_end,
        status=body.status,
        caregiver=caregiver,
        client=client,
    )
    db.put(f"shift:{shift.id}", shift)
    logger.info(
        "created shift %s for caregiver %s at client %s",
        shift.id,
        caregiver.id,
        client.id,
    )
    return {"shift": shift.model_dump(mode="json")}


@router.patch("/shifts/{shift_id}")
async def update_shift(
    shift_id: str, body: ShiftUpdateRequest, request: Request
) -> dict:
    db = _database(request)
    shift = _get_shift(db, shift_id)
    changes = body.model_dump(exclude_unset=True, exclude_none=True)

    # completed and cancelled shifts only accept a status change
    if shift.status in LOCKED_STATUSES and set(changes) - {"status"}:
        logger.warning(
            "rejected edit of %s shift %s: %s",
            shift.status.value,
            shift_id,
            sorted(changes),
        )
        raise HTTPException(
            status_code=400,
            detail="Cannot modify completed or cancelled shifts",
        )

    update: dict = {}
    if "caregiver_id" in changes:
        update["caregiver"] = _get_caregiver(db, changes["caregiver_id"])
    if "client_id" in changes:
        update["client"] = _get_client(db, changes["client_id"])
    for field in ("scheduled_start", "scheduled_end", "status"):
        if field in changes:
            update[field] = changes[field]

    updated = shift.model_copy(update=update)

    if {"caregiver_id", "scheduled_start", "scheduled_end"} & set(changes):
        _check_window(
            db,
            updated.caregiver.id,
            updated.scheduled_start,
            updated.scheduled_end,
            exclude_id=shift_id,
        )

    db.put(f"shift:{shift_id}", updated)
    logger.info("updated shift %s: %s", shift_id, sorted(changes))
    return {"shift": updated.model_dump(mode="json")}


@router.post("/shifts/{shift_id}/check-in")
async def check_in(shift_id: str, request: Request) -> dict:
    db = _database(request)
    shift = _get_shift(db, shift_id)

    if shift.status != ShiftStatus.SCHEDULED:
        logger.warning(
            "check-in refused for shift %s in status %s",
            shift_id,
            shift.status.value,
        )
        raise HTTPException(
            status_code=409,
            detail=f"Cannot check in to a shift that is {shift.status.value}",
        )

    shift.actual_start = request.app.state.now_fn()
    shift.status = ShiftStatus.IN_PROGRESS
    db.put(f"shift:{shift_id}", shift)
    logger.info("caregiver %s checked in to shift %s", shift.caregiver.id, shift_id)

    return {
        "status": "checked_in",
        "shift_id": shift_id,
        "actual_start": shift.actual_start.isoformat(),
    }


@router.post("/shifts/{shift_id}/check-out")
async def check_out(
    shift_id: str, request: Request, body: CheckOutRequest | None = None
) -> dict:
    db = _database(request)
    shift = _get_shift(db, shift_id)

    if shift.status != ShiftStatus.IN_PROGRESS:
        logger.warning(
            "check-out refused for shift %s in status %s",
            shift_id,
            shift.status.value,
        )
        raise HTTPException(
            status_code=409,
            detail=f"Cannot check out of a shift that is {shift.status.value}",
        )

    shift.actual_end = request.app.state.now_fn()
    shift.status = ShiftStatus.COMPLETED
    if body is not None and body.client_signature:
        shift.client_signature = body.client_signature
    db.put(f"shift:{shift_id}", shift)
    logger.info(
        "caregiver %s checked out of shift %s", shift.caregiver.id, shift_id
    )

    return {
        "status": "checked_out",
        "shift_id": shift_id,
        "actual_end": shift.actual_end.isoformat(),
    }


@router.get("/calendar")
async def get_calendar(
    request: Request,
    anchor: date | None = None,
    view: ViewMode = ViewMode.WEEK,
    selected: date | None = None,
    caregiver_id: str | None = None,
    client_id: str | None = None,
) -> dict:
    settings: Settings = request.app.state.settings
    today = to_calendar_date(request.app.state.now_fn(), settings.tzinfo)

    state = CalendarViewState(
        anchor=anchor or today, view_mode=view, selected_date=selected
    )
    shifts = _database(request).find_shifts(
        caregiver_id=caregiver_id, client_id=client_id
    )
    calendar = build_calendar(
        state,
        shifts,
        today=today,
        max_visible=settings.max_visible_shifts,
        tz=settings.tzinfo,
    )

    listed = {s.id: s for day in calendar.days for s in day.shifts}
    return {
        "header": calendar.header,
        "view_mode": calendar.view_mode.value,
        "anchor": calendar.anchor.isoformat(),
        "days": [
            {
                "date": day.date.isoformat(),
                "in_current_month": day.in_current_month,
                "is_today": day.is_today,
                "is_selected": day.is_selected,
                "shift_ids": [s.id for s in day.shifts],
                "visible_shift_ids": [s.id for s in day.visible_shifts],
                "hidden_count": day.hidden_count,
            }
            for day in calendar.days
        ],
        "shifts": {
            shift_id: s.model_dump(mode="json") for shift_id, s in listed.items()
        },
    }


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI()
    db: InMemoryKeyValueDatabase[str, Record] = InMemoryKeyValueDatabase()
    app.state.database = db
    app.state.settings = settings

    app.state.now_fn = lambda: datetime.now(UTC)

    app.include_router(router)
    return app
