"""
Calendar view state and the pure transitions between states.

A `CalendarViewState` is everything the schedule screen needs to remember
between renders. Transitions never mutate a state; they return a new one,
so a state can be serialized, compared and replayed in tests.
"""

from collections.abc import Iterable
from datetime import date, tzinfo

from pydantic import BaseModel, ConfigDict

from carebase.dates import (
    MONTH_NAMES,
    ViewMode,
    bucket_shifts,
    in_month,
    is_same_day,
    month_dates,
    shift_anchor,
    shifts_on,
    week_dates,
)
from carebase.models import CalendarDate, Shift


class CalendarViewState(BaseModel):
    model_config = ConfigDict(frozen=True)

    anchor: date
    view_mode: ViewMode = ViewMode.WEEK
    selected_date: date | None = None
    selected_shift_id: str | None = None


class CalendarDay(BaseModel):
    date: CalendarDate
    in_current_month: bool
    is_today: bool
    is_selected: bool
    shifts: list[Shift]
    hidden_count: int = 0

    @property
    def visible_shifts(self) -> list[Shift]:
        return self.shifts[: len(self.shifts) - self.hidden_count]


class CalendarView(BaseModel):
    header: str
    view_mode: ViewMode
    anchor: CalendarDate
    days: list[CalendarDay]


def navigate_previous(state: CalendarViewState) -> CalendarViewState:
    return state.model_copy(
        update={"anchor": shift_anchor(state.anchor, state.view_mode, -1)}
    )


def navigate_next(state: CalendarViewState) -> CalendarViewState:
    return state.model_copy(
        update={"anchor": shift_anchor(state.anchor, state.view_mode, 1)}
    )


def go_to_today(state: CalendarViewState, today: date) -> CalendarViewState:
    return state.model_copy(update={"anchor": today})


def switch_view_mode(
    state: CalendarViewState, view_mode: ViewMode
) -> CalendarViewState:
    return state.model_copy(update={"view_mode": view_mode})


def select_date(state: CalendarViewState, day: date | None) -> CalendarViewState:
    return state.model_copy(update={"selected_date": day})


def select_shift(
    state: CalendarViewState, shift_id: str | None
) -> CalendarViewState:
    return state.model_copy(update={"selected_shift_id": shift_id})


def visible_dates(state: CalendarViewState) -> list[CalendarDate]:
    if state.view_mode == ViewMode.WEEK:
        return week_dates(state.anchor)
    return month_dates(state.anchor)


def header_text(state: CalendarViewState) -> str:
    """
    "June 9 - 15, 2024" for a week inside one month, "June 30 - July 6, 2024"
    for a week spanning two, "December 29, 2024 - January 4, 2025" for a
    week spanning two years, and "June 2024" in month mode.
    """
    if state.view_mode == ViewMode.MONTH:
        return f"{MONTH_NAMES[state.anchor.month - 1]} {state.anchor.year}"

    dates = week_dates(state.anchor)
    start, end = dates[0], dates[-1]
    if start.year != end.year:
        return (
            f"{MONTH_NAMES[start.month - 1]} {start.day}, {start.year} - "
            f"{MONTH_NAMES[end.month - 1]} {end.day}, {end.year}"
        )
    if start.month == end.month:
        return (
            f"{MONTH_NAMES[start.month - 1]} {start.day} - {end.day}, {start.year}"
        )
    return (
        f"{MONTH_NAMES[start.month - 1]} {start.day} - "
        f"{MONTH_NAMES[end.month - 1]} {end.day}, {end.year}"
    )


def build_calendar(
    state: CalendarViewState,
    shifts: Iterable[Shift],
    *,
    today: date,
    max_visible: int = 2,
    tz: tzinfo | None = None,
) -> CalendarView:
    """
    Compose the visible dates with the shift buckets into one renderable
    value. Month cells list at most `max_visible` shifts and report the
    rest in `hidden_count`; week columns list everything.
    """
    buckets = bucket_shifts(shifts, tz)

    days = []
    for day in visible_dates(state):
        day_shifts = shifts_on(buckets, day)
        hidden = 0
        if state.view_mode == ViewMode.MONTH:
            hidden = max(len(day_shifts) - max_visible, 0)
        days.append(
            CalendarDay(
                date=day,
                in_current_month=in_month(day, state.anchor),
                is_today=is_same_day(day, today),
                is_selected=state.selected_date is not None
                and is_same_day(day, state.selected_date),
                shifts=day_shifts,
                hidden_count=hidden,
            )
        )

    return CalendarView(
        header=header_text(state),
        view_mode=state.view_mode,
        anchor=state.anchor,
        days=days,
    )
