"""
Availability engine for the salon booking calendar.

Turns the weekly opening schedule, the times already booked on a date and the current time into the list of slots shown to clients (and to the admin when moving an appointment).

All dates and times are naive salon local time. There is no timezone conversion anywhere in this module: '2024-06-10' at '10:00' means 10 o'clock on the salon's wall clock.
"""
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from .error_utils import TimeValidationError
from .models import TimeSlot

# Minimum notice a client must give before an appointment starts
LEAD_TIME = timedelta(hours=2)

# Keyed 0=Sunday .. 6=Saturday
WEEKLY_SCHEDULE = {
    0: (),
    1: ('10:00', '11:00', '12:00', '13:00', '14:00', '15:00', '16:00', '17:00', '18:00', '19:00'),
    2: ('10:00', '11:00', '12:00', '13:00', '14:00', '15:00', '16:00', '17:00', '18:00', '19:00'),
    3: ('10:00', '11:00', '12:00', '13:00', '14:00', '15:00', '16:00', '17:00', '18:00', '19:00'),
    4: ('10:00', '11:00', '12:00', '13:00', '14:00', '15:00', '16:00', '17:00', '18:00', '19:00'),
    5: ('10:00', '11:00', '12:00', '13:00', '14:00', '15:00', '16:00', '17:00', '18:00', '19:00'),
    6: ('10:00', '11:00', '12:00', '13:00', '14:00'),
}


def day_of_week(day: date) -> int:
    """Sunday-first day index (0=Sunday .. 6=Saturday) used by WEEKLY_SCHEDULE."""
    # date.weekday() is Monday-first
    return (day.weekday() + 1) % 7


def scheduled_times(day: date) -> tuple:
    return WEEKLY_SCHEDULE[day_of_week(day)]


def is_scheduled(day: date, time_of_day: str) -> bool:
    return time_of_day in scheduled_times(day)


def slot_start(day: date, time_of_day: str) -> datetime:
    try:
        hours, minutes = (int(part) for part in time_of_day.split(':'))
        return datetime(day.year, day.month, day.day, hours, minutes)
    except ValueError:
        raise TimeValidationError(f"{time_of_day} is not a valid time of day.", 'time')


def compute_slots(day: date, booked_times: Iterable[str], now: datetime,
                  held_time: Optional[str] = None, lead_time: timedelta = LEAD_TIME) -> List[TimeSlot]:
    """
    Slots for every scheduled time on *day*, in schedule order.

    Input:
        day: the calendar date being booked.
        booked_times: HH:MM times of the non-cancelled appointments on that date.
        now: current naive local time.
        held_time: time currently held by the appointment being edited. It is offered as available even though it is in booked_times.

    Returns: list of TimeSlot. Empty when the salon is closed that day.

    A slot is available when its time is not booked and it starts at or after now + lead_time.
    """
    candidates = scheduled_times(day)
    if not candidates:
        return []

    booked = set(booked_times)
    cutoff = now + lead_time

    slots = []
    for time_of_day in candidates:
        if held_time is not None and time_of_day == held_time:
            slots.append(TimeSlot(time_of_day, True))
            continue
        too_soon = slot_start(day, time_of_day) < cutoff
        slots.append(TimeSlot(time_of_day, time_of_day not in booked and not too_soon))
    return slots


def available_times(slots: Iterable[TimeSlot]) -> List[str]:
    return [slot.time for slot in slots if slot.available]
