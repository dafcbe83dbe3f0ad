"""
Core business logic for calculating bookable appointment slots.

Pure domain logic without any external dependencies (no API calls, no
database, no clock reads). Everything the computation needs, including the
reference "now", arrives through a ``SlotQuery``.
"""

import logging
from datetime import datetime
from typing import Iterable, Iterator, List

import pendulum
from pendulum import Date, DateTime

from .models import CollisionMode, Slot, SlotQuery, TimeRange, WorkingHours

logger = logging.getLogger(__name__)


class SlotCalculator:
    """
    Enumerates bookable appointment start times for one provider.

    Algorithm:
    1. Walk calendar days from the day containing the range start through
       the day containing the range end (in the provider's timezone)
    2. Skip excluded weekdays
    3. Generate grid candidates from start hour to end hour
    4. Drop candidates at or before "now" and candidates blocked by a booking
    """

    def __init__(self, working_hours: WorkingHours):
        working_hours.validate()
        self.working_hours = working_hours

    def compute_available_slots(
        self,
        range_start: DateTime,
        range_end: DateTime,
        booked: Iterable[datetime],
        now: DateTime,
        collision_mode: CollisionMode = CollisionMode.EXACT,
        appointment_duration_minutes: int | None = None,
    ) -> List[Slot]:
        """
        Find every open slot in the range.

        Args:
            range_start: Start of the search window
            range_end: End of the search window
            booked: Start instants of existing, non-cancelled appointments
            now: Reference time; only slots strictly after it are returned
            collision_mode: EXACT blocks a slot only when a booking starts at
                the same instant, OVERLAP blocks it when intervals intersect
            appointment_duration_minutes: Booking length for OVERLAP mode,
                defaults to the slot duration

        Returns:
            Slots in strictly ascending order
        """
        query = SlotQuery(
            range_start=range_start,
            range_end=range_end,
            working_hours=self.working_hours,
            booked=booked,
            now=now,
            collision_mode=collision_mode,
            appointment_duration_minutes=appointment_duration_minutes,
        )
        return compute_available_slots(query)


def compute_available_slots(query: SlotQuery) -> List[Slot]:
    """
    Compute the ordered list of open slots for a query.

    A reversed range yields an empty list rather than an error.
    """
    working_hours = query.working_hours
    working_hours.validate()

    if query.range_start > query.range_end:
        logger.debug("Range start %s after range end %s, no slots", query.range_start, query.range_end)
        return []

    duration = working_hours.slot_duration_minutes
    is_blocked = _build_collision_check(query)

    slots: List[Slot] = []
    last: DateTime | None = None

    for day in _iter_days(query):
        if not working_hours.is_working_day(day.weekday()):
            continue

        for candidate in _iter_grid(day, working_hours):
            # Nonexistent local times (DST gaps) can fold onto an earlier instant
            if last is not None and candidate <= last:
                continue
            if candidate <= query.now or is_blocked(candidate):
                continue

            slots.append(Slot(timestamp=candidate, duration_minutes=duration))
            last = candidate

    return slots


def _iter_days(query: SlotQuery) -> Iterator[Date]:
    """Yield each calendar day touched by the query range."""
    tz = query.working_hours.timezone
    current = query.range_start.in_timezone(tz).date()
    last_day = query.range_end.in_timezone(tz).date()

    while current <= last_day:
        yield current
        current = current.add(days=1)


def _iter_grid(day: Date, working_hours: WorkingHours) -> Iterator[DateTime]:
    """Yield candidate start times for one day, in order."""
    for hour in range(working_hours.start, working_hours.end):
        for minute in range(0, 60, working_hours.slot_duration_minutes):
            yield pendulum.datetime(
                day.year, day.month, day.day, hour, minute,
                tz=working_hours.timezone,
            )


def _build_collision_check(query: SlotQuery):
    """Return a predicate telling whether a candidate is taken."""
    if query.collision_mode == CollisionMode.EXACT:
        booked = query.booked
        return lambda candidate: candidate.in_timezone("UTC") in booked

    slot_minutes = query.working_hours.slot_duration_minutes
    booking_minutes = query.appointment_duration_minutes or slot_minutes
    busy = sorted(
        (TimeRange(start=instant, end=instant.add(minutes=booking_minutes)) for instant in query.booked),
        key=lambda r: r.start,
    )

    def overlaps_booking(candidate: DateTime) -> bool:
        candidate_range = TimeRange(start=candidate, end=candidate.add(minutes=slot_minutes))
        for busy_range in busy:
            if busy_range.start >= candidate_range.end:
                break
            if candidate_range.overlaps(busy_range):
                return True
        return False

    return overlaps_booking
