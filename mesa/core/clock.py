"""
Centralized calendar and time-window logic for MesaFeliz.

Handles the restaurant industry standard of "4 AM day start" so that late
seatings (e.g. a 00:30 slot on a bar's Friday schedule) belong to the
business day the service started on.

Example: A slot at 1:00 AM on Jan 2nd belongs to the Jan 1st business day
         when the restaurant opened on Jan 1st evening.

All functions here are pure. Datetimes are restaurant-local and naive unless
stated otherwise.
"""
from datetime import datetime, date, time, timedelta
from typing import List, Optional, Tuple
import pytz


# Restaurant business day starts at 4:00 AM
BUSINESS_DAY_START_HOUR = 4

MINUTES_PER_DAY = 24 * 60


def local_now(restaurant_timezone: Optional[str] = None) -> datetime:
    """
    Current wall-clock time in the restaurant's timezone, as a naive datetime.

    Reservations are stored as local wall times, so comparisons against
    "now" must happen in the same frame.
    """
    utc_now = datetime.now(pytz.UTC)
    if not restaurant_timezone:
        return utc_now.replace(tzinfo=None)
    tz = pytz.timezone(restaurant_timezone)
    return utc_now.astimezone(tz).replace(tzinfo=None)


def get_business_date(
    dt: datetime,
    restaurant_timezone: Optional[str] = None,
    day_start_hour: int = BUSINESS_DAY_START_HOUR,
) -> date:
    """
    Convert a datetime to its business date, respecting the 4 AM cutoff.

    Args:
        dt: The datetime to convert
        restaurant_timezone: IANA timezone string (e.g., "America/Mexico_City")
                            If None, assumes dt is already in restaurant local time
        day_start_hour: Hour at which the business day starts

    Returns:
        The business date this moment belongs to

    Examples:
        >>> get_business_date(datetime(2024, 1, 2, 2, 0))
        date(2024, 1, 1)
        >>> get_business_date(datetime(2024, 1, 2, 5, 0))
        date(2024, 1, 2)
    """
    if restaurant_timezone:
        if dt.tzinfo is None:
            # Assume UTC if no timezone
            dt = pytz.UTC.localize(dt)
        tz = pytz.timezone(restaurant_timezone)
        dt_local = dt.astimezone(tz)
    else:
        dt_local = dt

    if dt_local.hour < day_start_hour:
        return dt_local.date() - timedelta(days=1)
    return dt_local.date()


def time_to_offset_minutes(t: time, day_start_hour: int = BUSINESS_DAY_START_HOUR) -> int:
    """
    Convert a time to "offset minutes" where 4:00 AM = 0.

    - 4:00 AM = 0 minutes (start of business day)
    - 7:00 PM = 900 minutes
    - 2:00 AM (next day) = 1320 minutes

    Examples:
        >>> time_to_offset_minutes(time(4, 0))
        0
        >>> time_to_offset_minutes(time(2, 0))
        1320
    """
    minutes = t.hour * 60 + t.minute

    if t.hour < day_start_hour:
        minutes += MINUTES_PER_DAY

    return minutes - (day_start_hour * 60)


def offset_minutes_to_time(offset: int, day_start_hour: int = BUSINESS_DAY_START_HOUR) -> time:
    """Inverse of time_to_offset_minutes."""
    total = (offset + day_start_hour * 60) % MINUTES_PER_DAY
    h, m = divmod(total, 60)
    return time(h, m)


def slot_datetime(
    business_date: date,
    t: time,
    day_start_hour: int = BUSINESS_DAY_START_HOUR,
) -> datetime:
    """
    Calendar datetime of a slot on a business date.

    Slots before the business-day start hour happen on the following
    calendar day.
    """
    if t.hour < day_start_hour:
        return datetime.combine(business_date + timedelta(days=1), t)
    return datetime.combine(business_date, t)


def service_window(start: datetime, duration_minutes: int) -> Tuple[datetime, datetime]:
    """Half-open [start, start + duration) window for a seating."""
    return start, start + timedelta(minutes=duration_minutes)


def windows_overlap(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
) -> bool:
    """
    Half-open interval overlap test.

    Back-to-back windows (one ends exactly when the next starts) do not overlap.
    """
    return a_start < b_end and b_start < a_end


def generate_slot_times(
    open_time: Optional[time],
    close_time: Optional[time],
    granularity_minutes: int,
    day_start_hour: int = BUSINESS_DAY_START_HOUR,
) -> List[time]:
    """
    Bookable slot start times between opening and closing.

    A slot is generated while start + granularity <= close, so with
    12:00-23:00 at 30 minutes the last slot is 22:30. Schedules that close
    after midnight (e.g. 18:00-02:00) are handled through offset minutes.

    Returns an empty list when the day is closed or the range is empty.
    """
    if open_time is None or close_time is None or granularity_minutes <= 0:
        return []

    open_offset = time_to_offset_minutes(open_time, day_start_hour)
    close_offset = time_to_offset_minutes(close_time, day_start_hour)
    if close_offset <= open_offset:
        return []

    slots = []
    current = open_offset
    while current + granularity_minutes <= close_offset:
        slots.append(offset_minutes_to_time(current, day_start_hour))
        current += granularity_minutes
    return slots


def is_slot_time(
    t: time,
    open_time: Optional[time],
    close_time: Optional[time],
    granularity_minutes: int,
    day_start_hour: int = BUSINESS_DAY_START_HOUR,
) -> bool:
    """True if t is one of the generated slot start times for the day."""
    return t in generate_slot_times(open_time, close_time, granularity_minutes, day_start_hour)


def day_bounds(business_date: date, day_start_hour: int = BUSINESS_DAY_START_HOUR) -> Tuple[datetime, datetime]:
    """Calendar [start, end) of a business day ("today" boundaries)."""
    start = datetime.combine(business_date, time(day_start_hour, 0))
    return start, start + timedelta(days=1)


def parse_hhmm(s: str) -> time:
    """
    Parse "HH:MM" (seconds tolerated) into a time.

    Raises ValueError on malformed input.
    """
    parts = s.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid time format: {s}. Expected HH:MM format.")
    h, m = int(parts[0]), int(parts[1])
    if not (0 <= h <= 23 and 0 <= m <= 59):
        raise ValueError(f"Invalid time format: {s}. Hours must be 0-23, minutes 0-59.")
    return time(h, m)


def format_hhmm(t: Optional[time]) -> Optional[str]:
    """Convert time object to HH:MM string."""
    if t is None:
        return None
    return t.strftime("%H:%M")
