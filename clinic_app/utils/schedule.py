"""
Doctor working-hours template and slot generation.

A schedule is stored on the staff record as JSON keyed by weekday name:

    {"Monday": {"working": true, "start": "09:00", "end": "17:00"}, ...}

It is parsed once into DaySchedule entries. Slot generation is a pure
function of the day template, the booked times and the slot length.
"""
import json
import logging
from datetime import date
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

from clinic_app.errors import InvalidInput

logger = logging.getLogger(__name__)

WEEKDAYS = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')
DEFAULT_START = '09:00'
DEFAULT_END = '17:00'
SLOT_DURATION_MINUTES = 30


class DaySchedule(NamedTuple):
    working: bool
    start: str = DEFAULT_START
    end: str = DEFAULT_END

    def to_dict(self):
        return {'working': self.working, 'start': self.start, 'end': self.end}


def parse_time(value) -> Tuple[int, int]:
    """Parse "HH:MM" or "HH:MM:SS" into (hour, minute)."""
    if not isinstance(value, str):
        raise ValueError(f'Invalid time value: {value!r}')
    parts = value.strip().split(':')
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise ValueError(f'Invalid time value: {value!r}')
    hour, minute = int(parts[0]), int(parts[1])
    if len(parts) == 3 and int(parts[2]) != 0:
        raise ValueError(f'Seconds are not supported: {value!r}')
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f'Invalid time value: {value!r}')
    return hour, minute


def format_time(hour: int, minute: int) -> str:
    return f'{hour:02d}:{minute:02d}:00'


def normalize_time(value) -> str:
    """Return the stored "HH:MM:SS" form of a time string, or raise InvalidInput."""
    try:
        return format_time(*parse_time(value))
    except ValueError:
        raise InvalidInput('Invalid time format. Use HH:MM (e.g., 10:30)')


def weekday_name(day: date) -> str:
    return WEEKDAYS[day.weekday()]


def validate_schedule(raw) -> Dict[str, DaySchedule]:
    """
    Validate a schedule payload and return it as a typed map.

    Raises InvalidInput when the shape is wrong: unknown weekday, missing or
    non-boolean "working", unparseable times, or start not before end.
    """
    if not isinstance(raw, dict):
        raise InvalidInput('Schedule must be an object keyed by weekday')

    schedule = {}
    for key, entry in raw.items():
        day = str(key).strip().capitalize()
        if day not in WEEKDAYS:
            raise InvalidInput(f'Unknown weekday in schedule: {key}')
        if not isinstance(entry, dict) or not isinstance(entry.get('working'), bool):
            raise InvalidInput(f'Schedule for {day} must include a boolean "working"')

        start = entry.get('start') or DEFAULT_START
        end = entry.get('end') or DEFAULT_END
        try:
            start_hm = parse_time(start)
            end_hm = parse_time(end)
        except ValueError:
            raise InvalidInput(f'Invalid working hours for {day}')
        if entry['working'] and start_hm >= end_hm:
            raise InvalidInput(f'Start time must be before end time for {day}')

        schedule[day] = DaySchedule(entry['working'], start, end)
    return schedule


def load_schedule(raw_json: Optional[str]) -> Dict[str, DaySchedule]:
    """
    Parse a stored schedule. A malformed value is treated as no schedule
    (every day unavailable) and logged.
    """
    if not raw_json:
        return {}
    try:
        return validate_schedule(json.loads(raw_json))
    except (ValueError, TypeError, InvalidInput) as e:
        logger.warning("Ignoring malformed doctor schedule: %s", e)
        return {}


def dump_schedule(schedule: Dict[str, DaySchedule]) -> str:
    return json.dumps({day: entry.to_dict() for day, entry in schedule.items()})


def generate_slots(day: DaySchedule, booked: Iterable[str],
                   duration: int = SLOT_DURATION_MINUTES) -> List[str]:
    """
    Candidate start times from day.start at a fixed cadence, minus booked times.

    A candidate is emitted while it starts strictly before day.end; minutes
    past 59 carry into the hour.
    """
    if not day.working:
        return []

    booked_times = set()
    for value in booked:
        try:
            booked_times.add(format_time(*parse_time(value)))
        except ValueError:
            logger.warning("Skipping unparseable booked time %r", value)

    start_hour, start_minute = parse_time(day.start)
    end_hour, end_minute = parse_time(day.end)

    slots = []
    hour, minute = start_hour, start_minute
    while hour < end_hour or (hour == end_hour and minute < end_minute):
        slot = format_time(hour, minute)
        if slot not in booked_times:
            slots.append(slot)

        minute += duration
        if minute >= 60:
            hour += minute // 60
            minute = minute % 60
    return slots
