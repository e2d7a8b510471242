"""
Human-readable sequence numbers: a fixed prefix and a zero-padded counter
(APT0001, INV0001, P0001).

Allocation reads the last issued number and increments it. Two concurrent
callers can read the same value; the unique constraint on each number column
turns that into an IntegrityError which the callers retry.
"""
from sqlalchemy import select

from clinic_app.errors import ClinicError

APPOINTMENT_PREFIX = 'APT'
BILL_PREFIX = 'INV'
PATIENT_PREFIX = 'P'
SEQUENCE_WIDTH = 4


def format_sequence_number(prefix: str, value: int) -> str:
    return f'{prefix}{value:0{SEQUENCE_WIDTH}d}'


def increment_sequence_number(last_number, prefix: str) -> str:
    """Return the number following last_number, or the first one when there is none."""
    if not last_number:
        return format_sequence_number(prefix, 1)
    suffix = last_number[len(prefix):] if last_number.startswith(prefix) else ''
    if not suffix.isdigit():
        raise ClinicError(f'Cannot parse sequence number {last_number!r}')
    return format_sequence_number(prefix, int(suffix) + 1)


def next_sequence_number(session, model, column_name: str, prefix: str) -> str:
    """Allocate the next number for model.column_name, ordered by insertion id."""
    column = getattr(model, column_name)
    last_number = session.execute(
        select(column).order_by(model.id.desc()).limit(1)
    ).scalar_one_or_none()
    return increment_sequence_number(last_number, prefix)
