"""
Allow-listed field tables for partial updates.

Each entity declares which request keys it accepts, the model attribute each
one writes, and the converter that validates the value. Keys that are not
listed are ignored.
"""
import json
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, NamedTuple

from clinic_app.errors import InvalidInput
from clinic_app.utils.schedule import normalize_time

# Largest value a Numeric(12, 2) column holds
MAX_AMOUNT = Decimal('9999999999.99')


class Field(NamedTuple):
    key: str
    column: str
    convert: Callable[[Any], Any]


def collect_changes(changes: dict, fields: Iterable[Field]) -> Dict[str, Any]:
    """Convert every listed field present in changes, keyed by column."""
    return {
        field.column: field.convert(changes[field.key])
        for field in fields
        if field.key in changes
    }


def as_text(value):
    if value is None:
        return None
    return str(value).strip() or None


def as_required_text(value):
    text = as_text(value)
    if not text:
        raise InvalidInput('Value must not be empty')
    return text


def as_date(value) -> date:
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), '%Y-%m-%d').date()
    except ValueError:
        raise InvalidInput('Invalid date format. Use YYYY-MM-DD')


def as_optional_date(value):
    if value in (None, ''):
        return None
    return as_date(value)


def as_time(value) -> str:
    return normalize_time(value)


def as_int(value) -> int:
    # int() would accept booleans and truncate 2.9 to 2
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise InvalidInput(f'Expected an integer, got {value!r}')
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        raise InvalidInput(f'Expected an integer, got {value!r}')


def as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    raise InvalidInput(f'Expected a boolean, got {value!r}')


def as_money(value) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidInput(f'Invalid amount: {value!r}')
    if not amount.is_finite():
        raise InvalidInput(f'Invalid amount: {value!r}')
    if abs(amount) > MAX_AMOUNT:
        raise InvalidInput(f'Amount out of range: {value!r}')
    return amount


def as_json(value):
    if value is None:
        return None
    return json.dumps(value)


def one_of(*choices):
    def convert(value):
        if value not in choices:
            raise InvalidInput(f'Invalid value {value!r}. Valid values: {", ".join(choices)}')
        return value
    return convert
