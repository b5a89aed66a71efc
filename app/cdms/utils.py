from __future__ import annotations

import calendar
import re
from datetime import date, datetime
from typing import TypeVar

from app.cdms.errors import FieldTooLongError, ValidationError

_DIGIT_RUNS = re.compile(r"(\d+)")

D = TypeVar("D", date, datetime)


def natural_key(value: object) -> tuple:
    """
    Sort key that treats embedded digit runs as numbers ("2" < "10", "4.2" < "4.10").

    Case-insensitive; None sorts like an empty string.
    """
    text = "" if value is None else str(value)
    parts: list[tuple[int, int, str]] = []
    for chunk in _DIGIT_RUNS.split(text):
        if not chunk:
            continue
        if chunk.isdigit():
            parts.append((0, int(chunk), ""))
        else:
            parts.append((1, 0, chunk.casefold()))
    return tuple(parts)


def add_months(value: D, months: int) -> D:
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def clean_str(value: object) -> str:
    return ("" if value is None else str(value)).strip()


def clean_optional(value: object) -> str | None:
    return clean_str(value) or None


def parse_optional_int(value: object, *, field: str) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer.", field=field)
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field} must be an integer.", field=field) from e


def column_length(model: type, column: str) -> int:
    return model.__table__.c[column].type.length


def check_length(value: str | None, *, field: str, limit: int) -> str | None:
    if value is not None and len(value) > limit:
        raise FieldTooLongError(field, limit)
    return value
