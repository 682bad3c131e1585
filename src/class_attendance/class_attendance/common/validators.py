from __future__ import annotations

from enum import Enum
from typing import Iterable, Type, TypeVar

from ..core.exceptions import ValidationError

E = TypeVar("E", bound=Enum)


def require_non_empty(value: str, field_name: str) -> str:
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string")
    if not value or not value.strip():
        raise ValidationError(f"{field_name} must not be empty")
    return value.strip()


def require_min_int(value, field_name: str, min_value: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an integer")
    if isinstance(value, bool) or number < min_value:
        raise ValidationError(f"{field_name} must be >= {min_value}")
    return number


def require_enum(value, enum_type: Type[E], field_name: str, *, allowed: Iterable[E] | None = None) -> E:
    try:
        member = value if isinstance(value, enum_type) else enum_type(str(value).strip().upper())
    except ValueError:
        raise ValidationError(f"{field_name} is not valid")
    if allowed is not None and member not in set(allowed):
        raise ValidationError(f"{field_name} is not allowed here")
    return member
