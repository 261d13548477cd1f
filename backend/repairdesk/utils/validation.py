from __future__ import annotations
"""Reusable request-body validation helpers.

Route handlers turn raw JSON into typed values here so services only ever see
well-formed input. Every failure aborts with 400 and a field-specific message.
"""
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional
from flask import abort

_MISSING = object()


def validate_status(new_status: str, allowed: Iterable[str], field_name: str = 'status') -> str:
    """Validate that new_status is inside allowed.

    Returns the status (to enable inline usage) or aborts with 400.
    """
    if new_status not in allowed:
        abort(400, description=f"{field_name} invalid")
    return new_status


def require_fields(data: Dict[str, Any], *names: str):
    missing = [n for n in names if data.get(n) in (None, '')]
    if missing:
        abort(400, description=f"{', '.join(missing)} required")


def reject_blank(fields: Dict[str, Any], *names: str):
    """For partial updates: fields that are present must not be cleared."""
    blank = [n for n in names if n in fields and fields[n] in (None, '')]
    if blank:
        abort(400, description=f"{', '.join(blank)} must not be empty")


def parse_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        abort(400, description=f'{field_name} must be int')
    try:
        return int(value)
    except (TypeError, ValueError):
        abort(400, description=f'{field_name} must be int')


def parse_decimal(value: Any, field_name: str, *, minimum: Optional[Decimal] = None, maximum: Optional[Decimal] = None) -> Decimal:
    if isinstance(value, bool):
        abort(400, description=f'{field_name} must be a number')
    try:
        # str() first so floats like 0.1 keep their printed value
        d = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        abort(400, description=f'{field_name} must be a number')
    if not d.is_finite():
        abort(400, description=f'{field_name} must be a number')
    if minimum is not None and d < minimum:
        abort(400, description=f'{field_name} must be >= {minimum}')
    if maximum is not None and d > maximum:
        abort(400, description=f'{field_name} must be <= {maximum}')
    return d


def parse_datetime(value: Any, field_name: str) -> datetime:
    """Accept ISO 8601 strings ('Z' suffix allowed); aware values are converted to naive local time."""
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            abort(400, description=f'{field_name} must be an ISO 8601 datetime')
    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def parse_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    abort(400, description=f'{field_name} must be boolean')


def optional(data: Dict[str, Any], key: str, parser, *args, **kwargs):
    """Parse data[key] when present; None passes through (clears the field)."""
    value = data.get(key, _MISSING)
    if value is _MISSING:
        return _MISSING
    if value is None:
        return None
    return parser(value, key, *args, **kwargs)


def collect(data: Dict[str, Any], spec: Dict[str, Any]) -> Dict[str, Any]:
    """Build a partial-update dict from ``spec``: {field: parser or (parser, kwargs)}.

    Keys absent from ``data`` are left out so callers can distinguish
    "not provided" from "set to null".
    """
    out: Dict[str, Any] = {}
    for key, parser in spec.items():
        kwargs: Dict[str, Any] = {}
        if isinstance(parser, tuple):
            parser, kwargs = parser
        value = optional(data, key, parser, **kwargs)
        if value is not _MISSING:
            out[key] = value
    return out


def parse_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        abort(400, description=f'{field_name} must be a string')
    return value


def parse_str_list(value: Any, field_name: str) -> List[str]:
    if not isinstance(value, list):
        abort(400, description=f'{field_name} must be a list')
    return [parse_str(v, field_name) for v in value]


def choice(allowed: Iterable[str]):
    """Parser factory validating membership in ``allowed``."""
    allowed = tuple(allowed)

    def _parse(value: Any, field_name: str) -> str:
        return validate_status(value, allowed, field_name)
    return _parse

__all__ = [
    'validate_status', 'require_fields', 'reject_blank', 'parse_int', 'parse_decimal', 'parse_datetime',
    'parse_bool', 'parse_str', 'parse_str_list', 'choice', 'optional', 'collect'
]
