"""Envelope, validation and reshaping helpers shared by the admin API handlers."""
import functools
import math
from typing import Any, Dict, Mapping, Tuple

Envelope = Tuple[Dict[str, Any], int]

NO_CACHE_HEADERS = {
    'Cache-Control': 'no-cache, no-store, must-revalidate',
    'Pragma': 'no-cache',
    'Expires': '0',
}


class ValidationError(ValueError):
    """Client input rejected before any ERP call is made."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.message = message
        self.status = status


def success(data: Any = None, message: str = '', status: int = 200) -> Envelope:
    return {'success': True, 'data': data, 'message': message}, status


def error(message: str, status: int = 400, data: Any = None) -> Envelope:
    return {'success': False, 'data': data, 'message': message}, status


def returns_envelope(func):
    """Turn a ValidationError raised by a handler into its client-error envelope."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ValidationError as exc:
            return error(exc.message, exc.status)
    return wrapper


def _as_int(value: Any, name: str) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"Parameter '{name}' must be an integer")


def parse_pagination(params: Mapping[str, Any], default_limit: int) -> Tuple[int, int, int]:
    """Return (page, limit, offset) from query params.

    Pages below 1 clamp to 1; a zero or negative limit is rejected.
    """
    raw_page = params.get('page')
    raw_limit = params.get('limit')
    page = _as_int(raw_page, 'page') if raw_page not in (None, '') else 1
    limit = _as_int(raw_limit, 'limit') if raw_limit not in (None, '') else default_limit
    if limit <= 0:
        raise ValidationError('Limit must be a positive integer')
    page = max(1, page)
    return page, limit, (page - 1) * limit


def page_count(total: int, limit: int) -> int:
    if limit <= 0:
        raise ValueError('limit must be positive')
    return int(math.ceil(total / float(limit)))


def split_relation(value: Any, default_label: str = '', default_id: int = 0) -> Tuple[Any, str]:
    """Decompose an Odoo many2one ``[id, display_name]`` pair."""
    if isinstance(value, (list, tuple)) and len(value) >= 2:
        return value[0], value[1]
    return default_id, default_label


def relation_label(value: Any, default: str = '') -> str:
    return split_relation(value, default)[1]


def parse_number(value: Any, message: str) -> float:
    """Parse a numeric input, rejecting booleans, blanks and non-numbers."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(message)
    try:
        number = float(str(value).strip())
    except ValueError:
        raise ValidationError(message)
    if math.isnan(number) or math.isinf(number):
        raise ValidationError(message)
    return number


def as_bool(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ('0', 'false', 'no', 'off', ''):
        return False
    return True


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return not value
    return value is False or value == 0
