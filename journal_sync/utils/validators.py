"""
Input validation helpers
"""
from datetime import date, datetime
from typing import Any, Dict, Optional, Tuple

MAX_DESCRIPTION_LENGTH = 2000
MAX_PHOTO_REF_LENGTH = 1024


def _parse_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def validate_entry_date(value: Any) -> Tuple[bool, Optional[str], str]:
    """
    Validate a journal entry date.

    Accepts ``YYYY-MM-DD`` or an ISO 8601 datetime (a trailing ``Z`` is allowed).

    Returns:
        (is_valid, error_message, cleaned_date)
    """
    if not value or not isinstance(value, str):
        return False, 'date is required and must be a string', ''

    value = value.strip()
    try:
        date.fromisoformat(value)
        return True, None, value
    except ValueError:
        pass

    iso_str = value[:-1] + '+00:00' if value.endswith('Z') else value
    try:
        datetime.fromisoformat(iso_str)
    except ValueError:
        return False, 'date must be an ISO 8601 date or datetime', ''
    return True, None, value


def validate_entry_payload(data: Any, partial: bool = False) -> Tuple[bool, Optional[str], Dict]:
    """
    Validate the body of a create/update entry request.

    Args:
        data: Decoded JSON body
        partial: When True only the supplied fields are validated (edits)

    Returns:
        (is_valid, error_message, cleaned_fields)
    """
    if not isinstance(data, dict):
        return False, 'request body must be a JSON object', {}

    cleaned: Dict[str, Any] = {}

    if 'date' in data or not partial:
        ok, msg, value = validate_entry_date(data.get('date'))
        if not ok:
            return False, msg, {}
        cleaned['date'] = value

    if 'temperature' in data or not partial:
        temperature = _parse_number(data.get('temperature'))
        if temperature is None:
            return False, 'temperature must be a number', {}
        cleaned['temperature'] = temperature

    if 'description' in data or not partial:
        description = data.get('description')
        if description is None:
            description = ''
        if not isinstance(description, str):
            return False, 'description must be a string', {}
        if len(description) > MAX_DESCRIPTION_LENGTH:
            return False, f'description cannot exceed {MAX_DESCRIPTION_LENGTH} characters', {}
        cleaned['description'] = description.strip()

    if 'photo_ref' in data:
        cleaned['photo_ref'] = sanitize_string(data.get('photo_ref'), MAX_PHOTO_REF_LENGTH) or None

    coords = data.get('coords')
    if isinstance(coords, dict):
        data = {**data, 'latitude': coords.get('latitude'), 'longitude': coords.get('longitude')}

    for field, bound in (('latitude', 90.0), ('longitude', 180.0)):
        if field not in data and partial:
            continue
        number = _parse_number(data.get(field, 0.0))
        if number is None:
            return False, f'{field} must be a number', {}
        if not -bound <= number <= bound:
            return False, f'{field} must be between {-bound:g} and {bound:g}', {}
        cleaned[field] = number

    return True, None, cleaned


def validate_pagination(
    page: Any,
    page_size: Any,
    max_page_size: int = 100
) -> Tuple[bool, Optional[str], int, int]:
    """
    Validate pagination query parameters.

    Returns:
        (is_valid, error_message, page, page_size)
    """
    try:
        page = int(page) if page is not None else 1
        page_size = int(page_size) if page_size is not None else 20
    except (TypeError, ValueError):
        return False, 'page and page_size must be integers', 0, 0

    if page < 1:
        return False, 'page must be >= 1', 0, 0
    if not 1 <= page_size <= max_page_size:
        return False, f'page_size must be between 1 and {max_page_size}', 0, 0

    return True, None, page, page_size


def validate_force_full(value: Any) -> Tuple[bool, Optional[str], bool]:
    """
    Validate the ``force_full`` flag of a sync request.

    Returns:
        (is_valid, error_message, cleaned_flag)
    """
    if value is None:
        return True, None, False
    if isinstance(value, bool):
        return True, None, value
    if isinstance(value, str) and value.lower().strip() in ('1', 'true', 'yes', '0', 'false', 'no'):
        return True, None, value.lower().strip() in ('1', 'true', 'yes')
    return False, 'force_full must be a boolean', False


def sanitize_string(value: Any, max_length: int = 255, default: str = '') -> str:
    """
    Clean a string input.

    Args:
        value: Input value
        max_length: Maximum length kept
        default: Returned for empty input

    Returns:
        Stripped and truncated string
    """
    if not value:
        return default

    if not isinstance(value, str):
        value = str(value)

    value = value.strip()

    if len(value) > max_length:
        value = value[:max_length]

    return value
