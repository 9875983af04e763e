"""
Record validation and sanitization.

``validate_record`` checks a raw record (as decoded from a JSON request body) against
the table's field schema and returns human-readable error strings. ``sanitize_record``
coerces a record that already passed validation into canonical Python values.
Always validate before sanitizing: the sanitizer never raises, malformed values
degrade to ``None`` or ``False``.

The ``*_payload`` helpers apply both to the composite bodies posted for grid-box
sessions and microscope sessions.
"""
import logging
import math
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

from .config import GRID_BOX_SLOTS, MICROSCOPE_SLOTS
from .field_schemas import TABLE_SCHEMAS, FieldSchema, FieldType, get_table_schema

logger = logging.getLogger("Validation")

_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")

# Fields of a grid slot that introduce a sample inline
SAMPLE_FIELDS = ("sample_name", "sample_concentration", "additives", "default_volume_ul")

# (payload key, schema name, message label)
SESSION_SECTIONS = (
    ("session", "sessions", "Session"),
    ("vitrobot_settings", "vitrobot_settings", "Vitrobot Settings"),
    ("grid_info", "grids", "Grid Info"),
    ("sample", "samples", "Sample"),
)


def is_empty(value: Any) -> bool:
    return value is None or value == ""


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------

def _number_text(value: Any) -> Optional[str]:
    """Leading numeric text of ``value``, or None when it does not start with a number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value) if math.isfinite(value) else None
    if isinstance(value, str):
        m = _FLOAT_PREFIX.match(value)
        return m.group(1) if m else None
    return None


def parse_integer(value: Any) -> Optional[int]:
    """Leading-integer parse: "12abc" -> 12, 3.7 -> 3, "abc" -> None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        m = _INT_PREFIX.match(value)
        return int(m.group(1)) if m else None
    return None


def parse_decimal(value: Any) -> Optional[float]:
    text = _number_text(value)
    if text is None:
        return None
    number = float(text)
    return number if math.isfinite(number) else None


def decimal_places(value: Any) -> int:
    """Digits after the decimal point, trailing zeros ignored."""
    text = _number_text(value)
    if text is None:
        return 0
    try:
        exponent = Decimal(text).normalize().as_tuple().exponent
    except InvalidOperation:
        return 0
    return -exponent if isinstance(exponent, int) and exponent < 0 else 0


def parse_date(value: Any) -> Optional[date]:
    """Calendar date of ``value``; aware datetimes are read in local time."""
    if isinstance(value, datetime):
        return (value.astimezone() if value.tzinfo else value).date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return parse_date(datetime.fromisoformat(text))
    except ValueError:
        return None


def is_boolean_like(value: Any) -> bool:
    if isinstance(value, bool):
        return True
    if isinstance(value, (int, float)):
        return value in (0, 1)
    return value in ("true", "false")


def is_truthy_flag(value: Any) -> bool:
    """True for True, 1 and "true"; everything else is False."""
    if isinstance(value, str):
        return value == "true"
    if isinstance(value, (bool, int, float)):
        return value == 1
    return False


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _check_range(field_name: str, number: float, schema: FieldSchema) -> List[str]:
    errors = []
    if schema.min is not None and number < schema.min:
        errors.append(f"{field_name} must be at least {schema.min}")
    if schema.max is not None and number > schema.max:
        errors.append(f"{field_name} must be no more than {schema.max}")
    return errors


def validate_field(field_name: str, value: Any, schema: FieldSchema) -> List[str]:
    """Errors for one value; empty values only ever yield a "required" error."""
    # Blank text sanitizes to None, so it counts as absent here too
    blank = schema.type in (FieldType.STRING, FieldType.TEXT) and isinstance(value, str) and not value.strip()
    if is_empty(value) or blank:
        return [f"{field_name} is required"] if schema.required else []

    errors = []
    kind = schema.type

    if kind in (FieldType.STRING, FieldType.TEXT):
        if not isinstance(value, str):
            return [f"{field_name} must be a string"]
        length = len(value.strip())
        if kind is FieldType.STRING and schema.min_length and length < schema.min_length:
            errors.append(f"{field_name} must be at least {schema.min_length} characters long")
        if schema.max_length and length > schema.max_length:
            errors.append(f"{field_name} must be no more than {schema.max_length} characters long")

    elif kind is FieldType.INTEGER:
        number = parse_integer(value)
        if number is None:
            return [f"{field_name} must be a valid integer"]
        errors.extend(_check_range(field_name, number, schema))

    elif kind is FieldType.DECIMAL:
        number = parse_decimal(value)
        if number is None:
            return [f"{field_name} must be a valid number"]
        errors.extend(_check_range(field_name, number, schema))
        if schema.precision and decimal_places(value) > schema.precision:
            errors.append(f"{field_name} can have at most {schema.precision} decimal places")

    elif kind is FieldType.BOOLEAN:
        if not is_boolean_like(value):
            errors.append(f"{field_name} must be a boolean value")

    elif kind is FieldType.DATE:
        if parse_date(value) is None:
            errors.append(f"{field_name} must be a valid date (YYYY-MM-DD)")

    return errors


def validate_record(table_name: str, data: Mapping[str, Any], partial: bool = False) -> List[str]:
    """
    Validate ``data`` against the schema of ``table_name``.

    Unknown keys are ignored. With ``partial`` (updates that only send changed fields)
    absent required fields are not reported, present ones are still checked.
    Raises ``UnknownTableError`` for a table without schema.
    """
    schema = get_table_schema(table_name)
    errors = []

    for field_name, value in data.items():
        field_schema = schema.get(field_name)
        if field_schema is not None:
            errors.extend(validate_field(field_name, value, field_schema))

    if partial:
        return errors

    for field_name, field_schema in schema.items():
        if field_schema.required and field_name not in data:
            errors.append(f"{field_name} is required")

    return errors


# ---------------------------------------------------------------------------
# Sanitization
# ---------------------------------------------------------------------------

def sanitize_value(value: Any, schema: FieldSchema) -> Any:
    if is_empty(value):
        return None
    kind = schema.type
    if kind is FieldType.INTEGER:
        return parse_integer(value)
    if kind is FieldType.DECIMAL:
        return parse_decimal(value)
    if kind is FieldType.BOOLEAN:
        return is_truthy_flag(value)
    if kind in (FieldType.STRING, FieldType.TEXT):
        return str(value).strip() or None
    if kind is FieldType.DATE:
        parsed = parse_date(value)
        return parsed.isoformat() if parsed else None
    return value


def sanitize_record(table_name: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    """Canonical copy of ``data``; keys without a schema entry pass through unchanged."""
    schema = TABLE_SCHEMAS.get(table_name)
    if schema is None:
        return dict(data)

    sanitized = {}
    for field_name, value in data.items():
        field_schema = schema.get(field_name)
        if field_schema is not None:
            sanitized[field_name] = sanitize_value(value, field_schema)
        elif is_empty(value):
            sanitized[field_name] = None
        else:
            sanitized[field_name] = value
    return sanitized


# ---------------------------------------------------------------------------
# Composite payloads
# ---------------------------------------------------------------------------

def _prefixed(label: str, errors: List[str]) -> List[str]:
    return [f"{label}: {err}" for err in errors]


def inline_sample(grid: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    """The sample a grid slot introduces inline, or None when it carries no sample data."""
    if not any(grid.get(name) for name in SAMPLE_FIELDS):
        return None
    return {name: grid.get(name) for name in SAMPLE_FIELDS}


def validate_session_payload(payload: Mapping[str, Any]) -> List[str]:
    """All errors of a grid-box session payload, each prefixed with its section label."""
    errors = []

    for key, table_name, label in SESSION_SECTIONS:
        section = payload.get(key)
        if section is None:
            continue
        if not isinstance(section, Mapping):
            errors.append(f"{label}: must be an object")
            continue
        errors.extend(_prefixed(label, validate_record(table_name, section)))

    grids = payload.get("grids")
    if grids is None:
        return errors
    if not isinstance(grids, list):
        errors.append("Grids: must be a list")
        return errors

    used_slots = set()
    for index, grid in enumerate(grids, start=1):
        if not isinstance(grid, Mapping):
            errors.append(f"Grid {index}: must be an object")
            continue
        grid_errors = validate_record("grid_preparations", grid)
        errors.extend(_prefixed(f"Grid {index}", grid_errors))
        sample = inline_sample(grid)
        if sample is not None:
            errors.extend(_prefixed(f"Grid {index} Sample", validate_record("samples", sample)))
        if grid_errors or not is_truthy_flag(grid.get("include_in_session")):
            continue

        # A used grid occupies exactly one slot of the box
        slot = parse_integer(grid.get("slot_number"))
        if slot is None:
            errors.append(f"Grid {index}: slot_number is required")
        elif not 1 <= slot <= GRID_BOX_SLOTS:
            errors.append(f"Grid {index}: slot_number must be between 1 and {GRID_BOX_SLOTS}")
        elif slot in used_slots:
            errors.append(f"Grid {index}: duplicate slot {slot}")
        else:
            used_slots.add(slot)

    logger.debug(f"Session payload checked: {len(errors)} error(s)")
    return errors


def sanitize_session_payload(payload: Mapping[str, Any]) -> Dict[str, Any]:
    sanitized = dict(payload)
    for key, table_name, _ in SESSION_SECTIONS:
        if isinstance(payload.get(key), Mapping):
            sanitized[key] = sanitize_record(table_name, payload[key])
    if isinstance(payload.get("grids"), list):
        sanitized["grids"] = [sanitize_record("grid_preparations", grid) for grid in payload["grids"]]
    return sanitized


def validate_microscope_payload(payload: Mapping[str, Any]) -> List[str]:
    """Errors of a microscope session: the session fields plus up to 12 slot details."""
    errors = _prefixed("Microscope Session", validate_record("microscope_sessions", payload))

    details = payload.get("details")
    if details is None:
        return errors
    if not isinstance(details, list):
        errors.append("Details: must be a list")
        return errors
    if len(details) > MICROSCOPE_SLOTS:
        errors.append(f"Details: at most {MICROSCOPE_SLOTS} slots allowed")

    seen = set()
    for index, detail in enumerate(details, start=1):
        if not isinstance(detail, Mapping):
            errors.append(f"Slot Detail {index}: must be an object")
            continue
        detail_errors = validate_record("microscope_details", detail)
        errors.extend(_prefixed(f"Slot Detail {index}", detail_errors))
        if detail_errors:
            continue
        slot = parse_integer(detail["microscope_slot"])
        if slot in seen:
            errors.append(f"Slot Detail {index}: duplicate microscope slot {slot}")
        seen.add(slot)

    return errors


def sanitize_microscope_payload(payload: Mapping[str, Any]) -> Dict[str, Any]:
    sanitized = sanitize_record("microscope_sessions", payload)
    if isinstance(payload.get("details"), list):
        sanitized["details"] = [sanitize_record("microscope_details", d) for d in payload["details"]]
    return sanitized
