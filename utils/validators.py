"""
utils/validators.py — Input validation helpers.

Validates:
- Record forms (required date and treatment, optional dates)
- Plant types (at least 2 characters)
- Marker positions (clamped to the 0-100 map viewBox)
- Category names and colors
"""

import re
import unicodedata
from datetime import datetime

DATE_FORMAT = '%Y-%m-%d'
MAP_MIN = 0.0
MAP_MAX = 100.0

RECORD_TEXT_FIELDS = ('notes', 'ph_level', 'moisture_level')

_COLOR_RE = re.compile(r'^#[0-9A-Fa-f]{6}$')


def parse_date(value):
    """Parse a YYYY-MM-DD string. Returns a date or None."""
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError:
        return None


def validate_record(data):
    """
    Validate and normalize record fields from a form or JSON body.

    Args:
        data: Mapping with date, treatment and optional text fields

    Returns:
        Tuple of (clean_record, errors). clean_record is None when errors is non-empty.
    """
    errors = []
    data = data or {}

    date_raw = str(data.get('date') or '').strip()
    record_date = parse_date(date_raw)
    if not date_raw:
        errors.append("A date is required.")
    elif record_date is None:
        errors.append("Date must use the YYYY-MM-DD format.")

    treatment = str(data.get('treatment') or '').strip()
    if not treatment:
        errors.append("Treatment is required.")

    # Stored zero-padded so dates sort as strings
    record = {
        'date': record_date.isoformat() if record_date else date_raw,
        'treatment': treatment,
    }
    for key in RECORD_TEXT_FIELDS:
        record[key] = str(data.get(key) or '').strip()

    next_raw = str(data.get('next_scheduled_fertilization_date') or '').strip()
    next_date = parse_date(next_raw)
    if next_raw and next_date is None:
        errors.append("Next fertilization date must use the YYYY-MM-DD format.")
    record['next_scheduled_fertilization_date'] = next_date.isoformat() if next_date else None

    trunk = str(data.get('trunk_diameter') or '').strip()
    record['trunk_diameter'] = trunk or None

    if errors:
        return None, errors
    return record, []


def validate_plant_type(plant_type):
    """Returns an error message, or None if the plant type is acceptable."""
    if len(str(plant_type or '').strip()) < 2:
        return "Plant type must be at least 2 characters."
    return None


def clamp_coordinate(value):
    """Clamp one coordinate into the map viewBox. Raises ValueError on non-numbers."""
    number = float(value)
    if number != number:  # NaN
        raise ValueError("Coordinate is not a number.")
    return max(MAP_MIN, min(MAP_MAX, number))


def clamp_position(x, y):
    """Clamp a marker position into the map viewBox."""
    return clamp_coordinate(x), clamp_coordinate(y)


def validate_color(color):
    """Returns an error message, or None if color is a #RRGGBB hex string."""
    if not color or not _COLOR_RE.match(color.strip()):
        return "Color must be a hex value like #16A34A."
    return None


def category_key_from_name(name):
    """
    Build a camelCase category key from a display name.

    Examples:
        "Queen and King Palms" -> "queenAndKingPalms"
        "Fruit Trees" -> "fruitTrees"
    """
    if not name:
        return ''
    ascii_name = unicodedata.normalize('NFKD', name).encode('ascii', 'ignore').decode('ascii')
    words = re.findall(r'[A-Za-z0-9]+', ascii_name)
    if not words:
        return ''
    return words[0].lower() + ''.join(w.capitalize() for w in words[1:])
