"""
utils/table.py — Flat plant rows for the table view and Excel export.

Each row is a plant plus its category and a summary of its newest record.
Rows can be filtered by category and free text, and sorted by any column;
missing values always sort last.
"""

from utils.validators import parse_date

SORTABLE_COLUMNS = (
    'label',
    'type',
    'category_name',
    'last_treatment_date',
    'last_treatment',
    'next_fertilization_date',
)
NOT_AVAILABLE = 'N/A'
SEARCH_COLUMNS = ('label', 'type', 'category_name', 'last_treatment')


def build_rows(layout):
    """Flatten a layout document into one row per plant, in display order."""
    rows = []
    for key, category in layout['categories'].items():
        for plant in category['plants']:
            records = plant['records']
            latest = records[0] if records else None
            next_date = next(
                (r['next_scheduled_fertilization_date'] for r in records
                 if r.get('next_scheduled_fertilization_date')),
                None
            )
            rows.append({
                'id': plant['id'],
                'label': plant['label'],
                'type': plant['type'],
                'position': plant['position'],
                'record_count': len(records),
                'category_key': key,
                'category_name': category['name'],
                'category_color': category['color'],
                'last_treatment_date': latest['date'] if latest else None,
                'last_treatment': latest['treatment'] if latest else NOT_AVAILABLE,
                'next_fertilization_date': next_date,
            })
    return rows


def filter_rows(rows, categories=None, query=''):
    """
    Keep rows matching the selected categories and a free-text query.

    Args:
        rows: Output of build_rows()
        categories: Iterable of category keys; None or empty keeps all
        query: Case-insensitive substring of label, type, category name or last treatment
    """
    wanted = set(categories or [])
    needle = (query or '').strip().lower()

    result = []
    for row in rows:
        if wanted and row['category_key'] not in wanted:
            continue
        if needle and not any(
            needle in str(row[k] or '').lower() for k in SEARCH_COLUMNS
        ):
            continue
        result.append(row)
    return result


def sort_rows(rows, column, descending=False):
    """
    Sort rows by a column. Rows without a value go last in either direction.

    Raises:
        ValueError: if column is not sortable.
    """
    if column not in SORTABLE_COLUMNS:
        raise ValueError(f"Cannot sort by {column!r}")

    def is_missing(row):
        value = row[column]
        return value is None or value == '' or value == NOT_AVAILABLE

    present = [r for r in rows if not is_missing(r)]
    missing = [r for r in rows if is_missing(r)]
    present.sort(key=lambda r: str(r[column]).lower(), reverse=descending)
    return present + missing


def format_display_date(value):
    """'2025-03-04' -> 'March 4, 2025'; missing or invalid -> 'N/A'."""
    parsed = parse_date(value)
    if parsed is None:
        return NOT_AVAILABLE
    return f"{parsed:%B} {parsed.day}, {parsed.year}"
