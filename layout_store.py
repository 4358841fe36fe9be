"""
layout_store.py — The backyard layout: categories, plants and their records.

The layout is served as one nested document:

    {'version': 12, 'categories': {'bamboo': {'name': ..., 'color': ...,
                                              'plants': [{..., 'records': [...]}]}}}

Every mutation runs in a single transaction, bumps the layout version and
optionally checks an expected version first. A client that edits its own
copy of the document optimistically sends the version it started from; if
someone else wrote in between, LayoutConflict is raised and the client
reloads the current layout.
"""

import sqlite3
import time
import logging
from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple

from database import get_db, read_version, bump_version
from models import Category, Plant, Record
from utils.validators import (
    validate_record, validate_plant_type, clamp_position, validate_color,
    category_key_from_name
)

logger = logging.getLogger(__name__)

EXPORT_FORMAT = 'backyard-layout'
EXPORT_FORMAT_VERSION = 1
DEFAULT_POSITION = (50.0, 50.0)
PLANT_FIELDS = ('label', 'type', 'category_key', 'position')


class LayoutConflict(Exception):
    """The layout changed since the client's copy was taken."""

    def __init__(self, expected: int, current: int):
        super().__init__(f"Layout version {expected} is stale (current is {current}).")
        self.expected = expected
        self.current = current


# ========================================
# Helpers
# ========================================

def _begin(conn, expected_version=None):
    """Open a write transaction and verify the caller's layout version."""
    conn.execute("BEGIN IMMEDIATE")
    if expected_version is not None:
        current = read_version(conn)
        if int(expected_version) != current:
            raise LayoutConflict(int(expected_version), current)


def label_for_index(index: int) -> str:
    """0 -> 'A', 25 -> 'Z', 26 -> 'AA', 27 -> 'AB', ..."""
    label = ''
    n = index + 1
    while n:
        n, rem = divmod(n - 1, 26)
        label = chr(ord('A') + rem) + label
    return label


def next_label(existing_labels) -> str:
    """First label in A, B, ..., Z, AA, AB, ... not already taken."""
    used = set(existing_labels)
    index = 0
    while label_for_index(index) in used:
        index += 1
    return label_for_index(index)


def _labels_in(conn, category_key, exclude_plant_id=None):
    rows = conn.execute(
        "SELECT id, label FROM plants WHERE category_key = ?", (category_key,)
    ).fetchall()
    return [r['label'] for r in rows if r['id'] != exclude_plant_id]


def _new_plant_id(conn, category_key):
    """'<first 3 chars of category>-<ms timestamp>', bumped until unused."""
    stamp = int(time.time() * 1000)
    prefix = category_key[:3]
    while conn.execute(
        "SELECT 1 FROM plants WHERE id = ?", (f"{prefix}-{stamp}",)
    ).fetchone():
        stamp += 1
    return f"{prefix}-{stamp}"


def _next_seq(conn):
    return conn.execute("SELECT COALESCE(MAX(created_seq), 0) + 1 FROM plants").fetchone()[0]


def _insert_record(conn, plant_id, record, photo_data_uri=None):
    cursor = conn.execute(
        """INSERT INTO records (plant_id, date, treatment, notes, ph_level, moisture_level,
                                photo_data_uri, next_scheduled_fertilization_date, trunk_diameter)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (plant_id, record['date'], record['treatment'], record['notes'],
         record['ph_level'], record['moisture_level'], photo_data_uri,
         record['next_scheduled_fertilization_date'], record['trunk_diameter'])
    )
    return cursor.lastrowid


def _load_categories(conn) -> List[Category]:
    """Build the category → plant → record tree. Records come newest first."""
    categories = [
        Category.from_row(row)
        for row in conn.execute("SELECT * FROM categories ORDER BY sort_order, key")
    ]
    by_key = {c.key: c for c in categories}

    plants = {}
    for row in conn.execute("SELECT * FROM plants ORDER BY created_seq, id"):
        plant = Plant.from_row(row)
        plants[plant.id] = plant
        by_key[row['category_key']].plants.append(plant)

    # Same-day records keep insertion order
    for row in conn.execute("SELECT * FROM records ORDER BY date DESC, id ASC"):
        plants[row['plant_id']].records.append(Record.from_row(row))

    return categories


# ========================================
# Reads
# ========================================

def get_layout_version() -> int:
    """Current layout version."""
    conn = get_db()
    try:
        return read_version(conn)
    finally:
        conn.close()


def get_layout() -> Dict[str, Any]:
    """
    Get the whole backyard as a nested document.

    Returns:
        Dict with 'version' and 'categories' (category key -> category dict).
    """
    conn = get_db()
    try:
        categories = _load_categories(conn)
        return {
            'version': read_version(conn),
            'categories': {c.key: c.to_dict() for c in categories},
        }
    finally:
        conn.close()


def get_categories() -> List[Dict[str, Any]]:
    """Category summaries (key, name, color, plant_count) in display order."""
    conn = get_db()
    try:
        rows = conn.execute(
            """SELECT c.key, c.name, c.color, c.sort_order, COUNT(p.id) AS plant_count
               FROM categories c LEFT JOIN plants p ON p.category_key = c.key
               GROUP BY c.key ORDER BY c.sort_order, c.key"""
        ).fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


def find_plant(plant_id: str, layout: Optional[Dict[str, Any]] = None):
    """
    Locate a plant in the layout.

    Returns:
        Tuple of (plant, category). category holds key, name and color.
        (None, None) if the plant does not exist.
    """
    if layout is None:
        layout = get_layout()
    for key, category in layout['categories'].items():
        for plant in category['plants']:
            if plant['id'] == plant_id:
                return plant, {'key': key, 'name': category['name'], 'color': category['color']}
    return None, None


# ========================================
# Plant mutations
# ========================================

def add_plant(
    category_key: str,
    plant_type: str,
    position: Optional[Tuple[float, float]] = None,
    expected_version: Optional[int] = None
) -> Tuple[Optional[str], Optional[str]]:
    """
    Add a plant to a category with the next free label.

    Args:
        category_key: Key of an existing category
        plant_type: Free text, at least 2 characters
        position: Optional (x, y); defaults to the middle of the map

    Returns:
        Tuple of (plant_id, error_message)
    """
    plant_type = str(plant_type or '').strip()
    error = validate_plant_type(plant_type)
    if error:
        return None, error

    try:
        x, y = clamp_position(*(position or DEFAULT_POSITION))
    except (TypeError, ValueError):
        return None, "Position must be two numbers."

    conn = get_db()
    try:
        _begin(conn, expected_version)
        category = conn.execute(
            "SELECT key FROM categories WHERE key = ?", (category_key,)
        ).fetchone()
        if not category:
            conn.rollback()
            return None, "Please select a category."

        plant_id = _new_plant_id(conn, category_key)
        label = next_label(_labels_in(conn, category_key))
        conn.execute(
            """INSERT INTO plants (id, category_key, label, type, pos_x, pos_y, created_seq)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (plant_id, category_key, label, plant_type, x, y, _next_seq(conn))
        )
        bump_version(conn)
        conn.commit()
        logger.info("Added plant %s (%s %s) to %s", plant_id, plant_type, label, category_key)
        return plant_id, None
    except LayoutConflict:
        conn.rollback()
        raise
    except sqlite3.Error as e:
        conn.rollback()
        logger.exception("Failed to add plant to %s", category_key)
        return None, f"Database error: {e}"
    finally:
        conn.close()


def remove_plant(plant_id: str, expected_version: Optional[int] = None) -> Tuple[bool, Optional[str]]:
    """
    Delete a plant and all its records.

    Returns:
        Tuple of (success, error_message)
    """
    conn = get_db()
    try:
        _begin(conn, expected_version)
        cursor = conn.execute("DELETE FROM plants WHERE id = ?", (plant_id,))
        if cursor.rowcount == 0:
            conn.rollback()
            return False, "Plant not found."
        bump_version(conn)
        conn.commit()
        logger.info("Removed plant %s", plant_id)
        return True, None
    except LayoutConflict:
        conn.rollback()
        raise
    except sqlite3.Error as e:
        conn.rollback()
        logger.exception("Failed to remove plant %s", plant_id)
        return False, f"Database error: {e}"
    finally:
        conn.close()


def update_plant_position(
    plant_id: str,
    x: float,
    y: float,
    expected_version: Optional[int] = None
) -> Tuple[bool, Optional[str]]:
    """Move a plant marker. Coordinates are clamped to the 0-100 viewBox."""
    return update_plant(plant_id, {'position': {'x': x, 'y': y}}, expected_version=expected_version)


def update_plant(
    plant_id: str,
    updates: Dict[str, Any],
    expected_version: Optional[int] = None
) -> Tuple[bool, Optional[str]]:
    """
    Partially update a plant.

    Args:
        plant_id: Plant to update
        updates: Any of label, type, category_key, position ({'x', 'y'})

    Moving a plant to another category keeps its label when free there,
    otherwise it gets the next free label of the new category.

    Returns:
        Tuple of (success, error_message)
    """
    unknown = sorted(set(updates) - set(PLANT_FIELDS))
    if unknown:
        return False, f"Unknown plant field(s): {', '.join(unknown)}"

    if 'type' in updates:
        error = validate_plant_type(updates['type'])
        if error:
            return False, error

    position = None
    if 'position' in updates:
        pos = updates['position'] or {}
        try:
            position = clamp_position(pos.get('x'), pos.get('y'))
        except (TypeError, ValueError, AttributeError):
            return False, "Position must be two numbers."

    conn = get_db()
    try:
        _begin(conn, expected_version)
        plant = conn.execute("SELECT * FROM plants WHERE id = ?", (plant_id,)).fetchone()
        if not plant:
            conn.rollback()
            return False, "Plant not found."

        category_key = str(updates.get('category_key') or plant['category_key'])
        if category_key != plant['category_key']:
            if not conn.execute("SELECT 1 FROM categories WHERE key = ?", (category_key,)).fetchone():
                conn.rollback()
                return False, "Category not found."

        taken = _labels_in(conn, category_key, exclude_plant_id=plant_id)
        if 'label' in updates:
            label = str(updates['label'] or '').strip()
            if not label:
                conn.rollback()
                return False, "Label is required."
            if label in taken:
                conn.rollback()
                return False, f"Label {label} is already used in this category."
        elif plant['label'] in taken:
            label = next_label(taken)
        else:
            label = plant['label']

        plant_type = str(updates['type']).strip() if 'type' in updates else plant['type']
        x, y = position if position else (plant['pos_x'], plant['pos_y'])

        conn.execute(
            """UPDATE plants SET category_key = ?, label = ?, type = ?, pos_x = ?, pos_y = ?
               WHERE id = ?""",
            (category_key, label, plant_type, x, y, plant_id)
        )
        bump_version(conn)
        conn.commit()
        return True, None
    except LayoutConflict:
        conn.rollback()
        raise
    except sqlite3.Error as e:
        conn.rollback()
        logger.exception("Failed to update plant %s", plant_id)
        return False, f"Database error: {e}"
    finally:
        conn.close()


# ========================================
# Record mutations
# ========================================

def add_record(
    plant_id: str,
    record: Dict[str, Any],
    photo_data_uri: Optional[str] = None,
    expected_version: Optional[int] = None
) -> Tuple[Optional[int], Optional[str]]:
    """
    Add a record to one plant.

    Returns:
        Tuple of (record_id, error_message)
    """
    record_ids, error = bulk_add_record(
        [plant_id], record, photo_data_uri=photo_data_uri, expected_version=expected_version
    )
    if error:
        return None, error
    return record_ids[0], None


def bulk_add_record(
    plant_ids: List[str],
    record: Dict[str, Any],
    photo_data_uri: Optional[str] = None,
    expected_version: Optional[int] = None
) -> Tuple[Optional[List[int]], Optional[str]]:
    """
    Add the same record to several plants at once.

    Each plant receives its own copy with its own id. Either every plant gets
    the record or none does.

    Returns:
        Tuple of (record_ids in plant order, error_message)
    """
    clean, errors = validate_record(record)
    if errors:
        return None, ' '.join(errors)

    unique_ids = list(dict.fromkeys(pid for pid in (plant_ids or []) if pid))
    if not unique_ids:
        return None, "Select at least one plant."

    conn = get_db()
    try:
        _begin(conn, expected_version)
        placeholders = ','.join('?' * len(unique_ids))
        found = {
            r['id'] for r in conn.execute(
                f"SELECT id FROM plants WHERE id IN ({placeholders})", unique_ids
            )
        }
        missing = [pid for pid in unique_ids if pid not in found]
        if missing:
            conn.rollback()
            return None, f"Plant(s) not found: {', '.join(missing)}"

        record_ids = [_insert_record(conn, pid, clean, photo_data_uri) for pid in unique_ids]
        bump_version(conn)
        conn.commit()
        logger.info("Added record '%s' to %d plant(s)", clean['treatment'], len(record_ids))
        return record_ids, None
    except LayoutConflict:
        conn.rollback()
        raise
    except sqlite3.Error as e:
        conn.rollback()
        logger.exception("Failed to add records")
        return None, f"Database error: {e}"
    finally:
        conn.close()


def update_record(
    plant_id: str,
    record_id: int,
    record: Dict[str, Any],
    photo_data_uri: Optional[str] = None,
    remove_photo: bool = False,
    expected_version: Optional[int] = None
) -> Tuple[bool, Optional[str]]:
    """
    Replace the fields of an existing record.

    The stored photo is kept unless a new one is given or remove_photo is set.

    Returns:
        Tuple of (success, error_message)
    """
    clean, errors = validate_record(record)
    if errors:
        return False, ' '.join(errors)

    conn = get_db()
    try:
        _begin(conn, expected_version)
        existing = conn.execute(
            "SELECT * FROM records WHERE id = ? AND plant_id = ?", (record_id, plant_id)
        ).fetchone()
        if not existing:
            conn.rollback()
            return False, "Record not found."

        if photo_data_uri:
            photo = photo_data_uri
        elif remove_photo:
            photo = None
        else:
            photo = existing['photo_data_uri']

        conn.execute(
            """UPDATE records SET date = ?, treatment = ?, notes = ?, ph_level = ?,
                   moisture_level = ?, photo_data_uri = ?,
                   next_scheduled_fertilization_date = ?, trunk_diameter = ?
               WHERE id = ?""",
            (clean['date'], clean['treatment'], clean['notes'], clean['ph_level'],
             clean['moisture_level'], photo, clean['next_scheduled_fertilization_date'],
             clean['trunk_diameter'], record_id)
        )
        bump_version(conn)
        conn.commit()
        return True, None
    except LayoutConflict:
        conn.rollback()
        raise
    except sqlite3.Error as e:
        conn.rollback()
        logger.exception("Failed to update record %s", record_id)
        return False, f"Database error: {e}"
    finally:
        conn.close()


def delete_record(
    plant_id: str,
    record_id: int,
    expected_version: Optional[int] = None
) -> Tuple[bool, Optional[str]]:
    """Delete one record of a plant."""
    conn = get_db()
    try:
        _begin(conn, expected_version)
        cursor = conn.execute(
            "DELETE FROM records WHERE id = ? AND plant_id = ?", (record_id, plant_id)
        )
        if cursor.rowcount == 0:
            conn.rollback()
            return False, "Record not found."
        bump_version(conn)
        conn.commit()
        return True, None
    except LayoutConflict:
        conn.rollback()
        raise
    except sqlite3.Error as e:
        conn.rollback()
        logger.exception("Failed to delete record %s", record_id)
        return False, f"Database error: {e}"
    finally:
        conn.close()


# ========================================
# Categories
# ========================================

def add_category(
    name: str,
    color: str,
    expected_version: Optional[int] = None
) -> Tuple[Optional[str], Optional[str]]:
    """
    Create a category. Its key is derived from the name ("Fruit Trees" -> "fruitTrees").

    Returns:
        Tuple of (category_key, error_message)
    """
    name = (name or '').strip()
    key = category_key_from_name(name)
    if not key:
        return None, "Category name is required."
    error = validate_color(color)
    if error:
        return None, error

    conn = get_db()
    try:
        _begin(conn, expected_version)
        if conn.execute("SELECT 1 FROM categories WHERE key = ?", (key,)).fetchone():
            conn.rollback()
            return None, f"Category {name} already exists."
        order = conn.execute(
            "SELECT COALESCE(MAX(sort_order), -1) + 1 FROM categories"
        ).fetchone()[0]
        conn.execute(
            "INSERT INTO categories (key, name, color, sort_order) VALUES (?, ?, ?, ?)",
            (key, name, color.strip().upper(), order)
        )
        bump_version(conn)
        conn.commit()
        return key, None
    except LayoutConflict:
        conn.rollback()
        raise
    except sqlite3.Error as e:
        conn.rollback()
        logger.exception("Failed to add category %s", name)
        return None, f"Database error: {e}"
    finally:
        conn.close()


def update_category(
    key: str,
    name: Optional[str] = None,
    color: Optional[str] = None,
    expected_version: Optional[int] = None
) -> Tuple[bool, Optional[str]]:
    """Rename or recolor a category. Its key never changes."""
    if name is not None and not name.strip():
        return False, "Category name is required."
    if color is not None:
        error = validate_color(color)
        if error:
            return False, error

    conn = get_db()
    try:
        _begin(conn, expected_version)
        existing = conn.execute("SELECT * FROM categories WHERE key = ?", (key,)).fetchone()
        if not existing:
            conn.rollback()
            return False, "Category not found."
        conn.execute(
            "UPDATE categories SET name = ?, color = ? WHERE key = ?",
            (name.strip() if name is not None else existing['name'],
             color.strip().upper() if color is not None else existing['color'],
             key)
        )
        bump_version(conn)
        conn.commit()
        return True, None
    except LayoutConflict:
        conn.rollback()
        raise
    except sqlite3.Error as e:
        conn.rollback()
        logger.exception("Failed to update category %s", key)
        return False, f"Database error: {e}"
    finally:
        conn.close()


def delete_category(key: str, expected_version: Optional[int] = None) -> Tuple[bool, Optional[str]]:
    """Delete an empty category."""
    conn = get_db()
    try:
        _begin(conn, expected_version)
        if not conn.execute("SELECT 1 FROM categories WHERE key = ?", (key,)).fetchone():
            conn.rollback()
            return False, "Category not found."
        count = conn.execute(
            "SELECT COUNT(*) FROM plants WHERE category_key = ?", (key,)
        ).fetchone()[0]
        if count:
            conn.rollback()
            return False, f"Category still has {count} plant(s)."
        conn.execute("DELETE FROM categories WHERE key = ?", (key,))
        bump_version(conn)
        conn.commit()
        return True, None
    except LayoutConflict:
        conn.rollback()
        raise
    except sqlite3.Error as e:
        conn.rollback()
        logger.exception("Failed to delete category %s", key)
        return False, f"Database error: {e}"
    finally:
        conn.close()


# ========================================
# JSON export / import
# ========================================

def export_layout_json() -> Dict[str, Any]:
    """
    Export the whole layout as a JSON-serializable document.

    Returns:
        Dict with format, format_version, exported_at, version and categories.
    """
    layout = get_layout()
    return {
        'format': EXPORT_FORMAT,
        'format_version': EXPORT_FORMAT_VERSION,
        'exported_at': datetime.now().isoformat(timespec='seconds'),
        'version': layout['version'],
        'categories': layout['categories'],
    }


def import_layout_json(
    data: Dict[str, Any],
    mode: str = 'replace'
) -> Tuple[bool, str, Dict[str, int]]:
    """
    Import a layout document.

    Args:
        data: Document with a 'categories' mapping, as produced by export_layout_json()
        mode: 'replace' to clear everything first, 'merge' to upsert by category key
              and plant id (a merged plant's records are replaced)

    Returns:
        Tuple of (success, message, stats)
        stats contains: categories, plants, records, errors
    """
    if not isinstance(data, dict) or not isinstance(data.get('categories'), dict):
        return False, "Invalid JSON format: missing 'categories' mapping.", {}
    if mode not in ('replace', 'merge'):
        return False, f"Unknown import mode: {mode}", {}

    stats = {'categories': 0, 'plants': 0, 'records': 0, 'errors': 0}
    seen_plants = set()

    conn = get_db()
    try:
        _begin(conn)
        if mode == 'replace':
            conn.execute("DELETE FROM records")
            conn.execute("DELETE FROM plants")
            conn.execute("DELETE FROM categories")

        order = conn.execute(
            "SELECT COALESCE(MAX(sort_order), -1) + 1 FROM categories"
        ).fetchone()[0]

        for key, cat_data in data['categories'].items():
            if not isinstance(cat_data, dict) or not key:
                stats['errors'] += 1
                continue
            name = str(cat_data.get('name') or key).strip()
            color = str(cat_data.get('color') or '#16A34A').strip()
            if validate_color(color):
                color = '#16A34A'

            exists = conn.execute("SELECT 1 FROM categories WHERE key = ?", (key,)).fetchone()
            if exists:
                conn.execute(
                    "UPDATE categories SET name = ?, color = ? WHERE key = ?", (name, color, key)
                )
            else:
                conn.execute(
                    "INSERT INTO categories (key, name, color, sort_order) VALUES (?, ?, ?, ?)",
                    (key, name, color, order)
                )
                order += 1
            stats['categories'] += 1

            for plant_data in cat_data.get('plants') or []:
                if _import_plant(conn, key, plant_data, seen_plants, stats):
                    stats['plants'] += 1

        bump_version(conn)
        conn.commit()
        message = (f"Imported {stats['categories']} categories, {stats['plants']} plants "
                   f"and {stats['records']} records.")
        if stats['errors']:
            message += f" {stats['errors']} invalid entries skipped."
        logger.info("Layout import (%s): %s", mode, message)
        return True, message, stats
    except sqlite3.Error as e:
        conn.rollback()
        logger.exception("Layout import failed")
        return False, f"Database error: {e}", stats
    finally:
        conn.close()


def _import_plant(conn, category_key, plant_data, seen_plants, stats):
    """Insert or replace one imported plant with its records. Returns True if imported."""
    if not isinstance(plant_data, dict):
        stats['errors'] += 1
        return False
    plant_id = str(plant_data.get('id') or '').strip()
    plant_type = str(plant_data.get('type') or '').strip()
    if not plant_id or plant_id in seen_plants or validate_plant_type(plant_type):
        stats['errors'] += 1
        return False
    seen_plants.add(plant_id)

    pos = plant_data.get('position') or {}
    try:
        x, y = clamp_position(pos.get('x', 50), pos.get('y', 50))
    except (TypeError, ValueError, AttributeError):
        x, y = DEFAULT_POSITION

    conn.execute("DELETE FROM plants WHERE id = ?", (plant_id,))
    taken = _labels_in(conn, category_key)
    label = str(plant_data.get('label') or '').strip()
    if not label or label in taken:
        label = next_label(taken)

    conn.execute(
        """INSERT INTO plants (id, category_key, label, type, pos_x, pos_y, created_seq)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (plant_id, category_key, label, plant_type, x, y, _next_seq(conn))
    )

    valid_records = []
    for record_data in plant_data.get('records') or []:
        if not isinstance(record_data, dict):
            stats['errors'] += 1
            continue
        clean, errors = validate_record(record_data)
        if errors:
            stats['errors'] += 1
            continue
        valid_records.append((clean, record_data.get('photo_data_uri')))

    # Oldest first; the stable sort keeps same-day records in their exported order
    valid_records.sort(key=lambda item: item[0]['date'])
    for clean, photo in valid_records:
        _insert_record(conn, plant_id, clean, photo)
        stats['records'] += 1
    return True
