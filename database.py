"""
database.py — SQLite schema creation, seed data, settings and users.

Tables: settings, categories, plants, records, users.
The nested backyard layout (category → plant → records) is assembled from
these tables by layout_store.py.
Uses WAL mode for concurrent read performance.
"""

import sqlite3
import os
import logging

from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_DB_PATH = os.path.join(BASE_DIR, 'data', 'backyard.db')


def get_db_path():
    """Resolve the database path: app config, then BACKYARD_DB_PATH, then default."""
    if has_app_context() and current_app.config.get('DATABASE'):
        return current_app.config['DATABASE']
    return os.environ.get('BACKYARD_DB_PATH', DEFAULT_DB_PATH)


def get_db():
    """Get a database connection with WAL mode and foreign keys enabled."""
    db_path = get_db_path()
    os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


def init_db():
    """Create all tables and indexes if they don't exist."""
    conn = get_db()
    cursor = conn.cursor()

    # Table: settings
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
    """)

    # Table: categories
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS categories (
            key TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            color TEXT NOT NULL,
            sort_order INTEGER NOT NULL DEFAULT 0
        )
    """)

    # Table: plants
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS plants (
            id TEXT PRIMARY KEY,
            category_key TEXT NOT NULL REFERENCES categories(key) ON UPDATE CASCADE,
            label TEXT NOT NULL,
            type TEXT NOT NULL,
            pos_x REAL NOT NULL DEFAULT 50,
            pos_y REAL NOT NULL DEFAULT 50,
            created_seq INTEGER NOT NULL DEFAULT 0,
            UNIQUE(category_key, label)
        )
    """)

    # Table: records
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS records (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            plant_id TEXT NOT NULL REFERENCES plants(id) ON DELETE CASCADE,
            date TEXT NOT NULL,
            treatment TEXT NOT NULL,
            notes TEXT NOT NULL DEFAULT '',
            ph_level TEXT NOT NULL DEFAULT '',
            moisture_level TEXT NOT NULL DEFAULT '',
            photo_data_uri TEXT,
            next_scheduled_fertilization_date TEXT,
            trunk_diameter TEXT
        )
    """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_records_plant_date
        ON records(plant_id, date)
    """)

    # Table: users
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email TEXT UNIQUE NOT NULL,
            password_hash TEXT NOT NULL DEFAULT '',
            display_name TEXT NOT NULL DEFAULT '',
            provider TEXT NOT NULL DEFAULT 'password',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    conn.commit()
    conn.close()


# Initial backyard: category key -> (name, color, plants)
# Each plant: (id, label, type, x, y, [(date, treatment, notes), ...])
_PALM_FEEDING = 'Palm Gain 8-2-12'

INITIAL_LAYOUT = [
    ('queenAndKingPalms', 'Queen and King Palms', '#DC2626', [
        ('qkp-a', 'A', 'Queen Palm', 40, 85, [('2025-02-22', _PALM_FEEDING, '')]),
        ('qkp-b', 'B', 'King Palm', 45, 85, [('2025-02-23', _PALM_FEEDING, '')]),
        ('qkp-c', 'C', 'Queen Palm', 50, 85, [
            ('2025-02-24', _PALM_FEEDING, ''),
            ('2025-03-04', 'Magnesium', '4 TBSP'),
            ('2025-03-04', 'Manganese', '6 TBSP'),
        ]),
        ('qkp-d', 'D', 'King Palm', 20, 55, [
            ('2025-03-04', 'Magnesium', '4 TBSP'),
            ('2025-03-04', 'Manganese', '6 TBSP'),
        ]),
        ('qkp-e', 'E', 'Queen Palm', 20, 40, [
            ('2025-03-04', 'Magnesium', '4 TBSP'),
            ('2025-03-04', 'Manganese', '6 TBSP'),
        ]),
        ('qkp-f', 'F', 'King Palm', 18, 25, [
            ('2025-03-04', 'Magnesium', '7 TBSP'),
            ('2025-03-04', 'Manganese', '12 TBSP'),
        ]),
        ('qkp-g', 'G', 'Queen Palm', 25, 15, [
            ('2025-03-04', 'Magnesium', '7 TBSP'),
            ('2025-03-04', 'Manganese', '12 TBSP'),
        ]),
        ('qkp-h', 'H', 'King Palm', 60, 12, [
            ('2025-03-04', 'Magnesium', '7 TBSP'),
            ('2025-03-04', 'Manganese', '6 TBSP'),
        ]),
        ('qkp-i', 'I', 'Queen Palm', 70, 12, [
            ('2025-03-04', 'Magnesium', '7 TBSP'),
            ('2025-03-04', 'Manganese', '6 TBSP'),
        ]),
        ('qkp-j', 'J', 'King Palm', 80, 15, [
            ('2025-03-04', 'Magnesium', '7 TBSP'),
            ('2025-03-04', 'Manganese', '8 TBSP'),
        ]),
        ('qkp-k', 'K', 'Queen Palm', 88, 28, [('2025-03-04', 'Magnesium', '4 TBSP')]),
        ('qkp-l', 'L', 'King Palm', 90, 45, [('2025-03-04', 'Magnesium', '7 TBSP')]),
        ('qkp-m', 'M', 'Queen Palm', 88, 65, [('2025-03-04', 'Magnesium', '7 TBSP')]),
        ('qkp-n', 'N', 'King Palm', 85, 80, [('2025-03-04', 'Magnesium', '4 TBSP')]),
    ]),
    ('bamboo', 'Bamboo', '#16A34A', [
        ('bmb-a', 'A', 'Bamboo', 30, 85, []),
        ('bmb-b', 'B', 'Bamboo', 35, 85, []),
    ]),
    ('fruit', 'Fruit Trees', '#F97316', [
        ('frt-a', 'A', 'Fruit Tree', 25, 70, []),
    ]),
    ('shrubs', 'Shrubs', '#6366F1', [
        ('shb-a', 'A', 'Shrub', 22, 80, []),
    ]),
    ('tropicals', 'Tropicals', '#A855F7', [
        ('trp-a', 'A', 'Pygmy Palm', 25, 30, []),
    ]),
]


def seed_defaults():
    """Populate the initial backyard if tables are empty. Skips anything that already exists."""
    conn = get_db()
    cursor = conn.cursor()

    # --- Settings ---
    existing = cursor.execute(
        "SELECT COUNT(*) FROM settings WHERE key = 'layout_version'"
    ).fetchone()[0]
    if existing == 0:
        cursor.execute("INSERT INTO settings (key, value) VALUES ('layout_version', '0')")

    # --- Categories, plants, records ---
    existing = cursor.execute("SELECT COUNT(*) FROM categories").fetchone()[0]
    if existing == 0:
        seq = 0
        for order, (key, name, color, plants) in enumerate(INITIAL_LAYOUT):
            cursor.execute(
                "INSERT INTO categories (key, name, color, sort_order) VALUES (?, ?, ?, ?)",
                (key, name, color, order)
            )
            for plant_id, label, plant_type, x, y, records in plants:
                seq += 1
                cursor.execute(
                    """INSERT INTO plants (id, category_key, label, type, pos_x, pos_y, created_seq)
                       VALUES (?, ?, ?, ?, ?, ?, ?)""",
                    (plant_id, key, label, plant_type, x, y, seq)
                )
                cursor.executemany(
                    "INSERT INTO records (plant_id, date, treatment, notes) VALUES (?, ?, ?, ?)",
                    [(plant_id, d, t, n) for d, t, n in records]
                )
        logger.info("Seeded initial backyard layout (%d categories)", len(INITIAL_LAYOUT))

    conn.commit()
    conn.close()


def read_version(conn):
    """Current layout version, read on an open connection."""
    row = conn.execute("SELECT value FROM settings WHERE key = 'layout_version'").fetchone()
    return int(row['value']) if row else 0


def bump_version(conn, at_least=0):
    """
    Increment the layout version inside the caller's transaction.

    The new version is above both the stored one and at_least, so a version
    number is never handed out twice.
    """
    version = max(read_version(conn), at_least) + 1
    conn.execute(
        "INSERT INTO settings (key, value) VALUES ('layout_version', ?) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
        (str(version),)
    )
    return version


# ========================================
# Users
# ========================================

def get_user_by_email(email):
    """Retrieve a user by (case-insensitive) email."""
    if not email:
        return None
    conn = get_db()
    user = conn.execute(
        "SELECT * FROM users WHERE email = ?", (email.strip().lower(),)
    ).fetchone()
    conn.close()
    return user


def get_user(user_id):
    """Retrieve a single user by ID."""
    conn = get_db()
    user = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    conn.close()
    return user


def upsert_user(email, password_hash='', display_name='', provider='password'):
    """Create a user or update the existing one. Returns the user id."""
    email = email.strip().lower()
    conn = get_db()
    try:
        existing = conn.execute("SELECT id FROM users WHERE email = ?", (email,)).fetchone()
        if existing:
            if password_hash:
                conn.execute(
                    "UPDATE users SET password_hash = ? WHERE id = ?",
                    (password_hash, existing['id'])
                )
            if display_name:
                conn.execute(
                    "UPDATE users SET display_name = ? WHERE id = ?",
                    (display_name, existing['id'])
                )
            user_id = existing['id']
        else:
            cursor = conn.execute(
                "INSERT INTO users (email, password_hash, display_name, provider) VALUES (?, ?, ?, ?)",
                (email, password_hash, display_name, provider)
            )
            user_id = cursor.lastrowid
        conn.commit()
        return user_id
    finally:
        conn.close()
