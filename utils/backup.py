"""
utils/backup.py — Database backup and restore operations.

Copies the SQLite database to the backup directory with timestamped filenames,
using SQLite's online backup API so WAL contents are included.
Backup triggers: before JSON import, on export, manual from Settings.
Format: backyard_YYYYMMDD_HHMMSS_{reason}.db
"""

import os
import re
import sqlite3
import logging
from datetime import datetime

from flask import current_app, has_app_context

from database import get_db_path, get_db, read_version, bump_version, BASE_DIR

logger = logging.getLogger(__name__)

BACKUP_PREFIX = 'backyard_'
_FILENAME_RE = re.compile(r'^backyard_(\d{8})_(\d{6})(?:_(.*))?\.db$')


def get_backup_dir():
    """Backup directory: app config, then BACKYARD_BACKUP_DIR, then backups/."""
    if has_app_context() and current_app.config.get('BACKUP_DIR'):
        return current_app.config['BACKUP_DIR']
    return os.environ.get('BACKYARD_BACKUP_DIR', os.path.join(BASE_DIR, 'backups'))


def _copy_database(src_path, dest_path):
    src = sqlite3.connect(src_path)
    dest = sqlite3.connect(dest_path)
    try:
        src.backup(dest)
    finally:
        dest.close()
        src.close()


def backup_db(reason='manual'):
    """
    Copy the current database to the backup directory with a timestamped filename.

    Args:
        reason: Short tag for the backup trigger (e.g., 'manual', 'pre_import', 'export').

    Returns:
        The filename of the created backup, or None on failure.
    """
    backup_dir = get_backup_dir()
    os.makedirs(backup_dir, exist_ok=True)

    db_path = get_db_path()
    if not os.path.exists(db_path):
        return None

    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    # Sanitize reason string
    safe_reason = re.sub(r'[^A-Za-z0-9_-]+', '_', reason)[:30]
    filename = f'{BACKUP_PREFIX}{timestamp}_{safe_reason}.db'
    dest = os.path.join(backup_dir, filename)

    try:
        _copy_database(db_path, dest)
        logger.info("Created backup %s", filename)
        return filename
    except (OSError, sqlite3.Error):
        logger.exception("Backup to %s failed", dest)
        return None


def _human_size(size_bytes):
    if size_bytes < 1024:
        return f'{size_bytes} B'
    elif size_bytes < 1024 * 1024:
        return f'{size_bytes / 1024:.1f} KB'
    return f'{size_bytes / (1024 * 1024):.1f} MB'


def list_backups():
    """
    List all backup files in the backup directory.

    Returns:
        List of dicts with keys: filename, timestamp, size_bytes, size_display, reason.
        Sorted by timestamp descending (newest first).
    """
    backup_dir = get_backup_dir()
    os.makedirs(backup_dir, exist_ok=True)

    backups = []
    for f in os.listdir(backup_dir):
        match = _FILENAME_RE.match(f)
        if not match:
            continue
        date_part, time_part, reason = match.groups()
        size_bytes = os.stat(os.path.join(backup_dir, f)).st_size
        backups.append({
            'filename': f,
            'timestamp': (f'{date_part[:4]}-{date_part[4:6]}-{date_part[6:8]} '
                          f'{time_part[:2]}:{time_part[2:4]}:{time_part[4:6]}'),
            'size_bytes': size_bytes,
            'size_display': _human_size(size_bytes),
            'reason': reason or '',
        })

    # Sort newest first
    backups.sort(key=lambda b: b['filename'], reverse=True)
    return backups


def _backup_path(filename):
    """Full path of a backup file, or None if the name is not a backup filename."""
    if not filename or os.path.basename(filename) != filename or not _FILENAME_RE.match(filename):
        return None
    return os.path.join(get_backup_dir(), filename)


def restore_db(filename):
    """
    Replace the current database contents with a backup file.

    DANGEROUS: This overwrites the current database entirely.

    Args:
        filename: Name of the backup file in the backup directory.

    Returns:
        True on success, False on failure.
    """
    backup_path = _backup_path(filename)
    if not backup_path or not os.path.exists(backup_path):
        return False

    src = sqlite3.connect(backup_path)
    dest = get_db()
    try:
        previous_version = read_version(dest)
        src.backup(dest)
        # The restored copy carries an older version; move past the one clients have seen
        version = bump_version(dest, at_least=previous_version)
        dest.commit()
        logger.warning("Database restored from %s (layout version %d)", filename, version)
        return True
    except sqlite3.Error:
        logger.exception("Restore from %s failed", filename)
        return False
    finally:
        dest.close()
        src.close()


def delete_backup(filename):
    """
    Delete a backup file.

    Returns:
        True on success, False on failure.
    """
    backup_path = _backup_path(filename)
    if not backup_path or not os.path.exists(backup_path):
        return False
    try:
        os.remove(backup_path)
        return True
    except OSError:
        logger.exception("Could not delete backup %s", filename)
        return False
