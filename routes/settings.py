"""
routes/settings.py — Settings and administration routes.

Provides:
- GET  /settings/                    — Settings page (categories, import/export, backups)
- POST /settings/category/add        — Add a category
- POST /settings/category/edit       — Rename/recolor a category
- POST /settings/category/delete     — Delete an empty category
- POST /settings/backup/create       — Create a manual backup
- POST /settings/backup/restore      — Restore from backup
- POST /settings/backup/delete       — Delete a backup file
"""

from flask import Blueprint, render_template, request, redirect, url_for, flash

from auth import login_required
from layout_store import get_categories, add_category, update_category, delete_category
from utils.backup import backup_db, list_backups, restore_db, delete_backup

settings_bp = Blueprint('settings', __name__, url_prefix='/settings')


@settings_bp.route('/')
@login_required
def index():
    """Main settings page."""
    return render_template(
        'settings.html',
        categories=get_categories(),
        backups=list_backups(),
    )


@settings_bp.route('/category/add', methods=['POST'])
@login_required
def category_add():
    """Add a new plant category."""
    name = request.form.get('name', '').strip()
    color = request.form.get('color', '').strip()

    key, error = add_category(name, color)
    if error:
        flash(error, 'error')
    else:
        flash(f"Category '{name}' created.", 'success')
    return redirect(url_for('settings.index'))


@settings_bp.route('/category/edit', methods=['POST'])
@login_required
def category_edit():
    """Rename or recolor a category."""
    key = request.form.get('key', '').strip()
    if not key:
        flash("No category specified.", 'error')
        return redirect(url_for('settings.index'))

    success, error = update_category(
        key,
        name=request.form.get('name'),
        color=request.form.get('color'),
    )
    if success:
        flash("Category updated.", 'success')
    else:
        flash(error, 'error')
    return redirect(url_for('settings.index'))


@settings_bp.route('/category/delete', methods=['POST'])
@login_required
def category_delete():
    """Delete an empty category."""
    key = request.form.get('key', '').strip()
    if not key:
        flash("No category specified.", 'error')
        return redirect(url_for('settings.index'))

    success, error = delete_category(key)
    if success:
        flash("Category deleted.", 'success')
    else:
        flash(error, 'error')
    return redirect(url_for('settings.index'))


@settings_bp.route('/backup/create', methods=['POST'])
@login_required
def backup_create():
    """Create a manual backup."""
    filename = backup_db('manual')
    if filename:
        flash(f"Backup created: {filename}", 'success')
    else:
        flash("Backup failed.", 'error')
    return redirect(url_for('settings.index'))


@settings_bp.route('/backup/restore', methods=['POST'])
@login_required
def backup_restore():
    """Restore the database from a backup file."""
    filename = request.form.get('filename', '').strip()
    if not filename:
        flash("No backup file specified.", 'error')
        return redirect(url_for('settings.index'))

    # Safety backup of the current state before overwriting it
    backup_db('pre_restore')

    if restore_db(filename):
        flash(f"Database restored from {filename}.", 'success')
    else:
        flash("Restore failed. Check the backup file.", 'error')
    return redirect(url_for('settings.index'))


@settings_bp.route('/backup/delete', methods=['POST'])
@login_required
def backup_delete():
    """Delete a backup file."""
    filename = request.form.get('filename', '').strip()
    if not filename:
        flash("No backup file specified.", 'error')
        return redirect(url_for('settings.index'))

    if delete_backup(filename):
        flash(f"Backup {filename} deleted.", 'success')
    else:
        flash("Could not delete the backup.", 'error')
    return redirect(url_for('settings.index'))
