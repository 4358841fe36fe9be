"""
routes/export.py — Excel and JSON export, JSON import.

Provides:
- GET  /export/excel         — Download the plants/records workbook
                               (honours the table view's ?category=, ?q=, ?sort=, ?order=)
- GET  /export/json          — Download the whole layout document
- POST /export/json/import   — Replace or merge the layout from an uploaded JSON file

Auto-backup is triggered before every export and import.
"""

import json
from datetime import date
from io import BytesIO

from flask import Blueprint, flash, redirect, url_for, send_file, request

from auth import login_required
from layout_store import get_layout, export_layout_json, import_layout_json
from utils.backup import backup_db
from utils.export import generate_excel
from utils.table import build_rows, filter_rows, sort_rows, SORTABLE_COLUMNS

export_bp = Blueprint('export', __name__, url_prefix='/export')


@export_bp.route('/excel')
@login_required
def export_excel():
    """Export the plant table (as currently filtered/sorted) and all records as Excel."""
    # Auto-backup before export
    backup_db('export')

    rows = filter_rows(
        build_rows(get_layout()),
        categories=request.args.getlist('category'),
        query=request.args.get('q', ''),
    )
    sort = request.args.get('sort', '')
    if sort in SORTABLE_COLUMNS:
        rows = sort_rows(rows, sort, descending=request.args.get('order') == 'desc')

    buffer, filename = generate_excel(rows)
    return send_file(
        buffer,
        as_attachment=True,
        download_name=filename,
        mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
    )


@export_bp.route('/json')
@login_required
def export_json():
    """Download the layout document as JSON."""
    backup_db('export')
    payload = json.dumps(export_layout_json(), ensure_ascii=False, indent=2)
    return send_file(
        BytesIO(payload.encode('utf-8')),
        as_attachment=True,
        download_name=f"backyard_{date.today():%Y%m%d}.json",
        mimetype='application/json'
    )


@export_bp.route('/json/import', methods=['POST'])
@login_required
def import_json():
    """Import a layout document exported by /export/json."""
    file = request.files.get('file')
    if file is None or file.filename == '':
        flash("No file selected.", 'error')
        return redirect(url_for('settings.index'))

    mode = request.form.get('mode', 'replace')
    try:
        data = json.load(file)
    except (json.JSONDecodeError, UnicodeDecodeError):
        flash("Invalid JSON file.", 'error')
        return redirect(url_for('settings.index'))

    backup_db('pre_import')
    success, message, _stats = import_layout_json(data, mode=mode)
    if success:
        flash(message, 'success')
    else:
        flash(f"Import failed: {message}", 'error')
    return redirect(url_for('settings.index'))
