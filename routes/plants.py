"""
routes/plants.py — Plant and record API routes.

Every mutating route accepts a JSON body or form data. JSON/XHR callers get
JSON back; form posts flash a message and redirect. Mutations accept an
optional expected_version; a stale version answers 409 with the current
layout so the client can reconcile its optimistic copy.

Provides:
- GET  /plants/layout                         — Layout document (?since=<version>)
- GET  /plants/<id>                           — One plant with its category
- POST /plants/add                            — Add a plant
- POST /plants/<id>/edit                      — Update label/type/category/position
- POST /plants/<id>/position                  — Move a marker
- POST /plants/<id>/delete                    — Delete a plant and its records
- POST /plants/<id>/records/add               — Add a record (optional photo)
- POST /plants/<id>/records/<rid>/edit        — Update a record
- POST /plants/<id>/records/<rid>/delete      — Delete a record
- POST /plants/bulk-record                    — Add one record to several plants
- POST /plants/<id>/suggestion                — AI treatment plan suggestion
"""

import logging
from datetime import date

from flask import (
    Blueprint, request, jsonify, flash, redirect, url_for, render_template, current_app
)

from auth import login_required, wants_json
from layout_store import (
    LayoutConflict, get_layout, get_layout_version, find_plant,
    add_plant, update_plant, update_plant_position, remove_plant,
    add_record, update_record, delete_record, bulk_add_record
)
from treatment_advisor import build_suggestion_input, get_ai_suggestion
from utils.photos import photo_to_data_uri, PhotoError, DEFAULT_MAX_PHOTO_BYTES

logger = logging.getLogger(__name__)

plants_bp = Blueprint('plants', __name__, url_prefix='/plants')


# ========================================
# Helpers
# ========================================

class InvalidPayload(Exception):
    """The JSON body is not an object."""


def _payload():
    if request.is_json:
        data = request.get_json(silent=True)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise InvalidPayload("Request body must be a JSON object.")
        return data
    return request.form.to_dict()


def _expected_version(data):
    """Parse expected_version. Returns (version or None, error)."""
    raw = data.get('expected_version')
    if raw is None or raw == '':
        return None, None
    try:
        return int(raw), None
    except (TypeError, ValueError):
        return None, "expected_version must be an integer."


def _respond(success, error=None, status=None, redirect_to=None, message=None, **extra):
    """Answer a mutation in JSON or with flash + redirect."""
    if wants_json():
        if success:
            body = {'success': True, 'version': get_layout_version()}
            body.update(extra)
            return jsonify(body), status or 200
        return jsonify({'success': False, 'error': error}), status or 400

    if success:
        if message:
            flash(message, 'success')
    else:
        flash(error, 'error')
    return redirect(redirect_to or url_for('main.index'))


def _photo_from_request(data):
    """Photo as a data URI from an uploaded file or a JSON photo_data_uri field."""
    upload = request.files.get('photo')
    if upload is not None and upload.filename:
        max_bytes = current_app.config.get('MAX_PHOTO_BYTES', DEFAULT_MAX_PHOTO_BYTES)
        return photo_to_data_uri(upload, max_bytes=max_bytes)
    uri = data.get('photo_data_uri')
    if uri:
        if not isinstance(uri, str) or not uri.startswith('data:image/'):
            raise PhotoError("Photo must be an image data URI.")
        return uri
    return None


def _truthy(value):
    return str(value).lower() in ('1', 'true', 'on', 'yes')


@plants_bp.errorhandler(InvalidPayload)
def handle_invalid_payload(e):
    return _respond(False, str(e))


@plants_bp.errorhandler(LayoutConflict)
def handle_conflict(e):
    """Stale client copy: hand back the current layout."""
    logger.warning("Rejected stale write to %s: %s", request.path, e)
    if wants_json():
        return jsonify({
            'success': False,
            'conflict': True,
            'error': "The backyard was changed by someone else. Reload and try again.",
            'layout': get_layout(),
        }), 409
    flash("The backyard was changed by someone else. Please review and try again.", 'warning')
    return redirect(url_for('main.index'))


# ========================================
# Reads
# ========================================

@plants_bp.route('/layout')
@login_required
def layout():
    """Whole layout. With ?since=<version>, only reports whether it changed."""
    since = request.args.get('since', type=int)
    if since is not None:
        version = get_layout_version()
        if version == since:
            return jsonify({'success': True, 'changed': False, 'version': version})
    current = get_layout()
    return jsonify({'success': True, 'changed': True, 'version': current['version'],
                    'layout': current})


@plants_bp.route('/<plant_id>')
@login_required
def get_plant_detail(plant_id):
    """One plant with its records and category (JSON API)."""
    plant, category = find_plant(plant_id)
    if not plant:
        return jsonify({'success': False, 'error': 'Plant not found'}), 404
    return jsonify({'success': True, 'plant': plant, 'category': category})


# ========================================
# Plant CRUD
# ========================================

@plants_bp.route('/add', methods=['POST'])
@login_required
def add():
    """Add a plant to a category; it gets the next free label."""
    data = _payload()
    version, error = _expected_version(data)
    if error:
        return _respond(False, error)

    position = None
    pos = data.get('position')
    if isinstance(pos, dict):
        position = (pos.get('x'), pos.get('y'))
    elif data.get('x') not in (None, '') and data.get('y') not in (None, ''):
        position = (data.get('x'), data.get('y'))

    plant_id, error = add_plant(
        str(data.get('category_key') or data.get('category') or '').strip(),
        str(data.get('plant_type') or '').strip(),
        position=position,
        expected_version=version,
    )
    if error:
        return _respond(False, error, redirect_to=url_for('main.index'))

    plant, category = find_plant(plant_id)
    return _respond(
        True, status=201,
        redirect_to=url_for('main.index', plant=plant_id),
        message=f"Added {plant['type']} ({plant['label']}) to {category['name']}.",
        plant=plant,
    )


@plants_bp.route('/<plant_id>/edit', methods=['POST'])
@login_required
def edit(plant_id):
    """Update a plant's label, type, category or position."""
    data = _payload()
    version, error = _expected_version(data)
    if error:
        return _respond(False, error)

    updates = {}
    for key in ('label', 'type', 'category_key'):
        if data.get(key) not in (None, ''):
            updates[key] = data[key]
    if isinstance(data.get('position'), dict):
        updates['position'] = data['position']

    detail_url = url_for('main.plant_detail', plant_id=plant_id)
    if not updates:
        return _respond(False, "Nothing to update.", redirect_to=detail_url)

    success, error = update_plant(plant_id, updates, expected_version=version)
    if not success:
        status = 404 if error == "Plant not found." else 400
        return _respond(False, error, status=status, redirect_to=detail_url)

    plant, _ = find_plant(plant_id)
    return _respond(True, redirect_to=detail_url, message="Plant updated.", plant=plant)


@plants_bp.route('/<plant_id>/position', methods=['POST'])
@login_required
def move(plant_id):
    """Move a marker; coordinates are clamped to the 0-100 map."""
    data = _payload()
    version, error = _expected_version(data)
    if error:
        return _respond(False, error)

    success, error = update_plant_position(
        plant_id, data.get('x'), data.get('y'), expected_version=version
    )
    if not success:
        status = 404 if error == "Plant not found." else 400
        return _respond(False, error, status=status)

    plant, _ = find_plant(plant_id)
    return _respond(True, redirect_to=url_for('main.index'), position=plant['position'])


@plants_bp.route('/<plant_id>/delete', methods=['POST'])
@login_required
def delete(plant_id):
    """Delete a plant and all its records."""
    data = _payload()
    version, error = _expected_version(data)
    if error:
        return _respond(False, error)

    success, error = remove_plant(plant_id, expected_version=version)
    if not success:
        return _respond(False, error, status=404)
    return _respond(True, message="Plant deleted.")


# ========================================
# Records
# ========================================

@plants_bp.route('/<plant_id>/records/add', methods=['POST'])
@login_required
def record_add(plant_id):
    """Add a record to one plant."""
    data = _payload()
    detail_url = url_for('main.plant_detail', plant_id=plant_id)
    version, error = _expected_version(data)
    if error:
        return _respond(False, error, redirect_to=detail_url)

    try:
        photo = _photo_from_request(data)
    except PhotoError as e:
        return _respond(False, str(e), redirect_to=detail_url)

    record_id, error = add_record(plant_id, data, photo_data_uri=photo, expected_version=version)
    if error:
        status = 404 if error.startswith("Plant(s) not found") else 400
        return _respond(False, error, status=status, redirect_to=detail_url)

    return _respond(True, status=201, redirect_to=detail_url,
                    message="Record added.", record_id=record_id)


@plants_bp.route('/<plant_id>/records/<int:record_id>/edit', methods=['POST'])
@login_required
def record_edit(plant_id, record_id):
    """Update a record. The stored photo is kept unless replaced or removed."""
    data = _payload()
    detail_url = url_for('main.plant_detail', plant_id=plant_id)
    version, error = _expected_version(data)
    if error:
        return _respond(False, error, redirect_to=detail_url)

    try:
        photo = _photo_from_request(data)
    except PhotoError as e:
        return _respond(False, str(e), redirect_to=detail_url)

    success, error = update_record(
        plant_id, record_id, data,
        photo_data_uri=photo,
        remove_photo=_truthy(data.get('remove_photo', '')),
        expected_version=version,
    )
    if not success:
        status = 404 if error == "Record not found." else 400
        return _respond(False, error, status=status, redirect_to=detail_url)
    return _respond(True, redirect_to=detail_url, message="Record updated.")


@plants_bp.route('/<plant_id>/records/<int:record_id>/delete', methods=['POST'])
@login_required
def record_delete(plant_id, record_id):
    """Delete a record."""
    data = _payload()
    detail_url = url_for('main.plant_detail', plant_id=plant_id)
    version, error = _expected_version(data)
    if error:
        return _respond(False, error, redirect_to=detail_url)

    success, error = delete_record(plant_id, record_id, expected_version=version)
    if not success:
        return _respond(False, error, status=404, redirect_to=detail_url)
    return _respond(True, redirect_to=detail_url, message="Record deleted.")


@plants_bp.route('/bulk-record', methods=['POST'])
@login_required
def bulk_record():
    """Add the same record to every selected plant."""
    if request.is_json:
        data = _payload()
        plant_ids = data.get('plant_ids') or []
        if not isinstance(plant_ids, list):
            return _respond(False, "plant_ids must be a list.")
    else:
        data = request.form.to_dict()
        plant_ids = request.form.getlist('plant_ids')

    table_url = url_for('main.table_view', selected=plant_ids)
    version, error = _expected_version(data)
    if error:
        return _respond(False, error, redirect_to=table_url)

    try:
        photo = _photo_from_request(data)
    except PhotoError as e:
        return _respond(False, str(e), redirect_to=table_url)

    record_ids, error = bulk_add_record(
        [str(pid) for pid in plant_ids], data, photo_data_uri=photo, expected_version=version
    )
    if error:
        return _respond(False, error, redirect_to=table_url)

    return _respond(True, status=201, redirect_to=url_for('main.table_view'),
                    message=f"Record added to {len(record_ids)} plants.",
                    record_ids=record_ids)


# ========================================
# AI suggestion
# ========================================

@plants_bp.route('/<plant_id>/suggestion', methods=['POST'])
@login_required
def suggestion(plant_id):
    """Suggest a treatment plan from the plant's newest record."""
    current_layout = get_layout()
    plant, category = find_plant(plant_id, current_layout)
    if not plant:
        if wants_json():
            return jsonify({'success': False, 'error': 'Plant not found'}), 404
        flash("Plant not found.", 'error')
        return redirect(url_for('main.index'))

    suggestion_input, error = build_suggestion_input(plant)
    if error:
        result = {'success': False, 'error': error}
        status = 400
    else:
        result = get_ai_suggestion(suggestion_input)
        status = 200 if result['success'] else 502

    if wants_json():
        return jsonify(result), status

    if not result['success']:
        flash(result['error'], 'error')
        return redirect(url_for('main.plant_detail', plant_id=plant_id))

    return render_template(
        'plant.html',
        layout=current_layout,
        plant=plant,
        category=category,
        edit_record=None,
        suggestion=result['data']['suggested_treatment_plan'],
        today=date.today().isoformat(),
    )
