"""
routes/main.py — Map, table and plant detail pages.

Provides:
- GET /                    — Backyard map with draggable plant markers
- GET /table               — All plants table with category filter, search and sorting
- GET /plant/<plant_id>    — Plant details: record history, record form, AI suggestion
"""

from datetime import date

from flask import Blueprint, render_template, request, redirect, url_for, flash

from auth import login_required
from layout_store import get_layout, find_plant
from utils.table import (
    build_rows, filter_rows, sort_rows, format_display_date, SORTABLE_COLUMNS
)

main_bp = Blueprint('main', __name__)


@main_bp.app_template_filter('display_date')
def display_date_filter(value):
    return format_display_date(value)


@main_bp.route('/')
@login_required
def index():
    """Backyard map: one marker per plant, colored by category."""
    layout = get_layout()
    selected_plant_id = request.args.get('plant', '')
    selected_plant, selected_category = (None, None)
    if selected_plant_id:
        selected_plant, selected_category = find_plant(selected_plant_id, layout)

    return render_template(
        'index.html',
        layout=layout,
        selected_plant=selected_plant,
        selected_category=selected_category,
    )


@main_bp.route('/table')
@login_required
def table_view():
    """Table of all plants. Supports ?category=<key> (repeatable), ?q=, ?sort=, ?order=."""
    layout = get_layout()
    rows = build_rows(layout)

    selected_categories = request.args.getlist('category')
    query = request.args.get('q', '').strip()
    rows = filter_rows(rows, categories=selected_categories, query=query)

    sort = request.args.get('sort', '')
    order = request.args.get('order', 'asc')
    if sort in SORTABLE_COLUMNS:
        rows = sort_rows(rows, sort, descending=(order == 'desc'))
    else:
        sort = ''

    selected_ids = set(request.args.getlist('selected'))

    return render_template(
        'table.html',
        layout=layout,
        rows=rows,
        selected_categories=selected_categories,
        selected_ids=selected_ids,
        query=query,
        sort=sort,
        order=order,
        today=date.today().isoformat(),
    )


@main_bp.route('/plant/<plant_id>')
@login_required
def plant_detail(plant_id):
    """Plant details with its record history."""
    layout = get_layout()
    plant, category = find_plant(plant_id, layout)
    if not plant:
        flash("Plant not found.", 'error')
        return redirect(url_for('main.index'))

    edit_record_id = request.args.get('edit', type=int)
    edit_record = next((r for r in plant['records'] if r['id'] == edit_record_id), None)

    return render_template(
        'plant.html',
        layout=layout,
        plant=plant,
        category=category,
        edit_record=edit_record,
        suggestion=None,
        today=date.today().isoformat(),
    )
