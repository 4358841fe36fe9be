"""
utils/export.py — Excel export generation using openpyxl.

Generates an .xlsx file with two sheets:
- Plants: one row per plant (table view columns), category cell in the category color.
- Records: one row per record, newest first within each plant.
"""

from io import BytesIO
from datetime import date

from openpyxl.styles import Font, PatternFill, Alignment, Border, Side

from layout_store import get_layout
from utils.table import build_rows, format_display_date


HEADER_FONT = Font(name='Calibri', bold=True, color='FFFFFF', size=11)
HEADER_FILL = PatternFill(start_color='166534', end_color='166534', fill_type='solid')
HEADER_ALIGNMENT = Alignment(horizontal='center', vertical='center', wrap_text=True)
HEADER_BORDER = Border(
    bottom=Side(style='thin', color='14532D'),
    right=Side(style='thin', color='E2E8F0'),
)
CELL_BORDER = Border(
    bottom=Side(style='thin', color='E2E8F0'),
    right=Side(style='thin', color='E2E8F0'),
)

PLANT_COLUMNS = [
    ('Label', 10), ('Type', 20), ('Category', 22), ('Last Treatment Date', 20),
    ('Last Treatment', 24), ('Next Fertilization', 20), ('Records', 10),
]
RECORD_COLUMNS = [
    ('Plant', 10), ('Type', 20), ('Category', 22), ('Date', 12), ('Treatment', 24),
    ('Notes', 30), ('pH', 8), ('Moisture %', 12), ('Next Fertilization', 18),
    ('Trunk Diameter', 14), ('Photo', 8),
]


def _category_fill(color):
    hex_color = (color or '').lstrip('#').upper()
    if len(hex_color) != 6:
        return None
    return PatternFill(start_color=hex_color, end_color=hex_color, fill_type='solid')


def _write_header(ws, columns):
    for col_idx, (col_name, width) in enumerate(columns, 1):
        cell = ws.cell(row=1, column=col_idx, value=col_name)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGNMENT
        cell.border = HEADER_BORDER
        ws.column_dimensions[cell.column_letter].width = width
    # Freeze header row
    ws.freeze_panes = 'A2'


def _write_row(ws, row_idx, values):
    for col_idx, value in enumerate(values, 1):
        ws.cell(row=row_idx, column=col_idx, value=value).border = CELL_BORDER


def _build_plants_sheet(ws, rows):
    _write_header(ws, PLANT_COLUMNS)
    for row_idx, row in enumerate(rows, 2):
        _write_row(ws, row_idx, [
            row['label'],
            row['type'],
            row['category_name'],
            format_display_date(row['last_treatment_date']),
            row['last_treatment'],
            format_display_date(row['next_fertilization_date']),
            row['record_count'],
        ])
        fill = _category_fill(row['category_color'])
        if fill:
            cat_cell = ws.cell(row=row_idx, column=3)
            cat_cell.fill = fill
            cat_cell.font = Font(color='FFFFFF', bold=True)


def _build_records_sheet(ws, layout):
    _write_header(ws, RECORD_COLUMNS)
    row_idx = 2
    for category in layout['categories'].values():
        for plant in category['plants']:
            for record in plant['records']:
                _write_row(ws, row_idx, [
                    plant['label'],
                    plant['type'],
                    category['name'],
                    record['date'],
                    record['treatment'],
                    record['notes'],
                    record['ph_level'],
                    record['moisture_level'],
                    record.get('next_scheduled_fertilization_date') or '',
                    record.get('trunk_diameter') or '',
                    'yes' if record.get('photo_data_uri') else '',
                ])
                row_idx += 1


def generate_excel(rows=None):
    """Generate the backyard workbook.

    Args:
        rows: Optional pre-filtered/sorted table rows for the Plants sheet;
              defaults to every plant in display order.

    Returns:
        (BytesIO buffer, filename)
    """
    import openpyxl

    layout = get_layout()
    if rows is None:
        rows = build_rows(layout)

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = 'Plants'
    _build_plants_sheet(ws, rows)
    _build_records_sheet(wb.create_sheet(title='Records'), layout)

    buffer = BytesIO()
    wb.save(buffer)
    buffer.seek(0)

    filename = f"backyard_{date.today():%Y%m%d}.xlsx"
    return buffer, filename
