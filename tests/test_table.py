"""
tests/test_table.py — Tests for the table view rows: flattening, filtering, sorting.
"""

import pytest

from utils.table import build_rows, filter_rows, sort_rows, format_display_date, NOT_AVAILABLE


def _layout():
    return {'version': 3, 'categories': {
        'palms': {'name': 'Palms', 'color': '#DC2626', 'plants': [
            {'id': 'p1', 'label': 'A', 'type': 'Queen Palm', 'position': {'x': 1, 'y': 2},
             'records': [
                 {'date': '2025-03-04', 'treatment': 'Magnesium',
                  'next_scheduled_fertilization_date': None},
                 {'date': '2025-02-01', 'treatment': 'Palm Gain',
                  'next_scheduled_fertilization_date': '2025-05-01'},
             ]},
            {'id': 'p2', 'label': 'B', 'type': 'King Palm', 'position': {'x': 3, 'y': 4},
             'records': []},
        ]},
        'bamboo': {'name': 'Bamboo', 'color': '#16A34A', 'plants': [
            {'id': 'b1', 'label': 'A', 'type': 'Bamboo', 'position': {'x': 5, 'y': 6},
             'records': [{'date': '2025-01-10', 'treatment': 'Compost',
                          'next_scheduled_fertilization_date': '2025-04-10'}]},
        ]},
    }}


class TestBuildRows:

    def test_summaries(self):
        rows = build_rows(_layout())
        assert [r['id'] for r in rows] == ['p1', 'p2', 'b1']
        first = rows[0]
        assert first['last_treatment'] == 'Magnesium'
        assert first['last_treatment_date'] == '2025-03-04'
        # Newest record without a date falls back to an older one
        assert first['next_fertilization_date'] == '2025-05-01'
        assert first['category_name'] == 'Palms'
        assert first['record_count'] == 2

    def test_plant_without_records(self):
        row = build_rows(_layout())[1]
        assert row['last_treatment'] == NOT_AVAILABLE
        assert row['last_treatment_date'] is None
        assert row['next_fertilization_date'] is None


class TestFilterRows:

    def test_by_category(self):
        rows = filter_rows(build_rows(_layout()), categories=['bamboo'])
        assert [r['id'] for r in rows] == ['b1']

    def test_by_text(self):
        rows = filter_rows(build_rows(_layout()), query='king')
        assert [r['id'] for r in rows] == ['p2']
        rows = filter_rows(build_rows(_layout()), query='COMPOST')
        assert [r['id'] for r in rows] == ['b1']

    def test_no_filters_keeps_everything(self):
        assert len(filter_rows(build_rows(_layout()))) == 3


class TestSortRows:

    def test_ascending_and_descending(self):
        rows = build_rows(_layout())
        assert [r['id'] for r in sort_rows(rows, 'type')] == ['b1', 'p2', 'p1']
        assert [r['id'] for r in sort_rows(rows, 'type', descending=True)] == ['p1', 'p2', 'b1']

    def test_missing_values_last(self):
        rows = build_rows(_layout())
        assert [r['id'] for r in sort_rows(rows, 'last_treatment_date')] == ['b1', 'p1', 'p2']
        assert [r['id'] for r in sort_rows(rows, 'last_treatment', descending=True)] == ['p1', 'b1', 'p2']

    def test_unknown_column(self):
        with pytest.raises(ValueError):
            sort_rows(build_rows(_layout()), 'position')


def test_format_display_date():
    assert format_display_date('2025-03-04') == 'March 4, 2025'
    assert format_display_date(None) == 'N/A'
    assert format_display_date('later') == 'N/A'


def test_search_does_not_span_columns():
    rows = build_rows(_layout())
    # 'A' label followed by 'Queen Palm' type must not match as one string
    assert filter_rows(rows, query='a queen') == []
    assert [r['id'] for r in filter_rows(rows, query='queen')] == ['p1']
