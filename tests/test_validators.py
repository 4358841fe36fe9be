"""
tests/test_validators.py — Tests for input validation helpers.
"""

import math

import pytest

from utils.validators import (
    parse_date,
    validate_record,
    validate_plant_type,
    clamp_coordinate,
    clamp_position,
    validate_color,
    category_key_from_name,
)


class TestRecordValidation:

    def test_minimal_record(self):
        record, errors = validate_record({'date': '2025-03-04', 'treatment': ' Magnesium '})
        assert errors == []
        assert record == {
            'date': '2025-03-04',
            'treatment': 'Magnesium',
            'notes': '',
            'ph_level': '',
            'moisture_level': '',
            'next_scheduled_fertilization_date': None,
            'trunk_diameter': None,
        }

    def test_missing_fields(self):
        record, errors = validate_record({})
        assert record is None
        assert errors == ["A date is required.", "Treatment is required."]

    def test_bad_dates(self):
        record, errors = validate_record({
            'date': '03/04/2025',
            'treatment': 'Magnesium',
            'next_scheduled_fertilization_date': 'next week',
        })
        assert record is None
        assert "Date must use the YYYY-MM-DD format." in errors
        assert "Next fertilization date must use the YYYY-MM-DD format." in errors

    def test_numbers_are_kept_as_text(self):
        record, _ = validate_record({
            'date': '2025-03-04', 'treatment': 'Lime', 'ph_level': 6.8, 'moisture_level': 40,
            'trunk_diameter': '12 in', 'next_scheduled_fertilization_date': '2025-06-01',
        })
        assert record['ph_level'] == '6.8'
        assert record['moisture_level'] == '40'
        assert record['trunk_diameter'] == '12 in'
        assert record['next_scheduled_fertilization_date'] == '2025-06-01'

    def test_parse_date(self):
        assert parse_date('2025-03-04').day == 4
        assert parse_date('2025-02-30') is None
        assert parse_date(None) is None


class TestPlantFields:

    def test_plant_type(self):
        assert validate_plant_type('Queen Palm') is None
        assert validate_plant_type(' Q ') == "Plant type must be at least 2 characters."
        assert validate_plant_type('') is not None

    def test_clamp(self):
        assert clamp_position(-1, 50.5) == (0.0, 50.5)
        assert clamp_coordinate('120') == 100.0

    def test_clamp_rejects_nan(self):
        with pytest.raises(ValueError):
            clamp_coordinate(math.nan)
        with pytest.raises(ValueError):
            clamp_coordinate('north')


class TestCategoryFields:

    def test_color(self):
        assert validate_color('#16A34A') is None
        assert validate_color('#16a34a') is None
        assert validate_color('16A34A') is not None
        assert validate_color('') is not None

    def test_key_from_name(self):
        assert category_key_from_name('Queen and King Palms') == 'queenAndKingPalms'
        assert category_key_from_name('Fruit Trees') == 'fruitTrees'
        assert category_key_from_name('Épices') == 'epices'
        assert category_key_from_name('!!!') == ''
