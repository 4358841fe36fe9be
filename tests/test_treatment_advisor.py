"""
tests/test_treatment_advisor.py — Tests for the AI treatment plan helper.

The chat-completions endpoint is replaced by a fake requests.post.
"""

import pytest
import requests

import treatment_advisor
from treatment_advisor import (
    build_suggestion_input,
    build_prompt,
    suggest_treatment_plan,
    get_ai_suggestion,
    SuggestionError,
    MISSING_DATA_MESSAGE,
    NOT_PROVIDED,
)


class FakeResponse:

    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


def _answer(text):
    return FakeResponse({'choices': [{'message': {'content': text}}]})


PLANT = {
    'type': 'Queen Palm',
    'records': [
        {'date': '2025-03-04', 'treatment': 'Magnesium', 'ph_level': '6.2', 'moisture_level': ''},
        {'date': '2025-02-01', 'treatment': 'Palm Gain', 'ph_level': '', 'moisture_level': '40'},
    ],
}


class TestSuggestionInput:

    def test_uses_newest_record(self):
        data, error = build_suggestion_input(PLANT)
        assert error is None
        assert data == {
            'plant_type': 'Queen Palm',
            'ph_level': '6.2',
            'moisture_level': NOT_PROVIDED,
            'treatment': 'Magnesium',
        }

    def test_needs_ph_or_moisture(self):
        plant = {'type': 'Bamboo', 'records': [{'date': '2025-03-04', 'treatment': 'Water'}]}
        assert build_suggestion_input(plant) == (None, MISSING_DATA_MESSAGE)

    def test_needs_a_record(self):
        assert build_suggestion_input({'type': 'Bamboo', 'records': []}) == (None, MISSING_DATA_MESSAGE)

    def test_prompt_lists_condition(self):
        prompt = build_prompt(build_suggestion_input(PLANT)[0])
        assert 'Plant Type: Queen Palm' in prompt
        assert 'PH Level: 6.2' in prompt
        assert 'Moisture Level: Not provided' in prompt
        assert prompt.endswith('Suggested Treatment Plan:')


class TestSuggestTreatmentPlan:

    def test_success(self, ctx, monkeypatch):
        calls = []

        def fake_post(url, json=None, headers=None, timeout=None):
            calls.append((url, json, headers))
            return _answer('  Apply 4 TBSP of magnesium monthly.  ')

        monkeypatch.setattr(treatment_advisor.requests, 'post', fake_post)
        data, _ = build_suggestion_input(PLANT)
        assert suggest_treatment_plan(data) == 'Apply 4 TBSP of magnesium monthly.'

        url, payload, headers = calls[0]
        assert url == treatment_advisor.OPENAI_URL
        assert payload['model'] == 'gpt-4o-mini'
        assert headers['Authorization'] == 'Bearer test-key'
        assert 'Queen Palm' in payload['messages'][-1]['content']

    def test_missing_key(self, ctx, monkeypatch):
        ctx.config['OPENAI_API_KEY'] = ''
        monkeypatch.delenv('OPENAI_API_KEY', raising=False)
        with pytest.raises(SuggestionError):
            suggest_treatment_plan({'plant_type': 'x', 'ph_level': '1',
                                    'moisture_level': '1', 'treatment': 'x'})

    def test_empty_answer(self, ctx, monkeypatch):
        monkeypatch.setattr(treatment_advisor.requests, 'post', lambda *a, **k: _answer(''))
        with pytest.raises(SuggestionError):
            suggest_treatment_plan(build_suggestion_input(PLANT)[0])

    def test_malformed_answer(self, ctx, monkeypatch):
        monkeypatch.setattr(treatment_advisor.requests, 'post',
                            lambda *a, **k: FakeResponse({'choices': []}))
        with pytest.raises(SuggestionError):
            suggest_treatment_plan(build_suggestion_input(PLANT)[0])


class TestGetAiSuggestion:

    def test_wraps_success(self, ctx, monkeypatch):
        monkeypatch.setattr(treatment_advisor.requests, 'post', lambda *a, **k: _answer('Water less.'))
        result = get_ai_suggestion(build_suggestion_input(PLANT)[0])
        assert result == {'success': True, 'data': {'suggested_treatment_plan': 'Water less.'}}

    def test_wraps_http_error(self, ctx, monkeypatch):
        monkeypatch.setattr(treatment_advisor.requests, 'post',
                            lambda *a, **k: FakeResponse({}, status_code=500))
        result = get_ai_suggestion(build_suggestion_input(PLANT)[0])
        assert result['success'] is False
        assert result['error'].startswith('Failed to get AI suggestion: ')
