"""
treatment_advisor.py — LLM-backed treatment plan suggestions.

Builds a plant-care prompt from a plant's newest record and asks an
OpenAI-compatible chat-completions endpoint for a treatment plan.

Configuration (Flask config, falling back to environment variables):
- OPENAI_API_KEY — required
- OPENAI_MODEL   — default gpt-4o-mini
- OPENAI_URL     — default https://api.openai.com/v1/chat/completions
"""

import os
import logging
from typing import Optional, Dict, Any, Tuple

import requests
from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-4o-mini"
NOT_PROVIDED = "Not provided"
MISSING_DATA_MESSAGE = "Please add a record with pH or moisture level to get an AI suggestion."

SYSTEM_PROMPT = (
    "You are an expert in plant care. Based on the plant's current condition, "
    "suggest a treatment plan. Be practical and concise, and mention amounts and "
    "timing where they matter."
)


class SuggestionError(Exception):
    """The suggestion service could not produce a treatment plan."""


def _setting(key: str, default: str = '') -> str:
    if has_app_context() and current_app.config.get(key):
        value = current_app.config[key]
    else:
        value = os.getenv(key, default)
    return (value or default).strip().strip("\"'").strip()


def build_suggestion_input(plant: Dict[str, Any]) -> Tuple[Optional[Dict[str, str]], Optional[str]]:
    """
    Build the suggestion input from a plant's newest record.

    Returns:
        Tuple of (input, error_message). The newest record must carry a pH or
        moisture level; whichever is missing becomes "Not provided".
    """
    records = plant.get('records') or []
    latest = records[0] if records else None
    if not latest or (not latest.get('ph_level') and not latest.get('moisture_level')):
        return None, MISSING_DATA_MESSAGE

    return {
        'plant_type': plant.get('type', ''),
        'ph_level': latest.get('ph_level') or NOT_PROVIDED,
        'moisture_level': latest.get('moisture_level') or NOT_PROVIDED,
        'treatment': latest.get('treatment', ''),
    }, None


def build_prompt(suggestion_input: Dict[str, str]) -> str:
    return (
        f"Plant Type: {suggestion_input['plant_type']}\n"
        f"PH Level: {suggestion_input['ph_level']}\n"
        f"Current Treatment: {suggestion_input['treatment']}\n"
        f"Moisture Level: {suggestion_input['moisture_level']}\n"
        "\n"
        "Suggested Treatment Plan:"
    )


def suggest_treatment_plan(suggestion_input: Dict[str, str], timeout_s: int = 30) -> str:
    """
    Ask the language model for a treatment plan.

    Raises:
        SuggestionError: if the API key is missing, the request fails or the
            response has no text.
    """
    api_key = _setting('OPENAI_API_KEY')
    if not api_key:
        raise SuggestionError("OPENAI_API_KEY is not set.")

    payload = {
        "model": _setting('OPENAI_MODEL', DEFAULT_MODEL),
        "temperature": 0.4,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(suggestion_input)},
        ],
    }
    headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}

    try:
        resp = requests.post(_setting('OPENAI_URL', OPENAI_URL), json=payload,
                             headers=headers, timeout=timeout_s)
        resp.raise_for_status()
        data = resp.json()
        text = data["choices"][0]["message"]["content"]
    except requests.RequestException as e:
        raise SuggestionError(f"Request failed: {e}") from e
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise SuggestionError("Unexpected response from the suggestion service.") from e

    text = (text or '').strip()
    if not text:
        raise SuggestionError("The suggestion service returned an empty answer.")
    return text


def get_ai_suggestion(suggestion_input: Dict[str, str]) -> Dict[str, Any]:
    """
    Suggest a treatment plan, reporting failures instead of raising.

    Returns:
        {'success': True, 'data': {'suggested_treatment_plan': ...}} or
        {'success': False, 'error': 'Failed to get AI suggestion: ...'}
    """
    try:
        plan = suggest_treatment_plan(suggestion_input)
        return {'success': True, 'data': {'suggested_treatment_plan': plan}}
    except SuggestionError as e:
        logger.error("Treatment suggestion failed for %s: %s",
                     suggestion_input.get('plant_type'), e)
        return {'success': False, 'error': f"Failed to get AI suggestion: {e}"}
