"""
tests/conftest.py — Shared fixtures.

Every test gets its own app with a fresh, seeded SQLite database and
backup directory under pytest's tmp_path.
"""

import pytest

from app import create_app


@pytest.fixture
def app(tmp_path):
    """App with login and CSRF checks disabled, on a temporary database."""
    app = create_app({
        'TESTING': True,
        'DATABASE': str(tmp_path / 'backyard.db'),
        'BACKUP_DIR': str(tmp_path / 'backups'),
        'SECRET_KEY': 'dev-key-for-testing',
        'WTF_CSRF_ENABLED': False,
        'LOGIN_DISABLED': True,
        'OPENAI_API_KEY': 'test-key',
    })
    yield app


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def ctx(app):
    """Application context for calling the store functions directly."""
    with app.app_context():
        yield app
