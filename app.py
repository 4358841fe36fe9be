"""
app.py — Flask entry point for the backyard plant tracker.

Initializes the Flask app from environment variables (overridable with
test_config), registers all route blueprints, calls init_db() and
seed_defaults() on startup, and injects UI strings into template context.

Run: python app.py → localhost:5000
Create a login: flask --app app create-user you@example.com
"""

import os
import json
import logging
from datetime import timedelta

import click
from flask import Flask
from flask_wtf.csrf import CSRFProtect

from auth import AuthError, create_user, load_current_user
from database import init_db, seed_defaults, DEFAULT_DB_PATH
from utils.photos import DEFAULT_MAX_PHOTO_BYTES
from routes.auth import auth_bp
from routes.main import main_bp
from routes.plants import plants_bp
from routes.export import export_bp
from routes.settings import settings_bp

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


def _configure_logging(level_name):
    level = getattr(logging, (level_name or 'INFO').upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )


def create_app(test_config=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_mapping(
        SECRET_KEY=os.environ.get('SECRET_KEY', 'backyard-local-app-secret-key'),
        DATABASE=os.environ.get('BACKYARD_DB_PATH', DEFAULT_DB_PATH),
        BACKUP_DIR=os.environ.get('BACKYARD_BACKUP_DIR', os.path.join(BASE_DIR, 'backups')),
        OPENAI_API_KEY=os.environ.get('OPENAI_API_KEY', ''),
        OPENAI_MODEL=os.environ.get('OPENAI_MODEL', 'gpt-4o-mini'),
        OPENAI_URL=os.environ.get('OPENAI_URL', 'https://api.openai.com/v1/chat/completions'),
        GOOGLE_CLIENT_ID=os.environ.get('GOOGLE_CLIENT_ID', ''),
        ALLOWED_EMAILS=os.environ.get('ALLOWED_EMAILS', ''),
        MAX_PHOTO_BYTES=DEFAULT_MAX_PHOTO_BYTES,
        # Multipart overhead on top of the photo itself
        MAX_CONTENT_LENGTH=DEFAULT_MAX_PHOTO_BYTES + 1024 * 1024,
        LOGIN_DISABLED=False,
        PERMANENT_SESSION_LIFETIME=timedelta(days=30),
        WTF_CSRF_CHECK_DEFAULT=True,
        TEMPLATES_AUTO_RELOAD=True,
        LOG_LEVEL=os.environ.get('LOG_LEVEL', 'INFO'),
    )

    if test_config:
        app.config.update(test_config)

    _configure_logging(app.config['LOG_LEVEL'])

    CSRFProtect(app)

    # Ensure data and backup directories exist
    os.makedirs(os.path.dirname(os.path.abspath(app.config['DATABASE'])), exist_ok=True)
    os.makedirs(app.config['BACKUP_DIR'], exist_ok=True)

    # Initialize database and seed defaults
    with app.app_context():
        init_db()
        seed_defaults()

    app.before_request(load_current_user)

    # Register blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(main_bp)
    app.register_blueprint(plants_bp)
    app.register_blueprint(export_bp)
    app.register_blueprint(settings_bp)

    # Load UI strings
    i18n_path = os.path.join(BASE_DIR, 'i18n', 'en.json')
    with open(i18n_path, 'r', encoding='utf-8') as f:
        i18n = json.load(f)

    @app.context_processor
    def inject_i18n():
        """Inject UI strings into all templates."""
        return {'i18n': i18n}

    @app.cli.command('create-user')
    @click.argument('email')
    @click.option('--name', default='', help='Display name.')
    @click.password_option()
    def create_user_command(email, name, password):
        """Create a password login, or reset the password of an existing one."""
        try:
            create_user(email, password, display_name=name)
        except AuthError as e:
            raise click.ClickException(str(e))
        click.echo(f"User {email} is ready.")

    return app


if __name__ == '__main__':
    app = create_app()
    # Debug mode: enabled by default for development (auto-reload on file changes)
    # Set FLASK_DEBUG=0 to disable for production
    debug = os.environ.get('FLASK_DEBUG', '1') != '0'
    app.run(host='localhost', port=5000, debug=debug)
