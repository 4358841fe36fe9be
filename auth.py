"""
auth.py — Session authentication for the backyard app.

Two ways in:
- email + password, checked against werkzeug hashes in the users table
- Google Identity Services ID token, verified with Google's tokeninfo endpoint

Only emails listed in ALLOWED_EMAILS, or already present in the users
table, may sign in with Google.
"""

import logging
from functools import wraps

import requests
from flask import session, redirect, url_for, request, jsonify, current_app, g
from werkzeug.security import check_password_hash, generate_password_hash

from database import get_user_by_email, get_user, upsert_user

logger = logging.getLogger(__name__)

GOOGLE_TOKENINFO_URL = 'https://oauth2.googleapis.com/tokeninfo'
GOOGLE_ISSUERS = ('accounts.google.com', 'https://accounts.google.com')


class AuthError(Exception):
    """Sign-in was refused."""


def allowed_emails():
    raw = current_app.config.get('ALLOWED_EMAILS') or ''
    if isinstance(raw, str):
        raw = raw.split(',')
    return {e.strip().lower() for e in raw if e and e.strip()}


def is_email_allowed(email):
    """An email may sign in if it is allow-listed or already has an account."""
    if not email:
        return False
    email = email.strip().lower()
    return email in allowed_emails() or get_user_by_email(email) is not None


def create_user(email, password, display_name=''):
    """Create a password user, or reset the password of an existing one."""
    if not email or '@' not in email:
        raise AuthError("A valid email is required.")
    if not password or len(password) < 8:
        raise AuthError("Password must be at least 8 characters.")
    return upsert_user(email, generate_password_hash(password), display_name, provider='password')


def authenticate(email, password):
    """
    Check email and password.

    Returns:
        The user row, or None if the credentials are wrong.
    """
    user = get_user_by_email(email)
    if not user or not user['password_hash']:
        return None
    if not check_password_hash(user['password_hash'], password or ''):
        return None
    return user


def verify_google_id_token(id_token, timeout_s=10):
    """
    Verify a Google ID token and return its claims.

    Raises:
        AuthError: if Google is not configured or the token is not valid for this app.
    """
    client_id = current_app.config.get('GOOGLE_CLIENT_ID')
    if not client_id:
        raise AuthError("Google sign-in is not configured.")
    if not id_token:
        raise AuthError("Missing Google credential.")

    try:
        resp = requests.get(GOOGLE_TOKENINFO_URL, params={'id_token': id_token}, timeout=timeout_s)
    except requests.RequestException as e:
        raise AuthError(f"Could not reach Google: {e}") from e
    if resp.status_code != 200:
        raise AuthError("Google rejected the credential.")

    claims = resp.json()
    if claims.get('aud') != client_id:
        raise AuthError("Credential was issued for another application.")
    if claims.get('iss') not in GOOGLE_ISSUERS:
        raise AuthError("Credential was not issued by Google.")
    if str(claims.get('email_verified')).lower() != 'true':
        raise AuthError("Google email is not verified.")
    return claims


def sign_in_with_google(id_token):
    """Verify the token, check the allow-list and return the (possibly new) user row."""
    claims = verify_google_id_token(id_token)
    email = claims.get('email', '').lower()
    if not is_email_allowed(email):
        logger.warning("Refused Google sign-in for %s", email)
        raise AuthError(f"{email} is not allowed to use this backyard.")
    user_id = upsert_user(email, display_name=claims.get('name', ''), provider='google')
    return get_user(user_id)


def login_user(user):
    session.clear()
    session['user_id'] = user['id']
    session['email'] = user['email']
    session.permanent = True
    logger.info("Signed in %s", user['email'])


def logout_user():
    email = session.get('email')
    session.clear()
    if email:
        logger.info("Signed out %s", email)


def load_current_user():
    """before_request hook: expose the signed-in user as g.user."""
    g.user = None
    user_id = session.get('user_id')
    if user_id is not None:
        g.user = get_user(user_id)
        if g.user is None:
            session.clear()


def wants_json():
    """True for fetch/XHR and JSON requests, which get JSON errors instead of redirects."""
    return request.is_json or request.headers.get('X-Requested-With') == 'XMLHttpRequest'


def login_required(f):
    """Decorator to require a signed-in user."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if current_app.config.get('LOGIN_DISABLED') or g.get('user') is not None:
            return f(*args, **kwargs)
        if wants_json():
            return jsonify({'success': False, 'error': 'Authentication required'}), 401
        return redirect(url_for('auth.login', next=request.full_path))
    return decorated_function
