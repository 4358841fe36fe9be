"""
routes/auth.py — Sign-in and sign-out routes.

Provides:
- GET  /login         — Login page (email/password form + Google button)
- POST /login         — Email/password sign-in
- POST /login/google  — Google ID token sign-in (JSON or form)
- POST /logout        — Sign out
"""

from flask import Blueprint, render_template, request, redirect, url_for, flash, jsonify, g, current_app

from auth import (
    AuthError, authenticate, sign_in_with_google, login_user, logout_user
)

auth_bp = Blueprint('auth', __name__)


def _safe_next(target):
    """Only allow relative redirects inside this site."""
    if target and target.startswith('/') and not target.startswith('//'):
        return target
    return url_for('main.index')


@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    """Login page and email/password sign-in."""
    next_url = request.values.get('next', '')
    if request.method == 'GET' and g.get('user') is not None:
        return redirect(_safe_next(next_url))

    if request.method == 'POST':
        email = request.form.get('email', '').strip()
        password = request.form.get('password', '')
        user = authenticate(email, password)
        if user:
            login_user(user)
            return redirect(_safe_next(next_url))
        flash("Invalid email or password.", 'error')
        return render_template(
            'login.html', next_url=next_url, email=email,
            google_client_id=current_app.config.get('GOOGLE_CLIENT_ID')
        ), 401

    return render_template(
        'login.html', next_url=next_url, email='',
        google_client_id=current_app.config.get('GOOGLE_CLIENT_ID')
    )


@auth_bp.route('/login/google', methods=['POST'])
def login_google():
    """Sign in with a Google Identity Services credential."""
    if request.is_json:
        data = request.get_json(silent=True) or {}
    else:
        data = request.form
    credential = data.get('credential', '')

    try:
        user = sign_in_with_google(credential)
    except AuthError as e:
        if request.is_json:
            return jsonify({'success': False, 'error': str(e)}), 401
        flash(str(e), 'error')
        return redirect(url_for('auth.login'))

    login_user(user)
    next_url = _safe_next(data.get('next', ''))
    if request.is_json:
        return jsonify({'success': True, 'redirect': next_url})
    return redirect(next_url)


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """Sign out and return to the login page."""
    logout_user()
    flash("You have been signed out.", 'success')
    return redirect(url_for('auth.login'))
