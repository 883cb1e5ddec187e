import hmac
import os

from flask import (
    Blueprint,
    current_app,
    flash,
    redirect,
    render_template,
    request,
    session,
    url_for,
)
from werkzeug.security import check_password_hash, generate_password_hash

from downtime_app import db as db_module
from downtime_app.models import AppUser, user_from_row
from downtime_app.roles import Role

auth_bp = Blueprint('auth', __name__)

MIN_PASSWORD_LENGTH = 6

_WERKZEUG_HASH_PREFIXES = ('scrypt:', 'pbkdf2:')


def verify_password(stored: str | None, submitted: str) -> bool:
    """Check ``submitted`` against a stored credential value.

    Values written by this application are Werkzeug hashes.  Rows created by
    hand in the Supabase dashboard hold the password itself and are compared
    directly.
    """

    if not stored:
        return False
    if stored.startswith(_WERKZEUG_HASH_PREFIXES) and stored.count('$') >= 2:
        return check_password_hash(stored, submitted)
    return hmac.compare_digest(stored.encode('utf-8'), submitted.encode('utf-8'))


def validate_new_password(password: str, confirm: str) -> str | None:
    """Return an error message when ``password`` cannot be used."""

    if not password or not confirm:
        return 'Fill in all password fields.'
    if password != confirm:
        return 'The passwords do not match.'
    if len(password) < MIN_PASSWORD_LENGTH:
        return f'The password must be at least {MIN_PASSWORD_LENGTH} characters.'
    return None


def _matches_environment_admin(user_id: str, password: str) -> bool:
    admin_password = os.environ.get('ADMIN_PASSWORD')
    if not admin_password or user_id.lower() != 'admin':
        return False
    return hmac.compare_digest(admin_password.encode('utf-8'), password.encode('utf-8'))


def _fetch_user(user_id: str) -> tuple[dict | None, str | None]:
    supabase = current_app.config.get('SUPABASE')
    if not supabase or not hasattr(supabase, 'table'):
        return None, None

    try:
        return db_module.fetch_app_user_credentials(user_id)
    except Exception as exc:  # pragma: no cover - defensive guard
        current_app.logger.warning("Failed to fetch Supabase credentials: %s", exc)
        return None, str(exc)


def _start_session(user: AppUser) -> None:
    session.pop('pending_user_id', None)
    session['user_id'] = user.user_id
    session['username'] = user.display_name
    session['role'] = user.role.value


@auth_bp.route('/', methods=['GET', 'POST'])
@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    if request.method == 'POST':
        user_id = (request.form.get('username') or '').strip()
        password = request.form.get('password') or ''

        record = None
        error = None
        if user_id:
            record, error = _fetch_user(user_id)

        if record is not None:
            user = user_from_row(record)
            if not user.has_password:
                session['pending_user_id'] = user.user_id
                return redirect(url_for('auth.set_password'))
            if verify_password(user.password_hash, password):
                _start_session(user)
                return redirect(url_for('main.home'))
        elif error:
            current_app.logger.warning("User lookup failed: %s", error)
            flash(
                'User lookup failed; only the built-in admin login is available.',
                'warning',
            )

        if _matches_environment_admin(user_id, password):
            _start_session(AppUser(user_id='admin', role=Role.ADMIN, display_name='Admin'))
            return redirect(url_for('main.home'))
        flash('Invalid credentials.', 'error')
    return render_template('login.html')


@auth_bp.route('/set-password', methods=['GET', 'POST'])
def set_password():
    """First login of a user whose credential row has no password yet."""

    user_id = session.get('pending_user_id')
    if not user_id:
        return redirect(url_for('auth.login'))

    if request.method == 'POST':
        password = request.form.get('password') or ''
        confirm = request.form.get('confirm') or ''
        problem = validate_new_password(password, confirm)
        if problem:
            flash(problem, 'error')
            return render_template('set_password.html', pending_user_id=user_id)

        _, error = db_module.update_app_user_password(
            user_id, generate_password_hash(password)
        )
        if error:
            current_app.logger.error("Saving initial password failed: %s", error)
            flash(error, 'error')
            return render_template('set_password.html', pending_user_id=user_id)

        session.pop('pending_user_id', None)
        flash('Password created. You can now log in.', 'success')
        return redirect(url_for('auth.login'))

    return render_template('set_password.html', pending_user_id=user_id)


@auth_bp.route('/change-password', methods=['POST'])
def change_password():
    user_id = session.get('user_id')
    if not user_id:
        return redirect(url_for('auth.login'))

    current = request.form.get('current') or ''
    password = request.form.get('new') or ''
    confirm = request.form.get('confirm') or ''

    problem = validate_new_password(password, confirm)
    if not current:
        problem = 'Fill in all password fields.'
    if problem:
        flash(problem, 'error')
        return redirect(url_for('main.home'))

    record, error = db_module.fetch_app_user_credentials(user_id)
    if error:
        flash(error, 'error')
    elif record is None:
        flash('This account is configured outside the user table.', 'error')
    elif not verify_password(record.get('password_hash'), current):
        flash('The current password is wrong.', 'error')
    else:
        _, error = db_module.update_app_user_password(
            user_id, generate_password_hash(password)
        )
        if error:
            current_app.logger.error("Password change failed: %s", error)
            flash(error, 'error')
        else:
            flash('Password changed.', 'success')
    return redirect(url_for('main.home'))


@auth_bp.route('/logout')
def logout():
    session.pop('user_id', None)
    session.pop('username', None)
    session.pop('role', None)
    return redirect(url_for('auth.login'))
