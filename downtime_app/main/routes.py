from flask import (
    Blueprint,
    render_template,
    session,
    redirect,
    url_for,
    abort,
    request,
    jsonify,
    current_app,
    send_file,
    flash,
)
from functools import wraps
import base64
import io
from pathlib import Path
from datetime import datetime, date, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from werkzeug.security import generate_password_hash
try:
    import matplotlib
    matplotlib.use('Agg')
    import matplotlib.pyplot as plt
except Exception:  # pragma: no cover
    matplotlib = None
    plt = None

from downtime_app.db import (
    delete_app_user,
    delete_downtime,
    delete_machine,
    fetch_app_user_credentials,
    fetch_app_users,
    fetch_downtimes,
    fetch_machines,
    insert_app_user,
    insert_downtime,
    insert_machine,
    update_downtime,
    update_machine,
)
from downtime_app.main.exports import (
    build_day_csv,
    build_backup_csv,
    build_posts_csv,
    build_week_csv,
    format_clock,
)
from downtime_app.main.pdf_utils import PdfGenerationError, render_html_to_pdf
from downtime_app.models import (
    MARKER_MACHINE_NAME,
    default_display_name,
    event_from_row,
    millis_to_iso,
    minutes_between,
    to_millis,
    user_from_row,
)
from downtime_app.periods import (
    compute_production_periods,
    events_on,
    local_datetime,
    summarize_periods,
)
from downtime_app.reports import (
    REPORT_KINDS,
    available_weeks,
    build_period_report,
    compute_week_periods,
    compute_week_stats,
    summarize_day,
    summarize_history,
    summarize_machines,
)
from downtime_app.roles import PROTECTED_USER_IDS, ROLE_LABELS, Role
from downtime_app.state import (
    StateLoaded,
    StateLoadFailed,
    TrackerState,
    active_event_for_machine,
    active_events,
    current_post,
    find_event,
    find_machine,
    post_listing,
    production_periods,
    reduce,
)

main_bp = Blueprint('main', __name__)

NEW_MACHINE_COLOR = 'bg-blue-500'


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _local_timezone():
    """Return the timezone of the shop floor.

    Uses the configured ``LOCAL_TIMEZONE`` and falls back to UTC if the zone
    cannot be loaded.
    """

    tz_name = current_app.config.get("LOCAL_TIMEZONE") or "Europe/Oslo"
    try:
        return ZoneInfo(tz_name)
    except ZoneInfoNotFoundError:
        current_app.logger.warning(
            "Timezone %s unavailable; falling back to UTC", tz_name
        )
    except Exception as exc:  # pragma: no cover - unexpected zoneinfo failures
        current_app.logger.warning(
            "Error loading timezone %s: %s; falling back to UTC", tz_name, exc
        )
    return timezone.utc


def _load_report_css() -> str:
    """Load the shared report stylesheet so it can be inlined."""

    static_folder = current_app.static_folder or ''
    css_path = Path(static_folder) / 'css' / 'report.css'
    try:
        return css_path.read_text(encoding='utf-8')
    except OSError as exc:  # pragma: no cover - log & fall back to default styling
        current_app.logger.warning("Unable to load report CSS: %s", exc)
    return ""


def _parse_date(val):
    if not val:
        return None

    if isinstance(val, datetime):
        return val.date()

    if isinstance(val, date):
        return val

    text = str(val).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def _request_payload() -> dict:
    body = request.get_json(silent=True)
    if isinstance(body, dict):
        return body
    return request.form.to_dict()


def _load_state(now_ms: int) -> TrackerState:
    """Fetch machines, users and the full stoppage log into a fresh state."""

    state = TrackerState()
    machines, error = fetch_machines()
    users = rows = None
    if not error:
        users, error = fetch_app_users()
    if not error:
        rows, error = fetch_downtimes()
    if error:
        current_app.logger.warning("Loading tracker data failed: %s", error)
        return reduce(state, StateLoadFailed(error=error, loaded_at=now_ms))
    return reduce(
        state,
        StateLoaded(
            machine_rows=machines or [],
            user_rows=users or [],
            downtime_rows=rows or [],
            loaded_at=now_ms,
        ),
    )


def _require_state(now_ms: int) -> TrackerState:
    state = _load_state(now_ms)
    if state.error:
        abort(500, description=state.error)
    return state


def _current_role() -> Role:
    return Role.parse(session.get('role'), session.get('user_id'))


def _role_required(allowed_roles: frozenset):
    def decorator(view):
        @wraps(view)
        def wrapped_view(**kwargs):
            if 'user_id' not in session:
                if request.path.startswith('/api/'):
                    abort(401, description='Authentication required')
                return redirect(url_for('auth.login'))
            if _current_role() not in allowed_roles:
                abort(403)
            return view(**kwargs)

        return wrapped_view

    return decorator


login_required = _role_required(frozenset(Role))
recorder_required = _role_required(frozenset(role for role in Role if role.can_record))
manager_required = _role_required(frozenset(role for role in Role if role.can_edit))
admin_required = _role_required(frozenset(role for role in Role if role.can_administer))


def _production_payload(state: TrackerState, now_ms: int, tz) -> dict:
    periods = production_periods(state, now_ms, tz)
    return {
        'date': local_datetime(now_ms, tz).date().isoformat(),
        'periods': [period.to_dict() for period in periods],
        'summary': summarize_periods(periods),
        'current_post_number': current_post(state, now_ms, tz),
    }


def _operator_dashboard(state: TrackerState, now_ms: int, tz) -> dict:
    today = local_datetime(now_ms, tz).date()
    return {
        'machines': [machine.to_dict() for machine in state.machines],
        'current_post_number': current_post(state, now_ms, tz),
        'today': [
            event.to_dict()
            for event in events_on(state.events, today, tz)
            if not event.active
        ],
    }


def _viewer_dashboard(state: TrackerState, now_ms: int, tz) -> dict:
    return {'production': _production_payload(state, now_ms, tz)}


def _manager_dashboard(state: TrackerState, now_ms: int, tz) -> dict:
    return {
        'production': _production_payload(state, now_ms, tz),
        'posts': [listing.to_dict() for listing in post_listing(state, now_ms, tz)],
        'week': compute_week_stats(state.events, now_ms, tz).to_dict(),
    }


def _admin_dashboard(state: TrackerState, now_ms: int, tz) -> dict:
    payload = _manager_dashboard(state, now_ms, tz)
    payload['machines'] = [machine.to_dict() for machine in state.machines]
    payload['users'] = [user.to_dict() for user in state.users]
    return payload


DASHBOARD_BUILDERS = {
    Role.OPERATOR: _operator_dashboard,
    Role.VIEWER: _viewer_dashboard,
    Role.MANAGER: _manager_dashboard,
    Role.ADMIN: _admin_dashboard,
}


def build_dashboard(role: Role, state: TrackerState, now_ms: int, tz) -> dict:
    """Return the dashboard data for ``role``."""

    payload = {
        'kind': role.value,
        'refresh_seconds': role.refresh_seconds,
        'error': state.error,
        'generated_at': now_ms,
        'active': [event.to_dict() for event in active_events(state)],
    }
    payload.update(DASHBOARD_BUILDERS[role](state, now_ms, tz))
    return payload


@main_bp.route('/home')
@login_required
def home():
    now_ms = to_millis(_now())
    tz = _local_timezone()
    state = _load_state(now_ms)
    if state.error:
        flash(state.error, 'error')
    role = _current_role()
    return render_template(
        'home.html',
        dashboard=build_dashboard(role, state, now_ms, tz),
        role_label=ROLE_LABELS[role],
        marker_machine=MARKER_MACHINE_NAME,
    )


@main_bp.route('/api/dashboard', methods=['GET'])
@login_required
def api_dashboard():
    now_ms = to_millis(_now())
    tz = _local_timezone()
    state = _load_state(now_ms)
    return jsonify(build_dashboard(_current_role(), state, now_ms, tz))


@main_bp.route('/api/machines', methods=['GET'])
@login_required
def get_machines():
    now_ms = to_millis(_now())
    state = _require_state(now_ms)
    return jsonify([machine.to_dict() for machine in state.machines])


@main_bp.route('/api/downtimes', methods=['GET'])
@manager_required
def get_downtimes():
    """Stoppage history, newest first, optionally limited to a date range."""

    now_ms = to_millis(_now())
    tz = _local_timezone()
    state = _require_state(now_ms)
    date_from = _parse_date(request.args.get('from'))
    date_to = _parse_date(request.args.get('to'))

    history = []
    for event in reversed(state.events):
        day = local_datetime(event.start_time, tz).date()
        if date_from and day < date_from:
            continue
        if date_to and day > date_to:
            continue
        history.append(event.to_dict())
    return jsonify(history)


def _enrich(row: dict, state: TrackerState):
    machines = {machine.id: machine for machine in state.machines}
    users = {user.user_id: user for user in state.users}
    return event_from_row(row, machines, users)


@main_bp.route('/api/downtimes', methods=['POST'])
@recorder_required
def start_downtime():
    body = _request_payload()
    machine_id = str(body.get('machine_id') or '').strip()
    if not machine_id:
        return jsonify({'message': 'Select a machine to stop.'}), 400

    now_ms = to_millis(_now())
    tz = _local_timezone()
    state = _require_state(now_ms)

    machine = find_machine(state, machine_id)
    if machine is None:
        return jsonify({'message': f"Unknown machine '{machine_id}'."}), 404
    if active_event_for_machine(state, machine.id) is not None:
        return jsonify({'message': f"{machine.name} already has a running stoppage."}), 409

    record = {
        'machine_id': machine.id,
        'operator_id': session.get('user_id'),
        'start_time': millis_to_iso(now_ms),
        'end_time': None,
        'duration': 0,
        'comment': '',
        'date': local_datetime(now_ms, tz).date().isoformat(),
    }
    row, error = insert_downtime(record)
    if error:
        current_app.logger.error("Starting downtime failed: %s", error)
        abort(500, description=error)
    return jsonify(_enrich(row or record, state).to_dict()), 201


@main_bp.route('/api/downtimes/<downtime_id>/stop', methods=['POST'])
@recorder_required
def stop_downtime(downtime_id):
    body = _request_payload()
    comment = str(body.get('comment') or '').strip()
    post_number = str(body.get('post_number') or '').strip()

    now_ms = to_millis(_now())
    tz = _local_timezone()
    state = _require_state(now_ms)

    event = find_event(state, downtime_id)
    if event is None:
        return jsonify({'message': 'Stoppage not found.'}), 404
    if not event.active:
        return jsonify({'message': 'This stoppage has already been stopped.'}), 409
    if not comment:
        return jsonify({'message': 'Enter a reason for the stoppage.'}), 400
    if event.on_marker_machine:
        if not post_number:
            return jsonify({'message': 'Enter the post number of the new lot.'}), 400
    else:
        post_number = current_post(state, now_ms, tz)

    updates = {
        'end_time': millis_to_iso(now_ms),
        'duration': max(0, minutes_between(event.start_time, now_ms)),
        'comment': comment,
        'post_number': post_number or None,
        'date': local_datetime(now_ms, tz).date().isoformat(),
    }
    row, error = update_downtime(event.id, updates)
    if error:
        current_app.logger.error("Stopping downtime %s failed: %s", event.id, error)
        abort(500, description=error)
    if row is None:
        return jsonify({'message': 'Stoppage not found.'}), 404
    return jsonify(_enrich(row, state).to_dict())


@main_bp.route('/api/downtimes/<downtime_id>', methods=['PATCH'])
@manager_required
def edit_downtime(downtime_id):
    body = _request_payload()
    now_ms = to_millis(_now())
    state = _require_state(now_ms)

    event = find_event(state, downtime_id)
    if event is None:
        return jsonify({'message': 'Stoppage not found.'}), 404

    comment = str(body.get('comment', event.comment) or '').strip()
    if not comment:
        return jsonify({'message': 'Enter a reason for the stoppage.'}), 400

    raw_duration = body.get('duration_minutes', body.get('duration', event.duration_minutes))
    try:
        duration = int(raw_duration)
    except (TypeError, ValueError):
        duration = 0
    if duration <= 0:
        return jsonify({'message': 'Enter a valid duration in minutes.'}), 400

    post_number = event.post_number
    if event.on_marker_machine:
        post_number = str(body.get('post_number', event.post_number) or '').strip()
        if not post_number:
            return jsonify({'message': 'Enter the post number of the new lot.'}), 400

    updates = {
        'comment': comment,
        'duration': duration,
        'post_number': post_number,
        'photo_url': body.get('photo_url', event.photo_url),
    }
    row, error = update_downtime(event.id, updates)
    if error:
        current_app.logger.error("Editing downtime %s failed: %s", event.id, error)
        abort(500, description=error)
    if row is None:
        return jsonify({'message': 'Stoppage not found.'}), 404
    return jsonify(_enrich(row, state).to_dict())


@main_bp.route('/api/downtimes/<downtime_id>', methods=['DELETE'])
@manager_required
def remove_downtime(downtime_id):
    now_ms = to_millis(_now())
    state = _require_state(now_ms)

    event = find_event(state, downtime_id)
    if event is None:
        return jsonify({'message': 'Stoppage not found.'}), 404

    deleted, error = delete_downtime(event.id)
    if error:
        current_app.logger.error("Deleting downtime %s failed: %s", event.id, error)
        abort(500, description=error)
    return jsonify({'deleted': len(deleted or [])})


@main_bp.route('/api/reports/production', methods=['GET'])
@login_required
def api_production_report():
    """Today's production periods with efficiency."""

    now_ms = to_millis(_now())
    tz = _local_timezone()
    state = _load_state(now_ms)
    payload = _production_payload(state, now_ms, tz)
    payload['error'] = state.error
    return jsonify(payload)


@main_bp.route('/api/reports/posts', methods=['GET'])
@manager_required
def api_post_report():
    now_ms = to_millis(_now())
    tz = _local_timezone()
    state = _load_state(now_ms)
    listings = post_listing(state, now_ms, tz)
    return jsonify(
        {
            'date': local_datetime(now_ms, tz).date().isoformat(),
            'posts': [listing.to_dict() for listing in listings],
            'total_minutes': sum(listing.total_minutes for listing in listings),
            'count': sum(len(listing.downtimes) for listing in listings),
            'error': state.error,
        }
    )


@main_bp.route('/api/reports/week', methods=['GET'])
@manager_required
def api_week_report():
    now_ms = to_millis(_now())
    tz = _local_timezone()
    state = _load_state(now_ms)
    week_start = _parse_date(request.args.get('week'))
    payload = compute_week_stats(state.events, now_ms, tz, week_start).to_dict()
    payload['periods_by_day'] = [
        day.to_dict()
        for day in compute_week_periods(state.events, now_ms, tz, week_start)
    ]
    payload['available_weeks'] = [
        monday.isoformat() for monday in available_weeks(state.events, now_ms, tz)
    ]
    payload['error'] = state.error
    return jsonify(payload)


@main_bp.route('/api/reports/stats', methods=['GET'])
@manager_required
def api_history_stats():
    now_ms = to_millis(_now())
    tz = _local_timezone()
    state = _load_state(now_ms)
    summary = summarize_history(
        state.events,
        _parse_date(request.args.get('from')),
        _parse_date(request.args.get('to')),
        tz,
    )
    payload = summary.to_dict()
    payload['error'] = state.error
    return jsonify(payload)


@main_bp.route('/api/reports/yesterday', methods=['GET'])
@manager_required
def api_yesterday_report():
    now_ms = to_millis(_now())
    tz = _local_timezone()
    state = _load_state(now_ms)
    yesterday = local_datetime(now_ms, tz).date() - timedelta(days=1)
    periods = compute_production_periods(state.events, now_ms, tz, yesterday)
    return jsonify(
        {
            'date': yesterday.isoformat(),
            'periods': [period.to_dict() for period in periods],
            'summary': summarize_periods(periods),
            'day': summarize_day(state.events, yesterday, tz).to_dict(),
            'downtimes': [
                event.to_dict()
                for event in events_on(state.events, yesterday, tz)
                if not event.active
            ],
            'error': state.error,
        }
    )


@main_bp.route('/api/reports/machines', methods=['GET'])
@manager_required
def api_machine_analysis():
    """Stoppages per machine for one day (default today)."""

    now_ms = to_millis(_now())
    tz = _local_timezone()
    state = _load_state(now_ms)
    day = _parse_date(request.args.get('date')) or local_datetime(now_ms, tz).date()
    return jsonify(
        {
            'date': day.isoformat(),
            'machines': [
                entry.to_dict()
                for entry in summarize_machines(state.events, state.machines, day, tz)
            ],
            'error': state.error,
        }
    )


@main_bp.route('/api/reports/summary', methods=['GET'])
@manager_required
def api_period_report():
    kind = (request.args.get('type') or 'daily').lower()
    if kind not in REPORT_KINDS:
        return jsonify({'message': 'Unsupported report type. Choose daily, weekly or monthly.'}), 400

    now_ms = to_millis(_now())
    tz = _local_timezone()
    state = _load_state(now_ms)
    selected = _parse_date(request.args.get('date')) or local_datetime(now_ms, tz).date()
    payload = build_period_report(state.events, kind, selected, tz).to_dict()
    payload['error'] = state.error
    return jsonify(payload)


def _fig_to_data_uri(fig):
    if plt is None:
        return ''
    buf = io.BytesIO()
    fig.savefig(buf, format='png', bbox_inches='tight')
    plt.close(fig)
    buf.seek(0)
    b64 = base64.b64encode(buf.read()).decode('utf-8')
    return f"data:image/png;base64,{b64}"


def _build_week_chart(week) -> str:
    """Stacked bar chart of downtime and pause minutes per weekday."""
    if plt is None:
        return ""
    labels = [day.day_name[:3] for day in week.days]
    downtime = [day.total_downtime for day in week.days]
    pause = [day.total_pause for day in week.days]
    positions = range(len(labels))

    fig, ax = plt.subplots(figsize=(6, 2.5))
    ax.bar(positions, downtime, color="steelblue", label="Downtime")
    ax.bar(positions, pause, bottom=downtime, color="lightgray", label="Pause")
    ax.set_xticks(list(positions))
    ax.set_xticklabels(labels, fontsize=7)
    ax.set_ylabel("Minutes")
    ax.legend(fontsize=6)
    fig.tight_layout()
    return _fig_to_data_uri(fig)


def _period_rows(periods, tz) -> list[dict]:
    rows = []
    for period in periods:
        row = period.to_dict()
        row['start_label'] = format_clock(period.start_time, tz)
        row['end_label'] = (
            'In progress' if period.in_progress else format_clock(period.end_time, tz)
        )
        rows.append(row)
    return rows


def _send_report(html: str, fmt: str, filename_stem: str):
    if fmt == 'pdf':
        try:
            pdf = render_html_to_pdf(html, base_url=request.url_root)
        except PdfGenerationError as exc:
            return jsonify({'message': str(exc)}), 503
        return send_file(
            io.BytesIO(pdf),
            mimetype='application/pdf',
            download_name=f"{filename_stem}.pdf",
            as_attachment=True,
        )
    return send_file(
        io.BytesIO(html.encode('utf-8')),
        mimetype='text/html',
        download_name=f"{filename_stem}.html",
        as_attachment=True,
    )


def _send_csv(text: str, filename: str):
    return send_file(
        io.BytesIO(text.encode('utf-8')),
        mimetype='text/csv',
        download_name=filename,
        as_attachment=True,
    )


@main_bp.route('/reports/today/export')
@manager_required
def export_today_report():
    fmt = request.args.get('format') or 'csv'
    if fmt not in {'csv', 'html', 'pdf'}:
        return jsonify({'message': 'Unsupported format. Choose csv, html or pdf.'}), 400

    now = _now()
    now_ms = to_millis(now)
    tz = _local_timezone()
    state = _require_state(now_ms)
    today = local_datetime(now_ms, tz).date()
    todays = [event for event in events_on(state.events, today, tz) if not event.active]

    if fmt == 'csv':
        return _send_csv(build_day_csv(todays, tz), f"downtimes_{today.isoformat()}.csv")

    periods = production_periods(state, now_ms, tz)
    html = render_template(
        'report/daily/index.html',
        title='Daily downtime report',
        report_date=today.isoformat(),
        day=summarize_day(state.events, today, tz),
        periods=_period_rows(periods, tz),
        totals=summarize_periods(periods),
        events=[
            dict(
                event.to_dict(),
                start_label=format_clock(event.start_time, tz),
                end_label=format_clock(event.end_time, tz),
            )
            for event in todays
        ],
        generated_at=now.astimezone(tz).strftime('%Y-%m-%d %H:%M:%S %Z'),
        report_css=_load_report_css(),
    )
    return _send_report(html, fmt, f"{today.strftime('%y%m%d')}_daily_report")


@main_bp.route('/reports/week/export')
@manager_required
def export_week_report():
    fmt = request.args.get('format') or 'csv'
    if fmt not in {'csv', 'html', 'pdf'}:
        return jsonify({'message': 'Unsupported format. Choose csv, html or pdf.'}), 400

    now = _now()
    now_ms = to_millis(now)
    tz = _local_timezone()
    state = _require_state(now_ms)
    week_start = _parse_date(request.args.get('week'))
    week = compute_week_stats(state.events, now_ms, tz, week_start)
    stem = f"week_report_{week.week_start.isoformat()}_{week.week_end.isoformat()}"

    if fmt == 'csv':
        return _send_csv(build_week_csv(week), f"{stem}.csv")

    html = render_template(
        'report/week/index.html',
        title='Weekly downtime report',
        week=week,
        periods_by_day=[
            {
                'date': day.date.isoformat(),
                'periods': _period_rows(day.periods, tz),
            }
            for day in compute_week_periods(state.events, now_ms, tz, week_start)
        ],
        week_chart=_build_week_chart(week),
        generated_at=now.astimezone(tz).strftime('%Y-%m-%d %H:%M:%S %Z'),
        report_css=_load_report_css(),
    )
    return _send_report(html, fmt, stem)


@main_bp.route('/reports/posts/export')
@manager_required
def export_post_report():
    fmt = request.args.get('format') or 'csv'
    if fmt != 'csv':
        return jsonify({'message': 'Unsupported format. Choose csv.'}), 400

    now_ms = to_millis(_now())
    tz = _local_timezone()
    state = _require_state(now_ms)
    today = local_datetime(now_ms, tz).date()
    return _send_csv(
        build_posts_csv(post_listing(state, now_ms, tz)),
        f"post_report_{today.isoformat()}.csv",
    )


BACKUP_VERSION = '1.0'


@main_bp.route('/reports/backup/export')
@manager_required
def export_backup():
    fmt = request.args.get('format') or 'json'
    if fmt not in {'json', 'csv'}:
        return jsonify({'message': 'Unsupported format. Choose json or csv.'}), 400

    now_ms = to_millis(_now())
    tz = _local_timezone()
    state = _require_state(now_ms)
    stem = f"downtime_backup_{local_datetime(now_ms, tz).date().isoformat()}"

    if fmt == 'csv':
        return _send_csv(build_backup_csv(state.events, tz), f"{stem}.csv")

    response = jsonify(
        {
            'downtimes': [event.to_dict() for event in state.events],
            'machines': [machine.to_dict() for machine in state.machines],
            'users': [user.to_dict() for user in state.users],
            'export_date': millis_to_iso(now_ms),
            'version': BACKUP_VERSION,
        }
    )
    response.headers['Content-Disposition'] = f'attachment; filename="{stem}.json"'
    return response


@main_bp.route('/api/admin/users', methods=['GET'])
@admin_required
def list_users():
    records, error = fetch_app_users(include_sensitive=True)
    if error:
        abort(500, description=error)
    users = sorted(
        (user_from_row(record) for record in records or []),
        key=lambda user: user.user_id.casefold(),
    )
    return jsonify([user.to_dict() for user in users])


@main_bp.route('/admin/users', methods=['POST'])
@admin_required
def admin_user_action():
    action = (request.form.get('action') or 'invite').lower()
    user_id = (request.form.get('user_id') or '').strip()
    password = (request.form.get('password') or '').strip()
    display_name = (request.form.get('display_name') or '').strip()
    role = Role.parse(request.form.get('role'))

    if action == 'invite':
        if not user_id:
            flash('Enter a user name to create an account.', 'error')
        elif len(password) < 6:
            flash('The password must be at least 6 characters.', 'error')
        else:
            existing, error = fetch_app_user_credentials(user_id)
            if error:
                flash(error, 'error')
            elif existing:
                flash(f"User name '{user_id}' already exists. Choose another name.", 'warning')
            else:
                payload = {
                    'user_id': user_id,
                    'password_hash': generate_password_hash(password),
                    'role': role.value,
                    'display_name': display_name or default_display_name(user_id),
                }
                _, error = insert_app_user(payload)
                if error:
                    current_app.logger.error("Creating user %s failed: %s", user_id, error)
                    flash(error, 'error')
                else:
                    flash(f"{ROLE_LABELS[role]} '{user_id}' has been created.", 'success')
    elif action in {'remove', 'delete'}:
        if not user_id:
            flash('Specify a user name to remove.', 'error')
        elif user_id.lower() in PROTECTED_USER_IDS:
            flash('The administrator and manager accounts cannot be removed.', 'error')
        else:
            existing, error = fetch_app_user_credentials(user_id)
            if error:
                flash(error, 'error')
            elif not existing:
                flash(f"User '{user_id}' was not found.", 'warning')
            else:
                deleted, error = delete_app_user(user_id)
                if error:
                    flash(error, 'error')
                elif deleted:
                    flash(f"User '{user_id}' has been removed.", 'success')
                else:
                    flash(f"No changes were applied for '{user_id}'.", 'info')
    else:
        flash(f"Unrecognised action '{action}'.", 'error')

    return redirect(url_for('main.home'))


@main_bp.route('/admin/machines', methods=['POST'])
@admin_required
def admin_machine_action():
    action = (request.form.get('action') or 'add').lower()
    machine_id = (request.form.get('machine_id') or '').strip()
    name = (request.form.get('name') or '').strip()

    if action == 'add':
        if not name:
            flash('Enter a machine name.', 'error')
        else:
            now_ms = to_millis(_now())
            _, error = insert_machine(
                {
                    'id': f"m{now_ms}",
                    'name': name,
                    'color': NEW_MACHINE_COLOR,
                    'created_at': millis_to_iso(now_ms),
                }
            )
            if error:
                current_app.logger.error("Creating machine %s failed: %s", name, error)
                flash(error, 'error')
            else:
                flash(f"Machine '{name}' has been added.", 'success')
    elif action == 'rename':
        if not machine_id or not name:
            flash('Select a machine and enter its new name.', 'error')
        else:
            updated, error = update_machine(machine_id, {'name': name})
            if error:
                flash(error, 'error')
            elif updated:
                flash(f"Machine renamed to '{name}'.", 'success')
            else:
                flash(f"Machine '{machine_id}' was not found.", 'warning')
    elif action in {'remove', 'delete'}:
        if not machine_id:
            flash('Select a machine to delete.', 'error')
        else:
            deleted, error = delete_machine(machine_id)
            if error:
                flash(error, 'error')
            elif deleted:
                flash('Machine deleted.', 'success')
            else:
                flash(f"Machine '{machine_id}' was not found.", 'warning')
    else:
        flash(f"Unrecognised action '{action}'.", 'error')

    return redirect(url_for('main.home'))
