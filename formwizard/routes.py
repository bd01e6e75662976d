"""
Flask routes for the Dynamic Form Wizard application.

Pages render the login screen and the current section; the JSON API
drives the form session (login, answers, next/previous, submit, logout).
"""

import asyncio
from functools import wraps

from flask import (
    Blueprint, render_template, request, jsonify,
    session, redirect, url_for, current_app, g
)

from formwizard import db
from formwizard.audit_logger import (
    log_login, log_logout, log_form_loaded, log_validation_result
)
from formwizard.errors import (
    AcquisitionError, NavigationError, SessionStateError, UnsupportedFieldError
)
from formwizard.security import (
    sanitize_payload, get_client_ip, rate_limit_login, rate_limit_answers,
    rate_limit_navigation, rate_limit_submit
)
from formwizard.session import FormSession, SessionRegistry
from formwizard.submission import DatabaseSubmissionSink
from formwizard.utils import format_progress, short_hash
from formwizard.widgets import bind_value, render_section


# Create blueprints
main_bp = Blueprint('main', __name__)
api_bp = Blueprint('api', __name__, url_prefix='/api')

SESSION_KEY = 'form_session_id'


def get_registry() -> SessionRegistry:
    return current_app.extensions['formwizard.sessions']


def get_provider():
    return current_app.extensions['formwizard.provider']


def current_form_session():
    """The live form session bound to this browser session, if any."""
    return get_registry().get(session.get(SESSION_KEY))


def session_required(f):
    """Decorator to require a live form session."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        form_session = current_form_session()
        if form_session is None:
            session.pop(SESSION_KEY, None)
            return jsonify({
                'ok': False,
                'error': 'No active form session',
                'redirect': 'login'
            }), 401

        g.form_session = form_session
        return f(*args, **kwargs)
    return decorated_function


def load_form(form_session: FormSession):
    """Acquire the schema for a fresh session, bounded by FORM_LOAD_TIMEOUT."""
    return asyncio.run(form_session.load(
        get_provider().get_form,
        timeout=current_app.config['FORM_LOAD_TIMEOUT']
    ))


@api_bp.errorhandler(SessionStateError)
def handle_session_state(error):
    return jsonify({'ok': False, 'error': str(error)}), 409


@api_bp.errorhandler(NavigationError)
def handle_navigation(error):
    return jsonify({'ok': False, 'error': str(error)}), 409


# Main routes
@main_bp.route('/')
def index():
    """Render the login page, or jump to the form if a session is live."""
    form_session = current_form_session()
    if form_session is not None and form_session.navigation is not None:
        return redirect(url_for('main.form'))
    return render_template('login.html')


@main_bp.route('/form')
def form():
    """Render the current section of the form."""
    form_session = current_form_session()
    if form_session is None or form_session.navigation is None:
        session.pop(SESSION_KEY, None)
        return redirect(url_for('main.index'))

    snapshot = form_session.snapshot()
    section_html = render_section(
        form_session.navigation.current_section,
        form_session.answers,
        form_session.answers.errors
    )
    return render_template(
        'form.html',
        snapshot=snapshot,
        section_html=section_html,
        progress_text=format_progress(snapshot['progress'])
    )


# API Routes
@api_bp.route('/login', methods=['POST'])
@rate_limit_login()
def api_login():
    """
    Log in with the form provider and load the user's form.

    Returns:
        JSON with the session snapshot, or an error that keeps the user
        on the login screen
    """
    payload = sanitize_payload(request.get_json(silent=True) or {})
    if not isinstance(payload, dict):
        payload = {}

    roll_number = str(payload.get('rollNumber') or '').strip()
    name = str(payload.get('name') or '').strip()
    if not roll_number or not name:
        return jsonify({'ok': False, 'error': 'Please fill in all fields'}), 400

    # A new login replaces whatever session this browser had
    get_registry().discard(session.pop(SESSION_KEY, None))

    try:
        user = get_provider().create_user(roll_number, name)
    except AcquisitionError as e:
        log_login(roll_number, success=False, error=str(e))
        return jsonify({'ok': False, 'error': str(e)}), 502

    log_login(roll_number, success=True)

    # One live session per user; this also cancels a load still in flight
    replaced = get_registry().discard_user(roll_number)
    if replaced:
        current_app.logger.info(f'Replaced {replaced} earlier session(s) for {roll_number}')

    form_session = get_registry().create(user)
    session[SESSION_KEY] = form_session.session_id

    try:
        loaded = load_form(form_session)
    except AcquisitionError as e:
        get_registry().discard(session.pop(SESSION_KEY, None))
        log_form_loaded(roll_number, success=False, error=str(e))
        return jsonify({'ok': False, 'error': str(e), 'redirect': 'login'}), 502

    if loaded is None:
        session.pop(SESSION_KEY, None)
        return jsonify({
            'ok': False,
            'error': 'The session ended while the form was loading',
            'redirect': 'login'
        }), 409

    log_form_loaded(roll_number, form_title=loaded.form_title, section_count=loaded.section_count)
    return jsonify({'ok': True, **form_session.snapshot()}), 200


@api_bp.route('/logout', methods=['POST'])
def api_logout():
    """End the current form session, discarding unsaved answers."""
    form_session = get_registry().discard(session.pop(SESSION_KEY, None))
    if form_session is not None:
        log_logout(form_session.user.roll_number)
    return jsonify({'ok': True}), 200


@api_bp.route('/form', methods=['GET'])
@session_required
def api_form():
    """Return the current session state."""
    return jsonify({'ok': True, **g.form_session.snapshot()}), 200


@api_bp.route('/answers/<field_id>', methods=['PUT'])
@rate_limit_answers()
@session_required
def api_set_answer(field_id: str):
    """
    Store the answer for one field.

    Body: ``{"value": ...}``. The value is read through the field's widget,
    and any error shown for the field is cleared.
    """
    form_session = g.form_session
    form_session.require_active()

    form_field = form_session.get_field(field_id)
    if form_field is None:
        return jsonify({'ok': False, 'error': f'Unknown field: {field_id}'}), 404

    body = request.get_json(silent=True)
    if not isinstance(body, dict) or 'value' not in body:
        return jsonify({'ok': False, 'error': 'Request body must include "value"'}), 400

    raw = body['value']
    max_length = current_app.config['MAX_ANSWER_LENGTH']
    if isinstance(raw, str) and len(raw) > max_length:
        return jsonify({'ok': False, 'error': f'Answers are limited to {max_length} characters'}), 400

    try:
        value = bind_value(form_field, raw)
    except (UnsupportedFieldError, ValueError) as e:
        return jsonify({'ok': False, 'error': str(e)}), 400

    form_session.set_answer(field_id, value)
    return jsonify({
        'ok': True,
        'fieldId': field_id,
        'value': value,
        'errors': form_session.answers.errors
    }), 200


@api_bp.route('/next', methods=['POST'])
@rate_limit_navigation()
@session_required
def api_next():
    """Validate the current section and move forward."""
    form_session = g.form_session
    result = form_session.advance()

    if not result.accepted:
        log_validation_result(form_session.user.roll_number, result.index, result.errors)
        return jsonify({
            'ok': False,
            'error': 'Please fix the errors before proceeding',
            'sectionIndex': result.index,
            'errors': result.errors
        }), 422

    return jsonify({'ok': True, **form_session.snapshot()}), 200


@api_bp.route('/prev', methods=['POST'])
@rate_limit_navigation()
@session_required
def api_prev():
    """Move back one section. Never validates."""
    form_session = g.form_session
    form_session.retreat()
    return jsonify({'ok': True, **form_session.snapshot()}), 200


@api_bp.route('/submit', methods=['POST'])
@rate_limit_submit()
@session_required
def api_submit():
    """
    Validate the last section and store the complete answer bundle.

    Returns:
        JSON with the stored submission id and payload fingerprint
    """
    form_session = g.form_session
    sink = DatabaseSubmissionSink(
        user=form_session.user,
        form=form_session.form,
        ip_address=get_client_ip(),
        user_agent=request.headers.get('User-Agent')
    )

    try:
        result = form_session.submit(sink)
    except (SessionStateError, NavigationError):
        raise
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Submission error: {str(e)}')
        return jsonify({'ok': False, 'error': 'Failed to store submission'}), 500

    if not result.accepted:
        log_validation_result(form_session.user.roll_number, result.index, result.errors,
                              is_submission=True)
        return jsonify({
            'ok': False,
            'error': 'Please fix the errors before submitting',
            'sectionIndex': result.index,
            'errors': result.errors
        }), 422

    submission = result.receipt
    current_app.logger.info(
        f'Stored submission {submission.id} for {form_session.user.roll_number} '
        f'({short_hash(submission.payload_sha256)})'
    )
    return jsonify({
        'ok': True,
        'state': form_session.state.value,
        'submissionId': submission.id,
        'payloadSha256': submission.payload_sha256,
        'message': 'Form submitted successfully!'
    }), 200
