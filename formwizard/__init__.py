"""
Dynamic Form Wizard Application

Walks a user through a multi-step form whose sections, fields and
validation rules are fetched from a remote form provider at login.

Enhanced with:
- CSRF protection
- Rate limiting
- Security headers
- Audit logging with a verify-audit CLI check
"""

import os
from datetime import datetime
import click
from flask import Flask, request, g, redirect, url_for
from flask_sqlalchemy import SQLAlchemy

# Initialize extensions
db = SQLAlchemy()


def create_app(test_config=None):
    """Application factory pattern."""
    app = Flask(__name__, instance_relative_config=True)

    # Default configuration
    app.config.from_mapping(
        SECRET_KEY=os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production'),
        SQLALCHEMY_DATABASE_URI=os.environ.get('DATABASE_URL', 'sqlite:///formwizard.db'),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        SESSION_COOKIE_SECURE=os.environ.get('SESSION_COOKIE_SECURE', 'true').lower() == 'true',
        PERMANENT_SESSION_LIFETIME=3600,  # 1 hour
        LOG_LEVEL=os.environ.get('LOG_LEVEL', 'INFO'),

        # Form provider settings
        FORM_PROVIDER_URL=os.environ.get(
            'FORM_PROVIDER_URL', 'https://dynamic-form-generator-9rl7.onrender.com'
        ),
        FORM_PROVIDER_TIMEOUT=float(os.environ.get('FORM_PROVIDER_TIMEOUT', 10)),
        FORM_LOAD_TIMEOUT=float(os.environ.get('FORM_LOAD_TIMEOUT', 15)),

        # Session settings
        SESSION_IDLE_TIMEOUT=int(os.environ.get('SESSION_IDLE_TIMEOUT', 3600)),
        MAX_ANSWER_LENGTH=int(os.environ.get('MAX_ANSWER_LENGTH', 10000)),

        # CSRF settings
        WTF_CSRF_ENABLED=True,
        WTF_CSRF_TIME_LIMIT=3600,  # 1 hour
        WTF_CSRF_SSL_STRICT=False,  # Disabled for development

        # Rate limiting settings
        RATELIMIT_STORAGE_URI=os.environ.get('REDIS_URL', 'memory://'),
        RATELIMIT_STRATEGY='fixed-window',
        RATELIMIT_HEADERS_ENABLED=True,
    )

    if test_config is None:
        # Load instance config if it exists
        app.config.from_pyfile('config.py', silent=True)
    else:
        # Load test config
        app.config.from_mapping(test_config)

    # Ensure instance folder exists
    try:
        os.makedirs(app.instance_path)
    except OSError:
        pass

    app.logger.setLevel(app.config['LOG_LEVEL'])

    # Initialize extensions with app
    db.init_app(app)

    from formwizard.security import add_security_headers, init_security
    init_security(app)

    # Provider client and live sessions
    from formwizard.provider import FormProviderClient
    from formwizard.session import SessionRegistry
    app.extensions['formwizard.provider'] = FormProviderClient.from_config(app.config)
    app.extensions['formwizard.sessions'] = SessionRegistry(
        idle_timeout=app.config['SESSION_IDLE_TIMEOUT']
    )

    # Register blueprints
    from formwizard.routes import main_bp, api_bp
    app.register_blueprint(main_bp)
    app.register_blueprint(api_bp)

    @app.after_request
    def after_request(response):
        """Add security headers to all responses."""
        return add_security_headers(response)

    # Request logging
    @app.before_request
    def before_request():
        """Log request start."""
        g.request_start_time = datetime.utcnow()

    @app.after_request
    def log_request(response):
        """Log request completion."""
        if hasattr(g, 'request_start_time'):
            duration = (datetime.utcnow() - g.request_start_time).total_seconds()
            app.logger.info(
                f'{request.method} {request.path} - {response.status_code} - {duration:.3f}s'
            )
        return response

    # Create database tables
    with app.app_context():
        from formwizard import models  # noqa: F401
        db.create_all()

    # Template globals
    @app.context_processor
    def inject_globals():
        return {
            'current_year': datetime.utcnow().year,
            'app_name': 'Dynamic Student Forms'
        }

    # Error handlers
    @app.errorhandler(404)
    def not_found(error):
        """JSON for unknown API paths, the login page otherwise."""
        if request.path.startswith('/api/'):
            return {'ok': False, 'error': 'Not found'}, 404
        return redirect(url_for('main.index'))

    @app.errorhandler(500)
    def internal_error(error):
        """Handle internal errors."""
        db.session.rollback()
        app.logger.error(f'Internal error: {str(error)}')
        return {'ok': False, 'error': 'Internal server error'}, 500

    @app.cli.command('verify-audit')
    def verify_audit_command():
        """Check every audit record against its integrity hash."""
        from formwizard.audit_logger import verify_audit_integrity
        valid_count, invalid_count, invalid_ids = verify_audit_integrity()
        click.echo(f'{valid_count} valid, {invalid_count} tampered')
        if invalid_ids:
            click.echo('Tampered ids: ' + ', '.join(str(i) for i in invalid_ids))
            raise SystemExit(1)

    return app
