"""
Security hardening module.

Provides CSRF protection, rate limiting, input sanitization
and security headers for the application.
"""

import re
from datetime import timedelta
from typing import Any

from flask import request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_wtf.csrf import CSRFProtect


# Initialize extensions at module level
csrf = CSRFProtect()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["2000 per day", "300 per hour"]
)


# Security configuration defaults
DEFAULT_CONFIG = {
    'SESSION_COOKIE_SECURE': True,
    'SESSION_COOKIE_HTTPONLY': True,
    'SESSION_COOKIE_SAMESITE': 'Lax',
    'PERMANENT_SESSION_LIFETIME': timedelta(hours=1),
    'WTF_CSRF_TIME_LIMIT': 3600,  # 1 hour
    'WTF_CSRF_SSL_STRICT': True,
}


def add_security_headers(response):
    """
    Add security headers to response.
    This is a standalone function that can be used as an after_request handler.
    """
    response.headers['Content-Security-Policy'] = (
        "default-src 'self'; "
        "script-src 'self' 'unsafe-inline'; "
        "style-src 'self' 'unsafe-inline'; "
        "img-src 'self' data:; "
        "connect-src 'self';"
    )
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
    return response


def init_security(app):
    """Initialize security extensions with the app."""
    for key, value in DEFAULT_CONFIG.items():
        if key not in app.config:
            app.config[key] = value

    csrf.init_app(app)
    limiter.init_app(app)


# Rate limit configurations
RATE_LIMITS = {
    'login': "10 per minute",
    'answers': "300 per minute",
    'navigation': "60 per minute",
    'submit': "10 per minute",
}


def rate_limit_login():
    """Decorator for login endpoint rate limiting."""
    return limiter.limit(RATE_LIMITS['login'])


def rate_limit_answers():
    """Decorator for answer edit rate limiting."""
    return limiter.limit(RATE_LIMITS['answers'])


def rate_limit_navigation():
    """Decorator for next/previous rate limiting."""
    return limiter.limit(RATE_LIMITS['navigation'])


def rate_limit_submit():
    """Decorator for submission rate limiting."""
    return limiter.limit(RATE_LIMITS['submit'])


# Input sanitization
HTML_TAG_PATTERN = re.compile(r'<[^>]+>')
SCRIPT_PATTERN = re.compile(r'<script[^>]*>.*?</script>', re.DOTALL | re.IGNORECASE)
EVENT_HANDLER_PATTERN = re.compile(r'on\w+\s*=', re.IGNORECASE)


def sanitize_string(value: str, max_length: int = 10000) -> str:
    """
    Sanitize a string value for safe storage and display.

    Args:
        value: Input string
        max_length: Maximum allowed length

    Returns:
        Sanitized string
    """
    if value is None:
        return ''

    if not isinstance(value, str):
        value = str(value)

    value = SCRIPT_PATTERN.sub('', value)
    value = EVENT_HANDLER_PATTERN.sub('', value)
    value = HTML_TAG_PATTERN.sub('', value)
    value = value[:max_length]
    return value.strip()


def sanitize_payload(payload: Any) -> Any:
    """
    Recursively sanitize all string values in a payload.

    Args:
        payload: Dictionary (or list, or scalar) to sanitize

    Returns:
        Sanitized copy
    """
    if isinstance(payload, dict):
        return {k: sanitize_payload(v) for k, v in payload.items()}
    elif isinstance(payload, list):
        return [sanitize_payload(item) for item in payload]
    elif isinstance(payload, str):
        return sanitize_string(payload)
    else:
        return payload


def get_client_ip() -> str:
    """Get the client IP address, handling proxies."""
    forwarded_for = request.headers.get('X-Forwarded-For')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()

    real_ip = request.headers.get('X-Real-Ip')
    if real_ip:
        return real_ip

    return request.remote_addr or 'unknown'
