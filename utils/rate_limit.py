"""Per-client request limits for the public waitlist endpoints"""
from flask import jsonify, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import os

# Limits per endpoint group
RATE_LIMITS = {
    'submit': '5 per minute',        # Waitlist sign-ups
    'email_check': '30 per minute',  # Debounced availability checks while typing
    'read': '60 per minute',         # Counter, stats and recent submissions
}


def get_rate_limit_key():
    """Client IP, taking the first X-Forwarded-For hop when the landing page sits behind a proxy"""
    forwarded = request.headers.get('X-Forwarded-For', '')
    client_ip = forwarded.split(',')[0].strip()
    return client_ip or get_remote_address()


def rate_limiting_enabled() -> bool:
    return os.environ.get('RATE_LIMIT_ENABLED', 'true').lower() != 'false'


def init_rate_limiter(app):
    """Attach a Limiter to the app and render 429s as JSON"""
    limiter = Limiter(
        app=app,
        key_func=get_rate_limit_key,
        default_limits=[os.environ.get('RATE_LIMIT_DEFAULT', '100 per minute')],
        storage_uri=os.environ.get('RATE_LIMIT_STORAGE_URI', 'memory://'),  # redis:// for multiple workers
        headers_enabled=True,
        enabled=rate_limiting_enabled(),
    )

    @app.errorhandler(429)
    def rate_limit_exceeded(e):
        return jsonify({
            "error": "Too many requests. Please try again later.",
            "limit": str(e.description),
        }), 429

    return limiter
