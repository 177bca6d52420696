"""Flask application exposing the course waitlist to the landing page"""
from flask import Flask, jsonify, request
from flask_cors import CORS
import asyncio
import os

from config.constants import DEFAULT_SOURCE, SUCCESS_MESSAGES
from config.database import get_configuration_status
from models.forms import CountFilters
from services.submission_service import create_submission_client
from utils.logger import log_error, log_event
from utils.rate_limit import init_rate_limiter, RATE_LIMITS
from utils.validation import (
    sanitize_email,
    sanitize_string,
    validate_and_sanitize,
    validate_boolean,
    validate_integer,
    validate_iso_datetime,
)

app = Flask(__name__)
CORS(app, resources={
    r"/api/*": {
        "origins": [o.strip() for o in os.environ.get('CORS_ORIGINS', 'http://localhost:3000').split(',') if o.strip()],
        "methods": ["GET", "POST", "OPTIONS"],
        "allow_headers": ["Content-Type"],
    }
})

# Initialize rate limiter
limiter = init_rate_limiter(app)

submission_client = create_submission_client(
    stub_delay_seconds=float(os.environ.get('STUB_DELAY_SECONDS', '0')),
)


def run_async(coro):
    """Run a submission client coroutine from a sync view"""
    return asyncio.run(coro)


def error_response(error):
    """Render a translated SubmissionError"""
    return jsonify({"error": error.message, "code": error.code.value}), error.http_status


@app.route('/')
def home():
    return jsonify({
        "message": "Course Waitlist API",
        "status": "running",
        "version": "1.0.0"
    })

@app.route('/health')
@limiter.exempt
def health_check():
    return jsonify({
        "status": "healthy",
        "message": "API is running successfully",
        "configuration": get_configuration_status(),
        "stub_mode": submission_client.is_stub,
    })

@app.route('/api/waitlist', methods=['POST'])
@limiter.limit(RATE_LIMITS['submit'])
def join_waitlist():
    """Validate, sanitize and store a waitlist submission"""
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "No data provided"}), 400

        source = sanitize_string(data.get('source'), max_length=100) or DEFAULT_SOURCE
        result = validate_and_sanitize(data)
        if not result.is_valid:
            return jsonify({
                "error": "Validation failed",
                "errors": [e.to_dict() for e in result.errors],
            }), 400

        outcome = run_async(submission_client.submit(result.sanitized_data, source))
        if not outcome.success:
            return error_response(outcome.error)

        log_event("waitlist_signup", source=source, email=outcome.data.email)
        return jsonify({
            "message": SUCCESS_MESSAGES['form_submitted'],
            "submission": outcome.data.to_dict(),
        }), 201
    except Exception as e:
        log_error("Error in join_waitlist", error=e)
        return jsonify({"error": str(e)}), 500

@app.route('/api/waitlist/count', methods=['GET'])
@limiter.limit(RATE_LIMITS['read'])
def get_waitlist_count():
    """Count submissions, optionally filtered by source, newsletter flag and date range"""
    try:
        filters = CountFilters(
            subscribed_newsletter=validate_boolean(request.args.get('subscribed_newsletter')),
            source=sanitize_string(request.args.get('source'), max_length=100) or None,
            date_from=validate_iso_datetime(request.args.get('date_from')),
            date_to=validate_iso_datetime(request.args.get('date_to')),
        )
        outcome = run_async(submission_client.get_count(filters))
        if not outcome.success:
            return error_response(outcome.error)
        return jsonify({"count": outcome.data}), 200
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        log_error("Error in get_waitlist_count", error=e)
        return jsonify({"error": str(e)}), 500

@app.route('/api/waitlist/stats', methods=['GET'])
@limiter.limit(RATE_LIMITS['read'])
def get_waitlist_stats():
    try:
        outcome = run_async(submission_client.get_stats())
        if not outcome.success:
            return error_response(outcome.error)
        return jsonify(outcome.data.to_dict()), 200
    except Exception as e:
        log_error("Error in get_waitlist_stats", error=e)
        return jsonify({"error": str(e)}), 500

@app.route('/api/waitlist/check-email', methods=['GET'])
@limiter.limit(RATE_LIMITS['email_check'])
def check_email():
    """Check whether an email is already on the waitlist"""
    try:
        email = sanitize_email(request.args.get('email', ''))
        if not email:
            return jsonify({"error": "email parameter required"}), 400
        outcome = run_async(submission_client.check_email_exists(email))
        if not outcome.success:
            return error_response(outcome.error)
        return jsonify({"email": email, "exists": outcome.data}), 200
    except Exception as e:
        log_error("Error in check_email", error=e)
        return jsonify({"error": str(e)}), 500

@app.route('/api/waitlist/recent', methods=['GET'])
@limiter.limit(RATE_LIMITS['read'])
def get_recent_submissions():
    try:
        limit = validate_integer(request.args.get('limit', 10), min_value=1, max_value=100) or 10
        offset = validate_integer(request.args.get('offset', 0), min_value=0) or 0
        outcome = run_async(submission_client.get_recent_submissions(limit=limit, offset=offset))
        if not outcome.success:
            return error_response(outcome.error)
        return jsonify({
            "submissions": [record.to_dict() for record in outcome.data],
            "limit": limit,
            "offset": offset,
        }), 200
    except Exception as e:
        log_error("Error in get_recent_submissions", error=e)
        return jsonify({"error": str(e)}), 500

@app.route('/api/connection', methods=['GET'])
@limiter.limit(RATE_LIMITS['read'])
def connection_status():
    """Connectivity banner data for the landing page"""
    outcome = run_async(submission_client.check_connection())
    return jsonify({
        "is_connected": outcome.success,
        "last_error": outcome.error.message if outcome.error else None,
        "is_configured": get_configuration_status()['is_configured'],
    }), 200

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    debug = os.environ.get('FLASK_ENV') == 'development'
    app.run(host='0.0.0.0', port=port, debug=debug)
