"""Form rules, messages and defaults shared by the waitlist services"""
import os
import re

# Supabase table holding interest submissions
SUBMISSIONS_TABLE = os.environ.get('SUBMISSIONS_TABLE', 'interest_submissions')
DEFAULT_SOURCE = 'landing_page'

# Field declaration order; validation errors are reported in this order
FORM_FIELDS = ('name', 'email', 'subscribed_newsletter', 'message', 'company', 'phone')
BOOLEAN_FIELDS = ('subscribed_newsletter',)

VALIDATION_RULES = {
    'name': {
        'required': True,
        'min_length': 2,
        'max_length': 50,
        'pattern': re.compile(r"^[a-zA-Z\s'-]+$"),
    },
    'email': {
        'required': True,
        'min_length': 5,
        'max_length': 254,
        'pattern': re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$'),
    },
    'message': {
        'required': False,
        'min_length': 10,
        'max_length': 1000,
    },
    'company': {
        'required': False,
        'min_length': 2,
        'max_length': 100,
    },
    'phone': {
        'required': False,
        'pattern': re.compile(r'^[+]?[1-9][0-9]{0,15}$'),
    },
}

ERROR_MESSAGES = {
    'required': '{field} is required',
    'min_length': '{field} must be at least {limit} characters long',
    'max_length': '{field} must be no more than {limit} characters long',
    'invalid_email': 'Please enter a valid email address',
    'invalid_phone': 'Please enter a valid phone number',
    'invalid_name': 'Name can only contain letters, spaces, hyphens, and apostrophes',
    'invalid_format': 'Invalid {field} format',
    'network_error': 'Network error. Please try again.',
    'unknown_error': 'An unexpected error occurred.',
}

SUCCESS_MESSAGES = {
    'form_submitted': "Thank you! You're on the waitlist.",
}

# Retry defaults for calls against the hosted store
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INITIAL_DELAY_MS = 1000
DEFAULT_BACKOFF_MULTIPLIER = 2

# Form controller timing defaults (milliseconds)
DEFAULT_VALIDATION_DEBOUNCE_MS = 300
DEFAULT_EMAIL_CHECK_DEBOUNCE_MS = 500
DEFAULT_RESET_DELAY_MS = 5000

# Synthetic data served when Supabase is not configured
STUB_EXISTING_EMAILS = ('test@example.com', 'demo@example.com', 'admin@example.com')
STUB_SUBMISSION_COUNT = 42
STUB_STATS = {
    'total': 42,
    'newsletter_subscribers': 28,
    'this_month': 12,
    'source_breakdown': {
        'landing_page': 25,
        'hero_section': 10,
        'api': 7,
    },
}
STUB_RECENT_SUBMISSIONS = [
    {
        'id': 'mock-1',
        'name': 'John Doe',
        'email': 'john@example.com',
        'subscribed_newsletter': True,
        'message': 'Looking forward to the course!',
        'company': 'Tech Corp',
        'phone': '+1234567890',
        'source': 'landing_page',
        'minutes_ago': 30,
    },
    {
        'id': 'mock-2',
        'name': 'Jane Smith',
        'email': 'jane@example.com',
        'subscribed_newsletter': False,
        'message': None,
        'company': 'Startup Inc',
        'phone': None,
        'source': 'hero_section',
        'minutes_ago': 120,
    },
]
