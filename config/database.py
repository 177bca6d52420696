"""Database configuration and Supabase client initialization"""
import os
from typing import Optional

from dotenv import load_dotenv
from supabase import create_client, Client

from utils.logger import log_error, log_warning

load_dotenv()

# Supabase configuration
# Both values are needed for the remote store. When either is missing the
# services run in unconfigured mode and serve synthetic data instead.
SUPABASE_URL = os.environ.get('SUPABASE_URL')
SUPABASE_KEY = os.environ.get('SUPABASE_ANON_KEY')

_supabase: Optional[Client] = None
_initialized = False


def is_supabase_configured() -> bool:
    """Check if both Supabase environment variables are present"""
    return bool(SUPABASE_URL and SUPABASE_KEY)


def is_development() -> bool:
    return os.environ.get('FLASK_ENV') == 'development'


def get_configuration_status():
    """Get configuration status for health checks and the connectivity banner"""
    return {
        "is_configured": is_supabase_configured(),
        "has_url": bool(SUPABASE_URL),
        "has_key": bool(SUPABASE_KEY),
        "is_development": is_development(),
    }


def get_supabase() -> Optional[Client]:
    """Get the Supabase client instance, or None when unconfigured"""
    global _supabase, _initialized
    if _initialized:
        return _supabase
    _initialized = True

    if not is_supabase_configured():
        log_warning(
            "Supabase environment variables not found (SUPABASE_URL, SUPABASE_ANON_KEY). "
            "Running in unconfigured mode with synthetic data."
        )
        return None

    # Initialize Supabase client
    try:
        _supabase = create_client(SUPABASE_URL, SUPABASE_KEY)
    except Exception as e:
        log_error("Error initializing Supabase client", error=e)
        _supabase = None
    return _supabase
