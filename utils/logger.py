"""Logging for the waitlist services.

Everything goes through the `course_waitlist` logger. Email addresses are
masked before they reach a log line.
"""
import logging
import os
import sys

LOGGER_NAME = 'course_waitlist'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: str = None) -> logging.Logger:
    """Send log records to stdout at LOG_LEVEL (INFO when unset or unknown)"""
    level_name = (level or os.environ.get('LOG_LEVEL', 'INFO')).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    return logging.getLogger(LOGGER_NAME)


logger = configure_logging()


def mask_email(email) -> str:
    """j***@example.com; '<none>' for anything that is not an address"""
    if not email or not isinstance(email, str) or '@' not in email:
        return '<none>'
    local, _, domain = email.partition('@')
    return f"{local[:1]}***@{domain}"


def log_error(message: str, error: Exception = None):
    """Log an error; translated submission errors are logged by code, others with traceback"""
    if error is None:
        logger.error(message)
        return
    code = getattr(error, 'code', None)
    if code is not None and hasattr(code, 'value'):
        original = getattr(error, 'original', None)
        logger.error(f"{message}: [{code.value}] {error}", exc_info=original)
    else:
        logger.error(f"{message}: {error}", exc_info=error)


def log_warning(message: str):
    logger.warning(message)


def log_info(message: str):
    logger.info(message)


def log_event(event: str, **fields):
    """Info line of the form `event key=value ...`; an `email` field is masked"""
    if 'email' in fields:
        fields['email'] = mask_email(fields['email'])
    details = ' '.join(f"{key}={value}" for key, value in fields.items())
    logger.info(f"{event} {details}".rstrip())


def log_debug(message: str):
    """Log debug (state transitions, dropped responses)"""
    logger.debug(message)
