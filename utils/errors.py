"""Submission error taxonomy and translation of backend failures.

Every failure coming out of the hosted store (PostgREST errors carrying a
Postgres error code, transport errors from httpx, anything else) is mapped
onto SubmissionError with one of a small set of codes. Callers only ever see
SubmissionError; the original exception is kept for logging.
"""
from enum import Enum
from typing import Optional

import httpx
from postgrest.exceptions import APIError

from config.constants import ERROR_MESSAGES


class SubmissionErrorCode(str, Enum):
    DUPLICATE_EMAIL = "duplicate_email"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    REFERENTIAL_VIOLATION = "referential_violation"
    CONFIGURATION_ERROR = "configuration_error"
    PERMISSION_DENIED = "permission_denied"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


# Postgres error code -> (taxonomy code, user-facing message)
POSTGRES_ERROR_CODES = {
    '23505': (SubmissionErrorCode.DUPLICATE_EMAIL, 'This email is already registered'),
    '23502': (SubmissionErrorCode.MISSING_REQUIRED_FIELD, 'Required fields are missing'),
    '23503': (SubmissionErrorCode.REFERENTIAL_VIOLATION, 'Referenced record does not exist'),
    '42P01': (SubmissionErrorCode.CONFIGURATION_ERROR, 'Database table not found'),
    '42501': (SubmissionErrorCode.PERMISSION_DENIED, 'Insufficient database privileges'),
}

# PostgREST code for "no rows returned" on single-row selects
NOT_FOUND_CODE = 'PGRST116'

TERMINAL_CODES = frozenset({
    SubmissionErrorCode.DUPLICATE_EMAIL,
    SubmissionErrorCode.MISSING_REQUIRED_FIELD,
    SubmissionErrorCode.REFERENTIAL_VIOLATION,
    SubmissionErrorCode.CONFIGURATION_ERROR,
    SubmissionErrorCode.PERMISSION_DENIED,
})

# Coded server errors are deterministic and terminal, except these SQLSTATE
# classes (connection, transaction rollback, resources, operator intervention)
# and PostgREST's database connection errors
TRANSIENT_CODE_PREFIXES = ('08', '40', '53', '57', 'PGRST00')

HTTP_STATUS_BY_CODE = {
    SubmissionErrorCode.DUPLICATE_EMAIL: 409,
    SubmissionErrorCode.MISSING_REQUIRED_FIELD: 400,
    SubmissionErrorCode.REFERENTIAL_VIOLATION: 400,
    SubmissionErrorCode.CONFIGURATION_ERROR: 503,
    SubmissionErrorCode.PERMISSION_DENIED: 403,
    SubmissionErrorCode.NETWORK_ERROR: 503,
    SubmissionErrorCode.UNKNOWN: 500,
}


class SubmissionError(Exception):
    """Translated failure of a submission client operation"""

    def __init__(
        self,
        message: str,
        code: SubmissionErrorCode = SubmissionErrorCode.UNKNOWN,
        original: Optional[BaseException] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.original = original
        self._retryable = retryable

    @property
    def retryable(self) -> bool:
        if self._retryable is not None:
            return self._retryable
        return self.code not in TERMINAL_CODES

    @property
    def is_duplicate_email(self) -> bool:
        return self.code == SubmissionErrorCode.DUPLICATE_EMAIL

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_CODE.get(self.code, 500)

    def to_dict(self) -> dict:
        return {"code": self.code.value, "message": self.message}

    def __repr__(self) -> str:
        return f"SubmissionError(code={self.code.value!r}, message={self.message!r})"


def duplicate_email_error() -> SubmissionError:
    code, message = POSTGRES_ERROR_CODES['23505']
    return SubmissionError(message, code)


def configuration_error(message: str = 'Database connection not available') -> SubmissionError:
    return SubmissionError(message, SubmissionErrorCode.CONFIGURATION_ERROR)


def is_not_found(error: BaseException) -> bool:
    return isinstance(error, APIError) and error.code == NOT_FOUND_CODE


def is_transient_code(code: Optional[str]) -> bool:
    """Whether a server error code may succeed on a later attempt; no code counts as transient"""
    if not code:
        return True
    return str(code).startswith(TRANSIENT_CODE_PREFIXES)


def translate_error(error: BaseException) -> SubmissionError:
    """Map any exception raised while talking to the store onto SubmissionError"""
    if isinstance(error, SubmissionError):
        return error

    if isinstance(error, APIError):
        mapped = POSTGRES_ERROR_CODES.get(error.code or '')
        if mapped:
            code, message = mapped
            return SubmissionError(message, code, original=error)
        return SubmissionError(
            error.message or 'Database operation failed',
            SubmissionErrorCode.UNKNOWN,
            original=error,
            retryable=is_transient_code(error.code),
        )

    if isinstance(error, (httpx.TransportError, ConnectionError, TimeoutError)):
        return SubmissionError(
            ERROR_MESSAGES['network_error'],
            SubmissionErrorCode.NETWORK_ERROR,
            original=error,
        )

    return SubmissionError(
        str(error) or ERROR_MESSAGES['unknown_error'],
        SubmissionErrorCode.UNKNOWN,
        original=error,
    )
