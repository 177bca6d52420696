"""Data types for waitlist form submissions"""
from dataclasses import dataclass, field, fields, asdict
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar

from config.constants import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_INITIAL_DELAY_MS,
    DEFAULT_MAX_ATTEMPTS,
)

T = TypeVar('T')


@dataclass
class FormData:
    """Raw or sanitized waitlist form values"""
    name: str = ''
    email: str = ''
    subscribed_newsletter: bool = False
    message: Optional[str] = None
    company: Optional[str] = None
    phone: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'FormData':
        """Build form data from a JSON body, ignoring unknown keys"""
        if not isinstance(data, dict):
            return cls()
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ValidationError:
    field: str
    message: str
    code: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message, "code": self.code}


@dataclass
class ValidationResult:
    errors: List[ValidationError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass
class SanitizedValidationResult(ValidationResult):
    sanitized_data: FormData = field(default_factory=FormData)


@dataclass(frozen=True)
class SubmissionRecord:
    """A row of the submissions table, as returned by the store"""
    id: str
    name: str
    email: str
    subscribed_newsletter: bool
    source: str
    submitted_at: str
    message: Optional[str] = None
    company: Optional[str] = None
    phone: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'SubmissionRecord':
        return cls(
            id=str(row.get('id')),
            name=row.get('name') or '',
            email=row.get('email') or '',
            subscribed_newsletter=bool(row.get('subscribed_newsletter')),
            source=row.get('source') or '',
            submitted_at=row.get('submitted_at') or '',
            message=row.get('message'),
            company=row.get('company'),
            phone=row.get('phone'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    initial_delay_ms: int = DEFAULT_INITIAL_DELAY_MS
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER

    def delay_ms(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt"""
        return self.initial_delay_ms * (self.backoff_multiplier ** (attempt - 1))


@dataclass
class CountFilters:
    """Optional filters for counting submissions; date bounds are inclusive"""
    subscribed_newsletter: Optional[bool] = None
    source: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


@dataclass
class SubmissionStats:
    total: int = 0
    newsletter_subscribers: int = 0
    this_month: int = 0
    source_breakdown: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ClientResult(Generic[T]):
    """Outcome of a submission client call; error is a translated SubmissionError"""
    data: Optional[T] = None
    error: Optional[Exception] = None
    success: bool = False

    @classmethod
    def ok(cls, data: T) -> 'ClientResult[T]':
        return cls(data=data, error=None, success=True)

    @classmethod
    def failed(cls, error: Exception) -> 'ClientResult[T]':
        return cls(data=None, error=error, success=False)
