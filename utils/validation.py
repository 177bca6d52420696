"""Input validation and sanitization utilities"""
import re
from datetime import datetime
from typing import Any, List, Mapping, Optional, Union

from config.constants import BOOLEAN_FIELDS, ERROR_MESSAGES, FORM_FIELDS, VALIDATION_RULES
from models.forms import FormData, SanitizedValidationResult, ValidationError, ValidationResult

FormInput = Union[FormData, Mapping[str, Any], None]

TAG_PATTERN = re.compile(r'<[^>]*>')
WHITESPACE_PATTERN = re.compile(r'\s+')

PATTERN_MESSAGES = {
    'email': ERROR_MESSAGES['invalid_email'],
    'phone': ERROR_MESSAGES['invalid_phone'],
    'name': ERROR_MESSAGES['invalid_name'],
}


def _field_values(data: FormInput) -> dict:
    """Read form fields from a FormData or a plain mapping; anything else is empty"""
    if isinstance(data, FormData):
        return data.to_dict()
    if isinstance(data, Mapping):
        return {name: data.get(name) for name in FORM_FIELDS}
    return {name: None for name in FORM_FIELDS}


def is_empty(value: Any) -> bool:
    """Check if a value is missing, not a string, or whitespace only"""
    return not isinstance(value, str) or value.strip() == ''


def is_valid_email(email: Any) -> bool:
    """Validate email format"""
    return validate_field('email', email) is None


def is_valid_name(name: Any) -> bool:
    return validate_field('name', name) is None


def is_valid_phone(phone: Any) -> bool:
    """Validate phone format; empty is valid since the field is optional"""
    return validate_field('phone', phone) is None


def validate_field(field: str, value: Any) -> Optional[ValidationError]:
    """
    Validate a single form field.

    Required fields that are empty yield REQUIRED_FIELD; empty optional fields
    are valid. Otherwise the first violated rule wins, checking minimum length,
    then maximum length, then pattern. Values that are not strings count as
    empty. Never raises.
    """
    if field in BOOLEAN_FIELDS:
        return None

    rules = VALIDATION_RULES.get(field)
    if rules is None:
        return ValidationError(field, ERROR_MESSAGES['invalid_format'].format(field=field), 'INVALID_FIELD')

    trimmed = value.strip() if isinstance(value, str) else ''

    if not trimmed:
        if rules['required']:
            return ValidationError(field, ERROR_MESSAGES['required'].format(field=field), 'REQUIRED_FIELD')
        return None

    min_length = rules.get('min_length')
    if min_length and len(trimmed) < min_length:
        return ValidationError(
            field,
            ERROR_MESSAGES['min_length'].format(field=field, limit=min_length),
            'MIN_LENGTH',
        )

    max_length = rules.get('max_length')
    if max_length and len(trimmed) > max_length:
        return ValidationError(
            field,
            ERROR_MESSAGES['max_length'].format(field=field, limit=max_length),
            'MAX_LENGTH',
        )

    pattern = rules.get('pattern')
    if pattern is not None and not pattern.match(trimmed):
        message = PATTERN_MESSAGES.get(field, ERROR_MESSAGES['invalid_format'].format(field=field))
        return ValidationError(field, message, 'INVALID_PATTERN')

    return None


def validate_form(data: FormInput) -> ValidationResult:
    """Validate every field, collecting all errors in field declaration order"""
    values = _field_values(data)
    errors = []
    for field in FORM_FIELDS:
        error = validate_field(field, values.get(field))
        if error:
            errors.append(error)
    return ValidationResult(errors=errors)


def sanitize_input(value: Any) -> str:
    """Trim, strip HTML-like tags and collapse whitespace"""
    if not isinstance(value, str):
        return ''
    sanitized = TAG_PATTERN.sub('', value.strip())
    return WHITESPACE_PATTERN.sub(' ', sanitized).strip()


def sanitize_email(email: Any) -> str:
    if not isinstance(email, str):
        return ''
    return email.strip().lower()


def sanitize_name(name: Any) -> str:
    """Sanitize a name and capitalize the first letter of each word"""
    sanitized = sanitize_input(name)
    return ' '.join(word.capitalize() for word in sanitized.split(' '))


def _sanitize_optional(value: Any) -> Optional[str]:
    sanitized = sanitize_input(value)
    return sanitized or None


def sanitize(data: FormInput) -> FormData:
    """Normalize raw form input; idempotent"""
    values = _field_values(data)
    return FormData(
        name=sanitize_name(values.get('name')),
        email=sanitize_email(values.get('email')),
        subscribed_newsletter=values.get('subscribed_newsletter') is True,
        message=_sanitize_optional(values.get('message')),
        company=_sanitize_optional(values.get('company')),
        phone=_sanitize_optional(values.get('phone')),
    )


def validate_and_sanitize(data: FormInput) -> SanitizedValidationResult:
    """Sanitize first, then validate the sanitized values"""
    sanitized = sanitize(data)
    result = validate_form(sanitized)
    return SanitizedValidationResult(errors=result.errors, sanitized_data=sanitized)


# -- Query parameter helpers ----------------------------------------------------

def sanitize_string(value: Any, max_length: Optional[int] = None, allow_empty: bool = True) -> Optional[str]:
    """Sanitize string input"""
    if value is None:
        return None if allow_empty else ""

    # Convert to string and strip whitespace
    sanitized = str(value).strip()

    # Remove null bytes and control characters (except newlines and tabs)
    sanitized = re.sub(r'[\x00-\x08\x0b-\x0c\x0e-\x1f]', '', sanitized)

    # Enforce max length
    if max_length and len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized if (sanitized or allow_empty) else None


def validate_integer(value: Any, min_value: Optional[int] = None, max_value: Optional[int] = None) -> Optional[int]:
    """Validate and convert to integer, clamping to the given bounds"""
    if value is None:
        return None

    try:
        int_value = int(value)
        if min_value is not None and int_value < min_value:
            return min_value
        if max_value is not None and int_value > max_value:
            return max_value
        return int_value
    except (ValueError, TypeError):
        return None


def validate_enum(value: Any, allowed_values: List[str], case_sensitive: bool = True) -> Optional[str]:
    """Validate value is in allowed enum values"""
    if not value:
        return None

    str_value = str(value).strip()

    if not case_sensitive:
        str_value = str_value.lower()
        allowed_values = [v.lower() for v in allowed_values]

    return str_value if str_value in allowed_values else None


def validate_boolean(value: Any) -> Optional[bool]:
    """Parse a query-string flag; None when absent or unrecognized"""
    flag = validate_enum(value, ['true', 'false', '1', '0', 'yes', 'no'], case_sensitive=False)
    if flag is None:
        return None
    return flag in ('true', '1', 'yes')


def validate_iso_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 date or datetime; raises ValueError when malformed"""
    text = sanitize_string(value, max_length=64)
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace('Z', '+00:00'))
    except ValueError:
        raise ValueError(f"Invalid date: {text}")
