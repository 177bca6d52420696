"""Form Controller: state machine driving one waitlist form.

Invariants:
    - At most one submission in flight; submit() while one is pending is a
      no-op, even after reset() dropped its result
    - Debounced validation reads field values when it fires, never when armed
    - Email existence checks are last-write-wins: a new email value cancels the
      pending or in-flight check, and a response for a value that is no longer
      current is dropped
    - reset() and close() cancel every timer and pending check
    - Errors surface through state (errors, submit_error); nothing is raised to
      the presentation layer

All timers are asyncio handles, so every method that arms one must be called
from inside a running event loop.
"""
import asyncio
import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from config.constants import (
    DEFAULT_EMAIL_CHECK_DEBOUNCE_MS,
    DEFAULT_RESET_DELAY_MS,
    DEFAULT_SOURCE,
    DEFAULT_VALIDATION_DEBOUNCE_MS,
    FORM_FIELDS,
)
from models.forms import ClientResult, FormData, SubmissionRecord, ValidationError
from services.submission_service import SubmissionClient
from utils.errors import SubmissionError, duplicate_email_error, translate_error
from utils.logger import log_debug, log_error, log_warning, mask_email
from utils.validation import sanitize, sanitize_email, validate_and_sanitize, validate_field

Listener = Callable[['FormController'], None]


class FormState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    ERROR = "error"


class EmailCheckState(str, Enum):
    UNCHECKED = "unchecked"
    DEBOUNCING = "debouncing"
    CHECKING = "checking"
    EXISTS = "exists"
    AVAILABLE = "available"


@dataclass
class FormControllerOptions:
    debounce_ms: int = DEFAULT_VALIDATION_DEBOUNCE_MS
    email_check_debounce_ms: int = DEFAULT_EMAIL_CHECK_DEBOUNCE_MS
    validate_on_change: bool = False
    validate_on_blur: bool = True
    check_email_availability: bool = True
    auto_reset: bool = True
    reset_delay_ms: int = DEFAULT_RESET_DELAY_MS
    source: str = DEFAULT_SOURCE
    on_success: Optional[Callable[[SubmissionRecord], None]] = None
    on_error: Optional[Callable[[SubmissionError], None]] = None


class FormController:
    """Coordinates validation, the email check and submission for one form"""

    def __init__(
        self,
        client: SubmissionClient,
        options: Optional[FormControllerOptions] = None,
        initial_data: Optional[FormData] = None,
    ):
        self.client = client
        self.options = options or FormControllerOptions()
        self._initial_data = initial_data or FormData()
        self.data = dataclasses.replace(self._initial_data)

        self.state = FormState.IDLE
        self.submit_error: Optional[SubmissionError] = None
        self.record: Optional[SubmissionRecord] = None

        self.email_check_state = EmailCheckState.UNCHECKED
        self.email_check_error: Optional[SubmissionError] = None
        self._checked_email: Optional[str] = None

        self._errors: Dict[str, ValidationError] = {}
        self._touched = set()
        self._dirty = False
        self._submit_attempted = False

        self._validation_handle: Optional[asyncio.TimerHandle] = None
        self._reset_handle: Optional[asyncio.TimerHandle] = None
        self._email_check_task: Optional[asyncio.Task] = None

        # bumped by reset(); a submission that finishes under an older generation is dropped
        self._generation = 0
        self._submit_in_flight = False
        self._listeners: List[Listener] = []
        self._closed = False

    # -- Presentation boundary -------------------------------------------------

    @property
    def errors(self) -> List[ValidationError]:
        return [self._errors[f] for f in FORM_FIELDS if f in self._errors]

    @property
    def is_valid(self) -> bool:
        return validate_and_sanitize(self.data).is_valid

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def is_submitting(self) -> bool:
        return self.state == FormState.SUBMITTING

    @property
    def email_exists(self) -> bool:
        return (
            self.email_check_state == EmailCheckState.EXISTS
            and self._checked_email == sanitize_email(self.data.email)
        )

    def get_field_error(self, field: str) -> Optional[str]:
        error = self._errors.get(field)
        if error:
            return error.message
        if field == 'email' and self.email_exists:
            return duplicate_email_error().message
        return None

    def is_field_touched(self, field: str) -> bool:
        return field in self._touched

    def should_show_field_error(self, field: str) -> bool:
        visible = field in self._touched or self._submit_attempted
        return visible and self.get_field_error(field) is not None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that unsubscribes it"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- Operations --------------------------------------------------------------

    def update_field(self, field: str, value: Any) -> None:
        if self._closed:
            return
        if field not in FORM_FIELDS:
            log_warning(f"Ignoring update for unknown form field: {field}")
            return

        setattr(self.data, field, value)
        self._dirty = True
        self._touched.add(field)

        if self.options.validate_on_change:
            self._validate_single_field(field)
        else:
            self._schedule_validation()

        if field == 'email' and self.options.check_email_availability:
            self._schedule_email_check()

        self._notify()

    def blur_field(self, field: str) -> None:
        if self._closed or field not in FORM_FIELDS:
            return
        self._touched.add(field)
        if self.options.validate_on_blur:
            self._validate_single_field(field)
        self._notify()

    async def submit(self) -> Optional[ClientResult[SubmissionRecord]]:
        """
        Validate and submit the form.

        Returns the client result when the network was called, None when the
        call was skipped (already submitting, invalid form, known duplicate).
        """
        if self._closed or self._submit_in_flight:
            return None

        self._submit_attempted = True
        self._touched.update(FORM_FIELDS)
        self._cancel_validation()
        self.submit_error = None

        result = validate_and_sanitize(self.data)
        self._errors = {error.field: error for error in result.errors}
        if not result.is_valid:
            self._set_state(FormState.IDLE)
            self._notify()
            return None

        sanitized = result.sanitized_data
        if self.email_check_state == EmailCheckState.EXISTS and self._checked_email == sanitized.email:
            self._handle_failure(duplicate_email_error(), sanitized.email)
            return None

        self._cancel_reset_timer()
        self.record = None
        self._set_state(FormState.SUBMITTING)
        self._notify()

        generation = self._generation
        self._submit_in_flight = True
        try:
            outcome = await self.client.submit(sanitized, self.options.source)
        except Exception as e:
            log_error("Submission client raised unexpectedly", error=e)
            outcome = ClientResult.failed(translate_error(e))
        finally:
            self._submit_in_flight = False

        if self._closed or generation != self._generation:
            log_debug("Dropping submission result for a form that was reset")
            return outcome

        if outcome.success:
            self._handle_success(outcome.data)
        else:
            self._handle_failure(translate_error(outcome.error), sanitized.email)
        return outcome

    def reset(self) -> None:
        if self._closed:
            return
        self._cancel_pending_work()
        self._clear_form()
        self._generation += 1
        self.submit_error = None
        self.record = None
        self.state = FormState.IDLE
        self._notify()

    def dismiss_error(self) -> None:
        if self.state != FormState.ERROR:
            return
        self.submit_error = None
        self.state = FormState.IDLE
        self._notify()

    def close(self) -> None:
        """Tear down the controller; later calls are ignored"""
        self._cancel_pending_work()
        self._generation += 1
        self._listeners.clear()
        self._closed = True

    # -- Validation ------------------------------------------------------------------

    def _validate_single_field(self, field: str) -> None:
        error = validate_field(field, getattr(sanitize(self.data), field))
        if error:
            self._errors[field] = error
        else:
            self._errors.pop(field, None)

    def _schedule_validation(self) -> None:
        self._cancel_validation()
        loop = asyncio.get_running_loop()
        self._validation_handle = loop.call_later(
            self.options.debounce_ms / 1000, self._run_debounced_validation,
        )
        if self.state == FormState.IDLE:
            self.state = FormState.VALIDATING

    def _run_debounced_validation(self) -> None:
        self._validation_handle = None
        result = validate_and_sanitize(self.data)
        self._errors = {error.field: error for error in result.errors}
        if self.state == FormState.VALIDATING:
            self.state = FormState.IDLE
        self._notify()

    def _cancel_validation(self) -> None:
        if self._validation_handle is not None:
            self._validation_handle.cancel()
            self._validation_handle = None
        if self.state == FormState.VALIDATING:
            self.state = FormState.IDLE

    # -- Email existence check ------------------------------------------------------

    def _schedule_email_check(self) -> None:
        self._cancel_email_check()
        self.email_check_error = None
        self._checked_email = None
        self.email_check_state = EmailCheckState.DEBOUNCING
        self._email_check_task = asyncio.get_running_loop().create_task(
            self._check_email_after_delay(self.options.email_check_debounce_ms / 1000)
        )

    async def _check_email_after_delay(self, delay: float) -> None:
        await asyncio.sleep(delay)

        email = sanitize_email(self.data.email)
        if validate_field('email', email) is not None:
            self.email_check_state = EmailCheckState.UNCHECKED
            self._notify()
            return

        self.email_check_state = EmailCheckState.CHECKING
        self._notify()
        try:
            result = await self.client.check_email_exists(email)
        except Exception as e:
            log_error("Email check raised unexpectedly", error=e)
            result = ClientResult.failed(translate_error(e))

        if sanitize_email(self.data.email) != email:
            log_debug(f"Discarding stale email check for {mask_email(email)}")
            return

        self._email_check_task = None
        if result.success:
            self._checked_email = email
            self.email_check_state = EmailCheckState.EXISTS if result.data else EmailCheckState.AVAILABLE
        else:
            self.email_check_state = EmailCheckState.UNCHECKED
            self.email_check_error = translate_error(result.error)
        self._notify()

    def _cancel_email_check(self) -> None:
        if self._email_check_task is not None:
            self._email_check_task.cancel()
            self._email_check_task = None

    # -- Submission outcome ------------------------------------------------------------

    def _handle_success(self, record: SubmissionRecord) -> None:
        self._cancel_pending_work()
        self._clear_form()
        self.record = record
        self._set_state(FormState.SUCCESS)
        self._invoke(self.options.on_success, record)
        if self.options.auto_reset:
            self._reset_handle = asyncio.get_running_loop().call_later(
                self.options.reset_delay_ms / 1000, self._auto_reset,
            )
        self._notify()

    def _handle_failure(self, error: SubmissionError, submitted_email: str) -> None:
        self.submit_error = error
        if error.is_duplicate_email and submitted_email == sanitize_email(self.data.email):
            # the store is authoritative even if the earlier check said available;
            # a newer email value keeps its own pending check
            self._cancel_email_check()
            self._checked_email = submitted_email
            self.email_check_state = EmailCheckState.EXISTS
        self._set_state(FormState.ERROR)
        self._invoke(self.options.on_error, error)
        self._notify()

    def _auto_reset(self) -> None:
        """Clear the success status only; anything typed since the success stays"""
        self._reset_handle = None
        if self.state != FormState.SUCCESS:
            return
        self.record = None
        self._set_state(FormState.IDLE)
        self._notify()

    def _cancel_reset_timer(self) -> None:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None

    # -- Helpers ----------------------------------------------------------------------

    def _cancel_pending_work(self) -> None:
        self._cancel_validation()
        self._cancel_email_check()
        self._cancel_reset_timer()

    def _clear_form(self) -> None:
        self.data = dataclasses.replace(self._initial_data)
        self._errors = {}
        self._touched = set()
        self._dirty = False
        self._submit_attempted = False
        self.email_check_state = EmailCheckState.UNCHECKED
        self.email_check_error = None
        self._checked_email = None

    def _set_state(self, state: FormState) -> None:
        if self.state != state:
            log_debug(f"Form state {self.state.value} -> {state.value}")
        self.state = state

    def _invoke(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            log_error("Form callback failed", error=e)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            self._invoke(listener, self)
