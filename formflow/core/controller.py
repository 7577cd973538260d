"""
Workflow controller.

Owns one Draft (submission + cursor + resume key) and is the only place that
mutates it. Every mutation is followed by an explicit save to the local draft
store. Errors from the collaborators are turned into Error Map entries here and
never escape a transition.
"""
from dataclasses import asdict, dataclass, field, replace
from datetime import date
from typing import Any, Callable, Dict, Optional

from formflow.core import state_machine as sm
from formflow.core.resume import Blocked, Fresh, ResumeLookupError, ResumeResolver, Resuming
from formflow.core.synchronizer import SectionSynchronizer, SyncError
from formflow.core.validators import validate
from formflow.observability.logging import log
from formflow.remote.client import RemoteServiceError, RemoteValidationError
from formflow.store import models as m
from formflow.store.draft_store import LocalDraftStore
from formflow.utils.phone import is_valid_phone

SAVE_FAILED_MESSAGE = "Failed to save data. Please try again."
SUBMIT_FAILED_MESSAGE = "Failed to submit the application. Please try again."
LOOKUP_FAILED_MESSAGE = "An unexpected error occurred. Please check your internet connection and try again."


class UnknownFieldError(ValueError):
    pass


class FieldValueError(ValueError):
    """A known field was given a value that does not fit its type."""


@dataclass
class StepView:
    state: str
    cursor: int
    totalSteps: int
    section: Optional[str]
    label: Optional[str]
    data: Dict[str, Any] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    apiError: Optional[str] = None
    entryError: Optional[str] = None
    blockedReason: Optional[str] = None
    blockedMessage: Optional[str] = None
    submitting: bool = False
    canAdvance: bool = False
    canRetreat: bool = False
    resumeKey: str = ""
    resumeMode: bool = False
    customerId: Optional[int] = None
    submitted: bool = False


def _remote_message(e: Exception, fallback: str) -> str:
    if isinstance(e, (RemoteValidationError, SyncError)):
        return str(e)
    return fallback


def _entry_message(e: ResumeLookupError) -> str:
    """Backend phone-number feedback when the lookup was rejected, else the connection message."""
    cause = e.__cause__
    if not isinstance(cause, RemoteValidationError):
        return LOOKUP_FAILED_MESSAGE
    for key in ("phoneNumber", "PhoneNumber"):
        msgs = cause.field_errors.get(key)
        if msgs:
            return ", ".join(str(x) for x in msgs) if isinstance(msgs, (list, tuple)) else str(msgs)
    return str(cause)


class WorkflowController:
    def __init__(
        self,
        store: LocalDraftStore,
        synchronizer: SectionSynchronizer,
        resolver: ResumeResolver,
        today: Optional[Callable[[], date]] = None,
    ):
        self.store = store
        self.synchronizer = synchronizer
        self.resolver = resolver
        self._today = today or date.today

        self.errors = m.FormErrors()
        self.submitting = False
        self.entry_error: Optional[str] = None
        self.blocked: Optional[Blocked] = None
        self.reload()

    @property
    def submission(self) -> m.Submission:
        return self.draft.submission

    @property
    def cursor(self) -> int:
        return self.draft.cursor

    @property
    def current_section(self) -> Optional[str]:
        if self.state != sm.SECTION:
            return None
        return m.SECTIONS[self.draft.cursor]

    def reload(self) -> None:
        """
        Re-read the persisted draft. Callers that share the store with other
        requests do this after taking the device lock, so a transition never
        writes back a copy loaded before someone else's commit.
        """
        self.draft = self.store.load()
        # a persisted resume key means entry already happened on an earlier request
        self.state = sm.state_for_cursor(self.draft.cursor) if self.draft.resumeKey else sm.ENTRY

    def _persist(self) -> None:
        self.store.save(self.draft)

    def _move_to(self, cursor: int) -> None:
        self.draft.cursor = max(0, min(cursor, sm.STEP_COUNT))
        self.state = sm.state_for_cursor(self.draft.cursor)

    # ------------------------------------------------------------------
    # Entry
    # ------------------------------------------------------------------
    async def enter(self, resume_key: str) -> str:
        """Resolve the resume key and route to Fresh / Resuming / Blocked."""
        if self.state != sm.ENTRY or self.submitting:
            return self.state

        key = (resume_key or "").strip()
        if not key:
            self.entry_error = "Mobile phone number is required."
            return self.state
        if not is_valid_phone(key):
            self.entry_error = "Please enter a valid Ethiopian mobile phone number."
            return self.state

        self.entry_error = None
        self.submitting = True
        try:
            outcome = await self.resolver.resolve(key)
        except ResumeLookupError as e:
            self.entry_error = _entry_message(e)
            return self.state
        finally:
            self.submitting = False

        if isinstance(outcome, Blocked):
            self.blocked = outcome
            self.state = sm.BLOCKED
            log(event="workflow_blocked", reason=outcome.reason)
            return self.state
        if isinstance(outcome, Resuming):
            self.draft = m.Draft(submission=outcome.submission, resumeKey=key, resumeMode=True)
            self._move_to(outcome.furthestStep)
        elif isinstance(outcome, Fresh):
            self.draft = m.Draft(submission=outcome.submission, resumeKey=key, resumeMode=False)
            self._move_to(0)
        else:
            raise TypeError(f"Unhandled entry outcome: {outcome!r}")

        self.errors = m.FormErrors()
        self._persist()
        log(event="workflow_entered", resumeMode=self.draft.resumeMode, cursor=self.draft.cursor)
        return self.state

    # ------------------------------------------------------------------
    # Section transitions
    # ------------------------------------------------------------------
    def edit_section(self, name: str, partial: Dict[str, Any]) -> bool:
        """Merge `partial` into section `name`; clears that section's errors."""
        if self.state != sm.SECTION or self.submitting:
            return False
        if name not in m.SECTION_TYPES:
            raise UnknownFieldError(f"Unknown section: {name}")
        allowed = set(m.section_field_names(name)) - {"id"}
        unknown = sorted(set(partial) - allowed)
        if unknown:
            raise UnknownFieldError(f"Unknown field(s) for {name}: {', '.join(unknown)}")
        try:
            values = {k: m.coerce_field(name, k, v) for k, v in partial.items()}
        except ValueError as e:
            raise FieldValueError(str(e)) from e

        self.submission.set_section(name, replace(self.submission.section(name), **values))
        self.errors.clear_section(name)
        self._persist()
        return True

    async def advance(self) -> bool:
        """
        Validate the current section, synchronize it, then step forward.
        Returns True only when the cursor moved. A call made while a
        synchronization is in flight is ignored.
        """
        if self.state != sm.SECTION or self.submitting:
            return False

        name = m.SECTIONS[self.draft.cursor]
        data = self.submission.section(name)

        section_errors = validate(name, data, today=self._today())
        self.errors.sections[name] = section_errors
        self.errors.apiError = None
        if section_errors:
            log(event="workflow_validation_failed", section=name, fields=sorted(section_errors))
            return False

        self.submitting = True
        try:
            result = await self.synchronizer.sync(
                name,
                data,
                submission_id=self.submission.customerId,
                resume_key=self.draft.resumeKey,
            )
        except (RemoteServiceError, SyncError) as e:
            self.errors.apiError = _remote_message(e, SAVE_FAILED_MESSAGE)
            return False
        finally:
            self.submitting = False

        current = self.submission.section(name)
        self.submission.set_section(name, replace(current, id=result.sectionId, **result.updates))
        if self.submission.customerId is None:
            self.submission.customerId = result.submissionId

        self._move_to(self.draft.cursor + 1)
        self._persist()
        log(event="workflow_advanced", section=name, cursor=self.draft.cursor, customerId=self.submission.customerId)
        return True

    def retreat(self) -> bool:
        if self.state != sm.SECTION or self.submitting or self.draft.cursor == 0:
            return False
        self.errors.clear_section(m.SECTIONS[self.draft.cursor])
        self._move_to(self.draft.cursor - 1)
        self._persist()
        return True

    # ------------------------------------------------------------------
    # Terminal actions
    # ------------------------------------------------------------------
    def restart_from_beginning(self) -> bool:
        """Update application: back to the first section, keeping all data."""
        if self.state != sm.COMPLETE or self.submitting:
            return False
        self.errors = m.FormErrors()
        self._move_to(0)
        self._persist()
        log(event="workflow_restarted", customerId=self.submission.customerId)
        return True

    def discard_and_restart(self) -> bool:
        """Drop the draft entirely and return to resume-key entry."""
        if self.submitting:
            return False
        self.store.clear()
        self.draft = m.Draft()
        self.errors = m.FormErrors()
        self.entry_error = None
        self.blocked = None
        self.state = sm.ENTRY
        log(event="workflow_discarded")
        return True

    async def submit_application(self) -> bool:
        if self.state != sm.COMPLETE or self.submitting:
            return False
        if self.submission.submitted:
            return True
        if self.submission.customerId is None:
            self.errors.apiError = "Could not submit application: Customer ID is missing."
            return False

        self.errors.apiError = None
        self.submitting = True
        try:
            await self.synchronizer.finalize(self.submission.customerId)
        except RemoteServiceError as e:
            self.errors.apiError = _remote_message(e, SUBMIT_FAILED_MESSAGE)
            return False
        finally:
            self.submitting = False

        self.submission.submitted = True
        self._persist()
        return True

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------
    def view(self) -> StepView:
        section = self.current_section
        data: Dict[str, Any] = {}
        errors: Dict[str, str] = {}
        if section:
            data = asdict(self.submission.section(section))
            for f in m.ATTACHMENT_FIELDS & set(data):
                # binaries are not view material; expose presence only
                data[f] = bool(data[f])
            errors = dict(self.errors.sections.get(section) or {})
        in_section = self.state == sm.SECTION and not self.submitting
        return StepView(
            state=self.state,
            cursor=self.draft.cursor,
            totalSteps=sm.STEP_COUNT,
            section=section,
            label=sm.STEP_LABELS.get(section) if section else None,
            data=data,
            errors=errors,
            apiError=self.errors.apiError,
            entryError=self.entry_error,
            blockedReason=self.blocked.reason if self.blocked else None,
            blockedMessage=self.blocked.message if self.blocked else None,
            submitting=self.submitting,
            canAdvance=in_section,
            canRetreat=in_section and self.draft.cursor > 0,
            resumeKey=self.draft.resumeKey,
            resumeMode=self.draft.resumeMode,
            customerId=self.submission.customerId,
            submitted=self.submission.submitted,
        )
