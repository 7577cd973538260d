"""
Resume resolver.

Given the applicant's phone number, decide how the workflow starts:
  Fresh     - nothing saved remotely; a new submission seeded with the phone
  Resuming  - a saved draft; every section hydrated, cursor at the first gap
  Blocked   - the phone already belongs to an activated account
A failure to reach the service raises ResumeLookupError; it never turns into Fresh.
"""
from dataclasses import dataclass, replace
from typing import Optional, Union

from formflow.observability import metrics
from formflow.observability.logging import log
from formflow.remote.client import RemoteServiceError, SubmissionService
from formflow.remote.payloads import SUMMARY_KEYS, section_from_remote
from formflow.settings import settings
from formflow.store import models as m

BLOCKED_ACCOUNT_EXISTS = "account_exists"


class ResumeLookupError(RuntimeError):
    pass


@dataclass(frozen=True)
class Fresh:
    submission: m.Submission


@dataclass(frozen=True)
class Resuming:
    submission: m.Submission
    furthestStep: int


@dataclass(frozen=True)
class Blocked:
    reason: str
    message: str


WorkflowEntryState = Union[Fresh, Resuming, Blocked]


def fresh_submission(resume_key: str) -> m.Submission:
    s = m.Submission()
    s.address = replace(s.address, mobilePhone=resume_key)
    s.document = replace(s.document, mobilePhoneNo=resume_key)
    return s


def hydrate_submission(summary: dict, resume_key: str) -> m.Submission:
    s = m.Submission()
    for name in m.SECTIONS:
        s.set_section(name, section_from_remote(name, summary.get(SUMMARY_KEYS[name])))

    # phone fields fall back to the key the applicant just typed
    if not s.address.mobilePhone:
        s.address = replace(s.address, mobilePhone=resume_key)
    if not s.document.mobilePhoneNo:
        s.document = replace(s.document, mobilePhoneNo=resume_key)

    cid = summary.get("customerId", summary.get("CustomerId"))
    try:
        s.customerId = int(cid) if cid is not None else s.personal.id
    except (TypeError, ValueError):
        s.customerId = s.personal.id
    return s


def furthest_step(submission: m.Submission) -> int:
    """One past the highest section that already carries a durable id (0 when none)."""
    furthest = 0
    for idx, name in enumerate(m.SECTIONS):
        if submission.section(name).id:
            furthest = idx + 1
    return furthest


class ResumeResolver:
    def __init__(self, service: SubmissionService, check_existing_account: Optional[bool] = None):
        self.service = service
        self.check_existing_account = (
            settings.CHECK_EXISTING_ACCOUNT if check_existing_account is None else check_existing_account
        )

    async def resolve(self, resume_key: str) -> WorkflowEntryState:
        try:
            if self.check_existing_account and await self.service.account_exists(resume_key):
                metrics.record_resume("blocked")
                log(event="resume_blocked", resumeKey=resume_key, reason=BLOCKED_ACCOUNT_EXISTS)
                return Blocked(
                    reason=BLOCKED_ACCOUNT_EXISTS,
                    message="An account already exists for this phone number.",
                )
            summary = await self.service.lookup_by_key(resume_key)
        except RemoteServiceError as e:
            metrics.record_resume("error")
            log(event="resume_lookup_failed", resumeKey=resume_key, errorType=type(e).__name__, error=str(e)[:200])
            raise ResumeLookupError(str(e)) from e

        if not summary:
            metrics.record_resume("fresh")
            log(event="resume_fresh", resumeKey=resume_key)
            return Fresh(submission=fresh_submission(resume_key))

        submission = hydrate_submission(summary, resume_key)
        step = furthest_step(submission)
        metrics.record_resume("resuming")
        log(event="resume_found", resumeKey=resume_key, customerId=submission.customerId, furthestStep=step)
        return Resuming(submission=submission, furthestStep=step)
