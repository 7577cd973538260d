import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

from formflow.observability import metrics
from formflow.observability.logging import log
from formflow.remote.client import RemoteServiceError, SubmissionService
from formflow.remote.payloads import to_remote_payload
from formflow.store import models as m

# section -> (pending binary field, reference url field, upload filename)
UPLOADS = {
    m.DOCUMENT: ("photoIdFile", "docPhotoUrl", "document-photo"),
    m.SIGNATURE: ("signatureFile", "signatureUrl", "signature"),
}


class SyncError(RuntimeError):
    """A section cannot be synchronized in the current submission state."""


@dataclass
class SyncResult:
    sectionId: int
    submissionId: int
    # local fields rewritten by side effects (uploaded binary -> url)
    updates: Dict[str, Any] = field(default_factory=dict)


class SectionSynchronizer:
    def __init__(self, service: SubmissionService):
        self.service = service

    async def sync(
        self,
        section: str,
        data,
        submission_id: Optional[int] = None,
        resume_key: Optional[str] = None,
    ) -> SyncResult:
        """
        Upsert one section remotely.

        The personal section is the only one allowed without a submission id; its
        returned id becomes the submission id. Every later section carries it.
        Raises SyncError for a missing submission id and RemoteServiceError for
        anything the remote side rejects. The caller's section data is never mutated.
        """
        if section != m.PERSONAL and submission_id is None:
            raise SyncError("Customer ID is missing. Please complete Personal Details first.")

        t0 = time.monotonic()
        metrics.record_sync(section, "attempt")
        updates: Dict[str, Any] = {}
        try:
            upload = UPLOADS.get(section)
            if upload:
                file_field, url_field, filename = upload
                content = getattr(data, file_field)
                if content:
                    url = await self.service.upload_attachment(content, filename)
                    updates = {url_field: url, file_field: None}
                    data = replace(data, **updates)

            payload = to_remote_payload(section, data, submission_id)
            section_id = await self.service.create_or_update_section(
                section, payload, submission_id=submission_id, resume_key=resume_key
            )
        except RemoteServiceError as e:
            metrics.record_sync(section, "failure")
            log(
                event="section_sync_failed",
                section=section,
                customerId=submission_id,
                statusCode=getattr(e, "status_code", None),
                errorType=type(e).__name__,
                error=str(e)[:300],
                elapsedMs=int((time.monotonic() - t0) * 1000),
            )
            raise

        new_submission_id = submission_id if submission_id is not None else section_id
        metrics.record_sync(section, "success")
        log(
            event="section_synced",
            section=section,
            sectionId=section_id,
            customerId=new_submission_id,
            uploaded=sorted(updates.keys()),
            elapsedMs=int((time.monotonic() - t0) * 1000),
        )
        return SyncResult(sectionId=section_id, submissionId=new_submission_id, updates=updates)

    async def finalize(self, submission_id: int) -> Dict[str, Any]:
        """Final submission once every section is stored remotely."""
        try:
            result = await self.service.submit_application(submission_id)
        except RemoteServiceError as e:
            log(event="application_submit_failed", customerId=submission_id,
                errorType=type(e).__name__, error=str(e)[:300])
            raise
        log(event="application_submitted", customerId=submission_id)
        return result
