from fastapi import APIRouter, Depends

from formflow.api.auth import require_admin
from formflow.core import state_machine as sm
from formflow.store.draft_store import LocalDraftStore, RedisStorage
from formflow.store.models import SECTIONS
import formflow.observability.metrics as metrics

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/draft/{device_id}")
def get_draft_snapshot(device_id: str, _=Depends(require_admin)):
    """Progress snapshot for one device; identifiers and flags only, no applicant data."""
    draft = LocalDraftStore(RedisStorage(device_id)).load()
    s = draft.submission
    return {
        "deviceId": device_id,
        "state": sm.state_for_cursor(draft.cursor) if draft.resumeKey else sm.ENTRY,
        "cursor": draft.cursor,
        "hasResumeKey": bool(draft.resumeKey),
        "resumeMode": draft.resumeMode,
        "customerId": s.customerId,
        "submitted": s.submitted,
        "sectionIds": {name: s.section(name).id for name in SECTIONS},
    }


@router.get("/metrics")
def get_metrics(_=Depends(require_admin)):
    return metrics.get_metrics_snapshot()
