import base64
import binascii
from dataclasses import asdict
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from formflow.api.auth import require_api_key
from formflow.api.schemas import EntryRequest, SectionEdit, TransitionResponse, WorkflowView
from formflow.core import state_machine as sm
from formflow.core.controller import FieldValueError, UnknownFieldError, WorkflowController
from formflow.core.resume import ResumeResolver
from formflow.core.synchronizer import SectionSynchronizer
from formflow.remote.client import RemoteSubmissionClient
from formflow.store.draft_store import LocalDraftStore, RedisStorage
from formflow.store.models import ATTACHMENT_FIELDS
from formflow.utils.lock import inflight_lock

router = APIRouter(prefix="/workflow", tags=["workflow"], dependencies=[Depends(require_api_key)])


async def get_service():
    async with RemoteSubmissionClient() as client:
        yield client


def get_draft_store(device_id: str) -> LocalDraftStore:
    return LocalDraftStore(RedisStorage(device_id))


def get_controller(
    store: LocalDraftStore = Depends(get_draft_store),
    service=Depends(get_service),
) -> WorkflowController:
    return WorkflowController(store, SectionSynchronizer(service), ResumeResolver(service))


def _view(ctrl: WorkflowController) -> WorkflowView:
    return WorkflowView(**asdict(ctrl.view()))


def _busy(ctrl: WorkflowController) -> TransitionResponse:
    """Another request owns the device; report it as in flight and change nothing."""
    view = _view(ctrl)
    view.submitting = True
    view.canAdvance = False
    view.canRetreat = False
    return TransitionResponse(status="ignored", view=view)


def _decode_attachments(data: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(data)
    for name in ATTACHMENT_FIELDS & set(out):
        v = out[name]
        if v is None or isinstance(v, bytes):
            continue
        if not isinstance(v, str):
            raise HTTPException(status_code=422, detail=f"{name} must be a base64 string")
        try:
            out[name] = base64.b64decode(v, validate=True) if v else None
        except (binascii.Error, ValueError):
            raise HTTPException(status_code=422, detail=f"{name} is not valid base64")
    return out


@router.get("/{device_id}", response_model=WorkflowView)
async def get_workflow(device_id: str, ctrl: WorkflowController = Depends(get_controller)):
    return _view(ctrl)


@router.post("/{device_id}/entry", response_model=TransitionResponse)
async def enter_workflow(device_id: str, body: EntryRequest, ctrl: WorkflowController = Depends(get_controller)):
    with inflight_lock(device_id) as acquired:
        if not acquired:
            return _busy(ctrl)
        ctrl.reload()
        if ctrl.state != sm.ENTRY:
            # already entered on an earlier request; discard first to switch keys
            return TransitionResponse(status="ignored", view=_view(ctrl))
        await ctrl.enter(body.resumeKey)
    status = "rejected" if ctrl.entry_error else "success"
    return TransitionResponse(status=status, view=_view(ctrl))


@router.patch("/{device_id}/sections/{section}", response_model=TransitionResponse)
async def edit_section(
    device_id: str,
    section: str,
    body: SectionEdit,
    ctrl: WorkflowController = Depends(get_controller),
):
    partial = _decode_attachments(body.data)
    with inflight_lock(device_id) as acquired:
        if not acquired:
            return _busy(ctrl)
        ctrl.reload()
        try:
            changed = ctrl.edit_section(section, partial)
        except (UnknownFieldError, FieldValueError) as e:
            raise HTTPException(status_code=422, detail=str(e))
    return TransitionResponse(status="success" if changed else "ignored", view=_view(ctrl))


@router.post("/{device_id}/advance", response_model=TransitionResponse)
async def advance(device_id: str, ctrl: WorkflowController = Depends(get_controller)):
    with inflight_lock(device_id) as acquired:
        if not acquired:
            return _busy(ctrl)
        ctrl.reload()
        moved = await ctrl.advance()
    return TransitionResponse(status="success" if moved else "rejected", view=_view(ctrl))


@router.post("/{device_id}/retreat", response_model=TransitionResponse)
async def retreat(device_id: str, ctrl: WorkflowController = Depends(get_controller)):
    with inflight_lock(device_id) as acquired:
        if not acquired:
            return _busy(ctrl)
        ctrl.reload()
        moved = ctrl.retreat()
    return TransitionResponse(status="success" if moved else "ignored", view=_view(ctrl))


@router.post("/{device_id}/restart", response_model=TransitionResponse)
async def restart_from_beginning(device_id: str, ctrl: WorkflowController = Depends(get_controller)):
    with inflight_lock(device_id) as acquired:
        if not acquired:
            return _busy(ctrl)
        ctrl.reload()
        moved = ctrl.restart_from_beginning()
    return TransitionResponse(status="success" if moved else "ignored", view=_view(ctrl))


@router.post("/{device_id}/discard", response_model=TransitionResponse)
async def discard_and_restart(device_id: str, ctrl: WorkflowController = Depends(get_controller)):
    with inflight_lock(device_id) as acquired:
        if not acquired:
            return _busy(ctrl)
        ctrl.reload()
        ctrl.discard_and_restart()
    return TransitionResponse(status="success", view=_view(ctrl))


@router.post("/{device_id}/submit", response_model=TransitionResponse)
async def submit_application(device_id: str, ctrl: WorkflowController = Depends(get_controller)):
    with inflight_lock(device_id) as acquired:
        if not acquired:
            return _busy(ctrl)
        ctrl.reload()
        ok = await ctrl.submit_application()
    return TransitionResponse(status="success" if ok else "rejected", view=_view(ctrl))
