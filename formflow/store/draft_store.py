"""
Local draft store.

Persists the in-progress submission for one device under fixed key names so a
reload (or a new HTTP request) picks up exactly where the applicant left off.
Persistence is best-effort: a failing storage medium is logged and otherwise
ignored, the in-memory workflow keeps running.
"""
import base64
import json
from dataclasses import asdict
from typing import Dict, Optional, Protocol

from formflow.observability.logging import log
from formflow.settings import settings
from formflow.store.models import (
    ATTACHMENT_FIELDS,
    SECTION_TYPES,
    SECTIONS,
    Draft,
    Submission,
    section_field_names,
)
from formflow.store.redis_conn import get_redis

KEY_FORM_DATA = "accountOpeningFormData"
KEY_CURRENT_STEP = "accountOpeningCurrentStep"
KEY_PHONE = "accountOpeningPhone"
KEY_RESUME_MODE = "accountOpeningResumeMode"

DRAFT_KEYS = (KEY_FORM_DATA, KEY_CURRENT_STEP, KEY_PHONE, KEY_RESUME_MODE)


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...
    def set(self, key: str, value: str) -> None: ...
    def remove(self, key: str) -> None: ...


class MemoryStorage:
    """Process-local storage; used by tests and embedded callers."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class RedisStorage:
    """Redis-backed storage namespaced per device."""

    def __init__(self, namespace: str, ttl_sec: Optional[int] = None):
        self.namespace = namespace
        self.ttl_sec = settings.DRAFT_TTL_SEC if ttl_sec is None else ttl_sec

    def _key(self, key: str) -> str:
        return f"{settings.DRAFT_KEY_PREFIX}:{self.namespace}:{key}"

    def get(self, key: str) -> Optional[str]:
        return get_redis().get(self._key(key))

    def set(self, key: str, value: str) -> None:
        r = get_redis()
        if self.ttl_sec and self.ttl_sec > 0:
            r.set(self._key(key), value, ex=int(self.ttl_sec))
        else:
            r.set(self._key(key), value)

    def remove(self, key: str) -> None:
        get_redis().delete(self._key(key))


def _encode_attachments(section_data: dict) -> dict:
    out = dict(section_data)
    for name in ATTACHMENT_FIELDS:
        if isinstance(out.get(name), (bytes, bytearray)):
            out[name] = base64.b64encode(out[name]).decode("ascii")
    return out


def _decode_attachments(section_data: dict) -> dict:
    for name in ATTACHMENT_FIELDS:
        v = section_data.get(name)
        if isinstance(v, str):
            try:
                section_data[name] = base64.b64decode(v.encode("ascii"), validate=True)
            except ValueError:
                section_data[name] = None
    return section_data


def _filter_section_kwargs(section: str, data: dict) -> dict:
    """Drop unknown fields so a section record never explodes on old drafts."""
    allowed = set(section_field_names(section))
    return {k: v for k, v in data.items() if k in allowed}


def submission_to_dict(submission: Submission) -> dict:
    data = asdict(submission)
    for name in SECTIONS:
        data[name] = _encode_attachments(data[name])
    return data


def submission_from_dict(data: dict) -> Submission:
    submission = Submission()
    if not isinstance(data, dict):
        return submission
    cid = data.get("customerId")
    submission.customerId = int(cid) if isinstance(cid, int) or (isinstance(cid, str) and cid.isdigit()) else None
    submission.submitted = bool(data.get("submitted", False))
    for name in SECTIONS:
        raw = data.get(name)
        if not isinstance(raw, dict):
            continue
        kwargs = _decode_attachments(_filter_section_kwargs(name, raw))
        submission.set_section(name, SECTION_TYPES[name](**kwargs))
    return submission


def _parse_cursor(raw: Optional[str]) -> int:
    try:
        step = int(raw or 0)
    except (TypeError, ValueError):
        return 0
    return max(0, min(step, len(SECTIONS)))


class LocalDraftStore:
    def __init__(self, storage: KeyValueStorage):
        self.storage = storage

    def load(self) -> Draft:
        """Return the persisted draft, or a fresh default when none exists."""
        try:
            raw_form = self.storage.get(KEY_FORM_DATA)
            raw_step = self.storage.get(KEY_CURRENT_STEP)
            raw_phone = self.storage.get(KEY_PHONE)
            raw_mode = self.storage.get(KEY_RESUME_MODE)
        except Exception as e:
            log(event="draft_load_failed", errorType=type(e).__name__, error=str(e)[:200])
            return Draft()

        if not raw_form and not raw_phone:
            return Draft()

        data = {}
        if raw_form:
            try:
                data = json.loads(raw_form)
            except ValueError:
                log(event="draft_corrupt_form_data", size=len(raw_form))
                data = {}

        return Draft(
            submission=submission_from_dict(data),
            cursor=_parse_cursor(raw_step),
            resumeKey=raw_phone or "",
            resumeMode=(raw_mode or "").lower() == "true",
        )

    def save(self, draft: Draft) -> bool:
        try:
            self.storage.set(KEY_FORM_DATA, json.dumps(submission_to_dict(draft.submission)))
            self.storage.set(KEY_CURRENT_STEP, str(int(draft.cursor)))
            self.storage.set(KEY_PHONE, draft.resumeKey or "")
            self.storage.set(KEY_RESUME_MODE, "true" if draft.resumeMode else "false")
            return True
        except Exception as e:
            log(event="draft_save_failed", errorType=type(e).__name__, error=str(e)[:200])
            return False

    def clear(self) -> None:
        for key in DRAFT_KEYS:
            try:
                self.storage.remove(key)
            except Exception as e:
                log(event="draft_clear_failed", key=key, errorType=type(e).__name__)
