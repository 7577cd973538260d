"""
Workflow counters backed by Redis.

Counters are best-effort: a missing or unreachable Redis never affects the
workflow, and the snapshot reports zeros for keys that were never written.
"""
from __future__ import annotations
from typing import Dict

from formflow.settings import settings
from formflow.store.models import SECTIONS
from formflow.store.redis_conn import get_redis

K_SYNC = "metrics:sync:{outcome}:{section}"   # INCR
K_RESUME = "metrics:resume:{outcome}"         # INCR

SYNC_OUTCOMES = ("attempt", "success", "failure")
RESUME_OUTCOMES = ("fresh", "resuming", "blocked", "error")


def _incr(key: str) -> None:
    if not settings.METRICS_ENABLED:
        return
    try:
        get_redis().incr(key, 1)
    except Exception:
        pass


def record_sync(section: str, outcome: str) -> None:
    _incr(K_SYNC.format(outcome=outcome, section=section))


def record_resume(outcome: str) -> None:
    _incr(K_RESUME.format(outcome=outcome))


def _as_int(v) -> int:
    try:
        return int(v or 0)
    except (TypeError, ValueError):
        return 0


def get_metrics_snapshot() -> Dict[str, object]:
    r = get_redis()
    sync_keys = [K_SYNC.format(outcome=o, section=s) for s in SECTIONS for o in SYNC_OUTCOMES]
    resume_keys = [K_RESUME.format(outcome=o) for o in RESUME_OUTCOMES]
    values = r.mget(sync_keys + resume_keys)

    sync: Dict[str, Dict[str, int]] = {s: {} for s in SECTIONS}
    it = iter(values[: len(sync_keys)])
    for s in SECTIONS:
        for o in SYNC_OUTCOMES:
            sync[s][o] = _as_int(next(it))

    resume = {o: _as_int(v) for o, v in zip(RESUME_OUTCOMES, values[len(sync_keys):])}
    return {"enabled": bool(settings.METRICS_ENABLED), "sync": sync, "resume": resume}
