from contextlib import contextmanager
import time
import uuid
from formflow.settings import settings
from formflow.store.redis_conn import get_redis

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

@contextmanager
def inflight_lock(device_id: str, ttl_ms: int = None):
    """
    Single in-flight synchronization per device.

    Non-blocking: yields True when this caller owns the lock, False when another
    request is already synchronizing (the caller should treat its trigger as a no-op).
    The TTL bounds how long a crashed request can hold the device.
    """
    r = get_redis()
    key = f"lock:workflow:{device_id}"
    token = f"{uuid.uuid4().hex}:{time.time()}"
    ttl = int(ttl_ms or settings.SYNC_LOCK_TTL_MS)
    acquired = bool(r.set(key, token, px=ttl, nx=True))
    try:
        yield acquired
    finally:
        if acquired:
            # Release only if we still own it
            try:
                r.eval(_RELEASE_SCRIPT, 1, key, token)
            except Exception:
                pass
