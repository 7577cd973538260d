#!/usr/bin/env python3
import sys
import os

print("Running preflight import check...")
try:
    # Dummy env so settings load without a real .env
    os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
    os.environ.setdefault("REMOTE_BASE_URL", "http://localhost:5268/api")

    import formflow.main
    print("Import formflow.main: OK")

    import formflow.core.controller
    print("Import formflow.core.controller: OK")

    from formflow.store.models import SECTIONS
    from formflow.remote.client import SECTION_PATHS
    from formflow.remote.payloads import PAYLOAD_BUILDERS
    missing = [s for s in SECTIONS if s not in SECTION_PATHS or s not in PAYLOAD_BUILDERS]
    if missing:
        raise RuntimeError(f"sections without remote wiring: {missing}")
    print(f"Remote wiring for {len(SECTIONS)} sections: OK")

    print("Preflight check passed.")
    sys.exit(0)
except Exception as e:
    print(f"Preflight check FAILED: {e}")
    import traceback
    traceback.print_exc()
    sys.exit(1)
