# Workflow states (the step cursor is only meaningful in SECTION)

from formflow.store.models import SECTIONS

# Resume-key capture, before any section is shown
ENTRY = "ENTRY"

# One of the fixed sections; cursor in [0, len(SECTIONS))
SECTION = "SECTION"

# Cursor == len(SECTIONS); read-only summary with update / discard actions
COMPLETE = "COMPLETE"

# Resume key maps to an already-activated account; nothing can proceed
BLOCKED = "BLOCKED"

STEP_COUNT = len(SECTIONS)

STEP_LABELS = {
    "personal": "Personal",
    "address": "Address",
    "financial": "Financial",
    "other": "Other",
    "document": "Document",
    "epayment": "E-Payment",
    "passbook": "Passbook",
    "signature": "Signature",
}


def state_for_cursor(cursor: int) -> str:
    return COMPLETE if cursor >= STEP_COUNT else SECTION
