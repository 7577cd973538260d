import pytest

from formflow.remote.client import RemoteServiceError
from formflow.settings import settings


class FakeRemote:
    """In-memory stand-in for the account service; records every call."""

    def __init__(self, summary=None, exists=False, start_id=100):
        self.summary = summary
        self.exists = exists
        self.next_id = start_id
        self.calls = []
        self.fail_sections = {}
        self.lookup_error = None
        self.submit_error = None
        self.uploads = []

    async def lookup_by_key(self, key):
        self.calls.append(("lookup", key))
        if self.lookup_error:
            raise self.lookup_error
        return self.summary

    async def account_exists(self, key):
        self.calls.append(("exists", key))
        return self.exists

    async def create_or_update_section(self, section, payload, submission_id=None, resume_key=None):
        self.calls.append(("section", section, dict(payload), submission_id, resume_key))
        if section in self.fail_sections:
            raise self.fail_sections[section]
        if payload.get("Id"):
            return payload["Id"]
        self.next_id += 1
        return self.next_id

    async def upload_attachment(self, content, filename="upload.bin"):
        self.uploads.append((filename, content))
        return f"https://files.example/{filename}.png"

    async def submit_application(self, customer_id):
        self.calls.append(("submit", customer_id))
        if self.submit_error:
            raise self.submit_error
        return {"success": True}

    def section_calls(self):
        return [c for c in self.calls if c[0] == "section"]


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def broken_remote():
    r = FakeRemote()
    r.lookup_error = RemoteServiceError("Could not reach the account service: ConnectError")
    return r


@pytest.fixture(autouse=True)
def no_metrics():
    original = settings.METRICS_ENABLED
    settings.METRICS_ENABLED = False
    yield
    settings.METRICS_ENABLED = original


@pytest.fixture
def make_remote():
    return FakeRemote
