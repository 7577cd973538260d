import asyncio
from dataclasses import replace
from datetime import date

import pytest

from formflow.core import state_machine as sm
from formflow.core.controller import (
    LOOKUP_FAILED_MESSAGE,
    SAVE_FAILED_MESSAGE,
    FieldValueError,
    UnknownFieldError,
    WorkflowController,
)
from formflow.core.resume import ResumeResolver
from formflow.core.synchronizer import SectionSynchronizer
from formflow.remote.client import RemoteServiceError, RemoteValidationError
from formflow.store import models as m
from formflow.store.draft_store import LocalDraftStore, MemoryStorage


PHONE = "0911111111"

VALID = {
    m.PERSONAL: dict(accountType="Saving", title="Mr", firstName="Abebe", grandfatherName="Kebede",
                     sex="Male", dateOfBirth="1990-01-01", maritalStatus="Single", nationality="Ethiopian"),
    m.ADDRESS: dict(regionCityAdministration="Addis Ababa"),
    m.FINANCIAL: dict(typeOfWork="Private", businessSector="Trade", incomeDetails_Private="10000",
                      incomeFrequencyMonthly_Private=True),
    m.OTHER: dict(sourceOfFund="Salary"),
    m.DOCUMENT: dict(idType="Kebele ID", idPassportNo="AB123", issuedBy="Addis Ababa",
                     issueDate="2020-01-01", expiryDate="2030-01-01", photoIdFile=b"photo"),
    m.EPAYMENT: dict(hasMobileBanking=True),
    m.PASSBOOK: dict(needsPassbook=True),
    m.SIGNATURE: dict(signatureFile=b"sig", termsAccepted=True),
}


def _controller(remote, storage=None, check_existing_account=False):
    storage = storage if storage is not None else MemoryStorage()
    return WorkflowController(
        LocalDraftStore(storage),
        SectionSynchronizer(remote),
        ResumeResolver(remote, check_existing_account=check_existing_account),
        today=lambda: date(2024, 6, 15),
    )


def _entered(remote, storage=None):
    ctrl = _controller(remote, storage)
    asyncio.run(ctrl.enter(PHONE))
    return ctrl


def _fill_and_advance(ctrl):
    name = ctrl.current_section
    ctrl.edit_section(name, VALID[name])
    return asyncio.run(ctrl.advance())


def test_starts_at_entry(remote):
    ctrl = _controller(remote)
    assert ctrl.state == sm.ENTRY
    assert ctrl.view().canAdvance is False


def test_entry_rejects_invalid_key(remote):
    ctrl = _controller(remote)
    asyncio.run(ctrl.enter(""))
    assert ctrl.entry_error == "Mobile phone number is required."
    asyncio.run(ctrl.enter("12345"))
    assert ctrl.entry_error == "Please enter a valid Ethiopian mobile phone number."
    assert ctrl.state == sm.ENTRY
    assert remote.calls == []


def test_fresh_entry_then_first_section_mints_submission_id(remote):
    storage = MemoryStorage()
    ctrl = _entered(remote, storage)

    assert ctrl.state == sm.SECTION
    assert ctrl.cursor == 0
    assert ctrl.submission.address.mobilePhone == PHONE
    assert ctrl.submission.document.mobilePhoneNo == PHONE

    assert _fill_and_advance(ctrl) is True
    assert ctrl.cursor == 1
    assert ctrl.submission.customerId == 101
    assert ctrl.submission.personal.id == 101

    reloaded = LocalDraftStore(storage).load()
    assert reloaded.cursor == 1
    assert reloaded.resumeKey == PHONE
    assert reloaded.submission.customerId == 101


def test_resume_opens_at_first_unsynced_section(make_remote):
    summary = {
        "customerId": 42,
        "personalDetails": {"id": 42, "firstName": "Abebe"},
        "addressDetails": {"id": 2},
        "financialDetails": {"id": 3},
        "otherDetails": {"id": 4},
    }
    ctrl = _entered(make_remote(summary=summary))

    assert ctrl.state == sm.SECTION
    assert ctrl.cursor == 4
    assert ctrl.current_section == m.DOCUMENT
    assert ctrl.draft.resumeMode is True
    assert ctrl.submission.personal.firstName == "Abebe"
    assert ctrl.submission.customerId == 42


def test_blocked_entry_is_terminal(make_remote):
    remote = make_remote(exists=True)
    storage = MemoryStorage()
    ctrl = _controller(remote, storage, check_existing_account=True)
    asyncio.run(ctrl.enter(PHONE))

    assert ctrl.state == sm.BLOCKED
    view = ctrl.view()
    assert view.blockedReason == "account_exists"
    assert view.canAdvance is False
    assert asyncio.run(ctrl.advance()) is False
    assert storage.data == {}


def test_lookup_failure_stays_at_entry(broken_remote):
    ctrl = _controller(broken_remote)
    asyncio.run(ctrl.enter(PHONE))
    assert ctrl.state == sm.ENTRY
    assert ctrl.entry_error is not None
    assert ctrl.submission == m.Submission()


def test_validation_failure_blocks_advance(remote):
    ctrl = _entered(remote)
    assert asyncio.run(ctrl.advance()) is False
    assert ctrl.cursor == 0
    assert "firstName" in ctrl.view().errors
    assert remote.section_calls() == []


def test_edit_clears_section_errors(remote):
    ctrl = _entered(remote)
    asyncio.run(ctrl.advance())
    assert ctrl.view().errors
    ctrl.edit_section(m.PERSONAL, {"firstName": "Abebe"})
    assert ctrl.view().errors == {}


def test_edit_rejects_unknown_fields(remote):
    ctrl = _entered(remote)
    with pytest.raises(UnknownFieldError):
        ctrl.edit_section(m.PERSONAL, {"favouriteColour": "blue"})
    with pytest.raises(UnknownFieldError):
        ctrl.edit_section(m.PERSONAL, {"id": 5})
    with pytest.raises(UnknownFieldError):
        ctrl.edit_section("loan", {})


def test_sync_failure_keeps_cursor_and_data(remote):
    ctrl = _entered(remote)
    for _ in range(4):
        assert _fill_and_advance(ctrl)
    assert ctrl.cursor == 4

    remote.fail_sections[m.DOCUMENT] = RemoteServiceError("Could not reach the account service: ConnectError")
    ctrl.edit_section(m.DOCUMENT, VALID[m.DOCUMENT])
    before = replace(ctrl.submission.document)

    assert asyncio.run(ctrl.advance()) is False
    assert ctrl.cursor == 4
    assert ctrl.view().apiError == SAVE_FAILED_MESSAGE
    assert ctrl.submission.document == before
    assert ctrl.submitting is False

    del remote.fail_sections[m.DOCUMENT]
    assert asyncio.run(ctrl.advance()) is True
    assert ctrl.view().apiError is None
    assert ctrl.submission.document.docPhotoUrl == "https://files.example/document-photo.png"
    assert ctrl.submission.document.photoIdFile is None


def test_every_later_sync_carries_the_submission_id(remote):
    ctrl = _entered(remote)
    for _ in m.SECTIONS:
        assert _fill_and_advance(ctrl)
    assert ctrl.state == sm.COMPLETE
    ids = [c[3] for c in remote.section_calls()]
    assert ids[0] is None
    assert ids[1:] == [101] * (len(m.SECTIONS) - 1)


def test_advance_while_sync_in_flight_is_ignored(make_remote):
    class SlowRemote(make_remote):
        def __init__(self):
            super().__init__()
            self.release = None

        async def create_or_update_section(self, *args, **kwargs):
            await self.release.wait()
            return await super().create_or_update_section(*args, **kwargs)

    remote = SlowRemote()
    ctrl = _entered(remote)
    ctrl.edit_section(m.PERSONAL, VALID[m.PERSONAL])

    async def scenario():
        remote.release = asyncio.Event()
        first = asyncio.ensure_future(ctrl.advance())
        await asyncio.sleep(0)
        assert ctrl.submitting is True
        assert ctrl.view().canAdvance is False
        assert await ctrl.advance() is False
        assert ctrl.edit_section(m.PERSONAL, {"firstName": "Other"}) is False
        remote.release.set()
        return await first

    assert asyncio.run(scenario()) is True
    assert len(remote.section_calls()) == 1
    assert ctrl.cursor == 1
    assert ctrl.submission.personal.firstName == "Abebe"


def test_retreat_clears_errors_of_section_left(remote):
    ctrl = _entered(remote)
    assert _fill_and_advance(ctrl)
    assert asyncio.run(ctrl.advance()) is False
    assert ctrl.errors.has_errors(m.ADDRESS)

    assert ctrl.retreat() is True
    assert ctrl.cursor == 0
    assert ctrl.errors.has_errors(m.ADDRESS) is False
    assert ctrl.retreat() is False


def test_complete_restart_keeps_data_and_discard_clears(remote):
    storage = MemoryStorage()
    ctrl = _entered(remote, storage)
    for _ in m.SECTIONS:
        _fill_and_advance(ctrl)
    assert ctrl.state == sm.COMPLETE

    assert ctrl.restart_from_beginning() is True
    assert ctrl.cursor == 0
    assert ctrl.state == sm.SECTION
    assert ctrl.submission.personal.firstName == "Abebe"
    assert ctrl.submission.customerId == 101

    # updating a section reuses its id
    assert asyncio.run(ctrl.advance()) is True
    assert remote.section_calls()[-1][2]["Id"] == 101

    assert ctrl.discard_and_restart() is True
    assert ctrl.state == sm.ENTRY
    assert ctrl.submission == m.Submission()
    assert storage.data == {}


def test_submit_application_once_complete(remote):
    ctrl = _entered(remote)
    assert asyncio.run(ctrl.submit_application()) is False
    for _ in m.SECTIONS:
        _fill_and_advance(ctrl)

    assert asyncio.run(ctrl.submit_application()) is True
    assert ctrl.submission.submitted is True
    assert asyncio.run(ctrl.submit_application()) is True
    assert [c for c in remote.calls if c[0] == "submit"] == [("submit", 101)]


def test_submit_failure_is_surfaced(remote):
    ctrl = _entered(remote)
    for _ in m.SECTIONS:
        _fill_and_advance(ctrl)
    remote.submit_error = RemoteServiceError("Submission failed (503): down", status_code=503)

    assert asyncio.run(ctrl.submit_application()) is False
    assert ctrl.view().apiError
    assert ctrl.submission.submitted is False


def test_reload_restores_position(remote):
    storage = MemoryStorage()
    ctrl = _entered(remote, storage)
    _fill_and_advance(ctrl)
    _fill_and_advance(ctrl)

    again = _controller(remote, storage)
    assert again.state == sm.SECTION
    assert again.cursor == 2
    assert again.submission == ctrl.submission
    assert again.draft.resumeKey == PHONE


def test_view_hides_binaries(remote):
    ctrl = _entered(remote)
    for _ in range(4):
        _fill_and_advance(ctrl)
    ctrl.edit_section(m.DOCUMENT, {"photoIdFile": b"photo"})
    view = ctrl.view()
    assert view.section == m.DOCUMENT
    assert view.label == "Document"
    assert view.data["photoIdFile"] is True
    assert view.canRetreat is True


def test_reload_picks_up_a_commit_made_after_construction(remote):
    storage = MemoryStorage()
    first = _entered(remote, storage)
    # second controller for the same device, loaded while the first is mid-step
    second = _controller(remote, storage)

    assert _fill_and_advance(first)
    second.reload()
    assert second.edit_section(m.PERSONAL, {"middleName": "X"}) is True

    stored = LocalDraftStore(storage).load()
    assert stored.cursor == 1
    assert stored.submission.customerId == 101
    assert stored.submission.personal.id == 101
    assert stored.submission.personal.middleName == "X"


def test_edit_coerces_json_values_to_field_types(remote):
    ctrl = _entered(remote)
    ctrl.edit_section(m.OTHER, {"hasBeenConvicted": "false", "isPoliticallyExposed": "true", "sourceOfFund": None})
    assert ctrl.submission.other.hasBeenConvicted is False
    assert ctrl.submission.other.isPoliticallyExposed is True
    assert ctrl.submission.other.sourceOfFund == ""

    ctrl.edit_section(m.ADDRESS, {"houseNumber": 1234})
    assert ctrl.submission.address.houseNumber == "1234"


def test_edit_rejects_values_of_the_wrong_type(remote):
    ctrl = _entered(remote)
    with pytest.raises(FieldValueError):
        ctrl.edit_section(m.OTHER, {"hasBeenConvicted": "maybe"})
    with pytest.raises(FieldValueError):
        ctrl.edit_section(m.PERSONAL, {"firstName": ["Abebe"]})
    with pytest.raises(FieldValueError):
        ctrl.edit_section(m.SIGNATURE, {"signatureFile": "not-bytes"})
    assert ctrl.submission.other.hasBeenConvicted is False


def test_rejected_lookup_shows_backend_phone_message(make_remote):
    remote = make_remote()
    remote.lookup_error = RemoteValidationError(
        "Form lookup failed: phoneNumber: Phone number is not registered",
        field_errors={"phoneNumber": ["Phone number is not registered"]},
    )
    ctrl = _controller(remote)
    asyncio.run(ctrl.enter(PHONE))
    assert ctrl.state == sm.ENTRY
    assert ctrl.entry_error == "Phone number is not registered"


def test_rejected_lookup_without_phone_error_shows_full_message(make_remote):
    remote = make_remote()
    remote.lookup_error = RemoteValidationError("Form lookup failed: key: bad", field_errors={"key": ["bad"]})
    ctrl = _controller(remote)
    asyncio.run(ctrl.enter(PHONE))
    assert ctrl.entry_error == "Form lookup failed: key: bad"


def test_unreachable_lookup_shows_connection_message(broken_remote):
    ctrl = _controller(broken_remote)
    asyncio.run(ctrl.enter(PHONE))
    assert ctrl.entry_error == LOOKUP_FAILED_MESSAGE
