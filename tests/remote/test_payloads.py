from formflow.remote.payloads import SUMMARY_KEYS, section_from_remote, to_remote_payload
from formflow.store import models as m


def test_first_save_omits_id_and_formats_dates():
    payload = to_remote_payload(m.PERSONAL, m.PersonalDetails(firstName="Abebe", dateOfBirth="1990-01-01"))
    assert "Id" not in payload
    assert "CustomerId" not in payload
    assert payload["FirstName"] == "Abebe"
    assert payload["DateOfBirth"] == "1990-01-01T00:00:00Z"


def test_update_carries_section_id_and_customer_id():
    payload = to_remote_payload(m.ADDRESS, m.AddressDetails(id=9, mobilePhone="0911223344"), customer_id=42)
    assert payload["Id"] == 9
    assert payload["CustomerId"] == 42
    assert payload["MobilePhone"] == "0911223344"


def test_pending_binaries_never_go_on_the_wire():
    payload = to_remote_payload(m.SIGNATURE, m.DigitalSignature(signatureFile=b"sig", termsAccepted=True), 1)
    assert "SignatureFile" not in payload
    assert payload["TermsAccepted"] is True


def test_section_from_remote_tolerates_pascal_case_and_extras():
    raw = {
        "Id": "12",
        "IdType": "Passport",
        "issueDate": "2020-01-01T00:00:00Z",
        "ExpiryDate": "2030-01-01T00:00:00",
        "photoIdFile": "should-be-ignored",
        "createdAt": "2024-01-01",
        "docEmail": None,
    }
    doc = section_from_remote(m.DOCUMENT, raw)
    assert doc.id == 12
    assert doc.idType == "Passport"
    assert doc.issueDate == "2020-01-01"
    assert doc.expiryDate == "2030-01-01"
    assert doc.photoIdFile is None
    assert doc.docEmail == ""


def test_section_from_remote_missing_fragment_is_default():
    assert section_from_remote(m.EPAYMENT, None) == m.EPaymentService()


def test_every_section_has_a_summary_key():
    assert set(SUMMARY_KEYS) == set(m.SECTIONS)
