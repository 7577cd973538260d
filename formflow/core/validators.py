"""
Step validators.

One pure rule set per section. Only the fields that matter to a section's
business rules are checked; optional fields stay optional when empty. An empty
field reports its "required" message only, never a format message as well.
"""
import re
from dataclasses import asdict, is_dataclass
from datetime import date
from typing import Callable, Dict, Optional

from formflow.settings import settings
from formflow.store import models as m
from formflow.utils.dates import is_at_least_age, parse_date
from formflow.utils.phone import is_valid_office_phone, is_valid_phone

ErrorMap = Dict[str, str]

_EMAIL = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")


def _as_dict(data) -> dict:
    if data is None:
        return {}
    if is_dataclass(data):
        return asdict(data)
    return dict(data)


def _blank(v) -> bool:
    if v is None:
        return True
    if isinstance(v, str):
        return not v.strip()
    return False


def _require(d: dict, errors: ErrorMap, name: str, message: str) -> bool:
    if _blank(d.get(name)):
        errors[name] = message
        return False
    return True


def _validate_personal(d: dict, today: date, min_age: int) -> ErrorMap:
    errors: ErrorMap = {}
    _require(d, errors, "accountType", "Account Type is required")
    _require(d, errors, "title", "Title is required")
    _require(d, errors, "firstName", "First Name is required")
    _require(d, errors, "grandfatherName", "Grandfather's Name is required")
    _require(d, errors, "sex", "Sex is required")
    if _require(d, errors, "dateOfBirth", "Date of Birth is required"):
        born = parse_date(d.get("dateOfBirth"))
        if born is None:
            errors["dateOfBirth"] = "Date of Birth is not a valid date"
        elif not is_at_least_age(born, min_age, today):
            errors["dateOfBirth"] = f"You must be at least {min_age} years old to open an account."
    _require(d, errors, "maritalStatus", "Marital Status is required")
    _require(d, errors, "nationality", "Nationality is required")
    return errors


def _validate_address(d: dict, today: date, min_age: int) -> ErrorMap:
    errors: ErrorMap = {}
    _require(d, errors, "regionCityAdministration", "Region / City is required")
    if _require(d, errors, "mobilePhone", "Mobile Phone is required"):
        if not is_valid_phone(d["mobilePhone"]):
            errors["mobilePhone"] = "Invalid Ethiopian phone number"
    if not _blank(d.get("officePhone")) and not is_valid_office_phone(d["officePhone"]):
        errors["officePhone"] = "Office phone must start with +251 and be numeric (e.g., +251112345678)"
    if not _blank(d.get("emailAddress")) and not _EMAIL.fullmatch(d["emailAddress"].strip()):
        errors["emailAddress"] = "Invalid email format"
    return errors


def _validate_financial(d: dict, today: date, min_age: int) -> ErrorMap:
    errors: ErrorMap = {}
    if not _require(d, errors, "typeOfWork", "Type of Work is required"):
        return errors
    kind = d.get("typeOfWork")
    if kind == "Private":
        _require(d, errors, "businessSector", "Business Sector is required")
        _require(d, errors, "incomeDetails_Private", "Income Details are required")
        if not (d.get("incomeFrequencyAnnual_Private") or d.get("incomeFrequencyMonthly_Private")
                or d.get("incomeFrequencyDaily_Private")):
            errors["incomeFrequencyAnnual_Private"] = "Select an income frequency"
    elif kind == "Employee":
        _require(d, errors, "sectorOfEmployer", "Sector of Employer is required")
        _require(d, errors, "jobPosition", "Job Position is required")
        _require(d, errors, "incomeDetails_Employee", "Income Details are required")
        if not (d.get("incomeFrequencyAnnual_Employee") or d.get("incomeFrequencyMonthly_Employee")
                or d.get("incomeFrequencyDaily_Employee")):
            errors["incomeFrequencyAnnual_Employee"] = "Select an income frequency"
    else:
        errors["typeOfWork"] = "Type of Work must be Private or Employee"
    return errors


def _validate_other(d: dict, today: date, min_age: int) -> ErrorMap:
    errors: ErrorMap = {}
    if d.get("hasBeenConvicted"):
        _require(d, errors, "convictionReason", "Reason for conviction is required")
    if d.get("isPoliticallyExposed"):
        _require(d, errors, "pepPosition", "PEP Position is required")
    if _require(d, errors, "sourceOfFund", "Source of Fund is required"):
        if d.get("sourceOfFund") == "Other":
            _require(d, errors, "otherSourceOfFund", "Please specify other source of fund")
    return errors


def _validate_document(d: dict, today: date, min_age: int) -> ErrorMap:
    errors: ErrorMap = {}
    _require(d, errors, "idType", "ID Type is required")
    _require(d, errors, "idPassportNo", "ID / Passport No. is required")
    _require(d, errors, "issuedBy", "Issued By is required")
    has_issue = _require(d, errors, "issueDate", "Issue Date is required")
    has_expiry = _require(d, errors, "expiryDate", "Expiry Date is required")
    if has_issue and has_expiry:
        issued = parse_date(d.get("issueDate"))
        expires = parse_date(d.get("expiryDate"))
        if issued and expires and expires <= issued:
            errors["expiryDate"] = "Expiry Date must be after Issue Date"
    _require(d, errors, "mobilePhoneNo", "Mobile Phone is required")
    if not d.get("photoIdFile") and _blank(d.get("docPhotoUrl")):
        errors["docPhotoUrl"] = "Document photo is required"
    return errors


def _validate_epayment(d: dict, today: date, min_age: int) -> ErrorMap:
    errors: ErrorMap = {}
    if d.get("hasAtmCard"):
        _require(d, errors, "atmCardType", "ATM Card Type is required")
        _require(d, errors, "atmCardDeliveryBranch", "ATM Card Delivery Branch is required")
    return errors


def _validate_passbook(d: dict, today: date, min_age: int) -> ErrorMap:
    errors: ErrorMap = {}
    if d.get("needsMudayBox"):
        _require(d, errors, "mudayBoxDeliveryBranch", "Muday Box Delivery Branch is required")
    return errors


def _validate_signature(d: dict, today: date, min_age: int) -> ErrorMap:
    errors: ErrorMap = {}
    if not d.get("signatureFile") and _blank(d.get("signatureUrl")):
        errors["signatureUrl"] = "Digital signature is required"
    if not d.get("termsAccepted"):
        errors["termsAccepted"] = "You must accept the terms and conditions"
    return errors


RULES: Dict[str, Callable[[dict, date, int], ErrorMap]] = {
    m.PERSONAL: _validate_personal,
    m.ADDRESS: _validate_address,
    m.FINANCIAL: _validate_financial,
    m.OTHER: _validate_other,
    m.DOCUMENT: _validate_document,
    m.EPAYMENT: _validate_epayment,
    m.PASSBOOK: _validate_passbook,
    m.SIGNATURE: _validate_signature,
}


def validate(section: str, data, today: Optional[date] = None, min_age: Optional[int] = None) -> ErrorMap:
    """Return field -> message for `section`; an empty map means the step may proceed."""
    rule = RULES.get(section)
    if rule is None:
        raise KeyError(f"Unknown section: {section}")
    return rule(
        _as_dict(data),
        today or date.today(),
        settings.MIN_APPLICANT_AGE if min_age is None else int(min_age),
    )
