"""
Local section records <-> remote service payloads.

The remote service speaks PascalCase. Each section has its own explicit mapping
so the wire contract is visible in one place; pending binaries never go on the
wire (they are uploaded first and replaced by a URL).
"""
from typing import Any, Callable, Dict, Optional

from formflow.store import models as m
from formflow.utils.dates import to_backend_datetime, to_date_only

DATE_FIELDS = {"dateOfBirth", "issueDate", "expiryDate"}


def _personal(d: m.PersonalDetails) -> Dict[str, Any]:
    return {
        "Id": d.id,
        "AccountType": d.accountType,
        "Title": d.title,
        "FirstName": d.firstName,
        "MiddleName": d.middleName,
        "GrandfatherName": d.grandfatherName,
        "MotherFullName": d.motherFullName,
        "Sex": d.sex,
        "DateOfBirth": to_backend_datetime(d.dateOfBirth),
        "PlaceOfBirth": d.placeOfBirth,
        "MaritalStatus": d.maritalStatus,
        "EducationQualification": d.educationQualification,
        "Nationality": d.nationality,
    }


def _address(d: m.AddressDetails) -> Dict[str, Any]:
    return {
        "Id": d.id,
        "RegionCityAdministration": d.regionCityAdministration,
        "Zone": d.zone,
        "SubCity": d.subCity,
        "WeredaKebele": d.weredaKebele,
        "HouseNumber": d.houseNumber,
        "MobilePhone": d.mobilePhone,
        "OfficePhone": d.officePhone,
        "EmailAddress": d.emailAddress,
    }


def _financial(d: m.FinancialDetails) -> Dict[str, Any]:
    return {
        "Id": d.id,
        "TypeOfWork": d.typeOfWork,
        "BusinessSector": d.businessSector,
        "IncomeFrequencyAnnual_Private": d.incomeFrequencyAnnual_Private,
        "IncomeFrequencyMonthly_Private": d.incomeFrequencyMonthly_Private,
        "IncomeFrequencyDaily_Private": d.incomeFrequencyDaily_Private,
        "IncomeDetails_Private": d.incomeDetails_Private,
        "OtherIncome": d.otherIncome,
        "SectorOfEmployer": d.sectorOfEmployer,
        "JobPosition": d.jobPosition,
        "IncomeFrequencyAnnual_Employee": d.incomeFrequencyAnnual_Employee,
        "IncomeFrequencyMonthly_Employee": d.incomeFrequencyMonthly_Employee,
        "IncomeFrequencyDaily_Employee": d.incomeFrequencyDaily_Employee,
        "IncomeDetails_Employee": d.incomeDetails_Employee,
    }


def _other(d: m.OtherDetails) -> Dict[str, Any]:
    return {
        "Id": d.id,
        "HasBeenConvicted": d.hasBeenConvicted,
        "ConvictionReason": d.convictionReason,
        "IsPoliticallyExposed": d.isPoliticallyExposed,
        "PepPosition": d.pepPosition,
        "SourceOfFund": d.sourceOfFund,
        "OtherSourceOfFund": d.otherSourceOfFund,
    }


def _document(d: m.DocumentDetails) -> Dict[str, Any]:
    return {
        "Id": d.id,
        "DocRegionCitySubCity": d.docRegionCitySubCity,
        "DocWeredaKebele": d.docWeredaKebele,
        "DocHouseNumber": d.docHouseNumber,
        "DocEmail": d.docEmail,
        "DocOfficeTelephone": d.docOfficeTelephone,
        "IdType": d.idType,
        "IdPassportNo": d.idPassportNo,
        "IssuedBy": d.issuedBy,
        "IssueDate": to_backend_datetime(d.issueDate),
        "ExpiryDate": to_backend_datetime(d.expiryDate),
        "MobilePhoneNo": d.mobilePhoneNo,
        "DocPhotoUrl": d.docPhotoUrl,
    }


def _epayment(d: m.EPaymentService) -> Dict[str, Any]:
    return {
        "Id": d.id,
        "HasAtmCard": d.hasAtmCard,
        "AtmCardType": d.atmCardType,
        "AtmCardDeliveryBranch": d.atmCardDeliveryBranch,
        "HasMobileBanking": d.hasMobileBanking,
        "HasInternetBanking": d.hasInternetBanking,
        "HasCbeBirr": d.hasCbeBirr,
        "HasSmsBanking": d.hasSmsBanking,
    }


def _passbook(d: m.PassbookMudayRequest) -> Dict[str, Any]:
    return {
        "Id": d.id,
        "NeedsPassbook": d.needsPassbook,
        "NeedsMudayBox": d.needsMudayBox,
        "MudayBoxDeliveryBranch": d.mudayBoxDeliveryBranch,
    }


def _signature(d: m.DigitalSignature) -> Dict[str, Any]:
    return {
        "Id": d.id,
        "SignatureUrl": d.signatureUrl,
        "TermsAccepted": d.termsAccepted,
    }


PAYLOAD_BUILDERS: Dict[str, Callable[[Any], Dict[str, Any]]] = {
    m.PERSONAL: _personal,
    m.ADDRESS: _address,
    m.FINANCIAL: _financial,
    m.OTHER: _other,
    m.DOCUMENT: _document,
    m.EPAYMENT: _epayment,
    m.PASSBOOK: _passbook,
    m.SIGNATURE: _signature,
}


def to_remote_payload(section: str, data, customer_id: Optional[int] = None) -> Dict[str, Any]:
    payload = PAYLOAD_BUILDERS[section](data)
    if payload.get("Id") is None:
        # first save of this section: let the service mint the id
        payload.pop("Id", None)
    if customer_id is not None:
        payload["CustomerId"] = customer_id
    return payload


def _camel(key: str) -> str:
    return key[:1].lower() + key[1:] if key else key


def section_from_remote(section: str, raw: Optional[dict]):
    """
    Build a local section record from a form-summary fragment.
    Unknown keys are ignored; PascalCase keys are tolerated; dates are reduced to YYYY-MM-DD.
    """
    cls = m.SECTION_TYPES[section]
    if not isinstance(raw, dict):
        return cls()
    allowed = set(m.section_field_names(section)) - m.ATTACHMENT_FIELDS
    kwargs: Dict[str, Any] = {}
    for key, value in raw.items():
        name = key if key in allowed else _camel(key)
        if name not in allowed or value is None:
            continue
        if name in DATE_FIELDS:
            value = to_date_only(value)
        kwargs[name] = value
    if kwargs.get("id") is not None:
        try:
            kwargs["id"] = int(kwargs["id"])
        except (TypeError, ValueError):
            kwargs["id"] = None
    return cls(**kwargs)


# Section key -> key used by the remote form-summary document
SUMMARY_KEYS = {
    m.PERSONAL: "personalDetails",
    m.ADDRESS: "addressDetails",
    m.FINANCIAL: "financialDetails",
    m.OTHER: "otherDetails",
    m.DOCUMENT: "documentDetails",
    m.EPAYMENT: "ePaymentService",
    m.PASSBOOK: "passbookMudayRequest",
    m.SIGNATURE: "digitalSignature",
}
