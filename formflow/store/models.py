from dataclasses import dataclass, field, fields as dc_fields
from typing import Dict, List, Optional

# Section keys in fixed step order
PERSONAL = "personal"
ADDRESS = "address"
FINANCIAL = "financial"
OTHER = "other"
DOCUMENT = "document"
EPAYMENT = "epayment"
PASSBOOK = "passbook"
SIGNATURE = "signature"

SECTIONS: List[str] = [PERSONAL, ADDRESS, FINANCIAL, OTHER, DOCUMENT, EPAYMENT, PASSBOOK, SIGNATURE]

# Pending binaries; replaced by a reference URL once uploaded
ATTACHMENT_FIELDS = {"photoIdFile", "signatureFile"}


@dataclass
class PersonalDetails:
    id: Optional[int] = None
    accountType: str = ""
    title: str = ""
    firstName: str = ""
    middleName: str = ""
    grandfatherName: str = ""
    motherFullName: str = ""
    sex: str = ""
    dateOfBirth: str = ""
    placeOfBirth: str = ""
    maritalStatus: str = ""
    educationQualification: str = ""
    nationality: str = ""


@dataclass
class AddressDetails:
    id: Optional[int] = None
    regionCityAdministration: str = ""
    zone: str = ""
    subCity: str = ""
    weredaKebele: str = ""
    houseNumber: str = ""
    mobilePhone: str = ""
    officePhone: str = ""
    emailAddress: str = ""


@dataclass
class FinancialDetails:
    id: Optional[int] = None
    typeOfWork: str = "Private"  # Private / Employee
    businessSector: str = ""
    incomeFrequencyAnnual_Private: bool = False
    incomeFrequencyMonthly_Private: bool = False
    incomeFrequencyDaily_Private: bool = False
    incomeDetails_Private: str = ""
    otherIncome: str = ""
    sectorOfEmployer: str = ""
    jobPosition: str = ""
    incomeFrequencyAnnual_Employee: bool = False
    incomeFrequencyMonthly_Employee: bool = False
    incomeFrequencyDaily_Employee: bool = False
    incomeDetails_Employee: str = ""


@dataclass
class OtherDetails:
    id: Optional[int] = None
    hasBeenConvicted: bool = False
    convictionReason: str = ""
    isPoliticallyExposed: bool = False
    pepPosition: str = ""
    sourceOfFund: str = ""
    otherSourceOfFund: str = ""


@dataclass
class DocumentDetails:
    id: Optional[int] = None
    docRegionCitySubCity: str = ""
    docWeredaKebele: str = ""
    docHouseNumber: str = ""
    docEmail: str = ""
    docOfficeTelephone: str = ""
    idType: str = ""
    idPassportNo: str = ""
    issuedBy: str = ""
    issueDate: str = ""
    expiryDate: str = ""
    mobilePhoneNo: str = ""
    docPhotoUrl: str = ""
    photoIdFile: Optional[bytes] = None


@dataclass
class EPaymentService:
    id: Optional[int] = None
    hasAtmCard: bool = False
    atmCardType: str = ""
    atmCardDeliveryBranch: str = ""
    hasMobileBanking: bool = False
    hasInternetBanking: bool = False
    hasCbeBirr: bool = False
    hasSmsBanking: bool = False


@dataclass
class PassbookMudayRequest:
    id: Optional[int] = None
    needsPassbook: bool = False
    needsMudayBox: bool = False
    mudayBoxDeliveryBranch: str = ""


@dataclass
class DigitalSignature:
    id: Optional[int] = None
    signatureFile: Optional[bytes] = None
    signatureUrl: str = ""
    termsAccepted: bool = False


SECTION_TYPES = {
    PERSONAL: PersonalDetails,
    ADDRESS: AddressDetails,
    FINANCIAL: FinancialDetails,
    OTHER: OtherDetails,
    DOCUMENT: DocumentDetails,
    EPAYMENT: EPaymentService,
    PASSBOOK: PassbookMudayRequest,
    SIGNATURE: DigitalSignature,
}


def section_field_names(section: str) -> List[str]:
    return [f.name for f in dc_fields(SECTION_TYPES[section])]


_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off", ""}


def coerce_field(section: str, name: str, value):
    """
    Bring an incoming (usually JSON) value to the declared field type.
    Raises ValueError when the value cannot stand for that type.
    """
    ftype = {f.name: f.type for f in dc_fields(SECTION_TYPES[section])}[name]
    if ftype is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
            return value.strip().lower() in _TRUE
        raise ValueError(f"{name} must be true or false")
    if ftype is str:
        if value is None:
            return ""
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        raise ValueError(f"{name} must be text")
    if name in ATTACHMENT_FIELDS:
        if value is None or isinstance(value, bytes):
            return value
        raise ValueError(f"{name} must be binary content")
    return value


@dataclass
class Submission:
    # Durable identifier; absent until the personal section is synchronized
    customerId: Optional[int] = None
    personal: PersonalDetails = field(default_factory=PersonalDetails)
    address: AddressDetails = field(default_factory=AddressDetails)
    financial: FinancialDetails = field(default_factory=FinancialDetails)
    other: OtherDetails = field(default_factory=OtherDetails)
    document: DocumentDetails = field(default_factory=DocumentDetails)
    epayment: EPaymentService = field(default_factory=EPaymentService)
    passbook: PassbookMudayRequest = field(default_factory=PassbookMudayRequest)
    signature: DigitalSignature = field(default_factory=DigitalSignature)
    # Set once the final submission has been accepted by the remote service
    submitted: bool = False

    def section(self, name: str):
        if name not in SECTION_TYPES:
            raise KeyError(f"Unknown section: {name}")
        return getattr(self, name)

    def set_section(self, name: str, data) -> None:
        if not isinstance(data, SECTION_TYPES[name]):
            raise TypeError(f"{name} expects {SECTION_TYPES[name].__name__}")
        setattr(self, name, data)


@dataclass
class Draft:
    """Everything the local draft store persists for one device."""
    submission: Submission = field(default_factory=Submission)
    cursor: int = 0
    resumeKey: str = ""
    resumeMode: bool = False


@dataclass
class FormErrors:
    sections: Dict[str, Dict[str, str]] = field(default_factory=lambda: {s: {} for s in SECTIONS})
    # Submission-wide slot (network / remote-service failures)
    apiError: Optional[str] = None

    def clear_section(self, name: str) -> None:
        self.sections[name] = {}

    def has_errors(self, name: str) -> bool:
        return bool(self.sections.get(name))
