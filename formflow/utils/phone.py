import re

_NON_DIGITS = re.compile(r"[^\d]")


def _digits(phone: str) -> str:
    return _NON_DIGITS.sub("", phone or "")


def is_valid_phone(phone: str) -> bool:
    """
    Ethiopian mobile numbers, with or without the country code.
    Accepts 9xxxxxxxx / 7xxxxxxxx, 09xxxxxxxx / 07xxxxxxxx and 2519xxxxxxxx / 2517xxxxxxxx
    (a leading '+', spaces and dashes are ignored).
    """
    if not (phone or "").strip():
        return False
    clean = _digits(phone)
    if len(clean) == 9:
        return re.fullmatch(r"[97]\d{8}", clean) is not None
    if len(clean) == 10:
        return re.fullmatch(r"0[97]\d{8}", clean) is not None
    if len(clean) == 12:
        return re.fullmatch(r"251[97]\d{8}", clean) is not None
    return False


def normalize_phone(phone: str) -> str:
    """Canonical 251XXXXXXXXX form used when talking to the remote service."""
    clean = _digits(phone)
    if len(clean) == 9:
        return f"251{clean}"
    if len(clean) == 10:
        return f"251{clean[1:]}"
    return clean


def is_valid_office_phone(phone: str) -> bool:
    return re.fullmatch(r"\+251\d{8,9}", (phone or "").strip()) is not None
