"""
Identity normalization

Phone comparison keeps only the last 9 digits: tolerant to local/international
formats, but country-code agnostic (two numbers differing only by country code
collide).
"""

from typing import Optional

MIN_PHONE_DIGITS = 6
PHONE_SUFFIX_DIGITS = 9


def normalize_phone(phone: Optional[str]) -> str:
    """Digits only, last 9 kept"""
    digits = ''.join(filter(str.isdigit, phone or ""))
    return digits[-PHONE_SUFFIX_DIGITS:]


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def compute_dedupe_key(phone: Optional[str] = None, email: Optional[str] = None) -> str:
    """
    Canonical key for one human identity.

    phone:<last 9 digits> when the phone has at least 6 digits, else
    email:<normalized email>, else "" (no dedupe possible). Phone wins when
    both are present.
    """
    normalized_phone = normalize_phone(phone)
    if len(normalized_phone) >= MIN_PHONE_DIGITS:
        return f"phone:{normalized_phone}"
    normalized_email = normalize_email(email)
    if normalized_email:
        return f"email:{normalized_email}"
    return ""


def phones_match(a: Optional[str], b: Optional[str]) -> bool:
    """Same caller on the last 9 digits"""
    na = normalize_phone(a)
    if len(na) < MIN_PHONE_DIGITS:
        return False
    return na == normalize_phone(b)
