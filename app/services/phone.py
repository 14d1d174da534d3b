import re

from app.config import settings

_NON_DIGITS = re.compile(r"[\s+\-()]")


def normalize_phone(raw: str) -> str:
    """Canonical WhatsApp phone: digits only, no '+', no leading zeros, no '@c.us'."""
    phone = raw.strip()
    if phone.endswith("@c.us"):
        phone = phone[: -len("@c.us")]
    phone = _NON_DIGITS.sub("", phone)
    return phone.lstrip("0")


def with_country_code(phone: str, country_code: str | None = None) -> str:
    """Prefix the default country code onto local numbers (8 digits in Singapore)."""
    digits = normalize_phone(phone)
    code = country_code or settings.default_country_code
    if digits and len(digits) <= 8:
        return f"{code}{digits}"
    return digits


def phone_variants(phone: str) -> list[str]:
    """Forms an inspector's mobile number may be stored in."""
    digits = normalize_phone(phone)
    if not digits:
        return []
    return [digits, f"+{digits}"]
