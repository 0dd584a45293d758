"""Phone number utilities."""
import re
from typing import Optional

from app.core.config import settings

E164_RE = re.compile(r"^\+[1-9]\d{1,14}$")
_STRIP_RE = re.compile(r"[^\d+]")


def normalize_phone_number(phone_number: str, country_code: Optional[str] = None) -> str:
    """Normalize a dialed number to international format.

    Separators are removed. A leading ``0`` (trunk prefix) is replaced by the
    country code, numbers already starting with ``+`` are kept as they are, and
    any other digit string gets the country code prepended.

        >>> normalize_phone_number("090-1234-5678", "+81")
        '+819012345678'
    """
    code = country_code or settings.default_country_code
    normalized = _STRIP_RE.sub("", phone_number or "")

    if not normalized.strip("+"):
        return ""
    if normalized.startswith("+"):
        return normalized
    if normalized.startswith("0"):
        return code + normalized[1:]
    return code + normalized


def is_valid_e164(phone_number: str) -> bool:
    """Check that a number is in E.164 format."""
    return bool(E164_RE.match(phone_number or ""))
