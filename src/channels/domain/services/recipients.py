"""
Recipient normalization for broadcast snapshots and replies.

WhatsApp numbers are reduced to digits and forced into international form
using the tenant's default country code. Other channels address customers
by opaque provider ids, which are kept verbatim.
"""
import re
from typing import Iterable, List

from src.channels.domain.value_objects import ChannelType

_NON_DIGITS = re.compile(r"\D+")


def normalize_phone_number(raw: str, default_country_code: str = "62") -> str:
    """
    Normalize a phone number to digits in international form.

    ``+44 20 7946 0958`` → ``442079460958`` (explicit international prefix kept),
    ``0812-3456-789`` → ``628123456789``, ``8123456789`` → ``628123456789``.

    Raises:
        ValueError: If the input contains no digits
    """
    text = (raw or "").strip()
    digits = _NON_DIGITS.sub("", text)
    if not digits:
        raise ValueError(f"Not a phone number: {raw!r}")
    if text.startswith("+") or text.startswith("00"):
        return digits[2:] if text.startswith("00") else digits
    if digits.startswith(default_country_code):
        return digits
    if digits.startswith("0"):
        return default_country_code + digits[1:]
    return default_country_code + digits


def normalize_recipient(channel_type: ChannelType, raw: str, default_country_code: str = "62") -> str:
    if channel_type == ChannelType.WHATSAPP:
        return normalize_phone_number(raw, default_country_code)
    value = (raw or "").strip()
    if not value:
        raise ValueError("Empty recipient id")
    return value


def normalize_recipients(
    channel_type: ChannelType,
    raw_recipients: Iterable[str],
    default_country_code: str = "62",
) -> List[str]:
    """Normalize and de-duplicate, keeping first-seen order. Invalid entries raise ValueError."""
    seen = set()
    result: List[str] = []
    for raw in raw_recipients:
        value = normalize_recipient(channel_type, raw, default_country_code)
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result
