"""Parsing helpers for the compact, human-oriented strings social sites render."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import re


_COMPACT_RE = re.compile(r"^([0-9]*\.?[0-9]+)\s*([KMB])?$", re.IGNORECASE)
_MULTIPLIERS = {None: 1, "K": 1_000, "M": 1_000_000, "B": 1_000_000_000}
_NUMBER_IN_TEXT_RE = re.compile(r"([0-9][0-9.,]*\s*[KMB]?)(?![A-Za-z])", re.IGNORECASE)

_RELATIVE_RE = re.compile(r"^(\d+)([smhd])$")
_RELATIVE_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}
_DATE_FORMATS = (
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%b %Y",
    "%B %Y",
)


def parse_number(text: str | None) -> int:
    """Parse counts like '12.5K', '1.2M', '1,234' or '3B'.

    Returns 0 for empty or unparseable input.
    """
    if not text or not isinstance(text, str):
        return 0
    s = text.replace(",", "").strip()
    m = _COMPACT_RE.match(s)
    if not m:
        return 0
    try:
        val = Decimal(m.group(1))
    except InvalidOperation:
        return 0
    suf = m.group(2).upper() if m.group(2) else None
    return int((val * _MULTIPLIERS[suf]).to_integral_value(rounding=ROUND_HALF_UP))


def parse_number_in_text(text: str | None) -> int:
    """First compact number inside free text, e.g. '1,234 Likes' -> 1234."""
    if not text:
        return 0
    m = _NUMBER_IN_TEXT_RE.search(text)
    if not m:
        return 0
    return parse_number(m.group(1).replace(" ", "").rstrip(".,"))


def parse_relative_date(text: str | None, now: datetime | None = None) -> str | None:
    """Turn '2h', '5m', '1d', '30s' or an absolute date into ISO-8601."""
    if not text or not isinstance(text, str):
        return None
    s = text.strip()
    now = now or datetime.now(timezone.utc)

    m = _RELATIVE_RE.match(s)
    if m:
        delta = timedelta(**{_RELATIVE_UNITS[m.group(2)]: int(m.group(1))})
        return (now - delta).isoformat()

    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        dt = None
    if dt is None:
        for fmt in _DATE_FORMATS:
            try:
                dt = datetime.strptime(s, fmt)
                break
            except ValueError:
                continue
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def clean_text(text: str | None) -> str:
    """Collapse spaces/tabs and blank lines; keep single newlines."""
    if not text or not isinstance(text, str):
        return ""
    s = re.sub(r"[ \t]+", " ", text)
    s = re.sub(r"\n\s*\n+", "\n", s)
    return s.strip()


def truncate_text(text: str | None, max_length: int) -> str:
    if not text or not isinstance(text, str):
        return ""
    if len(text) <= max_length:
        return text
    return text[: max(max_length - 3, 0)] + "..."
