"""Lenient conversions for provider payloads whose numbers arrive as strings, labels or nulls."""

import math
import re
from typing import Any, Optional

_MONEY_CHARS = re.compile(r"[^0-9.,]")
_NULL_TOKENS = {"", "null", "none", "nan", "--", "n/a"}


def _numeric_text(v: Any) -> Optional[str]:
    if v is None or isinstance(v, bool):
        return None
    text = str(v).strip().replace(",", "")
    return None if text.lower() in _NULL_TOKENS else text


def to_float(v: Any) -> Optional[float]:
    """``"1,200"`` -> 1200.0; nulls, placeholders and non-finite values -> None."""

    text = _numeric_text(v)
    if text is None:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def to_int(v: Any) -> Optional[int]:
    value = to_float(v)
    return None if value is None else int(value)


def to_str(v: Any) -> str:
    return "" if v is None else str(v).strip()


def parse_money(v) -> Optional[int]:
    """Best-effort conversion of a provider price label into whole currency units.

    Handles ``$1,250,000``, ``$1.25M``, ``$950K``, ``$1.450/mo`` and plain numbers.
    A single ``.`` followed by exactly three digits is read as a thousands
    separator since some providers format ``1.450`` for one thousand four
    hundred fifty.
    """

    if v is None:
        return None
    if isinstance(v, (int, float)):
        value = to_float(v)
        return None if value is None else int(round(value))
    text = str(v).strip().upper()
    if not text:
        return None
    multiplier = 1
    match = re.search(r"([0-9.,]+)\s*([KM])(?![A-Z])", text)
    if match:
        multiplier = 1_000_000 if match.group(2) == "M" else 1_000
        text = match.group(1)
    cleaned = _MONEY_CHARS.sub("", text).replace(",", "")
    if not any(ch.isdigit() for ch in cleaned):
        return None
    if multiplier == 1 and cleaned.count(".") == 1:
        whole, frac = cleaned.split(".")
        if len(frac) == 3:
            cleaned = whole + frac
    elif cleaned.count(".") > 1:
        cleaned = cleaned.replace(".", "")
    try:
        return int(round(float(cleaned) * multiplier))
    except ValueError:
        return None
