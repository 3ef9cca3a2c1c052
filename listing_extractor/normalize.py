# listing_extractor/normalize.py
# Pure text cleanup: agent license numbers, city names, optional numeric coercion.

from __future__ import annotations
import re
from typing import Any, Dict, Optional

# ---------------- license numbers ----------------

_LABEL_TOKEN_RE = re.compile(r"(?::|#)\s*([A-Z0-9][\w.-]{4,})\b", re.I)
_PREFIX_RE = re.compile(
    r"^(?:DRE\s*#?|CalDRE\s*#?|Lic\.\s*|License\s*#?|BRE\s*#?|CA\s*#?|CalBRE\s*#?|#)\s*", re.I
)
_STATE_FORMAT_RE = re.compile(r"\b([A-Z]\.\d{5,})\b", re.I)
_PARENS_RE = re.compile(
    r"\((?:[^\)]*?)(?:(?:([A-Z])\.(\d{5,}))|(?:(?:[^\d]*)(\d{5,})))(?:[^\d]*?)\)?", re.I
)
_COMMA_RE = re.compile(r",\s*(?:#?\s*)([A-Z]?[\d]{5,})\b", re.I)
_JUST_NUMBER_RE = re.compile(r"^\s*#?\s*(\d{5,}(?:-\w+)?)\s*(?:\(Active\))?$", re.I)
_ANY_NUMBER_RE = re.compile(r"\b([A-Z]?\d{5,}(?:-\w+)?)\b", re.I)
_NUMBER_TOKEN_RE = re.compile(r"([A-Z]?\d{5,}(?:-\w+)?)", re.I)
_NOT_LICENSE_CHARS_RE = re.compile(r"[^A-Z0-9.-]", re.I)


def clean_license_number(raw: Optional[str]) -> Optional[str]:
    """
    Reduce a free-form license string to the bare license token.

    Ordered, first match wins:
      1. token after ':' or '#'            "CalDRE: 01234567" -> "01234567"
      2. letter-dot-digits state format    "S.0123456"        -> "S0123456"
      3. token inside parentheses          "Jane (Lic 01234567)"
      4. token after a comma               "Jane Doe, #01234567"
      5. bare number, optional "(Active)"  "01234567 (Active)"
      6. any 5+ digit run, optional letter
      7. strip to [A-Z0-9.-]; if still long, search it for a number token

    None and "" come back unchanged. Never raises.
    """
    if not raw:
        return raw

    m = _LABEL_TOKEN_RE.search(raw)
    if m:
        return m.group(1)

    cleaned = _PREFIX_RE.sub("", raw).strip()

    m = _STATE_FORMAT_RE.search(raw)
    if m:
        return m.group(1).replace(".", "", 1)

    m = _PARENS_RE.search(cleaned)
    if m:
        if m.group(1) and m.group(2):
            return m.group(1) + m.group(2)
        if m.group(3):
            return m.group(3)

    m = _COMMA_RE.search(cleaned)
    if m:
        return m.group(1)

    m = _JUST_NUMBER_RE.search(cleaned)
    if m:
        return m.group(1)

    m = _ANY_NUMBER_RE.search(raw)
    if m:
        return m.group(1)

    cleaned = _NOT_LICENSE_CHARS_RE.sub("", cleaned)
    if len(cleaned) > 10:
        m = _NUMBER_TOKEN_RE.search(cleaned)
        if m:
            return m.group(1)
    return cleaned

# ---------------- text ----------------

_WS_RE = re.compile(r"\s+")
_LOWER_WORDS = {"of", "the", "and", "in", "on", "at", "by", "for", "with"}

def clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    t = _WS_RE.sub(" ", str(value)).strip()
    return t or None

def clean_city_name(text: Optional[str]) -> str:
    """'san-francisco' -> 'San Francisco', 'isle-of-palms' -> 'Isle of Palms'."""
    if not text:
        return ""
    city = re.sub(r"[-_]", " ", text)
    city = re.sub(r"^\d+\s+", "", city)
    words = []
    for w in city.split(" "):
        if not w:
            continue
        if w.lower() in _LOWER_WORDS:
            words.append(w.lower())
        else:
            words.append(w[:1].upper() + w[1:].lower())
    city = " ".join(words)
    return city[:1].upper() + city[1:]

# ---------------- numerics (optional, for consumers) ----------------

_FRACTION_RE = re.compile(r"(\d+)[\s\-]*(\d+)/(\d+)")
_BATH_HALF_RE = re.compile(r"(\d+)\s*bath\s*(\d+)\s*half", re.I)
_DIGITS_DOT_RE = re.compile(r"[^0-9.]")
_DIGITS_RE = re.compile(r"[^0-9]")

NUMERIC_FIELDS = ("bedrooms", "bathrooms", "square_feet", "year_built", "price")
_CAMEL_NUMERIC = {"squareFeet": "square_feet", "yearBuilt": "year_built"}


def _to_number(s: str) -> Optional[float]:
    if not s:
        return None
    try:
        n = float(s)
    except ValueError:
        return None
    return int(n) if n.is_integer() else n


def parse_bathroom_count(value: Any) -> Optional[float]:
    """'2.5', '2 1/2', '2-1/2', '2bath1half' -> 2.5"""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return value
    s = str(value)
    if "/" in s:
        m = _FRACTION_RE.search(s)
        if m and int(m.group(3)) > 0:
            return int(m.group(1)) + int(m.group(2)) / int(m.group(3))
    m = _BATH_HALF_RE.search(s)
    if m:
        return int(m.group(1)) + int(m.group(2)) * 0.5
    return _to_number(_DIGITS_DOT_RE.sub("", s))


def normalize_numeric_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return a copy with price/square feet/bedrooms/bathrooms/year built coerced to numbers.
    Accepts attribute or camelCase keys. Empty or unparsable -> None.
    """
    out = dict(fields)
    for key in list(out.keys()):
        name = _CAMEL_NUMERIC.get(key, key)
        if name not in NUMERIC_FIELDS:
            continue
        v = out[key]
        if isinstance(v, bool):
            out[key] = None
        elif isinstance(v, (int, float)):
            continue
        elif v is None or not str(v).strip():
            out[key] = None
        elif name == "bathrooms":
            out[key] = parse_bathroom_count(v)
        elif name in ("price", "square_feet"):
            out[key] = _to_number(_DIGITS_DOT_RE.sub("", str(v)))
        else:
            out[key] = _to_number(_DIGITS_RE.sub("", str(v)))
    return out
