# extractors.py
# Site-independent helpers shared by every extraction layer.
# - Regex constants for prices, rooms, area, phones, e-mails, city/state/zip
# - Tolerant JSON-LD reading (pages often ship JS-ish JSON)
# - OpenGraph/meta + <title> helpers
# - extract_structured_data(): JSON-LD/meta -> partial listing fields

from __future__ import annotations
import re
import json
import logging
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from listing_extractor.normalize import clean_text

log = logging.getLogger(__name__)

# ========================= Regex constants =========================

PRICE_RE = re.compile(r"\$\s?([0-9]{1,3}(?:,[0-9]{3})+|\d{4,})(?:\.\d{1,2})?")
BEDS_RE = re.compile(r"(\d+)\s*(?:bd|beds?|bedrooms?)(?![a-z])", re.I)
BATHS_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:ba|baths?|bathrooms?)(?![a-z])", re.I)
SQFT_RE = re.compile(r"(\d{1,3}(?:,\d{3})+|\d+)\s*(?:sq\.?\s?ft|sqft|square\s?feet)", re.I)
PHONE_RE = re.compile(r"(?<!\d)\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}(?!\d)")
EMAIL_RE = re.compile(r"[\w.+-]+@[\w.-]+\.\w+")
CITY_STATE_ZIP_RE = re.compile(r"([^,]+),\s*([A-Z]{2})\s*(\d{5})")
YEAR_BUILT_RE = re.compile(r"(?:year\s*built|built\s*in)\D{0,10}(\d{4})", re.I)

# ========================= Utilities =========================

def pick_nonempty(*vals):
    """Return the first value that is not None / blank."""
    for v in vals:
        if v is None:
            continue
        if isinstance(v, str):
            if v.strip():
                return v.strip()
            continue
        return v
    return None


def _put(out: Dict[str, Any], key: str, value) -> None:
    """Set key only while it is still empty."""
    if value is None or value == "" or value == []:
        return
    if out.get(key) in (None, "", []):
        out[key] = value

def soup_of(html_text: Optional[str]) -> BeautifulSoup:
    return BeautifulSoup(html_text or "", "html.parser")

# ========================= Meta tag & title helpers =========================

def extract_og_meta(soup: BeautifulSoup) -> Dict[str, str]:
    """property=/name= meta tags, lower-cased keys."""
    metas: Dict[str, str] = {}
    for tag in soup.find_all("meta"):
        k = tag.get("property") or tag.get("name")
        v = tag.get("content")
        if not k or v is None:
            continue
        metas[str(k).strip().lower()] = str(v).strip()
    return metas

def extract_title(soup: BeautifulSoup) -> Optional[str]:
    if soup.title is None:
        return None
    return clean_text(soup.title.get_text(" ", strip=True))

# ========================= Tolerant JSON =========================

def _find_balanced_braces(s: str, start_pos: int = 0) -> Optional[str]:
    """Substring {...} balanced from the first '{' at/after start_pos."""
    i = s.find("{", start_pos)
    if i == -1:
        return None
    depth = 0
    quote: Optional[str] = None
    escaped = False
    for j in range(i, len(s)):
        ch = s[j]
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif quote:
            if ch == quote:
                quote = None
        elif ch in ('"', "'"):
            quote = ch
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return s[i:j + 1]
    return None

def _strip_js_noise(text: str) -> str:
    text = re.sub(r"/\*.*?\*/", "", text, flags=re.S)
    text = re.sub(r"(?m)^\s*//.*$", "", text)
    return re.sub(r",\s*(?=[}\]])", "", text)  # trailing commas

def safe_json_loads(s: Optional[str]):
    """Parse JSON, then JS-ish JSON, then the first balanced object; None if all fail."""
    if not s:
        return None
    candidates = [s, _strip_js_noise(s)]
    sliced = _find_balanced_braces(s)
    if sliced:
        candidates.append(_strip_js_noise(sliced))
    for c in candidates:
        try:
            return json.loads(c)
        except ValueError:
            continue
    return None

# ========================= JSON-LD =========================

def extract_json_ld(soup: BeautifulSoup) -> List[Dict[str, Any]]:
    """All application/ld+json objects, @graph flattened."""
    out: List[Dict[str, Any]] = []
    for tag in soup.find_all("script", {"type": "application/ld+json"}):
        parsed = safe_json_loads(tag.string or tag.get_text("", strip=True))
        if parsed is None:
            log.debug("[jsonld] unparsable block skipped")
            continue
        items = parsed if isinstance(parsed, list) else [parsed]
        for it in items:
            if not isinstance(it, dict):
                continue
            graph = it.get("@graph")
            if isinstance(graph, list):
                out.extend(g for g in graph if isinstance(g, dict))
            else:
                out.append(it)
    return out

def _image_urls(value) -> List[str]:
    vals = value if isinstance(value, list) else [value]
    out = []
    for v in vals:
        u = v.get("url") if isinstance(v, dict) else v
        if isinstance(u, str) and u.startswith("http"):
            out.append(u)
    return out

def _from_ld_block(d: Dict[str, Any], out: Dict[str, Any]) -> None:
    addr = d.get("address")
    if isinstance(addr, dict):
        _put(out, "address", clean_text(addr.get("streetAddress")))
        _put(out, "city", clean_text(addr.get("addressLocality")))
        _put(out, "state", clean_text(addr.get("addressRegion")))
        _put(out, "zip", clean_text(addr.get("postalCode")))
    elif isinstance(addr, str):
        _put(out, "address", clean_text(addr))

    offers = d.get("offers")
    if isinstance(offers, list) and offers:
        offers = offers[0]
    if isinstance(offers, dict):
        _put(out, "price", pick_nonempty(offers.get("price"), offers.get("lowPrice")))

    _put(out, "bedrooms", pick_nonempty(d.get("numberOfBedrooms"), d.get("numberOfRooms")))
    _put(out, "bathrooms", pick_nonempty(d.get("numberOfBathroomsTotal"), d.get("numberOfBathrooms")))
    fs = d.get("floorSize")
    if isinstance(fs, dict):
        _put(out, "square_feet", fs.get("value"))
    _put(out, "year_built", d.get("yearBuilt"))
    _put(out, "description", clean_text(d.get("description")))
    t = d.get("@type")
    if isinstance(t, str) and t not in ("Product", "Offer", "WebPage", "Organization", "BreadcrumbList"):
        _put(out, "property_type", t)

    agent = d.get("agent") or d.get("seller") or d.get("broker")
    if isinstance(agent, dict):
        _put(out, "listing_agent_name", clean_text(agent.get("name")))
        _put(out, "listing_agent_phone", clean_text(agent.get("telephone")))
        _put(out, "listing_agent_email", clean_text(agent.get("email")))
        org = agent.get("worksFor") or agent.get("parentOrganization")
        if isinstance(org, dict):
            _put(out, "listing_agent_company", clean_text(org.get("name")))

    imgs = _image_urls(d.get("image") or d.get("photo") or [])
    if imgs:
        out.setdefault("image_urls", [])
        out["image_urls"].extend(imgs)

def extract_structured_data(html_text: Optional[str], url: str = "") -> Dict[str, Any]:
    """JSON-LD + OpenGraph fields from any page. Missing fields are simply absent."""
    soup = soup_of(html_text)
    out: Dict[str, Any] = {}
    for block in extract_json_ld(soup):
        _from_ld_block(block, out)

    metas = extract_og_meta(soup)
    _put(out, "description", clean_text(metas.get("og:description") or metas.get("description")))
    og_image = metas.get("og:image")
    if og_image and og_image.startswith("http"):
        out.setdefault("image_urls", []).append(og_image)
    # og:title on listing pages is usually "123 Main St, City, ST 94103 | Site"
    title = pick_nonempty(metas.get("og:title"), extract_title(soup))
    if title:
        head = title.split("|")[0]
        m = CITY_STATE_ZIP_RE.search(head)
        if m:
            if head.count(",") >= 2:
                _put(out, "address", clean_text(head))
            _put(out, "city", clean_text(m.group(1)))
            _put(out, "state", m.group(2))
            _put(out, "zip", m.group(3))

    return {k: v for k, v in out.items() if v not in (None, "", [])}
