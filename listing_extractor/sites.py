# listing_extractor/sites.py
# Selector-based extraction for the listing sites we recognise (Zillow, Redfin,
# Realtor.com, Trulia), plus the compound-field parsers they share:
# "3 bd2 ba1,380 sqft", agent attribution blobs, broker lines, city/state/zip in URLs.

from __future__ import annotations
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse, unquote

from bs4 import BeautifulSoup

from listing_extractor.extractors import (
    BEDS_RE,
    BATHS_RE,
    SQFT_RE,
    PHONE_RE,
    CITY_STATE_ZIP_RE,
    YEAR_BUILT_RE,
    soup_of,
)
from listing_extractor.normalize import clean_city_name, clean_license_number, clean_text
from listing_extractor.utils import unique

log = logging.getLogger(__name__)

MAX_FEATURES = 50
MAX_IMAGES = 10

# ---------------- site detection ----------------

SITE_DOMAINS = {
    "zillow": "zillow.com",
    "redfin": "redfin.com",
    "realtor": "realtor.com",
    "trulia": "trulia.com",
}

def detect_site(url: str) -> str:
    host = (urlparse(url or "").hostname or "").lower()
    for site, domain in SITE_DOMAINS.items():
        if host == domain or host.endswith("." + domain):
            return site
    return "unknown"

def is_supported_site(url: str) -> bool:
    return detect_site(url) != "unknown"

# ---------------- selector map ----------------
# First selector with text wins. "agent"/"broker"/"beds_baths_sqft" are compound blobs.

SITE_ANCHORS: Dict[str, Dict[str, List[str]]] = {
    "zillow": {
        "address": ['[data-testid="home-details-summary-container"] h1', "h1"],
        "price": ['[data-testid="price"]', '[data-testid="home-details-summary-container"] .ds-summary-row span'],
        "beds_baths_sqft": ['[data-testid="bed-bath-living-area-container"]', ".ds-bed-bath-living-area-container"],
        "description": [
            '[data-testid="hdp-description-container"] [data-testid="expanded-description"]',
            '[data-testid="description"]',
        ],
        "agent": [
            '[data-testid="attribution-LISTING_AGENT"]',
            ".ds-listing-agent-display-name",
            ".agent-info-container",
            '[data-testid*="listing-agent"]',
        ],
        "broker": [
            '[data-testid="attribution-BROKER"]',
            ".ds-listing-broker-display-name",
            ".broker-info",
            '[data-testid*="broker"]',
        ],
        "features": ['[data-testid="facts-list"] li', '[data-testid="bed-bath-sqft-facts"] li'],
        "images": ['[data-testid="media-stream"] img', 'img[src*="photos.zillowstatic.com"]'],
    },
    "redfin": {
        "address": ['[data-rf-test-id="abp-streetLine"]', ".street-address", "h1.full-address", "h1"],
        "price": ['[data-rf-test-id="abp-price"] .statsValue', ".price-section .price"],
        "bedrooms": ['[data-rf-test-id="abp-beds"] .statsValue'],
        "bathrooms": ['[data-rf-test-id="abp-baths"] .statsValue'],
        "square_feet": ['[data-rf-test-id="abp-sqFt"] .statsValue'],
        "description": ["#marketing-remarks-scroll", ".remarks"],
        "agent": [".agent-basic-details--heading", ".listing-agent-item", '[class*="listingAgent"]'],
        "broker": [".agent-basic-details--broker", ".listing-agent-item .broker"],
        "features": [".amenities-container li", ".keyDetail"],
        "images": ['img[src*="cdn-redfin.com"]', ".InlinePhotoPreview img"],
    },
    "realtor": {
        "address": ['h1[data-testid="address"]', '[data-testid="address-line-1"]', "h1"],
        "price": ['span[data-testid="price"]', '[data-testid="list-price"]'],
        "bedrooms": ['li[data-label="property-meta-beds"]'],
        "bathrooms": ['li[data-label="property-meta-baths"]'],
        "square_feet": ['li[data-label="property-meta-sqft"]'],
        "year_built": ['li[data-label="property-meta-yearbuilt"]'],
        "description": ['[data-testid="romance-paragraph"]', ".property-description"],
        "agent_name": ['a[data-testid="listing-agent-name"]', '[data-testid="agent-name"]'],
        "agent_phone": ['a[data-testid="listing-agent-phone"]', '[data-testid="agent-phone"]'],
        "broker": [".listing-agent-brokerage", '[data-testid="broker-name"]'],
        "license": [".listing-agent-license", '[data-testid="agent-license"]'],
        "features": ['[data-testid="property-details"] li', ".property-features li"],
        "images": ['img[data-testid="hero-image"]', '[data-testid="photo-gallery"] img'],
    },
    "trulia": {
        "address": ['[data-testid="home-details-summary-headline"]', "h1"],
        "price": ['[data-testid="on-market-price-details"]'],
        "bedrooms": ['[data-testid="home-summary-size-bedrooms"]'],
        "bathrooms": ['[data-testid="home-summary-size-bathrooms"]'],
        "square_feet": ['[data-testid="home-summary-size-floorspace"]'],
        "description": ['[data-testid="home-description-text-description-text"]'],
        "agent": ['[data-testid="listing-agent-info"]', '[data-testid*="agent"]'],
        "broker": ['[data-testid="listing-broker-name"]'],
        "features": ['[data-testid="features-container"] li'],
        "images": ['[data-testid="hdp-hero-img-tile"] img', 'img[src*="trulia"]'],
    },
}

# Generic anchors for pages we do not recognise.
GENERIC_ANCHORS: Dict[str, List[str]] = {
    "address": ['[data-testid*="address"]', ".property-address", ".address", "h1"],
    "price": ['[data-testid*="price"]', '[class*="listing-price"]', ".price"],
    "agent": ['[class*="listing-agent"]', ".agent-info", '[data-testid*="agent"]'],
    "broker": ['[class*="brokerage"]', '[class*="broker"]'],
    "description": ['[class*="description"]', '[data-testid*="description"]'],
    "features": ['[class*="feature"] li', '[class*="amenit"] li', '[class*="facts"] li'],
    "images": ['img[src^="https://"]', "img[data-src]"],
}

# ---------------- DOM helpers ----------------

def first_text(soup: BeautifulSoup, selectors: List[str]) -> Optional[str]:
    for sel in selectors:
        el = soup.select_one(sel)
        if el is None:
            continue
        t = clean_text(el.get_text(" ", strip=True))
        if t:
            return t
    return None

def all_texts(soup: BeautifulSoup, selectors: List[str], cap: int = MAX_FEATURES) -> List[str]:
    for sel in selectors:
        items = unique(clean_text(el.get_text(" ", strip=True)) for el in soup.select(sel))
        if items:
            return items[:cap]
    return []

def image_sources(soup: BeautifulSoup, selectors: List[str], cap: int = MAX_IMAGES) -> List[str]:
    urls: List[str] = []
    for sel in selectors:
        for img in soup.select(sel):
            src = img.get("src") or img.get("data-src") or ""
            if src.startswith("http://") or src.startswith("https://"):
                urls.append(src)
    return unique(urls)[:cap]

# ---------------- compound-field parsers ----------------

def parse_beds_baths_sqft(text: Optional[str]) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """'3 bd2 ba1,380 sqft' -> ('3', '2', '1380')."""
    if not text:
        return None, None, None
    beds = BEDS_RE.search(text)
    baths = BATHS_RE.search(text)
    sqft = SQFT_RE.search(text)
    return (
        beds.group(1) if beds else None,
        baths.group(1) if baths else None,
        sqft.group(1).replace(",", "") if sqft else None,
    )

_LISTED_BY_RE = re.compile(r"Listed by:?\s*([^,]+)", re.I)
_LEADING_SEGMENT_RE = re.compile(r"^([^,|:]+)")
_NAME_STOP_RE = re.compile(r"\s*(?:\(|\d|\||#|\b(?:DRE|CalDRE|BRE|CalBRE|Lic\.?|License)\b)", re.I)
_EXPLICIT_LICENSE_RE = re.compile(
    r"(?:\b(?:DRE|CalDRE|License|Lic\.|BRE|CA|CalBRE)\s*#?:?\s*|#\s*:?\s*)([A-Z0-9-]*\d[A-Z0-9-]*)", re.I
)
_PAREN_LICENSE_RE = re.compile(r"\((?:.*?#?\s*)([0-9]{5,})\)")
_BARE_LICENSE_RE = re.compile(r"\b([0-9]{6,})\b")
_COMPANY_RE = re.compile(r"(?:Listing provided by:?\s*|Brokered by:?\s*|Broker:?\s*|^)([^,]+)", re.I)

def parse_agent_name(blob: Optional[str]) -> Optional[str]:
    if not blob:
        return None
    m = _LISTED_BY_RE.search(blob) or _LEADING_SEGMENT_RE.search(blob)
    if not m:
        return None
    name = _NAME_STOP_RE.split(m.group(1), maxsplit=1)[0]
    return clean_text(name)

def parse_agent_attribution(blob: Optional[str]) -> Dict[str, Optional[str]]:
    """
    'Listed by: Jane Doe, (415) 555-0100, DRE #01234567'
      -> {'name': 'Jane Doe', 'phone': '(415) 555-0100', 'license': '01234567'}
    """
    out: Dict[str, Optional[str]] = {"name": None, "phone": None, "license": None}
    if not blob:
        return out
    out["name"] = parse_agent_name(blob)

    phone = PHONE_RE.search(blob)
    if phone:
        out["phone"] = phone.group(0).strip()

    # strip the phone so its digits never read as a license
    rest = PHONE_RE.sub(" ", blob)
    lic = None
    for rx in (_EXPLICIT_LICENSE_RE, _PAREN_LICENSE_RE, _BARE_LICENSE_RE):
        m = rx.search(rest)
        if m:
            lic = m.group(1).strip()
            break
    out["license"] = clean_license_number(lic) if lic else None
    return out

def parse_company(blob: Optional[str]) -> Optional[str]:
    if not blob:
        return None
    m = _COMPANY_RE.search(blob)
    if m and clean_text(m.group(1)):
        return clean_text(m.group(1))
    return clean_text(blob)

# ---------------- address in URL ----------------

_STATE_RE = re.compile(r"^[A-Z]{2}$")
_ZIP5_RE = re.compile(r"^\d{5}$")
_DIRECTIONAL_RE = re.compile(r"^(?:N|S|E|W|NE|NW|SE|SW)$")
_STREET_TYPE_RE = re.compile(
    r"^(?:Dr|St|Ave|Blvd|Ln|Lane|Road|Rd|Way|Ct|Circle|Cir|Place|Pl|Ter|Pkwy|Hwy|Trl|Loop|Unit|Apt)$", re.I
)

@dataclass
class AddressParts:
    street: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""

    def one_line(self) -> str:
        tail = " ".join(p for p in (self.state, self.zip) if p)
        return ", ".join(p for p in (self.street, self.city, tail) if p)

def _split_hyphen_address(segment: str) -> Optional[AddressParts]:
    parts = segment.split("-")
    for i in range(1, len(parts) - 1):
        if not (_STATE_RE.match(parts[i]) and _ZIP5_RE.match(parts[i + 1])):
            continue
        city_start = 0
        for j in range(i):
            p = parts[j]
            if re.search(r"\d", p) or _DIRECTIONAL_RE.match(p) or _STREET_TYPE_RE.match(p):
                city_start = j + 1
        city = " ".join(parts[city_start:i]).replace("_", " ").strip()
        street = " ".join(parts[:city_start]).strip()
        return AddressParts(street=street, city=city, state=parts[i], zip=parts[i + 1])
    return None

def _split_underscore_address(segment: str) -> Optional[AddressParts]:
    # realtor.com: 123-Main-St_San-Francisco_CA_94103_M12345-67890
    parts = segment.split("_")
    for i in range(1, len(parts) - 1):
        if _STATE_RE.match(parts[i]) and _ZIP5_RE.match(parts[i + 1]):
            street = parts[0].replace("-", " ") if i >= 2 else ""
            return AddressParts(
                street=street,
                city=parts[i - 1].replace("-", " "),
                state=parts[i],
                zip=parts[i + 1],
            )
    return None

def address_from_url(url: str) -> Optional[AddressParts]:
    """Street/city/state/zip encoded in a listing URL path, when present."""
    try:
        path = unquote(urlparse(url or "").path)
    except ValueError:
        return None
    segments = [s for s in path.split("/") if s]

    if detect_site(url) == "redfin":
        # /CA/San-Francisco/123-Main-St-94103/home/12345
        for i, seg in enumerate(segments[:-1]):
            if _STATE_RE.match(seg):
                city = segments[i + 1].replace("-", " ")
                street = segments[i + 2] if i + 2 < len(segments) else ""
                m = re.search(r"-?(\d{5})$", street)
                zip_code = m.group(1) if m else ""
                if m:
                    street = street[: m.start()]
                return AddressParts(street=street.replace("-", " ").strip(), city=city, state=seg, zip=zip_code)

    if detect_site(url) == "trulia":
        # /p/ca/san-francisco/123-main-st-san-francisco-ca-94111--2084636767
        m = re.search(r"/p/([a-z]{2})/([^/]+)/(.+?)-([a-z]{2})-(\d{5})", path, re.I)
        if m:
            city = clean_city_name(m.group(2))
            street = m.group(3)
            suffix = "-" + m.group(2)
            if street.lower().endswith(suffix.lower()):
                street = street[: -len(suffix)]
            return AddressParts(street=street.replace("-", " "), city=city, state=m.group(4).upper(), zip=m.group(5))

    for seg in segments:
        parts = _split_underscore_address(seg) if "_" in seg and "-" in seg.split("_")[0] else None
        parts = parts or _split_hyphen_address(seg)
        if parts:
            return parts
    return None

def city_state_zip_from_url(url: str) -> Dict[str, str]:
    parts = address_from_url(url)
    if not parts:
        return {}
    return {k: v for k, v in (("city", parts.city), ("state", parts.state), ("zip", parts.zip)) if v}

def city_state_zip_from_address(address: Optional[str]) -> Dict[str, str]:
    """'123 Main St, San Francisco, CA 94103' -> city/state/zip."""
    m = CITY_STATE_ZIP_RE.search(address or "")
    if not m:
        return {}
    city = m.group(1).split(",")[-1].strip()
    out = {"state": m.group(2), "zip": m.group(3)}
    if city and not re.match(r"^\d", city):
        out["city"] = city
    return out

# ---------------- features -> derived fields ----------------

def year_built_from_features(features: List[str]) -> Optional[str]:
    for f in features:
        m = YEAR_BUILT_RE.search(f)
        if m:
            return m.group(1)
    return None

def property_type_from_features(features: List[str]) -> Optional[str]:
    for f in features:
        m = re.match(r"^\s*(?:home\s+|property\s+)?(?:type|style)\s*:?\s*(.+)$", f, re.I)
        if m:
            return clean_text(m.group(1))
    return None

# ---------------- entry points ----------------

def _extract_with(soup: BeautifulSoup, anchors: Dict[str, List[str]]) -> Dict:
    out: Dict = {}

    for field in ("address", "price", "bedrooms", "bathrooms", "square_feet", "year_built", "description"):
        if field in anchors:
            out[field] = first_text(soup, anchors[field])

    if "beds_baths_sqft" in anchors:
        beds, baths, sqft = parse_beds_baths_sqft(first_text(soup, anchors["beds_baths_sqft"]))
        out["bedrooms"] = out.get("bedrooms") or beds
        out["bathrooms"] = out.get("bathrooms") or baths
        out["square_feet"] = out.get("square_feet") or sqft

    # realtor.com puts the unit next to the number: "3bed", "2,100sqft"
    for field, rx in (("bedrooms", BEDS_RE), ("bathrooms", BATHS_RE), ("square_feet", SQFT_RE)):
        v = out.get(field)
        if v:
            m = rx.search(v)
            if m:
                out[field] = m.group(1).replace(",", "") if field == "square_feet" else m.group(1)
    if out.get("year_built"):
        m = re.search(r"\d{4}", out["year_built"])
        out["year_built"] = m.group(0) if m else None

    agent_blob = first_text(soup, anchors["agent"]) if "agent" in anchors else None
    if agent_blob:
        agent = parse_agent_attribution(agent_blob)
        out["listing_agent_name"] = agent["name"]
        out["listing_agent_phone"] = agent["phone"]
        out["listing_agent_license_number"] = agent["license"]
    if "agent_name" in anchors:
        out["listing_agent_name"] = out.get("listing_agent_name") or first_text(soup, anchors["agent_name"])
    if "agent_phone" in anchors:
        out["listing_agent_phone"] = out.get("listing_agent_phone") or first_text(soup, anchors["agent_phone"])
    if "license" in anchors:
        lic = first_text(soup, anchors["license"])
        if lic:
            out["listing_agent_license_number"] = clean_license_number(lic)

    broker_blob = first_text(soup, anchors["broker"]) if "broker" in anchors else None
    out["listing_agent_company"] = parse_company(broker_blob)

    features = all_texts(soup, anchors.get("features", []))
    out["features"] = features
    out["year_built"] = out.get("year_built") or year_built_from_features(features)
    out["property_type"] = property_type_from_features(features)
    out["image_urls"] = image_sources(soup, anchors.get("images", []))
    return out

def _fill_location(out: Dict, url: str) -> Dict:
    loc = city_state_zip_from_url(url)
    for k, v in city_state_zip_from_address(out.get("address")).items():
        loc.setdefault(k, v)
    out.update(loc)
    return {k: v for k, v in out.items() if v not in (None, "", [])}

def extract_known_site_fields(html: Optional[str], url: str) -> Dict:
    """Partial record from a recognised site's DOM; {} for unknown sites or empty HTML."""
    site = detect_site(url)
    anchors = SITE_ANCHORS.get(site)
    if not anchors or not html:
        return {}
    out = _extract_with(soup_of(html), anchors)
    log.debug(f"[sites] {site} filled={sorted(k for k, v in out.items() if v)}")
    return _fill_location(out, url)

def extract_generic_fields(html: Optional[str], url: str) -> Dict:
    """Best-effort partial record from any page using loose, common class names."""
    if not html:
        return {}
    out = _extract_with(soup_of(html), GENERIC_ANCHORS)
    return _fill_location(out, url)
