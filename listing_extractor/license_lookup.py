# listing_extractor/license_lookup.py
# California DRE public license lookup; fills an agent name from a license number.

from __future__ import annotations
import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional

import requests

from listing_extractor.extractors import soup_of
from listing_extractor.normalize import clean_text
from listing_extractor.settings import default_headers

log = logging.getLogger(__name__)

DRE_LOOKUP_URL = "https://www2.dre.ca.gov/PublicASP/pplinfo.asp"

_LABELS = {
    "name": "full_name",
    "license type": "license_type",
    "expiration date": "expiration_date",
    "license status": "status",
}


@dataclass
class LicenseRecord:
    license_number: str
    full_name: str = ""
    license_type: str = ""
    expiration_date: str = ""
    status: str = ""

    @property
    def display_name(self) -> str:
        """DRE lists 'DOE, JANE'; return 'Jane Doe'."""
        name = self.full_name
        if "," in name:
            last, first = [p.strip() for p in name.split(",", 1)]
            name = f"{first} {last}"
        return " ".join(w.capitalize() for w in name.split())


def parse_dre_page(html: str, license_number: str) -> Optional[LicenseRecord]:
    found: Dict[str, str] = {}
    for row in soup_of(html).select("table tr"):
        cells = [clean_text(c.get_text(" ", strip=True)) or "" for c in row.find_all(["td", "th"])]
        if len(cells) >= 2:
            label, value = cells[0], " ".join(c for c in cells[1:] if c)
        else:
            text = clean_text(row.get_text(" ", strip=True)) or ""
            label, _, value = text.partition(":")
        key = _LABELS.get(label.rstrip(":").strip().lower())
        if key and value and key not in found:
            found[key] = value.strip()
    if not found.get("full_name"):
        return None
    return LicenseRecord(license_number=license_number, **found)


class LicenseLookup:
    def __init__(self, timeout: int = 10, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def lookup(self, license_number: Optional[str]) -> Optional[LicenseRecord]:
        """None when the number is not a CA-style license or the lookup fails."""
        if not license_number or not re.fullmatch(r"\d{8}", license_number):
            return None
        try:
            r = self.session.get(
                DRE_LOOKUP_URL,
                params={"License_id": license_number},
                headers=default_headers(),
                timeout=self.timeout,
            )
            r.raise_for_status()
        except requests.RequestException as e:
            log.warning(f"[license] lookup failed license={license_number} err={e}")
            return None
        rec = parse_dre_page(r.text, license_number)
        if rec is None:
            log.info(f"[license] no record found license={license_number}")
        return rec


def lookup_license(
    license_number: Optional[str],
    *,
    timeout: int = 10,
    session: Optional[requests.Session] = None,
) -> Optional[LicenseRecord]:
    return LicenseLookup(timeout=timeout, session=session).lookup(license_number)
