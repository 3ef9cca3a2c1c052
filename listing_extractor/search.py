# listing_extractor/search.py
# Web-search assisted lookups (SerpAPI over requests):
#   A) find a canonical, scrapable listing URL for an unsupported/blocked URL
#   B) find a listing agent's e-mail address
#   C) mine listing fields straight from search snippets when no HTML is available
# Public resolver methods never raise; they log and return None / "" / empty.

from __future__ import annotations
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse, unquote

import requests

from listing_extractor.errors import SearchUnavailable
from listing_extractor.extractors import (
    BATHS_RE,
    BEDS_RE,
    CITY_STATE_ZIP_RE,
    EMAIL_RE,
    PHONE_RE,
    PRICE_RE,
    SQFT_RE,
)
from listing_extractor.normalize import clean_license_number, clean_text
from listing_extractor.sites import SITE_DOMAINS, address_from_url, is_supported_site

log = logging.getLogger(__name__)

SERPAPI_URL = "https://serpapi.com/search.json"

DETAIL_URL_PATTERNS = {
    "realtor": re.compile(r"realtor\.com/realestateandhomes-detail/", re.I),
    "zillow": re.compile(r"zillow\.com/(?:homedetails/|.*_zpid)", re.I),
    "redfin": re.compile(r"redfin\.com/[A-Z]{2}/[^/]+/[^/]+/home/\d+", re.I),
    "trulia": re.compile(r"trulia\.com/(?:p|home)/", re.I),
}


class SerpApiClient:
    """GET https://serpapi.com/search.json with engine=google."""

    def __init__(self, api_key: str, timeout: int = 15, session: Optional[requests.Session] = None):
        if not api_key:
            raise SearchUnavailable("SERPAPI_KEY is not configured")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def search(self, query: str, num: int = 10) -> Dict[str, Any]:
        params = {
            "engine": "google",
            "q": query,
            "num": num,
            "gl": "us",
            "hl": "en",
            "api_key": self.api_key,
        }
        try:
            r = self.session.get(SERPAPI_URL, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise SearchUnavailable(f"search transport error: {e}") from e
        if r.status_code == 429:
            raise SearchUnavailable("search quota exhausted (429)")
        if r.status_code != 200:
            raise SearchUnavailable(f"search http {r.status_code}")
        try:
            data = r.json()
        except ValueError as e:
            raise SearchUnavailable("search returned non-JSON body") from e
        if data.get("error"):
            raise SearchUnavailable(f"search api error: {data['error']}")
        return data


@dataclass
class SearchSnippets:
    query: str = ""
    organic: List[Dict[str, str]] = field(default_factory=list)
    knowledge_graph: Dict[str, Any] = field(default_factory=dict)
    answer_box: Dict[str, Any] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (self.organic or self.knowledge_graph or self.answer_box)

    def as_text(self) -> str:
        """Plain-text rendering, used as model input when no HTML exists."""
        lines: List[str] = []
        for r in self.organic:
            lines.append(f"{r.get('title', '')}\n{r.get('snippet', '')}\n{r.get('link', '')}")
        for name, block in (("Knowledge graph", self.knowledge_graph), ("Answer box", self.answer_box)):
            if block:
                lines.append(name + ":")
                lines.extend(f"{k}: {v}" for k, v in block.items() if isinstance(v, (str, int, float)))
        return "\n\n".join(lines)


def _path_words(url: str) -> str:
    try:
        path = unquote(urlparse(url).path)
    except ValueError:
        return ""
    words = re.sub(r"[-_/]+", " ", path).strip()
    return words if len(words) > 5 else ""

def _domain(url: str) -> str:
    host = (urlparse(url or "").hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


class SearchResolver:
    def __init__(self, client: Optional[SerpApiClient], target_site: str = "realtor", num: int = 10):
        self.client = client
        self.target_site = target_site if target_site in SITE_DOMAINS else "realtor"
        self.num = num

    def _search(self, query: str) -> Optional[Dict[str, Any]]:
        if self.client is None:
            log.debug("[search] no search client configured")
            return None
        try:
            return self.client.search(query, num=self.num)
        except SearchUnavailable as e:
            log.warning(f"[search] unavailable q={query!r} err={e}")
        except Exception as e:
            log.error(f"[search] failed q={query!r} err={e}")
        return None

    def listing_query(self, url: str) -> str:
        parts = address_from_url(url)
        if parts and (parts.street or parts.city):
            return parts.one_line()
        return _path_words(url) or f"{_domain(url)} real estate listing"

    # ---------- A) canonical listing URL ----------

    def resolve_canonical_listing_url(self, original_url: str) -> Optional[str]:
        if is_supported_site(original_url):
            return original_url

        target_domain = SITE_DOMAINS[self.target_site]
        query = f"{self.listing_query(original_url)} site:{target_domain}"
        data = self._search(query)
        if not data:
            return None

        pattern = DETAIL_URL_PATTERNS[self.target_site]
        for r in data.get("organic_results") or []:
            link = r.get("link") or ""
            if pattern.search(link):
                log.info(f"[search] canonical url for {original_url} -> {link}")
                return link
        log.info(f"[search] no {self.target_site} listing found q={query!r}")
        return None

    # ---------- B) agent e-mail ----------

    def resolve_agent_email(
        self,
        name: Optional[str],
        company: Optional[str] = None,
        phone: Optional[str] = None,
        license_number: Optional[str] = None,
    ) -> str:
        if not name:
            return ""
        tokens = [t for t in (name, company, phone, license_number) if t]
        query = " ".join(tokens) + " real estate agent email contact"
        data = self._search(query)
        if not data:
            return ""
        for r in data.get("organic_results") or []:
            text = f"{r.get('title', '')} {r.get('snippet', '')}"
            m = EMAIL_RE.search(text)
            if m:
                return m.group(0).rstrip(".")
        return ""

    # ---------- C) snippets ----------

    def search_listing_snippets(self, url: str) -> SearchSnippets:
        query = f"{self.listing_query(url)} real estate listing"
        data = self._search(query)
        if not data:
            return SearchSnippets(query=query)
        organic = [
            {
                "title": r.get("title") or "",
                "link": r.get("link") or "",
                "snippet": r.get("snippet") or "",
            }
            for r in (data.get("organic_results") or [])
        ]
        return SearchSnippets(
            query=query,
            organic=organic,
            knowledge_graph=data.get("knowledge_graph") or {},
            answer_box=data.get("answer_box") or {},
        )


def _first(rx, text: str) -> Optional[str]:
    m = rx.search(text)
    return m.group(1) if m else None

def fields_from_snippets(snippets: SearchSnippets) -> Dict[str, Any]:
    """Regex-mine listing fields out of organic results and the knowledge graph."""
    out: Dict[str, Any] = {}
    if snippets.is_empty():
        return out

    for r in snippets.organic:
        title, snippet = r.get("title", ""), r.get("snippet", "")
        text = f"{title} {snippet}"
        if "address" not in out:
            head = clean_text(title.split(" - ")[0].split(" | ")[0])
            m = CITY_STATE_ZIP_RE.search(head or "")
            if m:
                out["address"] = head
                out.setdefault("city", clean_text(m.group(1).split(",")[-1]))
                out.setdefault("state", m.group(2))
                out.setdefault("zip", m.group(3))
        price = PRICE_RE.search(text)
        if price and "price" not in out:
            out["price"] = price.group(0).strip()
        for key, rx in (("bedrooms", BEDS_RE), ("bathrooms", BATHS_RE)):
            if key not in out:
                v = _first(rx, text)
                if v:
                    out[key] = v
        if "square_feet" not in out:
            v = _first(SQFT_RE, text)
            if v:
                out["square_feet"] = v.replace(",", "")
        if "description" not in out and snippet:
            out["description"] = clean_text(snippet)

    kg = snippets.knowledge_graph or {}
    agent = kg.get("listing_agent") or kg.get("agent") or kg.get("real_estate_agent")
    if isinstance(agent, dict):
        out.setdefault("listing_agent_name", clean_text(agent.get("name")))
        out.setdefault("listing_agent_phone", clean_text(agent.get("phone")))
        out.setdefault("listing_agent_company", clean_text(agent.get("company") or agent.get("brokerage")))
        lic = agent.get("license")
        if lic:
            out.setdefault("listing_agent_license_number", clean_license_number(str(lic)))
    elif isinstance(agent, str):
        out.setdefault("listing_agent_name", clean_text(agent))
        phone = PHONE_RE.search(agent)
        if phone:
            out["listing_agent_phone"] = phone.group(0)
    for src, dst in (("property_type", "property_type"), ("year_built", "year_built"), ("price", "price")):
        if kg.get(src):
            out.setdefault(dst, kg[src])
    feats = kg.get("features")
    if isinstance(feats, list):
        out["features"] = [clean_text(f) for f in feats if clean_text(f)]

    return {k: v for k, v in out.items() if v not in (None, "", [])}


def build_resolver(settings) -> SearchResolver:
    client = None
    if settings.serpapi_key:
        client = SerpApiClient(settings.serpapi_key, timeout=settings.search_timeout_sec)
    return SearchResolver(client, target_site=settings.canonical_site, num=settings.results_per_query)
