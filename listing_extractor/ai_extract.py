# listing_extractor/ai_extract.py
from __future__ import annotations
import json
import logging
import re
from typing import Any, Dict, Optional

import openai

from listing_extractor.errors import ParseFailed
from listing_extractor.extractors import PHONE_RE, extract_og_meta, extract_title, soup_of
from listing_extractor.normalize import clean_text
from listing_extractor.schemas import to_attribute_keys
from listing_extractor.sites import parse_agent_attribution

log = logging.getLogger(__name__)

SYSTEM_PROMPT = """Extract listing info and output ONLY this JSON:

{
  "address": "",
  "city": "",
  "state": "",
  "zip": "",
  "propertyType": "",
  "bedrooms": "",
  "bathrooms": "",
  "squareFeet": "",
  "price": "",
  "yearBuilt": "",
  "description": "",
  "features": [],
  "imageUrls": [],
  "listedBy": "",
  "listingAgentName": "",
  "listingAgentPhone": "",
  "listingAgentCompany": "",
  "listingAgentLicenseNumber": "",
  "listingAgentEmail": ""
}

- The agent block can read like
  "Listed by: Gary J. Snow DRE #01452902 415-601-5223, Vantage Realty 415-846-4685".
  Order and punctuation may vary. Copy that block verbatim into listedBy.
- Strip license prefixes (DRE with optional "#", CalDRE, Lic., License, BRE).
- listingAgentPhone = first phone found.
- Only use information present in the text. If a field is missing, output "" (or [] for lists).

Return nothing else."""

_DROP_TAGS = ("script", "style", "noscript", "svg", "iframe", "template", "header", "footer", "nav")
_FOCUS_SELECTORS = ("main", '[class*="property"]', '[class*="listing"]', '[data-testid*="home-details"]')

_AGENT_IN_TEXT_RES = (
    re.compile(r"(?:Listed by|Contact|Agent|REALTOR):?\s*([A-Z][a-z]+ [A-Z][a-z]+)", re.I),
    re.compile(r"([A-Z][a-z]+ [A-Z][a-z]+)\s+(?:is the listing agent|is the agent|is the REALTOR)"),
    re.compile(r"(?:call|contact|reach)\s+([A-Z][a-z]+ [A-Z][a-z]+)\s+(?:at|on)\s+(\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4})", re.I),
)
_COMPANY_IN_TEXT_RES = (
    re.compile(r"(?:with|at|from)\s+([A-Z][A-Za-z&'\s]+?(?:Realty|Properties|Homes|Real Estate|Group|Associates))"),
    re.compile(r"([A-Z][A-Za-z&'\s]+?(?:Realty|Properties|Homes|Real Estate|Group|Associates))"),
)


def trim_html_for_model(html: Optional[str], char_budget: int = 12000) -> str:
    """Page title, meta description, structured data and visible text, capped at char_budget."""
    soup = soup_of(html)
    ld = [t.get_text("", strip=True) for t in soup.find_all("script", {"type": "application/ld+json"})]
    title = extract_title(soup) or ""
    meta_desc = extract_og_meta(soup).get("description", "")

    for tag in soup.find_all(list(_DROP_TAGS)):
        tag.decompose()
    focus = None
    for sel in _FOCUS_SELECTORS:
        focus = soup.select_one(sel)
        if focus is not None and len(focus.get_text(strip=True)) > 500:
            break
        focus = None
    body = (focus or soup).get_text("\n", strip=True)
    body = re.sub(r"\n{2,}", "\n", body)

    parts = [f"Page Title: {title}", f"Meta Description: {meta_desc}"]
    if ld:
        parts.append("Structured data: " + " ".join(ld)[: char_budget // 4])
    parts.append("Page text:\n" + body)
    return "\n".join(parts)[:char_budget]


def _derive_agent_fields(out: Dict[str, Any], listed_by: Optional[str]) -> None:
    """Fill agent name/phone/company from the listedBy blob or the description."""
    if listed_by and not out.get("listing_agent_name"):
        parsed = parse_agent_attribution(listed_by)
        out["listing_agent_name"] = parsed["name"]
        out["listing_agent_phone"] = out.get("listing_agent_phone") or parsed["phone"]
        out["listing_agent_license_number"] = out.get("listing_agent_license_number") or parsed["license"]

    desc = out.get("description") or ""
    if not desc:
        return
    if not out.get("listing_agent_name"):
        for rx in _AGENT_IN_TEXT_RES:
            m = rx.search(desc)
            if m:
                out["listing_agent_name"] = m.group(1)
                if m.lastindex and m.lastindex >= 2 and not out.get("listing_agent_phone"):
                    out["listing_agent_phone"] = m.group(2)
                break
    if not out.get("listing_agent_company"):
        for rx in _COMPANY_IN_TEXT_RES:
            m = rx.search(desc)
            if m:
                out["listing_agent_company"] = clean_text(m.group(1))
                break
    if out.get("listing_agent_name") and not out.get("listing_agent_phone"):
        m = PHONE_RE.search(desc)
        if m:
            out["listing_agent_phone"] = m.group(0)


def parse_model_reply(content: Optional[str]) -> Dict[str, Any]:
    """JSON object -> partial record (attribute keys). Raises ParseFailed on anything else."""
    try:
        data = json.loads(content or "")
    except ValueError as e:
        raise ParseFailed(f"model reply is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise ParseFailed(f"model reply is {type(data).__name__}, expected an object")

    listed_by = data.get("listedBy") or data.get("listedby")
    if "listingAgentLicenseNo" in data and not data.get("listingAgentLicenseNumber"):
        data["listingAgentLicenseNumber"] = data["listingAgentLicenseNo"]

    out = to_attribute_keys(data)
    for k in ("features", "image_urls"):
        v = out.get(k)
        if isinstance(v, str):
            out[k] = [v]
        elif not isinstance(v, list):
            out.pop(k, None)
    for k, v in list(out.items()):
        if isinstance(v, str):
            out[k] = clean_text(v)

    _derive_agent_fields(out, clean_text(listed_by) if isinstance(listed_by, str) else None)
    return {k: v for k, v in out.items() if v not in (None, "", [])}


class ModelExtractor:
    """One chat-completion call in JSON mode; any failure reads as 'nothing found'."""

    def __init__(self, client, model: str = "gpt-4o", char_budget: int = 12000, timeout: int = 60):
        self.client = client
        self.model = model
        self.char_budget = char_budget
        self.timeout = timeout

    def extract_via_model(self, source_text: str, url: str) -> Dict[str, Any]:
        if not source_text or not source_text.strip():
            return {}
        user_msg = f"URL: {url}\n\n{source_text[: self.char_budget]}"
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": user_msg},
                ],
                response_format={"type": "json_object"},
                temperature=0,
                timeout=self.timeout,
            )
            content = response.choices[0].message.content
        except Exception as e:
            log.error(f"[model] request failed url={url} err={e}")
            return {}

        try:
            fields = parse_model_reply(content)
        except ParseFailed as e:
            log.warning(f"[model] {e} url={url}")
            return {}
        log.info(f"[model] url={url} filled={sorted(fields)}")
        return fields

    def extract_from_html(self, html: str, url: str) -> Dict[str, Any]:
        return self.extract_via_model(trim_html_for_model(html, self.char_budget), url)


def build_model_client(settings) -> Optional[openai.OpenAI]:
    if not settings.openai_api_key:
        log.info("[model] OPENAI_API_KEY not set; model layer disabled")
        return None
    return openai.OpenAI(api_key=settings.openai_api_key, timeout=settings.model_timeout_sec)


def build_model_extractor(settings) -> Optional[ModelExtractor]:
    client = build_model_client(settings)
    if client is None:
        return None
    return ModelExtractor(
        client,
        model=settings.model_name,
        char_budget=settings.model_char_budget,
        timeout=settings.model_timeout_sec,
    )
