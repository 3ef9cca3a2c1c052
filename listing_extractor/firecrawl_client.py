# firecrawl_client.py
from __future__ import annotations
import os
import logging
from typing import Any, Dict, Optional

# The SDK renamed its entry points between releases (FirecrawlApp.scrape_url vs Firecrawl.scrape).
import firecrawl

log = logging.getLogger(__name__)

FORMATS = ["html", "rawHtml"]


class Firecrawl:
    """
    Thin wrapper over the Firecrawl SDK.
    - API key from the argument or FIRECRAWL_API_KEY.
    - scrape(url) returns a dict with 'html' / 'raw_html' / 'metadata' when available.
    """

    def __init__(self, api_key: Optional[str] = None, timeout: int = 45, client: Any = None):
        self.api_key = api_key or os.getenv("FIRECRAWL_API_KEY")
        if client is None and not self.api_key:
            raise RuntimeError("Missing FIRECRAWL_API_KEY (set in env or .env file)")
        self.timeout = int(timeout)
        self.client = client or self._make_client()

    def _make_client(self):
        if hasattr(firecrawl, "Firecrawl"):
            return firecrawl.Firecrawl(api_key=self.api_key)
        if hasattr(firecrawl, "FirecrawlApp"):
            return firecrawl.FirecrawlApp(api_key=self.api_key)
        raise RuntimeError("firecrawl SDK exposes neither Firecrawl nor FirecrawlApp")

    @staticmethod
    def normalize_result(res: Any) -> Dict[str, Any]:
        """Flatten SDK responses (dict, pydantic model, or {'data': {...}}) to one dict."""
        if res is None:
            return {}
        if isinstance(res, dict):
            out = dict(res)
        elif hasattr(res, "model_dump"):
            out = dict(res.model_dump())
        elif hasattr(res, "to_dict"):
            out = dict(res.to_dict())
        else:
            out = {k: v for k, v in vars(res).items() if not k.startswith("_")}

        if isinstance(out.get("data"), dict):
            out = {**out["data"], **{k: v for k, v in out.items() if k != "data"}}
        if not out.get("raw_html") and out.get("rawHtml"):
            out["raw_html"] = out["rawHtml"]
        if not out.get("html") and isinstance(out.get("content"), str):
            out["html"] = out["content"]
        meta = out.get("metadata")
        if meta is not None and not isinstance(meta, dict):
            out["metadata"] = meta.model_dump() if hasattr(meta, "model_dump") else {}
        return out

    def scrape(self, url: str) -> Dict[str, Any]:
        timeout_ms = self.timeout * 1000
        if hasattr(self.client, "scrape"):
            res = self.client.scrape(url, formats=FORMATS, timeout=timeout_ms)
        elif hasattr(self.client, "scrape_url"):
            res = self.client.scrape_url(url, formats=FORMATS, timeout=timeout_ms)
        else:
            raise RuntimeError("firecrawl client has no scrape method")
        out = self.normalize_result(res)
        log.debug(f"[firecrawl] scraped url={url} keys={sorted(out)}")
        return out
