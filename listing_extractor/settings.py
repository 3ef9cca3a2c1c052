# listing_extractor/settings.py
# Purpose: Centralized settings & helpers (load config, env secrets, headers, timestamps).

from __future__ import annotations
import datetime
import os
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

# ---------- config loading ----------
def get_project_root() -> Path:
    return Path(__file__).resolve().parent.parent

PROJECT_ROOT = get_project_root()
CONFIG_PATH = Path(os.getenv("LISTING_EXTRACTOR_CONFIG") or PROJECT_ROOT / "config" / "extractor_config.json")
BATCHES_ROOT = PROJECT_ROOT / "data" / "batches"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

UA_POOL = [
    DEFAULT_USER_AGENT,
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 13_4_1) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/16.5 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/118.0.0.0 Safari/537.36",
]

def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Read the JSON config; a missing file means built-in defaults."""
    p = Path(path) if path else CONFIG_PATH
    if not p.exists():
        return {}
    return json.loads(p.read_text(encoding="utf-8"))


@dataclass
class Settings:
    user_agent: str = DEFAULT_USER_AGENT
    user_agents: List[str] = field(default_factory=lambda: list(UA_POOL))
    request_timeout_sec: int = 30
    browser_timeout_sec: int = 45
    search_timeout_sec: int = 15
    model_timeout_sec: int = 60
    lookup_timeout_sec: int = 10
    sleep_range_sec: Tuple[float, float] = (1.0, 3.0)
    min_html_chars: int = 4000
    max_scroll_steps: int = 20

    model_name: str = "gpt-4o"
    model_char_budget: int = 12000

    canonical_site: str = "realtor"
    results_per_query: int = 10

    enable_browser: bool = True
    enable_firecrawl: bool = True
    enable_license_lookup: bool = False

    # secrets (env / .env only)
    openai_api_key: Optional[str] = None
    serpapi_key: Optional[str] = None
    firecrawl_api_key: Optional[str] = None


def load_settings(path: Optional[Path] = None) -> Settings:
    cfg = load_config(path)
    run = cfg.get("run", {})
    model = cfg.get("model", {})
    search = cfg.get("search", {})
    feats = cfg.get("features", {})

    ua = run.get("user_agent", DEFAULT_USER_AGENT)
    pool = [ua] + [u for u in UA_POOL if u != ua]

    return Settings(
        user_agent=ua,
        user_agents=pool,
        request_timeout_sec=int(run.get("request_timeout_sec", 30)),
        browser_timeout_sec=int(run.get("browser_timeout_sec", 45)),
        search_timeout_sec=int(run.get("search_timeout_sec", 15)),
        model_timeout_sec=int(run.get("model_timeout_sec", 60)),
        lookup_timeout_sec=int(run.get("lookup_timeout_sec", 10)),
        sleep_range_sec=tuple(run.get("sleep_range_sec", [1.0, 3.0])),
        min_html_chars=int(run.get("min_html_chars", 4000)),
        max_scroll_steps=int(run.get("max_scroll_steps", 20)),
        model_name=os.getenv("OPENAI_MODEL") or model.get("name", "gpt-4o"),
        model_char_budget=int(model.get("char_budget", 12000)),
        canonical_site=search.get("canonical_site", "realtor"),
        results_per_query=int(search.get("results_per_query", 10)),
        enable_browser=bool(feats.get("enable_browser", True)),
        enable_firecrawl=bool(feats.get("enable_firecrawl", True)),
        enable_license_lookup=bool(feats.get("enable_license_lookup", False)),
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        serpapi_key=os.getenv("SERPAPI_KEY") or os.getenv("SERPAPI_API_KEY") or None,
        firecrawl_api_key=os.getenv("FIRECRAWL_API_KEY") or None,
    )

# ---------- time helpers ----------
def now_utc_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")

def today_ymd() -> str:
    return datetime.datetime.now(datetime.timezone.utc).strftime("%Y-%m-%d")

# ---------- batch folders ----------
def make_batch_dirs(batch_id: str, root: Optional[Path] = None) -> Dict[str, Path]:
    base = Path(root or BATCHES_ROOT) / batch_id
    structured = base / "structured"
    qa = base / "qa"
    for p in (structured, qa):
        p.mkdir(parents=True, exist_ok=True)
    return {"base": base, "structured": structured, "qa": qa}

# ---------- HTTP headers ----------
def default_headers(user_agent: str = DEFAULT_USER_AGENT) -> Dict[str, str]:
    return {
        "User-Agent": user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
        "DNT": "1",
    }

