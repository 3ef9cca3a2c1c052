# listing_extractor/batch.py
# Purpose: Run the extractor over many URLs and persist records + a QA summary in a batch folder.

from __future__ import annotations
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from listing_extractor.errors import InvalidInput
from listing_extractor.settings import Settings, make_batch_dirs, now_utc_iso, today_ymd
from listing_extractor.utils import jitter_sleep, write_json

log = logging.getLogger(__name__)


def read_url_file(path: Path) -> List[str]:
    """One URL per line (blank lines and '#' comments skipped), or a JSON list of URLs."""
    text = path.read_text(encoding="utf-8")
    if text.lstrip().startswith("["):
        data = json.loads(text)
        urls = []
        for u in data:
            if isinstance(u, dict):
                u = u.get("url")
            if isinstance(u, str):
                urls.append(u)
            else:
                log.warning(f"[batch] skipping non-URL entry {u!r} in {path}")
        return urls
    return [ln.strip() for ln in text.splitlines() if ln.strip() and not ln.strip().startswith("#")]


def run_batch(
    urls: List[str],
    extractor,
    settings: Optional[Settings] = None,
    limit: Optional[int] = None,
    root: Optional[Path] = None,
    sleep: bool = True,
) -> Path:
    """
    Extract each URL in order and write:
      structured/records.json  one record payload per URL (or an error payload)
      qa/summary.json          per-URL state, fetch strategy, filled fields
    Returns the batch folder.
    """
    settings = settings or Settings()
    subset = urls[:limit] if limit else list(urls)
    batch_id = f"{today_ymd()}_urls{len(subset)}"
    dirs = make_batch_dirs(batch_id, root)

    records: List[Dict] = []
    summary: List[Dict] = []
    for i, url in enumerate(subset, start=1):
        try:
            report = extractor.extract_with_report(url)
        except InvalidInput as e:
            log.warning(f"[batch] [{i}/{len(subset)}] invalid url={url!r} err={e}")
            records.append({"success": False, "error": str(e), "sourceUrl": url})
            summary.append({"url": url, "state": "invalid", "error": str(e)})
            continue

        records.append(report.record.to_payload())
        summary.append({
            "url": url,
            "state": report.state,
            "fetched_via": report.fetched_via,
            "canonical_url": report.canonical_url,
            "filled": report.record.filled_fields(),
            "attempts": [a.as_dict() for a in report.attempts],
        })
        log.info(f"[batch] [{i}/{len(subset)}] {report.state} -> {url}")
        if sleep and i < len(subset):
            jitter_sleep(*settings.sleep_range_sec)

    write_json(dirs["structured"] / "records.json", records)
    write_json(dirs["qa"] / "summary.json", {
        "batch_id": batch_id,
        "generated_at": now_utc_iso(),
        "counts": {
            "total": len(subset),
            "done": sum(1 for s in summary if s["state"] == "done"),
            "failed": sum(1 for s in summary if s["state"] == "failed"),
            "invalid": sum(1 for s in summary if s["state"] == "invalid"),
        },
        "items": summary,
    })
    log.info(f"[batch] {batch_id} written to {dirs['base']}")
    return dirs["base"]
