# listing_extractor/pipeline.py
# Orchestrate: fetch -> field extraction layers (merged) -> enrichment -> final record.
#
# States: Fetching -> FieldExtraction -> Enrichment -> Done (or Failed).
# Only InvalidInput reaches the caller; cancellation propagates once requested.

from __future__ import annotations
import argparse
import json
import logging
import sys
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from listing_extractor.ai_extract import build_model_extractor
from listing_extractor.batch import read_url_file, run_batch
from listing_extractor.errors import ExtractionCancelled, FetchFailed, InvalidInput
from listing_extractor.fetch import HtmlFetcher, check_cancelled
from listing_extractor.license_lookup import LicenseLookup
from listing_extractor.logging_setup import setup_logging
from listing_extractor.normalize import clean_license_number, normalize_numeric_fields
from listing_extractor.schemas import (
    ADDRESS_UNAVAILABLE,
    LIST_FIELDS,
    SCALAR_FIELDS,
    AttemptStatus,
    ExtractionAttempt,
    ExtractionReport,
    PropertyListingRecord,
    error_payload,
    is_empty,
)
from listing_extractor.search import build_resolver
from listing_extractor.settings import Settings, load_settings
from listing_extractor.strategies import (
    ExtractionContext,
    ExtractionStrategy,
    default_strategies,
    merge_fields,
    run_strategy,
)
from listing_extractor.sites import address_from_url
from listing_extractor.utils import write_json

log = logging.getLogger(__name__)

_NUMBER_LIKE = ("bedrooms", "bathrooms", "square_feet", "price", "year_built")

# ---------------- helpers ----------------

def validate_url(url: Any) -> str:
    if not isinstance(url, str) or not url.strip():
        raise InvalidInput("A property URL is required")
    u = url.strip()
    try:
        p = urlparse(u)
    except ValueError as e:
        raise InvalidInput(f"Malformed URL: {url!r}") from e
    if p.scheme not in ("http", "https") or not p.hostname or any(c.isspace() for c in u):
        raise InvalidInput(f"Malformed URL: {url!r}")
    return u

def _coerce_scalar(name: str, v: Any) -> Any:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, dict):
        return None
    if isinstance(v, list):
        v = ", ".join(str(x) for x in v if x not in (None, ""))
    if name in _NUMBER_LIKE and isinstance(v, (int, float)):
        return v
    return str(v).strip() or None

def build_record(url: str, fields: Dict[str, Any]) -> PropertyListingRecord:
    """Final record: license cleaned, sourceUrl verbatim, address sentinel when empty."""
    data: Dict[str, Any] = {k: _coerce_scalar(k, fields.get(k)) for k in SCALAR_FIELDS}
    for k in LIST_FIELDS:
        v = fields.get(k) or []
        data[k] = [str(x) for x in v if not is_empty(x) and not isinstance(x, (dict, list))]
    if data.get("listing_agent_license_number"):
        data["listing_agent_license_number"] = clean_license_number(data["listing_agent_license_number"]) or None
    if is_empty(data.get("address")):
        data["address"] = ADDRESS_UNAVAILABLE
    return PropertyListingRecord(source_url=url, **data)


class UrlAddressStrategy(ExtractionStrategy):
    """Last resort: street/city/state/zip encoded in the listing URL itself."""

    name = "url_address"

    def extract(self, ctx):
        parts = address_from_url(ctx.url) or (address_from_url(ctx.final_url) if ctx.final_url else None)
        if not parts:
            return {}
        out = {"city": parts.city, "state": parts.state, "zip": parts.zip}
        if parts.street:
            out["address"] = parts.one_line()
        return out

# ---------------- orchestrator ----------------

class ListingExtractor:
    def __init__(
        self,
        fetcher,
        resolver=None,
        model=None,
        license_lookup=None,
        strategies: Optional[List[ExtractionStrategy]] = None,
        settings: Optional[Settings] = None,
    ):
        self.fetcher = fetcher
        self.resolver = resolver
        self.model = model
        self.license_lookup = license_lookup
        self.settings = settings or Settings()
        if strategies is None:
            strategies = default_strategies(resolver, model) + [UrlAddressStrategy()]
        self.strategies = strategies

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ListingExtractor":
        settings = settings or load_settings()
        return cls(
            fetcher=HtmlFetcher.from_settings(settings),
            resolver=build_resolver(settings),
            model=build_model_extractor(settings),
            license_lookup=LicenseLookup(settings.lookup_timeout_sec) if settings.enable_license_lookup else None,
            settings=settings,
        )

    def extract(self, url: str, *, cancel: Optional[threading.Event] = None) -> PropertyListingRecord:
        return self.extract_with_report(url, cancel=cancel).record

    # -- Fetching --
    def _fetch(self, ctx: ExtractionContext, report: ExtractionReport) -> None:
        try:
            res = self.fetcher.fetch(ctx.url, ctx.cancel)
        except FetchFailed as e:
            log.warning(f"[pipeline] fetch failed url={ctx.url} err={e}")
        else:
            ctx.html, ctx.final_url, report.fetched_via = res.html, res.final_url, res.strategy
            return

        if self.resolver is None:
            return
        canonical = self._guarded("canonical_url", report, self.resolver.resolve_canonical_listing_url, ctx.url)
        report.canonical_url = canonical
        if not canonical or canonical == ctx.url:
            return
        check_cancelled(ctx.cancel)
        try:
            res = self.fetcher.fetch(canonical, ctx.cancel)
        except FetchFailed as e:
            log.warning(f"[pipeline] canonical fetch failed url={canonical} err={e}")
            return
        ctx.html, ctx.final_url, report.fetched_via = res.html, res.final_url, res.strategy

    def _guarded(self, name: str, report: ExtractionReport, fn, *args):
        """Call an optional collaborator; its failure is recorded, never raised."""
        attempt = ExtractionAttempt(strategy=name)
        try:
            value = fn(*args)
        except ExtractionCancelled:
            raise
        except Exception as e:
            attempt.status, attempt.error = AttemptStatus.FAILED, f"{type(e).__name__}: {e}"
            log.error(f"[pipeline] {name} failed err={e}")
            report.attempts.append(attempt)
            return None
        attempt.status = AttemptStatus.EMPTY if is_empty(value) else AttemptStatus.OK
        report.attempts.append(attempt)
        return value

    # -- Enrichment --
    def _enrich(self, ctx: ExtractionContext, report: ExtractionReport) -> None:
        cur = ctx.current
        lic = clean_license_number(cur.get("listing_agent_license_number"))
        if self.license_lookup is not None and lic and is_empty(cur.get("listing_agent_name")):
            check_cancelled(ctx.cancel)
            rec = self._guarded("license_lookup", report, self.license_lookup.lookup, lic)
            if rec is not None and rec.display_name:
                cur["listing_agent_name"] = rec.display_name

        if self.resolver is not None and cur.get("listing_agent_name") and is_empty(cur.get("listing_agent_email")):
            check_cancelled(ctx.cancel)
            email = self._guarded(
                "agent_email",
                report,
                self.resolver.resolve_agent_email,
                cur.get("listing_agent_name"),
                cur.get("listing_agent_company"),
                cur.get("listing_agent_phone"),
                lic,
            )
            if email:
                cur["listing_agent_email"] = email

    def extract_with_report(self, url: str, *, cancel: Optional[threading.Event] = None) -> ExtractionReport:
        source_url = url
        url = validate_url(url)
        ctx = ExtractionContext(url=url, cancel=cancel)
        report = ExtractionReport(record=PropertyListingRecord.placeholder(source_url))

        check_cancelled(cancel)
        self._fetch(ctx, report)

        for strategy in self.strategies:
            attempt = run_strategy(strategy, ctx)
            report.attempts.append(attempt)
            ctx.current = merge_fields(ctx.current, attempt.fields)

        self._enrich(ctx, report)

        report.record = build_record(source_url, ctx.current)
        produced = any(not is_empty(v) for v in ctx.current.values())
        report.state = "done" if (ctx.html or produced) else "failed"
        log.info(
            f"[pipeline] {report.state} url={url} via={report.fetched_via} "
            f"filled={report.record.filled_fields()}"
        )
        return report


def handle_extract_request(payload: Any, extractor: Optional[ListingExtractor] = None) -> Dict[str, Any]:
    """{'url': ...} -> record payload, or {'success': False, 'error': ...} for bad input."""
    url = payload.get("url") if isinstance(payload, dict) else None
    try:
        validate_url(url)
        extractor = extractor or ListingExtractor.from_settings()
        return extractor.extract(url).to_payload()
    except InvalidInput as e:
        return error_payload(str(e))

# ---------------- CLI ----------------

def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(prog="listing-extractor")
    ap.add_argument("--config", type=Path, default=None)
    ap.add_argument("-v", "--verbose", action="store_true")
    sub = ap.add_subparsers(dest="cmd", required=True)
    s1 = sub.add_parser("extract", help="extract one listing URL")
    s1.add_argument("url")
    s1.add_argument("--numeric", action="store_true", help="coerce price/rooms/area/year to numbers")
    s1.add_argument("--report", action="store_true", help="print the layer trace with the record")
    s1.add_argument("--no-browser", action="store_true")
    s1.add_argument("--out", type=Path, default=None)
    s2 = sub.add_parser("batch", help="extract every URL in a file")
    s2.add_argument("file", type=Path)
    s2.add_argument("--limit", type=int, default=None)
    s2.add_argument("--out-dir", type=Path, default=None)
    s2.add_argument("--no-browser", action="store_true")
    args = ap.parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    settings = load_settings(args.config)
    if args.no_browser:
        settings.enable_browser = False

    if args.cmd == "extract":
        try:
            report = ListingExtractor.from_settings(settings).extract_with_report(args.url)
        except InvalidInput as e:
            print(json.dumps(error_payload(str(e))))
            return 2
        out = report.as_dict() if args.report else report.record.to_payload()
        if args.numeric:
            if args.report:
                out["record"] = normalize_numeric_fields(out["record"])
            else:
                out = normalize_numeric_fields(out)
        if args.out:
            write_json(args.out, out)
        print(json.dumps(out, indent=2, ensure_ascii=False))
        return 0

    if args.cmd == "batch":
        urls = read_url_file(args.file)
        base = run_batch(urls, ListingExtractor.from_settings(settings), settings, limit=args.limit, root=args.out_dir)
        print(f"Batch written to {base}")
        return 0
    return 1

if __name__ == "__main__":
    sys.exit(main())
