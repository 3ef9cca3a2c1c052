# listing_extractor/strategies.py
# Field-extraction layers behind one small interface, and the merge policy
# that combines their partial records (first non-empty value per field wins).

from __future__ import annotations
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from listing_extractor.errors import ExtractionCancelled
from listing_extractor.extractors import extract_structured_data
from listing_extractor.fetch import check_cancelled
from listing_extractor.schemas import (
    LIST_FIELDS,
    SCALAR_FIELDS,
    AttemptStatus,
    ExtractionAttempt,
    is_empty,
)
from listing_extractor.search import SearchResolver, SearchSnippets, fields_from_snippets
from listing_extractor.sites import extract_generic_fields, extract_known_site_fields, is_supported_site
from listing_extractor.utils import unique

log = logging.getLogger(__name__)


@dataclass
class ExtractionContext:
    url: str
    html: Optional[str] = None
    final_url: Optional[str] = None
    snippets: Optional[SearchSnippets] = None
    cancel: Optional[threading.Event] = None
    current: Dict[str, Any] = field(default_factory=dict)

    @property
    def page_url(self) -> str:
        return self.final_url or self.url

    def missing_fields(self):
        return [k for k in SCALAR_FIELDS if is_empty(self.current.get(k))]


def merge_fields(base: Dict[str, Any], new: Dict[str, Any]) -> Dict[str, Any]:
    """Scalars: keep the earlier non-empty value. Lists: append unseen values in order."""
    out = dict(base)
    for k, v in (new or {}).items():
        if is_empty(v):
            continue
        if k in LIST_FIELDS:
            out[k] = unique(list(out.get(k) or []) + list(v))
        elif is_empty(out.get(k)):
            out[k] = v
    return out


class ExtractionStrategy:
    name = "base"

    def applies(self, ctx: ExtractionContext) -> bool:
        return True

    def extract(self, ctx: ExtractionContext) -> Dict[str, Any]:
        raise NotImplementedError


class SiteSelectorStrategy(ExtractionStrategy):
    name = "site_selectors"

    def applies(self, ctx):
        return bool(ctx.html) and is_supported_site(ctx.page_url)

    def extract(self, ctx):
        return extract_known_site_fields(ctx.html, ctx.page_url)


class StructuredDataStrategy(ExtractionStrategy):
    """JSON-LD / OpenGraph, plus loose class-name anchors on unknown sites."""

    name = "page_data"

    def applies(self, ctx):
        return bool(ctx.html)

    def extract(self, ctx):
        fields = extract_structured_data(ctx.html, ctx.page_url)
        if not is_supported_site(ctx.page_url):
            fields = merge_fields(fields, extract_generic_fields(ctx.html, ctx.page_url))
        return fields


class SearchSnippetStrategy(ExtractionStrategy):
    name = "search_snippets"

    def __init__(self, resolver: Optional[SearchResolver]):
        self.resolver = resolver

    def applies(self, ctx):
        return not ctx.html and self.resolver is not None

    def extract(self, ctx):
        if ctx.snippets is None:
            ctx.snippets = self.resolver.search_listing_snippets(ctx.url)
        return fields_from_snippets(ctx.snippets)


class ModelStrategy(ExtractionStrategy):
    """Language-model pass over the fetched page or snippets; fills fields still empty."""

    name = "model"

    def __init__(self, model):
        self.model = model

    def applies(self, ctx):
        if self.model is None or not ctx.missing_fields():
            return False
        return bool(ctx.html) or (ctx.snippets is not None and not ctx.snippets.is_empty())

    def extract(self, ctx):
        if ctx.html:
            return self.model.extract_from_html(ctx.html, ctx.page_url)
        return self.model.extract_via_model(ctx.snippets.as_text(), ctx.url)


def run_strategy(strategy: ExtractionStrategy, ctx: ExtractionContext) -> ExtractionAttempt:
    """Run one layer; its failures become a FAILED attempt instead of an exception."""
    attempt = ExtractionAttempt(strategy=strategy.name)
    if not strategy.applies(ctx):
        attempt.status = AttemptStatus.SKIPPED
        return attempt

    check_cancelled(ctx.cancel)
    started = time.monotonic()
    try:
        fields = strategy.extract(ctx) or {}
    except ExtractionCancelled:
        raise
    except Exception as e:
        attempt.status = AttemptStatus.FAILED
        attempt.error = f"{type(e).__name__}: {e}"
        log.error(f"[extract] {strategy.name} failed url={ctx.url} err={e}")
        return attempt
    finally:
        attempt.elapsed_sec = time.monotonic() - started

    attempt.fields = {k: v for k, v in fields.items() if not is_empty(v)}
    attempt.status = AttemptStatus.OK if attempt.fields else AttemptStatus.EMPTY
    log.debug(f"[extract] {strategy.name} status={attempt.status.value} filled={attempt.filled_fields()}")
    return attempt


def default_strategies(resolver=None, model=None):
    """Canonical order: selectors, page data, search snippets, model."""
    return [
        SiteSelectorStrategy(),
        StructuredDataStrategy(),
        SearchSnippetStrategy(resolver),
        ModelStrategy(model),
    ]
