# listing_extractor/errors.py
# Error kinds raised across the extraction layers.
#
# Only InvalidInput reaches the caller of the public entry points;
# ExtractionCancelled propagates when the caller asked for it.
# Everything else is caught by the layer that owns the fallback.

from __future__ import annotations


class ExtractionError(Exception):
    """Base class for listing extraction errors."""


class FetchFailed(ExtractionError):
    """Both direct and headless strategies failed or were blocked."""

    def __init__(self, url: str, reasons=None):
        self.url = url
        self.reasons = list(reasons or [])
        detail = "; ".join(self.reasons) or "no strategy available"
        super().__init__(f"could not fetch {url}: {detail}")


class ParseFailed(ExtractionError):
    """A layer produced output that could not be interpreted."""


class EnrichmentUnavailable(ExtractionError):
    """An optional external service is missing, failing, or out of quota."""


class SearchUnavailable(EnrichmentUnavailable):
    pass


class InvalidInput(ExtractionError):
    """The request is missing a URL or the URL is malformed."""


class ExtractionCancelled(ExtractionError):
    """The caller cancelled the extraction."""
