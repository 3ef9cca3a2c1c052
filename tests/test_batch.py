"""
Tests for batch runs over URL files.
"""

import json

from listing_extractor.batch import read_url_file, run_batch
from listing_extractor.pipeline import ListingExtractor
from listing_extractor.utils import read_json
from tests.fakes import FakeFetcher, ZILLOW_HTML, ZILLOW_URL


class TestReadUrlFile:

    def test_text_lines(self, tmp_path):
        p = tmp_path / "urls.txt"
        p.write_text(f"# listings\n{ZILLOW_URL}\n\n  https://example.com/a  \n", encoding="utf-8")
        assert read_url_file(p) == [ZILLOW_URL, "https://example.com/a"]

    def test_json_list(self, tmp_path):
        p = tmp_path / "urls.json"
        p.write_text(json.dumps([ZILLOW_URL, {"url": "https://example.com/a"}]), encoding="utf-8")
        assert read_url_file(p) == [ZILLOW_URL, "https://example.com/a"]

    def test_json_entries_without_url_skipped(self, tmp_path):
        p = tmp_path / "urls.json"
        p.write_text(json.dumps([42, ZILLOW_URL, None, {"id": 7}, {"url": 5}]), encoding="utf-8")
        assert read_url_file(p) == [ZILLOW_URL]


class TestRunBatch:

    def test_outputs_and_counts(self, tmp_path):
        extractor = ListingExtractor(FakeFetcher({ZILLOW_URL: ZILLOW_HTML}))
        urls = [ZILLOW_URL, "not a url", "https://www.compass.com/listing/1/"]
        base = run_batch(urls, extractor, root=tmp_path, sleep=False)

        records = read_json(base / "structured" / "records.json")
        summary = read_json(base / "qa" / "summary.json")

        assert len(records) == 3
        assert records[0]["listingAgentName"] == "Jane Doe"
        assert records[1] == {"success": False, "error": "Malformed URL: 'not a url'", "sourceUrl": "not a url"}
        assert records[2]["address"] == "Address unavailable"
        assert summary["counts"] == {"total": 3, "done": 1, "failed": 1, "invalid": 1}
        assert summary["items"][0]["fetched_via"] == "direct"

    def test_limit(self, tmp_path):
        extractor = ListingExtractor(FakeFetcher({ZILLOW_URL: ZILLOW_HTML}))
        base = run_batch([ZILLOW_URL, ZILLOW_URL, ZILLOW_URL], extractor, root=tmp_path, limit=2, sleep=False)
        assert len(read_json(base / "structured" / "records.json")) == 2
        assert base.name.endswith("_urls2")
