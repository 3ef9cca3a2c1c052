"""
Tests for settings loading and the Firecrawl response wrapper.
"""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

from listing_extractor.firecrawl_client import Firecrawl
from listing_extractor.settings import load_settings, make_batch_dirs


class TestLoadSettings:

    def test_config_and_env(self, tmp_path, monkeypatch):
        cfg = tmp_path / "cfg.json"
        cfg.write_text(json.dumps({
            "run": {"request_timeout_sec": 12, "sleep_range_sec": [0.5, 1.0], "user_agent": "TestAgent/1.0"},
            "model": {"name": "gpt-4o-mini", "char_budget": 8000},
            "search": {"canonical_site": "zillow"},
            "features": {"enable_browser": False, "enable_license_lookup": True},
        }), encoding="utf-8")
        monkeypatch.setenv("SERPAPI_KEY", "serp")
        monkeypatch.delenv("OPENAI_MODEL", raising=False)
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)

        s = load_settings(cfg)
        assert s.request_timeout_sec == 12
        assert s.sleep_range_sec == (0.5, 1.0)
        assert s.user_agents[0] == "TestAgent/1.0"
        assert s.model_name == "gpt-4o-mini"
        assert s.model_char_budget == 8000
        assert s.canonical_site == "zillow"
        assert s.enable_browser is False
        assert s.enable_license_lookup is True
        assert s.serpapi_key == "serp"
        assert s.openai_api_key is None

    def test_missing_file_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("OPENAI_MODEL", raising=False)
        s = load_settings(tmp_path / "absent.json")
        assert s.request_timeout_sec == 30
        assert s.min_html_chars == 4000
        assert s.model_name == "gpt-4o"
        assert s.enable_browser is True

    def test_batch_dirs(self, tmp_path):
        dirs = make_batch_dirs("2026-01-01_urls3", tmp_path)
        assert dirs["structured"].is_dir()
        assert dirs["qa"].is_dir()
        assert dirs["base"] == tmp_path / "2026-01-01_urls3"


class TestFirecrawlWrapper:

    def test_data_wrapper_flattened(self):
        out = Firecrawl.normalize_result({"success": True, "data": {"rawHtml": "<html/>", "metadata": {"statusCode": 200}}})
        assert out["raw_html"] == "<html/>"
        assert out["metadata"] == {"statusCode": 200}
        assert out["success"] is True

    def test_model_like_response(self):
        res = MagicMock()
        res.model_dump.return_value = {"html": "<p>x</p>", "metadata": None}
        assert Firecrawl.normalize_result(res)["html"] == "<p>x</p>"

    def test_plain_object_response(self):
        assert Firecrawl.normalize_result(SimpleNamespace(html="<p>y</p>"))["html"] == "<p>y</p>"

    def test_scrape_url_fallback(self):
        client = SimpleNamespace(scrape_url=MagicMock(return_value={"html": "<p>z</p>"}))
        out = Firecrawl(api_key="k", timeout=10, client=client).scrape("https://example.com")
        assert out["html"] == "<p>z</p>"
        client.scrape_url.assert_called_once_with("https://example.com", formats=["html", "rawHtml"], timeout=10000)
