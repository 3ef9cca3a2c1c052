"""
Tests for the language-model layer: prompt input trimming and reply parsing.
"""

import json

import pytest

from listing_extractor.ai_extract import (
    ModelExtractor,
    build_model_extractor,
    parse_model_reply,
    trim_html_for_model,
)
from listing_extractor.errors import ParseFailed
from listing_extractor.settings import Settings
from tests.fakes import FakeModelClient, ZILLOW_HTML, ZILLOW_URL


class TestTrimHtml:

    def test_scripts_and_styles_dropped(self):
        html = """<html><head><title>Nice Home</title>
        <meta name="description" content="A nice home.">
        <style>.x{color:red}</style><script>var tracking = 1;</script>
        <script type="application/ld+json">{"@type": "House"}</script>
        </head><body><nav>Menu</nav><p>Three bedrooms near the park.</p></body></html>"""
        text = trim_html_for_model(html)
        assert "Page Title: Nice Home" in text
        assert "Meta Description: A nice home." in text
        assert '{"@type": "House"}' in text
        assert "Three bedrooms near the park." in text
        assert "tracking" not in text
        assert "color:red" not in text
        assert "Menu" not in text

    def test_char_budget(self):
        html = "<p>" + "word " * 5000 + "</p>"
        assert len(trim_html_for_model(html, char_budget=1000)) == 1000


class TestParseModelReply:

    def test_camel_case_keys_mapped(self):
        out = parse_model_reply(json.dumps({
            "address": "123 Main St",
            "squareFeet": "1,380",
            "listingAgentName": "Jane Doe",
            "features": ["Garage", "Garage", ""],
            "imageUrls": "https://img/1.jpg",
            "unknownKey": "x",
            "price": "",
        }))
        assert out["address"] == "123 Main St"
        assert out["square_feet"] == "1,380"
        assert out["listing_agent_name"] == "Jane Doe"
        assert "Garage" in out["features"]
        assert out["image_urls"] == ["https://img/1.jpg"]
        assert "unknownKey" not in out
        assert "price" not in out

    def test_listed_by_blob_split(self):
        out = parse_model_reply(json.dumps({
            "listedBy": "Listed by: Gary Snow DRE #01452902 415-601-5223, Vantage Realty 415-846-4685",
        }))
        assert out["listing_agent_name"] == "Gary Snow"
        assert out["listing_agent_license_number"] == "01452902"
        assert out["listing_agent_phone"] == "415-601-5223"

    def test_license_no_alias(self):
        out = parse_model_reply(json.dumps({"listingAgentLicenseNo": "01234567"}))
        assert out["listing_agent_license_number"] == "01234567"

    def test_agent_from_description(self):
        out = parse_model_reply(json.dumps({
            "description": "Charming bungalow. Contact Maria Lopez at 312-555-0142 with Windy City Realty.",
        }))
        assert out["listing_agent_name"] == "Maria Lopez"
        assert out["listing_agent_phone"] == "312-555-0142"
        assert out["listing_agent_company"] == "Windy City Realty"

    @pytest.mark.parametrize("content", ["not json", "[1, 2]", "", None])
    def test_invalid_reply(self, content):
        with pytest.raises(ParseFailed):
            parse_model_reply(content)


class TestModelExtractor:

    def test_request_shape(self):
        client = FakeModelClient(reply={"address": "123 Main St", "bedrooms": "3"})
        out = ModelExtractor(client, model="gpt-4o-mini").extract_from_html(ZILLOW_HTML, ZILLOW_URL)
        assert out == {"address": "123 Main St", "bedrooms": "3"}
        req = client.requests[0]
        assert req["model"] == "gpt-4o-mini"
        assert req["response_format"] == {"type": "json_object"}
        assert req["messages"][0]["role"] == "system"
        assert ZILLOW_URL in req["messages"][1]["content"]

    def test_client_error_reads_as_empty(self):
        client = FakeModelClient(error=RuntimeError("rate limited"))
        assert ModelExtractor(client).extract_via_model("some text", ZILLOW_URL) == {}

    def test_bad_reply_reads_as_empty(self):
        client = FakeModelClient(reply="Sorry, I cannot help with that.")
        assert ModelExtractor(client).extract_via_model("some text", ZILLOW_URL) == {}

    def test_blank_input_skips_call(self):
        client = FakeModelClient(reply={})
        assert ModelExtractor(client).extract_via_model("   ", ZILLOW_URL) == {}
        assert client.requests == []

    def test_disabled_without_key(self):
        assert build_model_extractor(Settings(openai_api_key=None)) is None
