"""
Tests for JSON-LD / meta extraction and tolerant JSON parsing.
"""

from listing_extractor.extractors import (
    EMAIL_RE,
    PRICE_RE,
    extract_json_ld,
    extract_structured_data,
    safe_json_loads,
    soup_of,
)


LD_HTML = """
<html><head>
<script type="application/ld+json">
{"@context": "https://schema.org", "@graph": [
  {"@type": "SingleFamilyResidence",
   "address": {"streetAddress": "789 Pine St", "addressLocality": "Denver",
               "addressRegion": "CO", "postalCode": "80202"},
   "numberOfRooms": 3,
   "floorSize": {"value": "1500"},
   "yearBuilt": 2001,
   "image": ["https://img.example.com/a.jpg", {"url": "https://img.example.com/b.jpg"}]},
  {"@type": "Product", "offers": {"price": "650000"}}
]}
</script>
<script type="application/ld+json">{not json at all</script>
<meta property="og:description" content="Bright corner unit.">
</head><body></body></html>
"""


class TestSafeJsonLoads:

    def test_plain_json(self):
        assert safe_json_loads('{"a": 1}') == {"a": 1}

    def test_trailing_commas(self):
        assert safe_json_loads('{"a": [1, 2,],}') == {"a": [1, 2]}

    def test_object_embedded_in_script(self):
        assert safe_json_loads('window.__DATA__ = {"a": {"b": "}"}};') == {"a": {"b": "}"}}

    def test_garbage(self):
        assert safe_json_loads("not json") is None
        assert safe_json_loads(None) is None


class TestJsonLd:

    def test_graph_flattened_and_bad_blocks_skipped(self):
        blocks = extract_json_ld(soup_of(LD_HTML))
        assert [b["@type"] for b in blocks] == ["SingleFamilyResidence", "Product"]

    def test_structured_fields(self):
        out = extract_structured_data(LD_HTML)
        assert out["address"] == "789 Pine St"
        assert (out["city"], out["state"], out["zip"]) == ("Denver", "CO", "80202")
        assert out["bedrooms"] == 3
        assert out["square_feet"] == "1500"
        assert out["year_built"] == 2001
        assert out["price"] == "650000"
        assert out["property_type"] == "SingleFamilyResidence"
        assert out["description"] == "Bright corner unit."
        assert out["image_urls"] == ["https://img.example.com/a.jpg", "https://img.example.com/b.jpg"]

    def test_agent_block(self):
        html = """<script type="application/ld+json">
        {"@type": "RealEstateListing",
         "agent": {"name": "Lee Park", "telephone": "206-555-0123", "email": "lee@northrealty.com",
                   "worksFor": {"name": "North Realty"}}}
        </script>"""
        out = extract_structured_data(html)
        assert out["listing_agent_name"] == "Lee Park"
        assert out["listing_agent_phone"] == "206-555-0123"
        assert out["listing_agent_email"] == "lee@northrealty.com"
        assert out["listing_agent_company"] == "North Realty"


class TestMetaFallbacks:

    def test_og_title_gives_address(self):
        html = '<meta property="og:title" content="12 Elm St, Boise, ID 83702 | Example Realty">'
        out = extract_structured_data(html)
        assert out["address"] == "12 Elm St, Boise, ID 83702"
        assert (out["city"], out["state"], out["zip"]) == ("Boise", "ID", "83702")

    def test_title_without_street_sets_location_only(self):
        html = "<title>Boise, ID 83702 homes for sale</title>"
        out = extract_structured_data(html)
        assert "address" not in out
        assert out["state"] == "ID"

    def test_empty_page(self):
        assert extract_structured_data("") == {}


class TestPatterns:

    def test_price(self):
        assert PRICE_RE.search("Listed at $1,250,000 today").group(0) == "$1,250,000"
        assert PRICE_RE.search("only $12 fee") is None

    def test_email(self):
        m = EMAIL_RE.search("Reach Jane at jane.doe@prestigerealty.com.")
        assert m.group(0).rstrip(".") == "jane.doe@prestigerealty.com"
