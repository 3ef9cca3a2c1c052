import pytest

from listing_extractor.errors import SearchUnavailable
from listing_extractor.settings import Settings
from tests.fakes import FakeSearchClient


@pytest.fixture
def settings():
    return Settings(
        request_timeout_sec=5,
        browser_timeout_sec=5,
        min_html_chars=50,
        sleep_range_sec=(0.0, 0.0),
        max_scroll_steps=3,
    )


@pytest.fixture
def quota_exhausted_client():
    return FakeSearchClient(error=SearchUnavailable("search quota exhausted (429)"))
