"""Tests for the Nominatim geocoding client. No network access."""

import logging
import sys
import time
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

sys.path.insert(0, str(Path(__file__).parent.parent))

from poi_pipeline.geocoding import (
    GeocodeResult,
    GeocodingClient,
    build_address,
    build_city,
    create_geocoding_client,
    pick_first,
)
from poi_pipeline.utils.cache import GeocodeCache
from poi_pipeline.utils.rate_limiter import RateLimiter

LION = {
    "lat": "47.0585",
    "lon": "8.3106",
    "display_name": "Löwendenkmal, Denkmalstrasse, Luzern, Schweiz",
    "address": {"road": "Denkmalstrasse", "house_number": "4", "city": "Luzern"},
}


class FakeResponse:
    def __init__(self, payload=None, status_code=200, bad_json=False):
        self.payload = payload
        self.status_code = status_code
        self.bad_json = bad_json

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self.bad_json:
            raise ValueError("Expecting value")
        return self.payload


class FakeSession:
    """Records each request with the limiter clock reading at the time it was made."""

    def __init__(self, responses, clock=time.monotonic):
        self.responses = list(responses)
        self.clock = clock
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers, "at": self.clock()})
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


def make_client(tmp_path, responses, min_interval=1.0, clock=None, flush_every=0):
    clock = clock or FakeClock()
    limiter = RateLimiter(min_interval, clock=clock, sleep=clock.sleep)
    session = FakeSession(responses, clock=clock)
    client = GeocodingClient(
        user_agent="poi-pipeline-tests",
        cache=GeocodeCache(tmp_path / "cache.json"),
        session=session,
        limiter=limiter,
        flush_every=flush_every,
    )
    return client, session


class TestRateLimiting:
    def test_consecutive_forward_calls_are_spaced(self, tmp_path):
        client, session = make_client(tmp_path, [FakeResponse([LION])], min_interval=1.0)
        client.forward_geocode("Lion Monument", "CH")
        client.forward_geocode("Chapel Bridge", "CH")
        assert len(session.calls) == 2
        assert session.calls[1]["at"] - session.calls[0]["at"] >= 1.0

    def test_forward_and_reverse_share_one_clock(self, tmp_path):
        client, session = make_client(tmp_path, [FakeResponse(LION)], min_interval=1.1)
        client.forward_geocode("Lion Monument", "CH")
        client.reverse_geocode(47.0585, 8.3106)
        assert session.calls[1]["at"] - session.calls[0]["at"] >= 1.1

    def test_real_clock_spacing(self, tmp_path):
        interval = 0.05
        limiter = RateLimiter(interval)
        session = FakeSession([FakeResponse([LION])])
        client = GeocodingClient(
            "poi-pipeline-tests", GeocodeCache(tmp_path / "cache.json"),
            session=session, limiter=limiter, flush_every=0,
        )
        client.forward_geocode("a", "CH")
        client.forward_geocode("b", "CH")
        assert session.calls[1]["at"] - session.calls[0]["at"] >= interval - 0.005

    def test_cache_hits_skip_the_limiter(self, tmp_path):
        client, session = make_client(tmp_path, [FakeResponse([LION])])
        client.forward_geocode("Lion Monument", "CH")
        client.forward_geocode("lion   monument", "ch")
        assert len(session.calls) == 1
        assert client.cache_hits == 1


class TestForwardGeocode:
    def test_request_parameters(self, tmp_path):
        client, session = make_client(tmp_path, [FakeResponse([LION])])
        result = client.forward_geocode("Lion Monument, Luzern", "CH")
        call = session.calls[0]
        assert call["url"].endswith("/search")
        assert call["params"]["format"] == "jsonv2"
        assert call["params"]["limit"] == 1
        assert call["params"]["addressdetails"] == 1
        assert call["params"]["countrycodes"] == "ch"
        assert call["headers"]["User-Agent"] == "poi-pipeline-tests"
        assert result.coords == (47.0585, 8.3106)

    def test_bare_object_response(self, tmp_path):
        client, _ = make_client(tmp_path, [FakeResponse(LION)])
        assert client.forward_geocode("Lion Monument", "CH").address["city"] == "Luzern"

    def test_empty_array_is_cached_as_negative(self, tmp_path):
        client, session = make_client(tmp_path, [FakeResponse([])])
        assert client.forward_geocode("Nowhere", "CH") is None
        assert client.forward_geocode("Nowhere", "CH") is None
        assert len(session.calls) == 1
        assert client.cache.has("search:CH:nowhere")

    def test_client_error_is_cached_as_negative(self, tmp_path):
        client, session = make_client(tmp_path, [FakeResponse(status_code=400)])
        assert client.forward_geocode("bad", "CH") is None
        client.forward_geocode("bad", "CH")
        assert len(session.calls) == 1

    @pytest.mark.parametrize("status", [429, 500, 503])
    def test_retryable_errors_are_not_cached(self, tmp_path, status):
        client, session = make_client(tmp_path, [FakeResponse(status_code=status)])
        assert client.forward_geocode("Lion Monument", "CH") is None
        client.forward_geocode("Lion Monument", "CH")
        assert len(session.calls) == 2
        assert client.cache.size == 0

    def test_network_error_resolves_to_none(self, tmp_path, caplog):
        client, _ = make_client(tmp_path, [requests.ConnectionError("connection refused")])
        with caplog.at_level(logging.WARNING):
            assert client.forward_geocode("Lion Monument", "CH") is None
        assert "connection refused" in caplog.text
        assert client.cache.size == 0

    def test_invalid_json_resolves_to_none(self, tmp_path):
        client, _ = make_client(tmp_path, [FakeResponse(bad_json=True)])
        assert client.forward_geocode("Lion Monument", "CH") is None

    def test_blank_query_makes_no_request(self, tmp_path):
        client, session = make_client(tmp_path, [FakeResponse([LION])])
        assert client.forward_geocode("   ", "CH") is None
        assert session.calls == []


class TestReverseGeocode:
    def test_request_and_cache_key(self, tmp_path):
        client, session = make_client(tmp_path, [FakeResponse(LION)])
        result = client.reverse_geocode(47.058512, 8.310634)
        params = session.calls[0]["params"]
        assert session.calls[0]["url"].endswith("/reverse")
        assert params["zoom"] == 18
        assert result.address["road"] == "Denkmalstrasse"
        assert client.cache.has("reverse:47.05851,8.31063")

    def test_close_persists_cache(self, tmp_path):
        client, _ = make_client(tmp_path, [FakeResponse(LION)])
        client.reverse_geocode(47.0585, 8.3106)
        client.close()
        assert GeocodeCache(tmp_path / "cache.json").size == 1

    def test_flush_every(self, tmp_path):
        client, _ = make_client(tmp_path, [FakeResponse(LION)], flush_every=2)
        client.reverse_geocode(1.0, 1.0)
        assert not (tmp_path / "cache.json").exists()
        client.reverse_geocode(2.0, 2.0)
        assert (tmp_path / "cache.json").exists()


class TestGeocodeResult:
    def test_from_payload_shapes(self):
        assert GeocodeResult.from_payload([]) is None
        assert GeocodeResult.from_payload(None) is None
        assert GeocodeResult.from_payload("nope") is None
        assert GeocodeResult.from_payload([LION, {}]).display_name.startswith("Löwendenkmal")

    def test_non_numeric_coordinates(self):
        result = GeocodeResult.from_payload({"lat": "abc", "lon": "8.3"})
        assert result.coords is None

    def test_round_trip_through_dict(self):
        result = GeocodeResult.from_payload(LION)
        assert GeocodeResult.from_payload(result.to_dict()) == result


class TestBuildAddress:
    def test_road_with_house_number_appended(self):
        assert build_address(GeocodeResult.from_payload(LION)) == "Denkmalstrasse 4"

    def test_house_number_first(self):
        result = GeocodeResult.from_payload(LION)
        assert build_address(result, house_number_first=True) == "4 Denkmalstrasse"

    def test_priority_order(self):
        result = GeocodeResult(1.0, 2.0, address={"suburb": "Wollishofen", "footway": "Seeweg"})
        assert build_address(result) == "Seeweg"

    def test_display_name_fallback(self):
        result = GeocodeResult(1.0, 2.0, display_name="Rigi Kulm, Arth, Schwyz")
        assert build_address(result) == "Rigi Kulm"

    def test_nothing_available(self):
        assert build_address(GeocodeResult(1.0, 2.0)) is None
        assert build_address(None) is None


class TestBuildCity:
    def test_priority(self):
        result = GeocodeResult(1.0, 2.0, address={"village": "Vitznau", "town": "Weggis"})
        assert build_city(result) == "Weggis"

    def test_county_fallback(self):
        assert build_city(GeocodeResult(1.0, 2.0, address={"county": "Surselva"})) == "Surselva"

    def test_none(self):
        assert build_city(GeocodeResult(1.0, 2.0)) is None
        assert build_city(None) is None


def test_pick_first_skips_blank_values():
    assert pick_first({"road": " ", "pedestrian": "Marktgasse"}, ["road", "pedestrian"]) == "Marktgasse"
    assert pick_first({}, ["road"]) is None


class TestCreateGeocodingClient:
    def test_disabled(self, tmp_path):
        assert create_geocoding_client(False, "agent", tmp_path / "c.json") is None

    def test_missing_user_agent_disables_with_warning(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING):
            assert create_geocoding_client(True, "", tmp_path / "c.json") is None
        assert "NOMINATIM_USER_AGENT" in caplog.text

    def test_enabled(self, tmp_path):
        client = create_geocoding_client(True, "agent", tmp_path / "c.json", session=MagicMock())
        assert isinstance(client, GeocodingClient)
        assert client.cache.path == tmp_path / "c.json"


def test_empty_user_agent_rejected(tmp_path):
    with pytest.raises(ValueError):
        GeocodingClient("  ", GeocodeCache(tmp_path / "c.json"))
