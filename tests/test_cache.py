"""Tests for the geocoding cache."""

import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from poi_pipeline.utils.cache import GeocodeCache, make_forward_key, make_location_key


def test_forward_key_is_scoped_and_normalized():
    assert make_forward_key("  Lion   Monument, Luzern ", "ch") == "search:CH:lion monument, luzern"
    assert make_forward_key("Lion Monument", "CH") != make_forward_key("Lion Monument", "DE")


def test_location_key_rounds_to_five_decimals():
    assert make_location_key(47.123456, 8.5) == "reverse:47.12346,8.50000"
    assert make_location_key(47.1234561, 8.5) == make_location_key(47.1234559, 8.5)


class TestGeocodeCache:
    def test_missing_file_is_empty(self, tmp_path):
        cache = GeocodeCache(tmp_path / "missing.json")
        assert cache.size == 0
        assert not cache.dirty

    def test_save_and_reload(self, tmp_path):
        path = tmp_path / "nested" / "cache.json"
        cache = GeocodeCache(path)
        cache.set("search:CH:b", {"lat": 1.0, "lon": 2.0, "display_name": "B", "address": {}})
        cache.set("search:CH:a", None)
        assert cache.dirty and cache.pending == 2
        assert cache.save() is True
        assert not cache.dirty and cache.pending == 0

        text = path.read_text(encoding="utf-8")
        assert text.endswith("\n")
        assert list(json.loads(text)) == ["search:CH:a", "search:CH:b"]

        reloaded = GeocodeCache(path)
        assert reloaded.size == 2
        assert reloaded.get("search:CH:b")["display_name"] == "B"

    def test_negative_entry(self, tmp_path):
        cache = GeocodeCache(tmp_path / "cache.json")
        cache.set("reverse:1.00000,2.00000", None)
        assert cache.has("reverse:1.00000,2.00000")
        assert cache.get("reverse:1.00000,2.00000") is None
        assert not cache.has("reverse:3.00000,4.00000")

    def test_save_without_changes_is_noop(self, tmp_path):
        path = tmp_path / "cache.json"
        cache = GeocodeCache(path)
        assert cache.save() is False
        assert not path.exists()

    def test_corrupt_file_ignored(self, tmp_path, caplog):
        path = tmp_path / "cache.json"
        path.write_text("{not json", encoding="utf-8")
        with caplog.at_level(logging.WARNING):
            cache = GeocodeCache(path)
        assert cache.size == 0
        assert "Corrupt geocode cache" in caplog.text

    def test_non_object_file_ignored(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text("[1, 2]", encoding="utf-8")
        assert GeocodeCache(path).size == 0
