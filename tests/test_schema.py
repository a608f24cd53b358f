"""Tests for the canonical POI schema."""

import sys
from pathlib import Path
from typing import get_args

sys.path.insert(0, str(Path(__file__).parent.parent))

from config import PLACE_CATEGORIES
from poi_pipeline.schema import (
    CanonicalPoi,
    Category,
    format_issue_path,
    is_country_code,
    normalize_city_id,
    normalize_country_code,
    validate_poi,
)


def make_record(**kwargs) -> dict:
    record = {
        "id": "country-ch-lion-monument",
        "name": "Lion Monument",
        "category": "landmarks",
        "lat": 47.0585,
        "lon": 8.3106,
        "source": "static",
        "countryCode": "CH",
        "city": "Luzern",
        "address": "Denkmalstrasse 4",
    }
    record.update(kwargs)
    return record


def test_categories_match_config():
    assert get_args(Category) == PLACE_CATEGORIES


class TestValidatePoi:
    def test_valid_record(self):
        poi, diagnostics = validate_poi(make_record())
        assert diagnostics == []
        assert poi.country_code == "CH"
        assert poi.coord == (47.0585, 8.3106)

    def test_string_latitude_rejected(self):
        poi, diagnostics = validate_poi(make_record(lat="47.0585"), index=0)
        assert poi is None
        assert diagnostics[0].field == "lat"
        assert diagnostics[0].path == "[0].lat"
        assert diagnostics[0].is_error

    def test_boolean_longitude_rejected(self):
        poi, _ = validate_poi(make_record(lon=True))
        assert poi is None

    def test_out_of_range_rejected(self):
        assert validate_poi(make_record(lat=91))[0] is None
        assert validate_poi(make_record(lon=-181))[0] is None

    def test_nan_rejected(self):
        assert validate_poi(make_record(lat=float("nan")))[0] is None

    def test_unknown_category_rejected(self):
        assert validate_poi(make_record(category="shopping"))[0] is None

    def test_source_must_be_static(self):
        assert validate_poi(make_record(source="live"))[0] is None

    def test_invalid_country_code_rejected(self):
        assert validate_poi(make_record(countryCode="C1"))[0] is None

    def test_lowercase_country_code_normalized(self):
        poi, _ = validate_poi(make_record(countryCode="che"))
        assert poi.country_code == "CHE"

    def test_osm_reference(self):
        poi, _ = validate_poi(make_record(osm={"type": "W", "id": 123}))
        assert poi.osm.id == 123
        assert validate_poi(make_record(osm={"type": "X", "id": 1}))[0] is None
        assert validate_poi(make_record(osm={"type": "N", "id": 0}))[0] is None
        assert validate_poi(make_record(osm={"type": "N", "id": "5"}))[0] is None

    def test_image_source_restricted(self):
        ok = [{"url": "https://example.org/a.jpg", "source": "wikimedia"}]
        assert validate_poi(make_record(images=ok))[0] is not None
        bad = [{"url": "https://example.org/a.jpg", "source": "flickr"}]
        assert validate_poi(make_record(images=bad))[0] is None

    def test_missing_required_field(self):
        record = make_record()
        del record["address"]
        poi, diagnostics = validate_poi(record, index=4)
        assert poi is None
        assert diagnostics[0].path == "[4].address"


class TestToRecord:
    def test_camel_case_and_optional_fields_omitted(self):
        poi = CanonicalPoi.model_validate(make_record(cityId="luzern", rating=4))
        record = poi.to_record()
        assert list(record)[:10] == [
            "id", "name", "category", "lat", "lon", "source",
            "countryCode", "cityId", "city", "address",
        ]
        assert record["rating"] == 4.0
        assert "description" not in record
        assert "osm" not in record

    def test_populate_by_field_name(self):
        poi = CanonicalPoi(**{**make_record(), "country_code": "CH"})
        assert poi.to_record()["countryCode"] == "CH"


def test_format_issue_path():
    assert format_issue_path([3, "osm", "id"]) == "[3].osm.id"
    assert format_issue_path([0]) == "[0]"
    assert format_issue_path(["lat"]) == "[lat]"
    assert format_issue_path([]) == ""


def test_normalize_country_code():
    assert normalize_country_code(" ch ") == "CH"
    assert normalize_country_code("") is None
    assert normalize_country_code(None) is None


def test_is_country_code():
    assert is_country_code("CH")
    assert is_country_code("CHE")
    assert not is_country_code("ch")
    assert not is_country_code("SWISS")
    assert not is_country_code(None)


def test_normalize_city_id():
    assert normalize_city_id("Zürich_City") == "zurich-city"
    assert normalize_city_id("  ") is None
    assert normalize_city_id(None) is None
