"""Tests for the dataset audit helpers."""

import json
import sys
from pathlib import Path

import pandas as pd

sys.path.insert(0, str(Path(__file__).parent.parent))

from analyze_data_quality import classify_address, find_close_pairs, load_country_frame


def test_classify_address():
    assert classify_address("Lighthouse", "Kiel", None) == "empty"
    assert classify_address("Lighthouse", "Kiel", "Unknown Place") == "unknown"
    assert classify_address("Lighthouse", "Kiel", "Lighthouse, Kiel") == "synthesized"
    assert classify_address("Lighthouse", "Unknown", "Lighthouse, Unknown") == "synthesized"
    assert classify_address("Lighthouse", "Kiel", "Hafen 2") == "real"


def test_find_close_pairs():
    df = pd.DataFrame([
        {"file": "CH.json", "countryCode": "CH", "id": "a", "name": "Old Town",
         "category": "landmarks", "lat": 47.3769, "lon": 8.5417},
        {"file": "CH.json", "countryCode": "CH", "id": "b", "name": "Altstadt",
         "category": "landmarks", "lat": 47.3770, "lon": 8.5418},
        {"file": "CH.json", "countryCode": "CH", "id": "c", "name": "Cafe",
         "category": "food", "lat": 47.3770, "lon": 8.5418},
        {"file": "CH.json", "countryCode": "CH", "id": "d", "name": "Zuerich Zoo",
         "category": "nature", "lat": 47.3850, "lon": 8.5740},
        {"file": "CH.json", "countryCode": "CH", "id": "e", "name": "Zürich Zoo",
         "category": "nature", "lat": 46.0, "lon": 7.0},
    ])
    pairs = find_close_pairs(df)
    assert set(zip(pairs["id_a"], pairs["id_b"])) == {("a", "b"), ("d", "e")}
    assert pairs.set_index("id_a").loc["d", "same_name"]


def test_load_country_frame(tmp_path):
    countries = tmp_path / "data" / "pois" / "datasets" / "countries"
    countries.mkdir(parents=True)
    (countries / "CH.json").write_text(json.dumps([
        {"id": "a", "name": "Old Town", "category": "landmarks", "lat": 47.3, "lon": 8.5,
         "countryCode": "CH", "city": "Zurich", "address": "Marktgasse 1"},
        "junk",
    ]), encoding="utf-8")
    (countries / "DE.json").write_text("{", encoding="utf-8")

    df = load_country_frame(tmp_path)
    assert len(df) == 1
    assert df.loc[0, "countryCode"] == "CH"
    assert df.loc[0, "file"].endswith("CH.json")
