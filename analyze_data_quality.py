"""
Data quality analysis for the canonical country datasets.
Focuses on placeholder address/city values and leftover near-duplicates.
"""

from __future__ import annotations

import argparse
from itertools import combinations
from pathlib import Path

import pandas as pd

from config import DEDUPE_DISTANCE_KM, PROJECT_ROOT, UNKNOWN_ADDRESS, UNKNOWN_CITY
from poi_pipeline.datasets import (
    DatasetError,
    country_and_city_files,
    find_dataset_roots,
    load_json_array,
)
from poi_pipeline.normalizer import normalize_name, profile_for_country
from poi_pipeline.utils.geo_utils import haversine_km

COLUMNS = ["file", "countryCode", "id", "name", "category", "lat", "lon", "city", "address"]


def load_country_frame(search_root: Path) -> pd.DataFrame:
    """One row per record of every country file under `search_root`."""
    rows = []
    for root in find_dataset_roots(search_root):
        for path in country_and_city_files(root).countries:
            try:
                records = load_json_array(path)
            except DatasetError as e:
                print(f"  ! skipped {e}")
                continue
            for record in records:
                if not isinstance(record, dict):
                    continue
                row = {key: record.get(key) for key in COLUMNS[1:]}
                row["file"] = str(path)
                rows.append(row)
    return pd.DataFrame(rows, columns=COLUMNS)


def classify_address(name, city, address) -> str:
    """Return 'empty', 'unknown', 'synthesized', or 'real'."""
    if pd.isna(address) or str(address).strip() == "":
        return "empty"
    s = str(address).strip()
    if s == UNKNOWN_ADDRESS:
        return "unknown"
    if not pd.isna(name):
        n = str(name).strip()
        if s == n or s == f"{n}, {city}" or s == f"{n}, {UNKNOWN_CITY}":
            return "synthesized"
    return "real"


def find_close_pairs(df: pd.DataFrame, radius_km: float = DEDUPE_DISTANCE_KM) -> pd.DataFrame:
    """Same-category pairs within one file closer than `radius_km`, or sharing a name key."""
    pairs = []
    for (_, category), group in df.groupby(["file", "category"]):
        country = group["countryCode"].iloc[0]
        profile = profile_for_country(country if isinstance(country, str) else None)
        rows = group.to_dict("records")
        for a, b in combinations(rows, 2):
            try:
                distance = haversine_km((float(a["lat"]), float(a["lon"])), (float(b["lat"]), float(b["lon"])))
            except (TypeError, ValueError):
                continue
            same_name = normalize_name(str(a["name"]), profile) == normalize_name(str(b["name"]), profile)
            if distance < radius_km or same_name:
                pairs.append({
                    "countryCode": country,
                    "category": category,
                    "id_a": a["id"],
                    "id_b": b["id"],
                    "name_a": a["name"],
                    "name_b": b["name"],
                    "distance_m": round(distance * 1000, 1),
                    "same_name": same_name,
                })
    return pd.DataFrame(pairs)


def separator(title: str = "", width: int = 70) -> None:
    if title:
        print(f"\n{'─' * 4}  {title}  {'─' * (width - len(title) - 8)}")
    else:
        print("─" * width)


def main() -> None:
    parser = argparse.ArgumentParser(description="Audit canonical POI country datasets")
    parser.add_argument("--root", type=Path, default=PROJECT_ROOT,
                        help="Directory to search for dataset roots (default: project root)")
    args = parser.parse_args()

    df = load_country_frame(args.root)
    total = len(df)
    print(f"Total records: {total:,}")
    if total == 0:
        return

    # ── 1. Records per country and category ────────────────────────────────
    separator("1. RECORDS PER COUNTRY AND CATEGORY")
    table = df.pivot_table(index="countryCode", columns="category", values="id",
                           aggfunc="count", fill_value=0)
    table["total"] = table.sum(axis=1)
    print(table.sort_values("total", ascending=False).to_string())

    # ── 2. Placeholder cities ──────────────────────────────────────────────
    separator("2. PLACEHOLDER CITIES")
    unknown_city = df["city"].isna() | df["city"].astype(str).str.strip().isin(["", UNKNOWN_CITY])
    n_unknown = unknown_city.sum()
    print(f"  Unknown city: {n_unknown:,}  ({n_unknown / total * 100:.1f}%)")

    # ── 3. Address quality ─────────────────────────────────────────────────
    separator("3. ADDRESS QUALITY")
    df["_address_class"] = [
        classify_address(n, c, a) for n, c, a in zip(df["name"], df["city"], df["address"])
    ]
    for cls, count in df["_address_class"].value_counts().items():
        flag = " <-- placeholder" if cls != "real" else ""
        print(f"    {cls:<12} {count:>6,}  ({count / total * 100:5.1f}%){flag}")

    by_country = (
        df.assign(placeholder=df["_address_class"] != "real")
        .groupby("countryCode")["placeholder"].agg(["sum", "count"])
        .rename(columns={"sum": "placeholder", "count": "total"})
    )
    by_country["placeholder_%"] = (by_country["placeholder"] / by_country["total"] * 100).round(1)
    print()
    print(by_country.sort_values("placeholder", ascending=False).to_string())

    # ── 4. Duplicate ids ───────────────────────────────────────────────────
    separator("4. DUPLICATE IDS WITHIN A COUNTRY FILE")
    dup_ids = df[df.duplicated(["file", "id"], keep=False)]
    print(f"  Records sharing an id: {len(dup_ids):,}")
    if not dup_ids.empty:
        print(dup_ids[["countryCode", "id", "name"]].to_string(index=False))

    # ── 5. Leftover near-duplicates ────────────────────────────────────────
    separator(f"5. SAME-CATEGORY PAIRS UNDER {DEDUPE_DISTANCE_KM * 1000:.0f} m OR SAME NAME")
    pairs = find_close_pairs(df)
    print(f"  Pairs: {len(pairs):,}")
    if not pairs.empty:
        pd.set_option("display.max_colwidth", 40)
        pd.set_option("display.width", 140)
        print(pairs.head(20).to_string(index=False))


if __name__ == "__main__":
    main()
