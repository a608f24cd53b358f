#!/usr/bin/env python3
"""
Merge city files and curated best-of entries into the country datasets.

For every dataset root found under --root:
1. Seed each country file's index from its existing records
2. Fold in city-file records carrying that country code
3. Fold in curated best-of entries (forward-geocoded when coordinates are missing)
4. Write the deduplicated country file and print a stats line

Geocoding (Nominatim) is off unless --geocode or ENABLE_GEOCODE=1 is given,
and additionally requires NOMINATIM_USER_AGENT.
"""

import argparse
import logging
import sys
import time
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import (
    ENABLE_GEOCODE,
    LOG_DATE_FORMAT,
    LOG_FORMAT,
    NOMINATIM_CACHE_PATH,
    NOMINATIM_MIN_INTERVAL,
    NOMINATIM_USER_AGENT,
    PROJECT_ROOT,
)
from poi_pipeline.datasets import NoDatasetsFound
from poi_pipeline.geocoding import create_geocoding_client
from poi_pipeline.orchestrator import MergeOrchestrator, RunReport

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
logger = logging.getLogger("merge_pois")


def print_summary(report: RunReport) -> None:
    """Print the per-country table and geocoding usage."""
    df = report.to_dataframe()
    print(f"\n{'=' * 60}")
    print("POI MERGE SUMMARY")
    print(f"{'=' * 60}")
    if df.empty:
        print("No country files processed.")
    else:
        columns = ["country_code", "before", "added", "deduped", "enriched", "invalid", "skipped", "after"]
        print(df[columns].to_string(index=False))
        print(f"\nFiles changed: {int(df['changed'].sum())} of {len(df)}")
    if report.bestof_path:
        print(f"Best-of config: {report.bestof_path}")
    print(f"Geocoding requests: {report.geocode_requests} (cache hits: {report.geocode_cache_hits})")
    if report.failures:
        print(f"\nFailed datasets ({len(report.failures)}):")
        for failure in report.failures:
            print(f"  {failure.path}: {failure.error}")
    print(f"{'=' * 60}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Merge POI datasets per country")
    parser.add_argument("--geocode", action="store_true",
                        help="Enable Nominatim lookups (also ENABLE_GEOCODE=1)")
    parser.add_argument("--root", type=Path, default=PROJECT_ROOT,
                        help="Directory to search for dataset roots (default: project root)")
    parser.add_argument("--bestof", type=Path, default=None,
                        help="Curated best-of config (default: conventional locations)")
    parser.add_argument("--report", type=Path, default=None,
                        help="Write per-country stats to this CSV file")
    parser.add_argument("--cache", type=Path, default=NOMINATIM_CACHE_PATH,
                        help=f"Geocoding cache file (default: {NOMINATIM_CACHE_PATH})")
    parser.add_argument("--dry-run", action="store_true",
                        help="Compute the merge without writing country files")
    parser.add_argument("--verbose", action="store_true",
                        help="Debug logging (cache hits, rate-limit waits)")
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.bestof and not args.bestof.is_file():
        logger.error(f"Best-of config not found: {args.bestof}")
        sys.exit(1)

    start = time.time()
    geocoder = create_geocoding_client(
        enabled=args.geocode or ENABLE_GEOCODE,
        user_agent=NOMINATIM_USER_AGENT,
        cache_path=args.cache,
        min_interval=NOMINATIM_MIN_INTERVAL,
    )
    if geocoder is None:
        logger.info("Geocoding disabled, curated entries without coordinates will be skipped")

    orchestrator = MergeOrchestrator(
        search_root=args.root,
        geocoder=geocoder,
        bestof_paths=[args.bestof] if args.bestof else None,
        dry_run=args.dry_run,
    )

    try:
        report = orchestrator.run()
    except NoDatasetsFound as e:
        logger.error(str(e))
        sys.exit(1)

    print_summary(report)
    if args.report:
        report.save_csv(args.report)

    elapsed = time.time() - start
    logger.info(f"Merge completed in {elapsed:.1f}s")
    sys.exit(report.exit_code)


if __name__ == "__main__":
    main()
