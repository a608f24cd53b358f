#!/usr/bin/env python3
"""
Repair POI dataset files in place.

Every record is sanitized with defaults taken from its file name
(CH.json -> countryCode CH, zurich.json -> cityId zurich). Records that
cannot be repaired are removed and reported; the exit code is 1 if any
record was removed.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import LOG_DATE_FORMAT, LOG_FORMAT, PROJECT_ROOT
from poi_pipeline.datasets import NoDatasetsFound
from poi_pipeline.maintenance import fix_all

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
logger = logging.getLogger("fix_datasets")


def main() -> None:
    parser = argparse.ArgumentParser(description="Sanitize POI dataset files in place")
    parser.add_argument("--root", type=Path, default=PROJECT_ROOT,
                        help="Directory to search for dataset roots (default: project root)")
    parser.add_argument("--dry-run", action="store_true",
                        help="Report what would change without writing files")
    args = parser.parse_args()

    try:
        report = fix_all(args.root, dry_run=args.dry_run)
    except NoDatasetsFound as e:
        logger.error(str(e))
        sys.exit(1)

    changed = sum(1 for r in report.results if r.wrote)
    logger.info(
        f"Checked {len(report.results)} files, {changed} changed, "
        f"{report.removed_total} invalid records removed"
    )
    if report.failures:
        logger.error(f"{len(report.failures)} files could not be processed")
    sys.exit(report.exit_code)


if __name__ == "__main__":
    main()
