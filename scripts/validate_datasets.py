#!/usr/bin/env python3
"""
Validate POI dataset files against the canonical schema.

Read-only: nothing is repaired. Exits 1 if any record is invalid or any
file cannot be read.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import LOG_DATE_FORMAT, LOG_FORMAT, PROJECT_ROOT
from poi_pipeline.datasets import NoDatasetsFound
from poi_pipeline.maintenance import validate_all

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
logger = logging.getLogger("validate_datasets")


def main() -> None:
    parser = argparse.ArgumentParser(description="Validate POI dataset files")
    parser.add_argument("--root", type=Path, default=PROJECT_ROOT,
                        help="Directory to search for dataset roots (default: project root)")
    args = parser.parse_args()

    try:
        report = validate_all(args.root)
    except NoDatasetsFound as e:
        logger.error(str(e))
        sys.exit(1)

    if report.exit_code:
        logger.error(
            f"Validation failed: {report.total_invalid} invalid records, "
            f"{len(report.failures)} unreadable files"
        )
        sys.exit(1)

    print(f"All {len(report.invalid_by_file)} POI datasets are valid.")


if __name__ == "__main__":
    main()
