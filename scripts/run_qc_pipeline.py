#!/usr/bin/env python3
"""``cohortqc`` Cohort QC Pipeline Runner.

Usage:
    python scripts/run_qc_pipeline.py scripts/user_config.py
    python scripts/run_qc_pipeline.py scripts/user_config.py --cohort control=control.csv --cohort depleted=depleted.csv
    python scripts/run_qc_pipeline.py scripts/user_config.py --max-workers 2 -v

Note: User config in scripts/user_config.py, expert defaults in cohortqc.schemas.param
"""

import argparse
import sys

from cohortqc.cli import run_qc_pipeline
from cohortqc.contracts import StageAborted


def main():
    parser = argparse.ArgumentParser(description="Run the cohort QC pipeline")
    parser.add_argument("config", help="Path to user config file")
    parser.add_argument("--cohort", action="append", default=None, metavar="NAME=PATH",
                        help="Cohort cell table (CSV, first column = cell id); repeatable")
    parser.add_argument("--base-dir", help="Output directory")
    parser.add_argument("--max-workers", type=int, help="Cohorts processed in parallel")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        help="Override log level")
    parser.add_argument("--rerun", action="store_true", help="Delete output directory before running")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    cohort_tables = None
    if args.cohort:
        cohort_tables = {}
        for item in args.cohort:
            name, sep, path = item.partition("=")
            if not sep:
                parser.error(f"--cohort expects NAME=PATH, got '{item}'")
            cohort_tables[name] = path

    try:
        result = run_qc_pipeline(
            args.config,
            cohort_tables=cohort_tables,
            cli_args={
                "base_dir": args.base_dir,
                "max_workers": args.max_workers,
                "log_level": args.log_level,
            },
            rerun=args.rerun,
            verbose=args.verbose,
        )
    except StageAborted as e:
        print(f"Pipeline aborted: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"\n{'='*60}")
    for cohort, info in result.summary().items():
        print(f"{cohort:12s}: {info['start_count']} -> {info['final_count']} cells "
              f"({info['total_removed']} removed)")
    print('='*60)


if __name__ == "__main__":
    main()
