"""
main.py
--------
Entry point for the Duplicate Transaction Scan Engine.

Reads a transactions CSV, runs detection and exclusion rules, and writes the
duplicate groups in the export layout to the outputs/ folder.

Usage (from the project root):
    python main.py

    # With optional arguments:
    python main.py --input path/to/transactions.csv
    python main.py --rules path/to/rules.yaml
    python main.py --match-mode strict_first_match
"""

import sys
import os
import argparse
import logging
import pandas as pd
from datetime import datetime

# Ensure project root is on path (for runs from any working directory)
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, PROJECT_ROOT)

from pipeline import DuplicateScanPipeline
from core.duplicate_detector import MATCH_MODES
from core.match_rules import confidence_label
from rules.exclusion_rules import load_rules_file
from rules.base_rule import InvalidRuleError
from config.config_loader import get_export_config


# =============================================================================
# LOGGING SETUP
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("main")


# =============================================================================
# ARGUMENT PARSING
# =============================================================================

def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Duplicate Transaction Scan Engine: flag probable duplicate ledger transactions."
    )
    parser.add_argument(
        "--input", type=str, default=None,
        help="Path to input transactions CSV. Defaults to duplicate_scan_sample_data.csv in project root."
    )
    parser.add_argument(
        "--rules", type=str, default=None,
        help="YAML file of exclusion rules. Defaults to the exclusion_rules block in config.yaml."
    )
    parser.add_argument(
        "--match-mode", type=str, default=None, choices=list(MATCH_MODES),
        help="Which matching pair sets a group's reason. Defaults to the config value."
    )
    parser.add_argument(
        "--output-dir", type=str, default=None,
        help="Output directory. Defaults to outputs/ in project root."
    )
    return parser.parse_args(argv)


# =============================================================================
# MAIN
# =============================================================================

def main(argv=None) -> int:
    args = parse_args(argv)

    # --- Resolve paths ---
    input_path = args.input or os.path.join(PROJECT_ROOT, "duplicate_scan_sample_data.csv")
    output_dir = args.output_dir or os.path.join(PROJECT_ROOT, "outputs")
    os.makedirs(output_dir, exist_ok=True)

    # --- Load transactions ---
    logger.info(f"Loading transactions from: {input_path}")
    if not os.path.exists(input_path):
        logger.error(f"Input file not found: {input_path}")
        return 1

    # Every column as text: ids and memos like "0042" must survive verbatim.
    # Only empty cells count as missing; amounts are converted per record.
    transactions_df = pd.read_csv(input_path, dtype=str, keep_default_na=False, na_values=[""])
    logger.info(f"Loaded {len(transactions_df):,} transactions.")

    # --- Load rules ---
    try:
        rules = load_rules_file(args.rules) if args.rules else None
    except ValueError as e:
        logger.error(f"Invalid rules file {args.rules}: {e}")
        return 2

    # --- Run pipeline ---
    pipeline = DuplicateScanPipeline(match_mode=args.match_mode)
    transactions = pipeline.load_transactions(transactions_df)
    try:
        result = pipeline.scan(transactions, rules)
    except InvalidRuleError as e:
        logger.error(str(e))
        return 2

    logger.info(
        f"Scan {result.scan_id}: {len(result.groups):,} duplicate groups "
        f"({result.excluded_group_count:,} excluded by rules)."
    )

    # --- Output: export CSV ---
    export_df = pipeline.serialize_groups(result.groups)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    prefix = get_export_config()["filename_prefix"]
    export_path = os.path.join(output_dir, f"{prefix}_{timestamp}.csv")
    export_df.to_csv(export_path, index=False)
    logger.info(f"Duplicate groups saved to: {export_path}")

    _print_summary(result)
    return 0


def _print_summary(result):
    """Prints a clean summary table to the console."""
    if not result.groups:
        print("\n  No duplicate groups found.\n")
        return

    print("\n" + "=" * 80)
    print("  DUPLICATE SCAN SUMMARY")
    print("=" * 80)

    print(f"\n  Transactions scanned: {result.total_transactions:,}")
    print(f"  Duplicate groups:     {len(result.groups):,}  ({result.duplicates_found:,} duplicates)")
    print(f"  Excluded by rules:    {result.excluded_group_count:,}")

    print("\n  Groups by Reason:")
    print("  " + "-" * 60)
    by_reason = pd.Series([g.reason for g in result.groups]).value_counts()
    for reason, count in by_reason.items():
        print(f"    {reason:48s}  {count:>5,}")

    print("\n  Confidence Mix:")
    print("  " + "-" * 60)
    by_conf = pd.Series([g.confidence_score for g in result.groups]).value_counts().sort_index(ascending=False)
    for score, count in by_conf.items():
        pct = count / len(result.groups) * 100
        print(f"    {confidence_label(score):>6s}  {count:>5,}  ({pct:.1f}%)")
    print("=" * 80 + "\n")


if __name__ == "__main__":
    sys.exit(main())
