"""
pipeline.py
------------
Main orchestration layer. Wires together:
    1. Transaction sources / DataFrame prep  →  list of Transaction
    2. DuplicateDetector                     →  DuplicateGroups
    3. ExclusionRuleFilter                   →  groups the reviewer sees
    4. Output serialization                  →  CSV export rows

This is the single entry point for running a scan. The scheduled scan, the
live scan and the demo dataset all go through it.

Usage:
    from pipeline import DuplicateScanPipeline

    pipeline = DuplicateScanPipeline()
    export_df = pipeline.run(transactions_df, rules)
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Sequence

import pandas as pd

from core.models import DuplicateGroup, ExclusionRule, ScanResult, Transaction
from core.duplicate_detector import DuplicateDetector
from core.scan_schedule import ScanSchedule
from rules.rule_filter import ExclusionRuleFilter
from rules.exclusion_rules import get_default_rules
from integrations.errors import IntegrationError
from config.config_loader import get_export_config

logger = logging.getLogger(__name__)


REQUIRED_COLUMNS = ["id", "date", "amount", "currency", "type", "entity_name"]


class DuplicateScanPipeline:
    """
    End-to-end duplicate scan pipeline.

    Orchestrates preparation → detection → rule filtering → output. Holds no
    state between runs, so a failed run can simply be retried.
    """

    def __init__(self, match_mode: str | None = None):
        """
        Args:
            match_mode: Override the detector's match mode from config.
        """
        self.detector = DuplicateDetector(match_mode=match_mode)
        self.rule_filter = ExclusionRuleFilter()
        self.export_columns = get_export_config()["csv_columns"]

        logger.info(f"Pipeline initialized. Match mode: {self.detector.match_mode}.")

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def run(
        self, transactions: pd.DataFrame, rules: Optional[Sequence[ExclusionRule]] = None
    ) -> pd.DataFrame:
        """
        Run the full pipeline on a transactions DataFrame.

        Args:
            transactions: DataFrame with at least the REQUIRED_COLUMNS.
            rules: Exclusion rules. None means the defaults from config.yaml.

        Returns:
            DataFrame of export rows, one per transaction per surviving group.
        """
        result = self.scan(self._prepare(transactions), rules)
        return self.serialize_groups(result.groups)

    def scan(
        self,
        transactions: Sequence[Transaction],
        rules: Optional[Sequence[ExclusionRule]] = None,
        scan_id: str | None = None,
        sources: Optional[List[str]] = None,
    ) -> ScanResult:
        """Detect and filter one scan batch, returning groups plus counts."""
        scan_id = scan_id or uuid.uuid4().hex[:12]
        started_at = datetime.now()
        if rules is None:
            rules = get_default_rules()

        logger.info(f"Scan {scan_id} starting. Input: {len(transactions):,} transactions.")

        # --- Stage 1: Detection ---
        groups = self.detector.detect(transactions, scan_id=scan_id)
        logger.info(f"Stage 1 complete. Duplicate groups: {len(groups):,}.")

        # --- Stage 2: Exclusion rules ---
        kept, excluded = self.rule_filter.partition(groups, rules)
        logger.info(f"Stage 2 complete. Groups kept: {len(kept):,}, excluded: {len(excluded):,}.")

        return ScanResult(
            scan_id=scan_id,
            status="completed",
            total_transactions=len(transactions),
            groups=kept,
            excluded_group_count=len(excluded),
            sources=list(sources or []),
            started_at=started_at,
            completed_at=datetime.now(),
        )

    def scan_sources(
        self, sources: Sequence, rules: Optional[Sequence[ExclusionRule]] = None
    ) -> ScanResult:
        """
        Collect transactions from several accounting sources, then scan them.

        Each source needs a name attribute and fetch_transactions(). A source
        that fails is logged and recorded as "<name>: ERROR - <message>"; the
        remaining sources still run. With no transactions at all the result
        has status "no_data".
        """
        scan_id = uuid.uuid4().hex[:12]
        all_transactions: List[Transaction] = []
        source_notes: List[str] = []

        for source in sources:
            try:
                fetched = source.fetch_transactions()
            except IntegrationError as e:
                logger.error(f"[Scan {scan_id}] {source.name} fetch failed: {e}")
                source_notes.append(f"{source.name}: ERROR - {e}")
                continue
            all_transactions.extend(fetched)
            source_notes.append(f"{source.name}: {len(fetched)}")

        if not all_transactions:
            logger.warning(f"[Scan {scan_id}] No transactions collected from {len(sources)} sources.")
            now = datetime.now()
            return ScanResult(
                scan_id=scan_id,
                status="no_data",
                total_transactions=0,
                sources=source_notes,
                started_at=now,
                completed_at=now,
            )

        return self.scan(all_transactions, rules, scan_id=scan_id, sources=source_notes)

    def run_scheduled(
        self,
        schedule: ScanSchedule,
        sources: Sequence,
        now: datetime | None = None,
        rules: Optional[Sequence[ExclusionRule]] = None,
    ) -> Optional[ScanResult]:
        """
        Scan the sources if the schedule is due at `now` (default: current UTC
        time). Returns None when it is not due. The caller stores
        schedule.next_run(now) as the following run time.
        """
        now = now or datetime.now(timezone.utc)
        if not schedule.is_due(now):
            logger.debug(f"Schedule ({schedule.frequency} {schedule.time_of_day}) not due at {now.isoformat()}.")
            return None

        logger.info(
            f"Scheduled {schedule.frequency} scan due at {now.isoformat()}. "
            f"Next run: {schedule.next_run(now).isoformat()}."
        )
        return self.scan_sources(sources, rules)

    def run_detection_only(self, transactions: Sequence[Transaction]) -> List[DuplicateGroup]:
        """
        Run only Stage 1 (no exclusion rules). Useful when the reviewer edits
        rules and the groups need re-filtering without a fresh scan.
        """
        return self.detector.detect(transactions)

    def load_transactions(self, transactions: pd.DataFrame) -> List[Transaction]:
        """Public alias for DataFrame preparation."""
        return self._prepare(transactions)

    # -------------------------------------------------------------------------
    # INTERNAL: DATA PREPARATION
    # -------------------------------------------------------------------------

    def _prepare(self, transactions: pd.DataFrame) -> List[Transaction]:
        """
        Validates columns and converts rows to Transaction records, keeping
        input order.
        """
        df = transactions.rename(columns={"entityName": "entity_name"})
        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"Missing required columns: {missing}")

        # NaN → None so optional fields read as absent
        df = df.astype(object).where(pd.notna(df), None)
        return [Transaction.from_record(row) for row in df.to_dict(orient="records")]

    # -------------------------------------------------------------------------
    # OUTPUT SERIALIZATION
    # -------------------------------------------------------------------------

    def serialize_groups(self, groups: Sequence[DuplicateGroup]) -> pd.DataFrame:
        """
        Flattens groups to the CSV export layout: one row per member
        transaction, anchor first, groups in detection order.
        """
        if not groups:
            return pd.DataFrame(columns=self.export_columns)

        rows = []
        for g in groups:
            for t in g.transactions:
                rows.append({
                    "Group ID": g.id,
                    "Reason": g.reason,
                    "Confidence": g.confidence_score,
                    "Txn ID": t.id,
                    "Date": t.date.isoformat(),
                    "Entity": t.entity_name,
                    "Account": t.account,
                    "Amount": round(t.amount, 2),
                    "Currency": t.currency,
                    "Memo": t.memo or "",
                })

        return pd.DataFrame(rows, columns=self.export_columns)
