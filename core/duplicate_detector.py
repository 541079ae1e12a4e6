"""
duplicate_detector.py
----------------------
Pairwise duplicate transaction detector.

This is the one shared implementation of duplicate detection. The scheduled
scan, the live scan and the demo data path all call into it, so there is a
single place where the matching behaviour is defined.

It answers one question:

    "Which transactions in this scan batch look like copies of each other?"

Output: a DuplicateGroup per anchor transaction that found at least one
partner. Unmatched transactions produce no output at all.

Design decisions:
    - Single O(n^2) pass over anchors in input order. Scan batches are
      hundreds of transactions, not millions. A hash join on date/amount would
      change which pair is scanned last for an anchor, and with it the group's
      reason under the legacy match mode.
    - Currency is a hard partition. Amounts in different currencies are never
      compared.
    - Each transaction joins at most one group, tracked by a processed-ID set.
    - Tolerances come from config.yaml; reasons and confidences come from the
      fixed catalogue in core.match_rules.
"""

import logging
import uuid
from typing import List, Optional, Sequence

from core.models import DuplicateGroup, Transaction
from core.match_rules import (
    DUPLICATE_ID,
    DUPLICATE_MEMO,
    EXACT_DATE_AMOUNT,
    EXACT_DATE_ENTITY_AMOUNT,
    FUZZY_CLOSE_AMOUNT,
    MatchRule,
)
from config.config_loader import get_duplicate_detection_config

logger = logging.getLogger(__name__)


REPRODUCE_LEGACY = "reproduce_legacy"
STRICT_FIRST_MATCH = "strict_first_match"
MATCH_MODES = (REPRODUCE_LEGACY, STRICT_FIRST_MATCH)


class DuplicateDetector:
    """
    Detects probable duplicate transactions in a scan batch.

    Usage:
        detector = DuplicateDetector()
        groups = detector.detect(transactions)

    Match modes:
        reproduce_legacy   - a group's reason/confidence reflect the LAST
                             qualifying pair scanned for its anchor.
        strict_first_match - they reflect the FIRST qualifying pair. Later
                             partners still join the group.
    """

    def __init__(self, match_mode: str | None = None):
        self.config = get_duplicate_detection_config()
        self.exact_amount_tolerance = float(self.config["exact_amount_tolerance"])
        self.close_amount_band = float(self.config["close_amount_band"])
        self.group_id_prefix = self.config["group_id_prefix"]
        self.fallback_reason = self.config["fallback_reason"]

        self.match_mode = match_mode or self.config["match_mode"]
        if self.match_mode not in MATCH_MODES:
            raise ValueError(
                f"Unknown match mode '{self.match_mode}'. Expected one of {MATCH_MODES}"
            )

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def detect(
        self, transactions: Sequence[Transaction], scan_id: str | None = None
    ) -> List[DuplicateGroup]:
        """
        Partition a scan batch into duplicate groups.

        Args:
            transactions: Transactions in source order. Order matters: it
                decides which transaction anchors a group and, in legacy mode,
                which pair sets the group's reason.
            scan_id: Identifier embedded in group ids. Pass one for
                reproducible ids; a random one is generated otherwise.

        Returns:
            List of DuplicateGroup in the order their anchors appear in the
            input. Never contains a group of one.
        """
        if scan_id is None:
            scan_id = uuid.uuid4().hex[:12]

        transactions = list(transactions)
        groups: List[DuplicateGroup] = []
        processed_ids: set[str] = set()

        for i, t1 in enumerate(transactions):
            if t1.id in processed_ids:
                continue

            members = [t1]
            matched_rule: MatchRule | None = None

            for t2 in transactions[i + 1:]:
                if t2.id in processed_ids:
                    continue

                rule = self._classify_pair(t1, t2)
                if rule is None:
                    continue

                members.append(t2)
                processed_ids.add(t2.id)

                if matched_rule is None or self.match_mode == REPRODUCE_LEGACY:
                    matched_rule = rule

            if len(members) > 1:
                processed_ids.add(t1.id)
                groups.append(self._build_group(scan_id, i, t1, members, matched_rule))

        logger.debug(
            f"Detected {len(groups)} duplicate groups in {len(transactions)} transactions "
            f"(mode={self.match_mode})."
        )
        return groups

    # -------------------------------------------------------------------------
    # INTERNAL: PAIR CLASSIFICATION
    # -------------------------------------------------------------------------

    def _classify_pair(self, t1: Transaction, t2: Transaction) -> Optional[MatchRule]:
        """
        Returns the highest-priority match rule satisfied by the pair, or None.

        Priority:
            1. same date + entity + amount      (0.99)
            2. same date + amount               (0.95)
            3. same non-empty memo              (0.85)
            4. same transaction id              (1.0)
            5. close amount + (date or entity)  (0.75)
        """
        if t1.currency != t2.currency:
            return None

        delta = abs(t1.amount - t2.amount)
        same_date = t1.date == t2.date
        same_amount = delta < self.exact_amount_tolerance
        same_entity = (t1.entity_name or "").lower() == (t2.entity_name or "").lower()
        same_memo = t1.has_memo and t2.has_memo and t1.memo == t2.memo
        same_id = t1.id == t2.id
        close_amount = delta <= self.close_amount_band and not same_amount

        if same_date and same_entity and same_amount:
            return EXACT_DATE_ENTITY_AMOUNT
        if same_date and same_amount:
            return EXACT_DATE_AMOUNT
        if same_memo:
            return DUPLICATE_MEMO
        if same_id:
            return DUPLICATE_ID
        if close_amount and (same_date or same_entity):
            return FUZZY_CLOSE_AMOUNT
        return None

    # -------------------------------------------------------------------------
    # INTERNAL: GROUP CONSTRUCTION
    # -------------------------------------------------------------------------

    def _build_group(
        self,
        scan_id: str,
        anchor_index: int,
        anchor: Transaction,
        members: List[Transaction],
        rule: MatchRule | None,
    ) -> DuplicateGroup:
        # rule is always set once a partner has joined
        if rule is None:
            reason, confidence = self.fallback_reason, 0.0
        else:
            reason, confidence = rule.reason_for(anchor.currency), rule.confidence

        return DuplicateGroup(
            id=f"{self.group_id_prefix}-{scan_id}-{anchor_index}",
            reason=reason or self.fallback_reason,
            transactions=list(members),
            confidence_score=confidence,
        )
