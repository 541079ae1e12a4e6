"""
rule_filter.py
---------------
Applies the user's exclusion rules to detected duplicate groups.

Evaluated fresh on every call against whatever rule set is passed in. There
is no cache and no state between calls, so re-filtering the same groups with
an edited rule set just works, and filtering twice with the same rules gives
the same result as filtering once.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from core.models import DuplicateGroup, ExclusionRule
from rules.base_rule import BaseExclusionRule
from rules.exclusion_rules import get_rule_evaluator

logger = logging.getLogger(__name__)


class ExclusionRuleFilter:
    """
    Drops duplicate groups matched by any active exclusion rule.

    Usage:
        rule_filter = ExclusionRuleFilter()
        visible = rule_filter.filter(groups, rules)
    """

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def filter(
        self, groups: Sequence[DuplicateGroup], rules: Optional[Sequence[ExclusionRule]]
    ) -> List[DuplicateGroup]:
        """
        Returns the groups no active rule excludes, in their original order.

        Raises:
            InvalidRuleError: If an active rule is malformed. Raised before
                any group is evaluated.
        """
        kept, _ = self.partition(groups, rules)
        return kept

    def partition(
        self, groups: Sequence[DuplicateGroup], rules: Optional[Sequence[ExclusionRule]]
    ) -> Tuple[List[DuplicateGroup], List[DuplicateGroup]]:
        """Splits groups into (kept, excluded)."""
        evaluators = self._build_evaluators(rules)
        if not evaluators:
            return list(groups), []

        kept: List[DuplicateGroup] = []
        excluded: List[DuplicateGroup] = []

        for group in groups:
            # Logical OR across active rules, in list order
            matched = next((e for e in evaluators if e.excludes(group)), None)
            if matched is None:
                kept.append(group)
            else:
                logger.debug(f"Group {group.id} excluded by {matched!r}")
                excluded.append(group)

        if excluded:
            logger.info(
                f"Exclusion rules removed {len(excluded)} of {len(groups)} duplicate groups."
            )
        return kept, excluded

    # -------------------------------------------------------------------------
    # INTERNAL
    # -------------------------------------------------------------------------

    @staticmethod
    def _build_evaluators(
        rules: Optional[Sequence[ExclusionRule]],
    ) -> List[BaseExclusionRule]:
        """Validates and wraps active rules. Inactive rules are inert and skipped."""
        if not rules:
            return []
        return [get_rule_evaluator(rule) for rule in rules if rule.is_active]
