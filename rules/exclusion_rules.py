"""
exclusion_rules.py
-------------------
Concrete exclusion rule evaluators. One class per rule type.

    amount_below          anchor.amount < value
    vendor_contains       value is a case-insensitive substring of the entity name
    description_contains  value is a case-insensitive substring of a non-empty memo

Values are never coerced: a numeric string for amount_below or a number for
vendor_contains is a configuration error, not something to guess about.
"""

import logging
import math
import uuid
from typing import Dict, Iterable, List, Type

import yaml

from core.models import DuplicateGroup, ExclusionRule, Transaction
from rules.base_rule import BaseExclusionRule, InvalidRuleError
from config.config_loader import get_default_exclusion_rules

logger = logging.getLogger(__name__)


# =============================================================================
# AMOUNT BELOW
# =============================================================================
class AmountBelowRule(BaseExclusionRule):
    """Suppresses groups whose anchor amount is under a threshold."""

    rule_type = "amount_below"

    def _validate_value(self, value) -> None:
        # bool is an int subclass but never a meaningful threshold
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidRuleError(
                self.rule, f"amount_below needs a numeric value, got {type(value).__name__}"
            )
        if math.isnan(value):
            raise InvalidRuleError(self.rule, "amount_below value is NaN")

    def _matches(self, anchor: Transaction) -> bool:
        return anchor.amount < self.rule.value


# =============================================================================
# VENDOR CONTAINS
# =============================================================================
class VendorContainsRule(BaseExclusionRule):
    """Suppresses groups whose anchor counterparty name contains the value."""

    rule_type = "vendor_contains"

    def _validate_value(self, value) -> None:
        self._require_text(value)

    def _matches(self, anchor: Transaction) -> bool:
        return self.rule.value.lower() in (anchor.entity_name or "").lower()


# =============================================================================
# DESCRIPTION (MEMO) CONTAINS
# =============================================================================
class DescriptionContainsRule(BaseExclusionRule):
    """Suppresses groups whose anchor memo contains the value."""

    rule_type = "description_contains"

    def _validate_value(self, value) -> None:
        self._require_text(value)

    def _matches(self, anchor: Transaction) -> bool:
        if not anchor.has_memo:
            return False
        return self.rule.value.lower() in anchor.memo.lower()


# =============================================================================
# REGISTRY
# =============================================================================

_EVALUATORS: Dict[str, Type[BaseExclusionRule]] = {
    cls.rule_type: cls
    for cls in (AmountBelowRule, VendorContainsRule, DescriptionContainsRule)
}


def get_rule_evaluator(rule: ExclusionRule) -> BaseExclusionRule:
    """
    Returns the evaluator for a rule record.

    Raises:
        InvalidRuleError: If the rule type is unknown or its value is invalid.
    """
    evaluator_cls = _EVALUATORS.get(rule.type)
    if evaluator_cls is None:
        raise InvalidRuleError(
            rule, f"unknown rule type '{rule.type}'. Available: {list(_EVALUATORS.keys())}"
        )
    return evaluator_cls(rule)


def whitelist_rule_for_group(group: DuplicateGroup) -> ExclusionRule:
    """
    Builds an active vendor_contains rule from the group's anchor.

    This is the "Whitelist" action on a group card: future groups anchored on
    the same counterparty are suppressed.
    """
    entity = group.anchor.entity_name
    if not entity or not entity.strip():
        raise ValueError(f"Group {group.id} has no entity name to whitelist")
    return ExclusionRule(
        id=f"RULE-{uuid.uuid4().hex[:8]}",
        name=f"Whitelist {entity}",
        type="vendor_contains",
        value=entity,
        is_active=True,
    )


def rules_from_records(records: Iterable[dict]) -> List[ExclusionRule]:
    return [ExclusionRule.from_dict(r) for r in records]


def load_rules_file(path: str) -> List[ExclusionRule]:
    """
    Load exclusion rules from a YAML file.

    The file holds either a list of rule records or a mapping with an
    exclusion_rules key (the same shape as config.yaml).
    """
    with open(path, "r") as f:
        data = yaml.safe_load(f) or []

    if isinstance(data, dict):
        data = data.get("exclusion_rules") or []
    if not isinstance(data, list):
        raise ValueError(f"Rules file {path} must contain a list of rules")

    rules = rules_from_records(data)
    logger.info(f"Loaded {len(rules)} exclusion rules from {path}")
    return rules


def get_default_rules() -> List[ExclusionRule]:
    """Rules configured in config.yaml (empty by default)."""
    return rules_from_records(get_default_exclusion_rules())
