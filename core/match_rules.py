"""
match_rules.py
---------------
The fixed match-rule catalogue used by the duplicate detector.

Each rule pairs a reason label with a confidence score. Scores are a closed
enumeration keyed by rule, never computed: downstream reports, exports and
saved results all rely on these literal values, so they live in code rather
than in config.yaml.

Priority order is the order of MATCH_RULES. The detector evaluates pair
predicates against it top to bottom and the first satisfied rule wins.
"""

from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class MatchRule:
    key: str
    reason_template: str             # May contain {currency}
    confidence: float

    def reason_for(self, currency: str) -> str:
        return self.reason_template.format(currency=currency)


EXACT_DATE_ENTITY_AMOUNT = MatchRule(
    key="exact_date_entity_amount",
    reason_template="Exact Match ({currency}): Date, Entity & Amount",
    confidence=0.99,
)
EXACT_DATE_AMOUNT = MatchRule(
    key="exact_date_amount",
    reason_template="Exact Match ({currency}): Date & Amount",
    confidence=0.95,
)
DUPLICATE_MEMO = MatchRule(
    key="duplicate_memo",
    reason_template="Duplicate Memo detected",
    confidence=0.85,
)
DUPLICATE_ID = MatchRule(
    key="duplicate_id",
    reason_template="Duplicate Transaction ID",
    confidence=1.0,
)
FUZZY_CLOSE_AMOUNT = MatchRule(
    key="fuzzy_close_amount",
    reason_template="Fuzzy Match ({currency}): Close Amount",
    confidence=0.75,
)

MATCH_RULES: tuple[MatchRule, ...] = (
    EXACT_DATE_ENTITY_AMOUNT,
    EXACT_DATE_AMOUNT,
    DUPLICATE_MEMO,
    DUPLICATE_ID,
    FUZZY_CLOSE_AMOUNT,
)

CONFIDENCE_LEVELS = frozenset(rule.confidence for rule in MATCH_RULES)

_BY_KEY: Dict[str, MatchRule] = {rule.key: rule for rule in MATCH_RULES}


def get_match_rule(key: str) -> Optional[MatchRule]:
    """Look up a rule by key, or None if unknown."""
    return _BY_KEY.get(key)


def confidence_label(score: float) -> str:
    """Display form used by the review UI, e.g. 0.99 -> '99%'."""
    return f"{score * 100:.0f}%"
