"""
base_rule.py
-------------
Abstract base class for all exclusion rule evaluators.

Each concrete evaluator (amount below, vendor contains, memo contains)
inherits from this. Value validation on construction, anchor selection and
the inactive-rule short-circuit all live here.

Concrete evaluators only need to implement:
    - _validate_value(): reject values of the wrong kind
    - _matches(): rule-specific test against the anchor transaction
"""

from abc import ABC, abstractmethod

from core.models import DuplicateGroup, ExclusionRule, Transaction


class InvalidRuleError(ValueError):
    """An active exclusion rule is malformed (unknown type or bad value)."""

    def __init__(self, rule: ExclusionRule, message: str):
        self.rule = rule
        super().__init__(f"Invalid exclusion rule '{rule.name or rule.id}': {message}")


class BaseExclusionRule(ABC):
    """
    Abstract base for exclusion rule evaluators.

    Wraps one ExclusionRule record. Validation runs at construction, so a
    malformed rule fails before any group is evaluated.
    """

    rule_type: str = ""

    def __init__(self, rule: ExclusionRule):
        if rule.type != self.rule_type:
            raise InvalidRuleError(
                rule, f"type '{rule.type}' cannot be evaluated as '{self.rule_type}'"
            )
        self.rule = rule
        self._validate_value(rule.value)

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def excludes(self, group: DuplicateGroup) -> bool:
        """
        True if this rule suppresses the group.

        Only the anchor (transactions[0]) is inspected. Sibling transactions
        are never checked independently, so a fuzzy group whose later members
        differ from the anchor is judged on the anchor alone.
        """
        if not self.rule.is_active:
            return False
        return self._matches(group.anchor)

    # -------------------------------------------------------------------------
    # ABSTRACT METHODS
    # -------------------------------------------------------------------------

    @abstractmethod
    def _validate_value(self, value) -> None:
        """Raise InvalidRuleError if value is not usable for this rule type."""
        ...

    @abstractmethod
    def _matches(self, anchor: Transaction) -> bool:
        ...

    # -------------------------------------------------------------------------
    # SHARED HELPERS
    # -------------------------------------------------------------------------

    def _require_text(self, value) -> None:
        if not isinstance(value, str):
            raise InvalidRuleError(
                self.rule, f"expected a string value, got {type(value).__name__}"
            )
        if not value.strip():
            raise InvalidRuleError(self.rule, "value must not be blank")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.rule.name!r}, value={self.rule.value!r}, active={self.rule.is_active})"
