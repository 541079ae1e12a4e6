"""
models.py
----------
Core domain models. These are the typed contracts between engine layers.

- Transaction: One ledger record synced from QuickBooks/Xero (or loaded from
  CSV). Immutable input to the detector.

- DuplicateGroup: Output of the detection layer. Two or more transactions
  believed to be duplicates, with a reason label and a fixed confidence.

- ExclusionRule: User-managed filter record consumed by the rule filter.

- ScanResult: Output of one scan run through the pipeline.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Optional


TRANSACTION_STATUSES = ("pending", "reviewed", "deleted")
RULE_TYPES = ("amount_below", "vendor_contains", "description_contains")


class TransactionType(str, Enum):
    INVOICE = "Invoice"
    BILL = "Bill"
    PAYMENT = "Payment"
    JOURNAL = "JournalEntry"
    PURCHASE = "Purchase"


@dataclass(frozen=True)
class Transaction:
    """
    A single financial record from an external ledger.

    Frozen: the detector shares these by value with its output groups, and the
    resolution step produces updated copies rather than mutating in place.
    """

    # Identity
    id: str                          # Vendor-assigned, opaque
    date: date                       # Source-system local calendar date
    amount: float                    # Signed
    currency: str                    # Detection is never cross-currency
    type: TransactionType

    # Counterparty / ledger
    entity_name: str                 # Vendor or customer, compared case-insensitively
    account: str = ""                # Presentation and filtering only
    memo: Optional[str] = None       # Exact equality only

    # Lifecycle
    status: str = "pending"          # "pending" | "reviewed" | "deleted"

    @property
    def has_memo(self) -> bool:
        return bool(self.memo)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Transaction":
        """
        Build a Transaction from a dict or DataFrame row.

        Accepts snake_case keys and the dashboard's camelCase keys
        (entityName). Missing optional fields (account, memo, status) become
        absent rather than raising.

        Raises:
            ValueError: If a required field is missing or malformed.
        """
        def pick(*keys):
            for key in keys:
                value = record.get(key)
                if not _is_missing(value):
                    return value
            return None

        txn_id = pick("id", "transaction_id")
        raw_date = pick("date", "transaction_date")
        raw_amount = pick("amount")
        currency = pick("currency")
        raw_type = pick("type", "transaction_type")
        entity = pick("entity_name", "entityName")

        missing = [
            name for name, value in (
                ("id", txn_id), ("date", raw_date), ("amount", raw_amount),
                ("currency", currency), ("type", raw_type),
            ) if value is None
        ]
        if missing:
            raise ValueError(f"Transaction record missing required fields: {missing}")

        status = pick("status") or "pending"
        if status not in TRANSACTION_STATUSES:
            raise ValueError(f"Unknown transaction status '{status}'. Expected one of {TRANSACTION_STATUSES}")

        memo = pick("memo")
        return cls(
            id=str(txn_id),
            date=_coerce_date(raw_date),
            amount=float(raw_amount),
            currency=str(currency),
            type=TransactionType(raw_type),
            entity_name=str(entity) if entity is not None else "",
            account=str(pick("account") or ""),
            memo=str(memo) if memo else None,
            status=status,
        )

    def to_record(self) -> dict:
        """Flat dict in the same shape from_record accepts."""
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "amount": self.amount,
            "currency": self.currency,
            "type": self.type.value,
            "entity_name": self.entity_name,
            "account": self.account,
            "memo": self.memo or "",
            "status": self.status,
        }


@dataclass
class DuplicateGroup:
    """
    Two or more transactions believed to duplicate one another.

    transactions[0] is the anchor: the transaction that opened the group. It
    is the representative used for rule evaluation and display ordering.
    """

    id: str
    reason: str
    transactions: list[Transaction]
    confidence_score: float          # One of the fixed values in core.match_rules

    @property
    def anchor(self) -> Transaction:
        return self.transactions[0]

    @property
    def transaction_ids(self) -> list[str]:
        return [t.id for t in self.transactions]

    def __len__(self) -> int:
        return len(self.transactions)


@dataclass(frozen=True)
class ExclusionRule:
    """
    User-defined filter that suppresses matching duplicate groups.

    No validation happens here: the rule filter rejects malformed active rules
    at its boundary (see rules.exclusion_rules.InvalidRuleError).
    """

    id: str
    name: str
    type: str                        # "amount_below" | "vendor_contains" | "description_contains"
    value: Any                       # Number for amount_below, string otherwise
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExclusionRule":
        """
        Accepts both the dashboard's isActive key and is_active.

        Raises:
            ValueError: If the active flag is not a bool or a recognised
                "true"/"false" style string.
        """
        is_active = _parse_flag(data.get("is_active", data.get("isActive", True)))
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            type=data.get("type", ""),
            value=data.get("value"),
            is_active=is_active,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "value": self.value,
            "is_active": self.is_active,
        }


@dataclass
class ScanResult:
    """Outcome of one scan run through the pipeline."""

    scan_id: str
    status: str                      # "completed" | "no_data"
    total_transactions: int
    groups: list[DuplicateGroup] = field(default_factory=list)
    excluded_group_count: int = 0
    sources: list[str] = field(default_factory=list)   # e.g. "QuickBooks (Acme): 42"
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    @property
    def duplicates_found(self) -> int:
        """Number of (anchor, duplicate) pairs, as stored per scan."""
        return sum(len(g) - 1 for g in self.groups)


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    # NaN from pandas rows: NaN != NaN
    if isinstance(value, float) and value != value:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def _coerce_date(value: Any) -> date:
    """Accepts date, datetime (incl. pandas Timestamp) or an ISO string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        raise ValueError(f"Unparseable transaction date: {value!r}") from None


_TRUE_FLAGS = ("true", "yes", "1", "on")
_FALSE_FLAGS = ("false", "no", "0", "off")


def _parse_flag(value: Any) -> bool:
    """Strict bool parsing for flags arriving from JSON, forms or YAML."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_FLAGS:
            return True
        if text in _FALSE_FLAGS:
            return False
    raise ValueError(f"Unrecognised active flag: {value!r}")
