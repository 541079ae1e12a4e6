"""
xero.py
--------
Xero accounting adapter.

Maps Invoices (ACCREC sales invoices, ACCPAY bills) and BankTransactions
(SPEND / RECEIVE) onto Transaction records. The source is handed a valid
access token and tenant id; OAuth happens elsewhere.
"""

import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

import requests

from core.models import Transaction, TransactionType
from integrations.errors import AuthExpiredError, UpstreamUnavailableError
from config.config_loader import get_integration_config

logger = logging.getLogger(__name__)


SOURCE_NAME = "Xero"

_MS_DATE = re.compile(r"/Date\((-?\d+)")


def parse_xero_date(raw_date: Any) -> Optional[date]:
    """
    Parse a Xero date into a calendar date.

    Xero returns either ISO strings ("2023-10-25T00:00:00") in DateString or
    the .NET form "/Date(1698192000000+0000)/" in Date. Returns None when
    neither form parses.
    """
    if not raw_date:
        return None

    raw = str(raw_date)

    match = _MS_DATE.search(raw)
    if match:
        return datetime.fromtimestamp(int(match.group(1)) / 1000, tz=timezone.utc).date()

    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None


# =============================================================================
# PAYLOAD TRANSFORMS
# =============================================================================

def _total(payload: Mapping[str, Any]) -> float:
    try:
        return float(payload.get("Total") or 0)
    except (TypeError, ValueError):
        return 0.0


def _txn_date(payload: Mapping[str, Any]) -> date:
    parsed = parse_xero_date(payload.get("DateString")) or parse_xero_date(payload.get("Date"))
    if parsed is None:
        raise ValueError("no parseable Date/DateString")
    return parsed


def transform_invoice(inv: Mapping[str, Any], default_currency: str = "USD") -> Transaction:
    is_bill = inv.get("Type") == "ACCPAY"
    return Transaction(
        id=str(inv["InvoiceID"]),
        date=_txn_date(inv),
        amount=_total(inv),
        currency=inv.get("CurrencyCode") or default_currency,
        type=TransactionType.BILL if is_bill else TransactionType.INVOICE,
        entity_name=(inv.get("Contact") or {}).get("Name") or "Unknown",
        account="Accounts Payable" if is_bill else "Accounts Receivable",
        memo=inv.get("Reference") or None,
    )


def transform_bank_transaction(bt: Mapping[str, Any], default_currency: str = "USD") -> Transaction:
    is_spend = bt.get("Type") == "SPEND"
    return Transaction(
        id=str(bt["BankTransactionID"]),
        date=_txn_date(bt),
        amount=_total(bt),
        currency=bt.get("CurrencyCode") or default_currency,
        type=TransactionType.PURCHASE if is_spend else TransactionType.PAYMENT,
        entity_name=(bt.get("Contact") or {}).get("Name") or "Unknown",
        account=(bt.get("BankAccount") or {}).get("Name") or "",
        memo=bt.get("Reference") or None,
    )


# =============================================================================
# SOURCE
# =============================================================================

class XeroSource:
    """
    Transaction source for one Xero organisation (tenant).

    Usage:
        source = XeroSource(access_token, tenant_id, tenant_name="Acme Ltd")
        transactions = source.fetch_transactions()
    """

    def __init__(
        self,
        access_token: str,
        tenant_id: str,
        tenant_name: str | None = None,
        session: requests.Session | None = None,
    ):
        self.config = get_integration_config("xero")
        self.access_token = access_token
        self.tenant_id = tenant_id
        self.tenant_name = tenant_name
        self.api_base_url = self.config["api_base_url"].rstrip("/")
        self.timeout = self.config["timeout_seconds"]
        self.default_currency = self.config["default_currency"]
        self.session = session or requests.Session()

    @property
    def name(self) -> str:
        return f"{SOURCE_NAME} ({self.tenant_name or self.tenant_id})"

    def fetch_transactions(self) -> List[Transaction]:
        """
        Fetch Invoices then BankTransactions (first page of each).

        Raises:
            AuthExpiredError: Either endpoint returned 401.
            UpstreamUnavailableError: Connection failure, timeout or 5xx.
        """
        transactions: List[Transaction] = []

        for inv in self._get("Invoices"):
            self._append(transactions, transform_invoice, inv, inv.get("InvoiceID"))
        for bt in self._get("BankTransactions"):
            self._append(transactions, transform_bank_transaction, bt, bt.get("BankTransactionID"))

        logger.info(f"[Xero] Fetched {len(transactions)} transactions for tenant {self.tenant_id}")
        return transactions

    def _append(self, out: List[Transaction], transform, payload, payload_id) -> None:
        try:
            out.append(transform(payload, self.default_currency))
        except (KeyError, ValueError) as e:
            logger.warning(f"[Xero] Skipping record {payload_id}: {e}")

    def _get(self, endpoint: str) -> List[Dict[str, Any]]:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "xero-tenant-id": self.tenant_id,
            "Accept": "application/json",
        }

        try:
            response = self.session.get(
                f"{self.api_base_url}/{endpoint}",
                headers=headers,
                params={"page": 1},
                timeout=self.timeout,
            )
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise UpstreamUnavailableError(SOURCE_NAME, f"{endpoint} request failed: {e}") from e

        if response.status_code == 401:
            raise AuthExpiredError(SOURCE_NAME, "access token rejected; reconnect Xero")
        if response.status_code >= 500:
            raise UpstreamUnavailableError(
                SOURCE_NAME, f"{endpoint} returned HTTP {response.status_code}"
            )
        if not response.ok:
            logger.warning(f"[Xero] {endpoint} returned HTTP {response.status_code}; treating as empty")
            return []

        return response.json().get(endpoint) or []
