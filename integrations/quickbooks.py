"""
quickbooks.py
--------------
QuickBooks Online adapter.

Fetches Purchase, Invoice and Bill entities with the query endpoint and maps
them onto Transaction records. Token acquisition and refresh happen before
this point: the source is handed an access token that is already valid.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Mapping

import requests

from core.models import Transaction, TransactionType
from integrations.errors import AuthExpiredError, UpstreamUnavailableError
from config.config_loader import get_integration_config

logger = logging.getLogger(__name__)


SOURCE_NAME = "QuickBooks"
ENTITIES = ("Purchase", "Invoice", "Bill")


# =============================================================================
# PAYLOAD TRANSFORMS
# =============================================================================

def _ref_name(payload: Mapping[str, Any], key: str) -> str | None:
    ref = payload.get(key) or {}
    return ref.get("name")


def _amount(payload: Mapping[str, Any]) -> float:
    try:
        return float(payload.get("TotalAmt") or 0)
    except (TypeError, ValueError):
        return 0.0


def _currency(payload: Mapping[str, Any], default_currency: str) -> str:
    return (payload.get("CurrencyRef") or {}).get("value") or default_currency


def transform_purchase(p: Mapping[str, Any], default_currency: str = "USD") -> Transaction:
    return Transaction(
        id=str(p["Id"]),
        date=_parse_txn_date(p["TxnDate"]),
        amount=_amount(p),
        currency=_currency(p, default_currency),
        type=TransactionType.PURCHASE,
        entity_name=_ref_name(p, "EntityRef") or "Unknown Vendor",
        account=_ref_name(p, "AccountRef") or "",
        memo=p.get("PrivateNote") or None,
    )


def transform_invoice(inv: Mapping[str, Any], default_currency: str = "USD") -> Transaction:
    return Transaction(
        id=str(inv["Id"]),
        date=_parse_txn_date(inv["TxnDate"]),
        amount=_amount(inv),
        currency=_currency(inv, default_currency),
        type=TransactionType.INVOICE,
        entity_name=_ref_name(inv, "CustomerRef") or "Unknown Customer",
        account=_ref_name(inv, "DepositToAccountRef") or "Accounts Receivable",
        memo=inv.get("PrivateNote") or None,
    )


def transform_bill(bill: Mapping[str, Any], default_currency: str = "USD") -> Transaction:
    return Transaction(
        id=str(bill["Id"]),
        date=_parse_txn_date(bill["TxnDate"]),
        amount=_amount(bill),
        currency=_currency(bill, default_currency),
        type=TransactionType.BILL,
        entity_name=_ref_name(bill, "VendorRef") or "Unknown Vendor",
        account=_ref_name(bill, "APAccountRef") or "Accounts Payable",
        memo=bill.get("PrivateNote") or None,
    )


_TRANSFORMS = {
    "Purchase": transform_purchase,
    "Invoice": transform_invoice,
    "Bill": transform_bill,
}


def _parse_txn_date(value: str) -> date:
    return date.fromisoformat(str(value)[:10])


# =============================================================================
# SOURCE
# =============================================================================

class QuickBooksSource:
    """
    Transaction source for one QuickBooks company (realm).

    Usage:
        source = QuickBooksSource(access_token, realm_id, company_name="Acme")
        transactions = source.fetch_transactions()
    """

    def __init__(
        self,
        access_token: str,
        realm_id: str,
        company_name: str | None = None,
        session: requests.Session | None = None,
    ):
        self.config = get_integration_config("quickbooks")
        self.access_token = access_token
        self.realm_id = realm_id
        self.company_name = company_name
        self.api_base_url = self.config["api_base_url"].rstrip("/")
        self.max_results = self.config["max_results"]
        self.timeout = self.config["timeout_seconds"]
        self.default_currency = self.config["default_currency"]
        self.session = session or requests.Session()

    @property
    def name(self) -> str:
        return f"{SOURCE_NAME} ({self.company_name or self.realm_id})"

    def fetch_transactions(self) -> List[Transaction]:
        """
        Fetch Purchases, Invoices and Bills, in that order.

        Raises:
            AuthExpiredError: Any entity query returned 401.
            UpstreamUnavailableError: Connection failure, timeout or 5xx.
        """
        transactions: List[Transaction] = []
        for entity in ENTITIES:
            rows = self._query(entity)
            transform = _TRANSFORMS[entity]
            for row in rows:
                try:
                    transactions.append(transform(row, self.default_currency))
                except (KeyError, ValueError) as e:
                    logger.warning(f"[QB] Skipping {entity} {row.get('Id')}: {e}")

        logger.info(f"[QB] Fetched {len(transactions)} transactions for realm {self.realm_id}")
        return transactions

    def _query(self, entity: str) -> List[Dict[str, Any]]:
        url = f"{self.api_base_url}/v3/company/{self.realm_id}/query"
        query = f"select * from {entity} startPosition 1 maxResults {self.max_results}"
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
        }

        try:
            response = self.session.get(
                url, headers=headers, params={"query": query}, timeout=self.timeout
            )
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise UpstreamUnavailableError(SOURCE_NAME, f"{entity} query failed: {e}") from e

        if response.status_code == 401:
            raise AuthExpiredError(SOURCE_NAME, "access token rejected; reconnect QuickBooks")
        if response.status_code >= 500:
            raise UpstreamUnavailableError(
                SOURCE_NAME, f"{entity} query returned HTTP {response.status_code}"
            )
        if not response.ok:
            logger.warning(f"[QB] {entity} query returned HTTP {response.status_code}; treating as empty")
            return []

        return (response.json().get("QueryResponse") or {}).get(entity) or []
