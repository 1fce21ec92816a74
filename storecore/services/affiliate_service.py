import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from .airtable_client import AirtableClient, AirtableError


def _discount_value(fields: Dict[str, Any]) -> Decimal:
    for key in ("discount", "Discount", "Discount Percentage"):
        raw = fields.get(key)
        if raw in (None, "") or isinstance(raw, bool):
            continue
        try:
            value = Decimal(str(raw).strip().rstrip("%"))
        except InvalidOperation:
            continue
        if value.is_finite():
            return max(Decimal("0"), min(value, Decimal("100")))
    return Decimal("0")


class AffiliateService:
    """Looks up discount codes in the affiliates table.

    Lookups always bypass the catalog cache so that a code disabled in
    Airtable stops working immediately.
    """

    MAX_RECORDS = 100

    def __init__(self, client: AirtableClient, *, table: str) -> None:
        self._client = client
        self._table = table
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def normalize(code: Optional[str]) -> str:
        return (code or "").strip().upper()

    def validate(self, code: Optional[str]) -> Dict[str, Any]:
        normalized = self.normalize(code)
        invalid = {"valid": False, "code": normalized, "discount": 0, "name": None, "id": None}
        if not normalized:
            return invalid
        try:
            records = self._client.list_records(self._table, use_cache=False, max_records=self.MAX_RECORDS)
        except AirtableError as exc:
            self.logger.error("Error validating affiliate code %s: %s", normalized, exc)
            return invalid

        for record in records:
            fields = record.get("fields") or {}
            if fields.get("active") is False:
                continue
            candidate = fields.get("Code")
            if candidate is None:
                candidate = fields.get("code")
            if self.normalize(candidate) != normalized:
                continue
            discount = _discount_value(fields)
            return {
                "valid": True,
                "code": normalized,
                "discount": float(discount),
                "name": fields.get("name") or fields.get("Name") or "",
                "id": record.get("id"),
            }
        return invalid
