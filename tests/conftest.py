import json
import re
from decimal import Decimal

import pytest

from storecore.config import AppConfig, DEFAULT_BANK_INFO, DEFAULT_CRYPTO_INFO
from storecore.db.session import configure_engine, get_session
from storecore.services.airtable_client import AirtableError
from storefront.app import create_app
from storefront.config import StorefrontConfig


_FORMULA = re.compile(r"^\{(?P<field>[^}]+)\}=(?P<value>.+)$")


def _formula_value(raw: str):
    if raw == "TRUE()":
        return True
    if raw.startswith("'") and raw.endswith("'"):
        return raw[1:-1].replace("\\'", "'")
    return int(raw)


class FakeAirtable:
    """In-memory stand-in for AirtableClient with the same public surface."""

    configured = True

    def __init__(self, tables=None):
        self.tables = {name: list(records) for name, records in (tables or {}).items()}
        self.calls = []
        self.fail_next = 0
        self.fail_reads = False
        self._next_id = 1

    def _match(self, records, params):
        formula = (params or {}).get("filterByFormula")
        if not formula:
            return list(records)
        m = _FORMULA.match(formula)
        field, value = m.group("field"), _formula_value(m.group("value"))
        return [r for r in records if r.get("fields", {}).get(field) == value]

    def list_records(self, table, params=None, *, use_cache=True, max_records=None):
        self.calls.append(("list", table, dict(params or {}), use_cache))
        if self.fail_reads:
            raise AirtableError("upstream down", status_code=500)
        records = self._match(self.tables.get(table, []), params)
        return records[:max_records] if max_records else records

    def _maybe_fail(self):
        if self.fail_next:
            self.fail_next -= 1
            raise AirtableError("temporary failure", status_code=503)

    def find_first(self, table, formula):
        self._maybe_fail()
        self.calls.append(("find", table, formula))
        found = self._match(self.tables.get(table, []), {"filterByFormula": formula})
        return found[0] if found else None

    def create_record(self, table, fields):
        self._maybe_fail()
        self.calls.append(("create", table, fields))
        record = {"id": f"recNew{self._next_id}", "fields": dict(fields)}
        self._next_id += 1
        self.tables.setdefault(table, []).append(record)
        return record

    def update_record(self, table, record_id, fields):
        self._maybe_fail()
        self.calls.append(("update", table, record_id, fields))
        for record in self.tables.get(table, []):
            if record["id"] == record_id:
                record["fields"].update(fields)
                return record
        raise AirtableError("not found", status_code=404)

    def invalidate(self):
        self.calls.append(("invalidate",))


class FakePayments:
    configured = True

    def __init__(self):
        self.intents = {}
        self.status = "succeeded"

    def create_intent(self, amount, currency=None, email=None, metadata=None):
        intent_id = f"pi_{len(self.intents) + 1}"
        self.intents[intent_id] = {
            "amount": Decimal(str(amount)),
            "currency": currency,
            "metadata": dict(metadata or {}),
        }
        return {"id": intent_id, "client_secret": f"{intent_id}_secret"}

    def retrieve_intent(self, intent_id):
        intent = self.intents.get(intent_id, {"amount": Decimal("0"), "metadata": {}})
        return {
            "id": intent_id,
            "status": self.status,
            "amount": intent["amount"],
            "metadata": intent["metadata"],
        }

    def parse_webhook(self, payload, signature):
        if signature != "valid":
            raise ValueError("Invalid webhook signature")
        return json.loads(payload)


class FakeEmail:
    def __init__(self):
        self.sent = []

    def send_order_confirmation(self, to, order_id, customer, lines, totals):
        self.sent.append({"to": to, "order_id": order_id, "lines": lines, "totals": totals})
        return True


PRODUCTS_TABLE = "tblProducts"
CATEGORIES_TABLE = "tblCategories"
AFFILIATES_TABLE = "Affiliates"
CHECKOUTS_TABLE = "tblCheckouts"
ORDERS_TABLE = "tblOrders"


def catalog_tables():
    return {
        PRODUCTS_TABLE: [
            {
                "id": "recA",
                "fields": {
                    "id": 1,
                    "name": "BPC-157",
                    "slug": "bpc-157",
                    "price": 50,
                    "price10mg": 90,
                    "categoryId": 1,
                    "featured": True,
                    "weights": ["5mg", "10mg"],
                },
            },
            {
                "id": "recB",
                "fields": {"id": 2, "name": "TB-500", "slug": "tb-500", "price": 10, "categoryId": 2},
            },
        ],
        CATEGORIES_TABLE: [
            {"id": "recC1", "fields": {"id": 1, "name": "Peptides", "slug": "peptides"}},
            {"id": "recC2", "fields": {"id": 2, "name": "Blends", "slug": "blends"}},
        ],
        AFFILIATES_TABLE: [
            {"id": "recAff1", "fields": {"Code": "SAVE10", "discount": 10, "name": "Partner", "active": True}},
            {"id": "recAff2", "fields": {"code": "OLD50", "discount": 50, "active": False}},
        ],
    }


def make_app_config(**overrides) -> AppConfig:
    values = dict(
        database_url="sqlite:///:memory:",
        secret_key="test-secret",
        log_level="WARNING",
        currency="USD",
        airtable_products_table=PRODUCTS_TABLE,
        airtable_categories_table=CATEGORIES_TABLE,
        airtable_affiliates_table=AFFILIATES_TABLE,
        airtable_checkouts_table=CHECKOUTS_TABLE,
        airtable_orders_table=ORDERS_TABLE,
        mirror_retry_delay=0,
        bank_info=dict(DEFAULT_BANK_INFO),
        crypto_info=dict(DEFAULT_CRYPTO_INFO),
    )
    values.update(overrides)
    return AppConfig(**values)


@pytest.fixture
def db():
    configure_engine("sqlite:///:memory:")
    return get_session


@pytest.fixture
def airtable():
    return FakeAirtable(catalog_tables())


@pytest.fixture
def payments():
    return FakePayments()


@pytest.fixture
def email():
    return FakeEmail()


@pytest.fixture
def app(tmp_path, airtable, payments, email):
    storefront_cfg = StorefrontConfig(
        secret_key="test-secret",
        admin_username="admin",
        admin_password="hunter2",
        project_root=tmp_path,
    )
    app = create_app(
        make_app_config(),
        storefront_cfg,
        start_worker=False,
        airtable=airtable,
        payments=payments,
        email=email,
    )
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def components(app):
    return app.extensions["storefront_components"]
