import json
from decimal import Decimal

import pytest

from storecore.models.mirror_outbox import MirrorOutbox
from storecore.services.catalog_service import Product
from storecore.services.order_service import OrderService


def line(pid, price, qty, weight=None, name=None):
    product = Product(id=pid, name=name or f"Product {pid}", slug=f"p{pid}", price=str(price))
    return {
        "id": pid,
        "product_id": pid,
        "quantity": qty,
        "selected_weight": weight,
        "unit_price": Decimal(str(price)),
        "product": product,
    }


CUSTOMER = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "email": "ada@example.com",
    "phone": "555-0100",
    "address": "12 Analytical Way",
    "city": "London",
    "state": "CA",
    "zip": "90210",
}


def create(service, lines, pct=0, code=None, method="bank"):
    return service.create_orders(
        session_id="s1",
        lines=lines,
        customer=CUSTOMER,
        shipping={"method": "standard", "price": Decimal("9.99")},
        payment={"method": method, "status": "pending", "details": {"transactionId": "TX"}},
        discount={"code": code, "percentage": pct},
    )


def test_one_row_per_line_with_shared_order_id(db, email):
    service = OrderService(email=email)
    result = create(service, [line(1, "50", 3), line(2, "10", 1, "10mg")])
    assert result["order_id"].startswith("TA-")
    rows = service.orders_for(result["order_id"])
    assert len(rows) == 2
    assert {r["orderId"] for r in rows} == {result["order_id"]}
    assert rows[1]["selectedWeight"] == "10mg"
    assert result["total"] == 169.99


def test_discount_is_applied_once_to_the_aggregate(db):
    service = OrderService()
    lines = [line(1, "10", 1), line(2, "10", 1), line(3, "10", 1)]
    result = create(service, lines, pct=Decimal("33.33"), code="THIRD")
    rows = service.orders_for(result["order_id"])
    line_sum = sum(Decimal(str(r["lineTotal"])) for r in rows)
    assert line_sum == Decimal(str(result["subtotal"])) - Decimal(str(result["discount"]))
    assert rows[0]["salesPrice"] == 6.67
    assert all(r["discountCode"] == "THIRD" for r in rows)


def test_empty_cart_is_rejected(db):
    with pytest.raises(ValueError):
        create(OrderService(), [])


def test_vanished_product_is_rejected(db):
    gone = line(9, "5", 1)
    gone["product"] = None
    with pytest.raises(ValueError):
        create(OrderService(), [line(1, "5", 1), gone])


def test_order_lines_are_queued_for_the_mirror(db):
    result = create(OrderService(), [line(1, "50", 1, "5mg", "BPC-157"), line(2, "10", 2)])
    with db() as session:
        entries = session.query(MirrorOutbox).filter(MirrorOutbox.kind == "order").all()
        fields = [e.fields for e in entries]
    assert len(fields) == 2
    assert fields[0]["order id"] == result["order_id"]
    assert fields[0]["product"] == "BPC-157"
    assert fields[0]["productid"] == "1"
    assert fields[0]["mg"] == "5mg"
    assert json.loads(fields[0]["test"]) == {"transactionId": "TX"}


def test_confirmation_email_is_sent_once(db, email):
    result = create(OrderService(email=email), [line(1, "50", 1), line(2, "10", 1)])
    assert len(email.sent) == 1
    assert email.sent[0]["order_id"] == result["order_id"]
    assert len(email.sent[0]["lines"]) == 2


def test_queries_search_count_and_status(db):
    service = OrderService()
    first = create(service, [line(1, "50", 1, name="BPC-157")])
    create(service, [line(2, "10", 1, name="TB-500")])

    assert service.count_orders() == 2
    newest = service.list_orders()
    assert newest[0]["productName"] == "TB-500"
    assert [o["productName"] for o in service.list_orders(search="bpc")] == ["BPC-157"]
    assert service.count_orders("lovelace") == 2
    assert len(service.list_orders(limit=1, offset=1)) == 1

    pk = service.orders_for(first["order_id"])[0]["id"]
    assert service.update_status(pk, "paid")["paymentStatus"] == "paid"
    with pytest.raises(ValueError):
        service.update_status(pk, "teleported")
    assert service.update_status(9999, "paid") is None
    assert service.get_order(9999) is None
