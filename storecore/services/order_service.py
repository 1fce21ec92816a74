import json
import logging
import secrets
import string
import time
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import or_

from ..db.session import get_session
from ..models.order import Order
from ..utils.dto import to_order_dto
from ..utils.pagination import normalize_window
from ..utils.pricing import allocate_discount, as_float, compute_totals, to_money
from . import outbox_service
from .email_service import EmailService
from .logging import log_event


PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded", "cancelled")
_BASE36 = string.digits + string.ascii_uppercase


def new_order_id(now: Optional[float] = None) -> str:
    """``TA-<unix seconds>-<6 base36 chars>``."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"TA-{int(now if now is not None else time.time())}-{suffix}"


def airtable_order_fields(order: Order) -> Dict:
    return {
        "order id": order.order_id,
        "first name": order.first_name,
        "last name": order.last_name,
        "address": order.address,
        "city": order.city,
        "state": order.state,
        "zip": order.zip,
        "mg": order.selected_weight or "",
        "saleprice": as_float(order.sales_price),
        "quantity": order.quantity,
        "productid": str(order.product_id),
        "product": order.product_name,
        "shipping": order.shipping,
        "payment": order.payment_method,
        "code": order.discount_code or "",
        "test": order.payment_details or "{}",
    }


class OrderService:
    """Order creation from a cart snapshot, plus the admin queries."""

    def __init__(self, session_factory=get_session, email: Optional[EmailService] = None):
        self._session_factory = session_factory
        self._email = email
        self.logger = logging.getLogger(__name__)

    def create_orders(
        self,
        *,
        session_id: Optional[str],
        lines: List[Dict],
        customer: Dict,
        shipping: Dict,
        payment: Dict,
        discount: Optional[Dict] = None,
    ) -> Dict:
        """Write one Order row per cart line under a shared order id.

        ``lines`` are the items of ``CartStore.get``. The discount is taken
        once off the aggregate subtotal; line totals are its per-line split.
        """
        if not lines:
            raise ValueError("Cart is empty")
        missing = [ln["product_id"] for ln in lines if ln.get("product") is None]
        if missing:
            raise ValueError(f"Products no longer available: {', '.join(str(m) for m in missing)}")

        discount = discount or {}
        pct = Decimal(str(discount.get("percentage") or 0))
        code = discount.get("code") or None
        amounts = [Decimal(ln["unit_price"]) * ln["quantity"] for ln in lines]
        shares = allocate_discount(amounts, pct)
        totals = compute_totals(sum(amounts, Decimal("0")), pct, shipping.get("price") or 0)
        factor = (Decimal(100) - pct) / Decimal(100)

        order_id = new_order_id()
        details = json.dumps(payment.get("details") or {}, default=str)
        summary = []
        with self._session_factory() as session:
            for line, share in zip(lines, shares):
                product = line["product"]
                row = Order(
                    order_id=order_id,
                    session_id=session_id,
                    first_name=customer.get("first_name", ""),
                    last_name=customer.get("last_name", ""),
                    email=customer.get("email") or None,
                    phone=customer.get("phone") or None,
                    address=customer.get("address", ""),
                    city=customer.get("city", ""),
                    state=customer.get("state", ""),
                    zip=customer.get("zip", ""),
                    product_id=product.id,
                    product_name=product.name,
                    quantity=line["quantity"],
                    selected_weight=line.get("selected_weight"),
                    unit_price=to_money(line["unit_price"]),
                    sales_price=to_money(Decimal(line["unit_price"]) * factor),
                    line_total=share,
                    shipping=shipping.get("method") or "",
                    shipping_cost=totals["shipping"],
                    payment_method=payment.get("method") or "card",
                    payment_intent_id=payment.get("intent_id"),
                    payment_details=details,
                    payment_status=payment.get("status") or "pending",
                    discount_code=code,
                    discount_percentage=pct if code else None,
                )
                session.add(row)
                session.flush()
                outbox_service.enqueue(session, outbox_service.KIND_ORDER, order_id, airtable_order_fields(row))
                summary.append(
                    {
                        "id": row.id,
                        "product_name": row.product_name,
                        "quantity": row.quantity,
                        "selected_weight": row.selected_weight,
                        "line_total": share,
                    }
                )

        log_event(
            "info",
            "order.created",
            order_id=order_id,
            lines=len(summary),
            total=as_float(totals["total"]),
            payment_method=payment.get("method"),
        )
        if self._email and customer.get("email"):
            try:
                self._email.send_order_confirmation(customer["email"], order_id, customer, summary, totals)
            except Exception:
                self.logger.exception("Order email failed for %s", order_id)
        return {
            "order_id": order_id,
            "orders": [s["id"] for s in summary],
            "subtotal": as_float(totals["subtotal"]),
            "discount": as_float(totals["discount"]),
            "shipping": as_float(totals["shipping"]),
            "total": as_float(totals["total"]),
        }

    @staticmethod
    def _search(query, search: Optional[str]):
        term = (search or "").strip()
        if not term:
            return query
        like = f"%{term}%"
        columns = (
            Order.order_id, Order.first_name, Order.last_name, Order.email, Order.phone,
            Order.address, Order.city, Order.state, Order.zip, Order.product_name,
        )
        return query.filter(or_(*[c.ilike(like) for c in columns]))

    def list_orders(self, *, limit=50, offset=0, search: Optional[str] = None) -> List[Dict]:
        lim, off = normalize_window(limit, offset)
        with self._session_factory() as session:
            q = self._search(session.query(Order), search)
            rows = q.order_by(Order.created_at.desc(), Order.id.desc()).offset(off).limit(lim).all()
            return [to_order_dto(r) for r in rows]

    def count_orders(self, search: Optional[str] = None) -> int:
        with self._session_factory() as session:
            return self._search(session.query(Order), search).count()

    def get_order(self, order_pk: int) -> Optional[Dict]:
        with self._session_factory() as session:
            row = session.get(Order, int(order_pk))
            return to_order_dto(row) if row else None

    def orders_for(self, order_id: str) -> List[Dict]:
        with self._session_factory() as session:
            rows = session.query(Order).filter(Order.order_id == order_id).order_by(Order.id.asc()).all()
            return [to_order_dto(r) for r in rows]

    def update_status(self, order_pk: int, payment_status: str) -> Optional[Dict]:
        status = (payment_status or "").strip().lower()
        if status not in PAYMENT_STATUSES:
            raise ValueError(f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}")
        with self._session_factory() as session:
            row = session.get(Order, int(order_pk))
            if row is None:
                return None
            row.payment_status = status
            session.flush()
            log_event("info", "order.status_changed", id=row.id, order_id=row.order_id, payment_status=status)
            return to_order_dto(row)
