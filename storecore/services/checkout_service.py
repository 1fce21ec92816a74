"""
Multi-step checkout.

Each browser session owns one checkout row that moves through
``CheckoutStatus``. Every step writes a full snapshot of the checkout into the
mirror outbox in the same transaction; the sync worker delivers it to Airtable
later, so a slow or failing Airtable never blocks the customer.
"""
from datetime import datetime, timedelta
from decimal import Decimal
import json
import secrets
import string
import threading
import time
from typing import Any, Callable, Dict, Optional

from ..db.session import get_session
from ..models.checkout_record import CheckoutRecord
from ..utils.pricing import as_float, compute_totals, shipping_for, to_money
from ..utils.validators import optional_str, require_fields, validate_email
from . import outbox_service
from .affiliate_service import AffiliateService
from .cart_service import CartStore
from .checkout_state import TERMINAL, CheckoutStatus, IllegalTransition, transition
from .customer_service import CustomerService
from .logging import log_event
from .order_service import OrderService
from .payment_service import StripePaymentService


PAYMENT_METHODS = ("card", "bank", "crypto")
SHIPPING_CARRIER = "USPS"
SHIPPING_ESTIMATE = "1-2 business days"
_BASE36 = string.digits + string.ascii_lowercase


def new_checkout_id(now: Optional[float] = None) -> str:
    ms = int((now if now is not None else time.time()) * 1000)
    return f"CHK-{ms}-{secrets.token_hex(3).upper()}"


def temp_checkout_id(now: Optional[float] = None) -> str:
    ms = int((now if now is not None else time.time()) * 1000)
    return f"TEMP-{ms}-{''.join(secrets.choice(_BASE36) for _ in range(6))}"


def is_temporary(checkout_id: str) -> bool:
    return checkout_id.startswith("TEMP-")


class CheckoutService:
    def __init__(
        self,
        cart: CartStore,
        orders: OrderService,
        payments: StripePaymentService,
        affiliates: AffiliateService,
        *,
        bank_info: Optional[Dict[str, str]] = None,
        crypto_info: Optional[Dict[str, str]] = None,
        currency: str = "usd",
        session_factory=get_session,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cart = cart
        self._orders = orders
        self._payments = payments
        self._affiliates = affiliates
        self._bank_info = dict(bank_info or {})
        self._crypto_info = dict(crypto_info or {})
        self._currency = currency.lower()
        self._session_factory = session_factory
        self._clock = clock
        self._lock = threading.RLock()

    # -- helpers ---------------------------------------------------------

    @staticmethod
    def _load(session, session_id: str) -> Optional[CheckoutRecord]:
        return (
            session.query(CheckoutRecord)
            .filter(CheckoutRecord.session_id == session_id)
            .order_by(CheckoutRecord.id.desc())
            .first()
        )

    def _ensure(self, session, session_id: str, cart: Dict) -> CheckoutRecord:
        """Current checkout of ``session_id``; a missing or finished one is replaced."""
        rec = self._load(session, session_id)
        if rec is not None and CheckoutStatus(rec.status) not in TERMINAL:
            return rec
        now = self._clock()
        rec = CheckoutRecord(
            checkout_id=new_checkout_id(now) if cart["item_count"] else temp_checkout_id(now),
            session_id=session_id,
            status=CheckoutStatus.STARTED.value,
            mirrored=False,
        )
        session.add(rec)
        session.flush()
        log_event("info", "checkout.started", checkout_id=rec.checkout_id, session_id=session_id)
        return rec

    def _require(self, session, session_id: str) -> CheckoutRecord:
        if not session_id:
            raise ValueError("session id required")
        rec = self._load(session, session_id)
        if rec is None:
            raise ValueError("No checkout in progress")
        return rec

    @staticmethod
    def _move(rec: CheckoutRecord, target: CheckoutStatus) -> None:
        previous = rec.status
        rec.status = transition(previous, target).value
        rec.updated_at = datetime.utcnow()
        log_event("info", "checkout.transition", checkout_id=rec.checkout_id, src=previous, dst=rec.status)

    def _totals(self, rec: CheckoutRecord, cart: Dict) -> Dict[str, Decimal]:
        shipping = shipping_for(cart["item_count"]) if rec.shipping and cart["item_count"] else 0
        return compute_totals(cart["subtotal"], rec.discount_percentage or 0, shipping)

    def _mirror_fields(self, rec: CheckoutRecord, cart: Dict) -> Dict[str, Any]:
        personal = rec.personal or {}
        shipping = rec.shipping or {}
        created = rec.created_at or datetime.utcnow()
        return {
            "checkoutid": rec.checkout_id,
            "session id": rec.session_id,
            "status": rec.status,
            "createdat": created.isoformat(),
            "updatedat": datetime.utcnow().isoformat(),
            "firstname": personal.get("first_name", ""),
            "lastname": personal.get("last_name", ""),
            "email": personal.get("email", ""),
            "phone": personal.get("phone", ""),
            "address": shipping.get("address", ""),
            "city": shipping.get("city", ""),
            "state": shipping.get("state", ""),
            "zip": shipping.get("zip", ""),
            "shippingmethod": shipping.get("method", ""),
            "shippingdetails": json.dumps(shipping, default=str),
            "paymentdetails": json.dumps(rec.payment or {}, default=str),
            "total": as_float(self._totals(rec, cart)["total"]),
            "cartitems": json.dumps(
                [
                    {
                        "productId": it["product_id"],
                        "name": it["product"].name if it["product"] else None,
                        "quantity": it["quantity"],
                        "selectedWeight": it["selected_weight"],
                        "price": as_float(it["unit_price"]),
                    }
                    for it in cart["items"]
                ]
            ),
            "affiliatecode": rec.discount_code or "",
        }

    def _mirror(self, session, rec: CheckoutRecord, cart: Dict) -> None:
        if is_temporary(rec.checkout_id):
            if not cart["item_count"]:
                return
            old = rec.checkout_id
            rec.checkout_id = new_checkout_id(self._clock())
            log_event("info", "checkout.promoted", temporary_id=old, checkout_id=rec.checkout_id)
        rec.mirrored = True
        session.flush()
        outbox_service.enqueue(session, outbox_service.KIND_CHECKOUT, rec.checkout_id, self._mirror_fields(rec, cart))
        log_event("debug", "checkout.mirror_enqueued", checkout_id=rec.checkout_id, status=rec.status)

    def _view(self, rec: CheckoutRecord, cart: Dict) -> Dict[str, Any]:
        totals = self._totals(rec, cart)
        return {
            "checkoutId": rec.checkout_id,
            "status": rec.status,
            "personalInfo": rec.personal,
            "shippingInfo": rec.shipping,
            "paymentMethod": rec.payment_method,
            "discount": {
                "code": rec.discount_code,
                "percentage": float(rec.discount_percentage) if rec.discount_percentage is not None else 0,
            },
            "orderId": rec.order_id,
            "itemCount": cart["item_count"],
            "totals": {k: as_float(v) for k, v in totals.items()},
        }

    # -- steps -----------------------------------------------------------

    def initialize(self, session_id: str) -> Dict[str, Any]:
        if not session_id:
            raise ValueError("session id required")
        cart = self._cart.get(session_id)
        with self._lock, self._session_factory() as session:
            rec = self._ensure(session, session_id, cart)
            if not rec.mirrored:
                self._mirror(session, rec, cart)
            return self._view(rec, cart)

    def current(self, session_id: str) -> Optional[Dict[str, Any]]:
        cart = self._cart.get(session_id)
        with self._session_factory() as session:
            rec = self._load(session, session_id)
            return self._view(rec, cart) if rec else None

    def submit_personal_info(self, session_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        names = require_fields(data, ("first_name", "last_name"))
        personal = {
            **names,
            "email": validate_email(optional_str(data, "email")),
            "phone": optional_str(data, "phone"),
        }
        cart = self._cart.get(session_id)
        with self._lock, self._session_factory() as session:
            if not session_id:
                raise ValueError("session id required")
            rec = self._ensure(session, session_id, cart)
            self._move(rec, CheckoutStatus.PERSONAL_INFO)
            rec.personal = personal
            CustomerService.upsert(session, session_id, **personal)
            self._mirror(session, rec, cart)
            return self._view(rec, cart)

    def submit_shipping_info(self, session_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        cart = self._cart.get(session_id)
        with self._lock, self._session_factory() as session:
            rec = self._load(session, session_id) if session_id else None
            if rec is None or not rec.personal:
                raise ValueError("Personal information must be submitted first")
            fields = require_fields(data, ("address", "city", "state", "zip", "method"))
            self._move(rec, CheckoutStatus.SHIPPING_INFO)
            price = shipping_for(cart["item_count"])
            rec.shipping = {
                **fields,
                "price": as_float(price),
                "carrier": SHIPPING_CARRIER,
                "estimatedDelivery": SHIPPING_ESTIMATE,
            }
            CustomerService.upsert(
                session,
                session_id,
                first_name=rec.personal["first_name"],
                last_name=rec.personal["last_name"],
                address=fields["address"],
                city=fields["city"],
                state=fields["state"],
                zip=fields["zip"],
                shipping=fields["method"],
            )
            self._mirror(session, rec, cart)
            return self._view(rec, cart)

    def apply_discount(self, session_id: str, code: str, *, keep_existing: bool = False) -> Dict[str, Any]:
        """Validate ``code`` and store it on the checkout.

        The stored percentage is replaced, never added to, so applying the
        same code twice is a no-op. With ``keep_existing`` a code that is
        already stored wins.
        """
        result = self._affiliates.validate(code)
        if not result["valid"] or not session_id:
            return {**result, "applied": False}
        cart = self._cart.get(session_id)
        with self._lock, self._session_factory() as session:
            rec = self._ensure(session, session_id, cart)
            if keep_existing and rec.discount_code:
                return {**result, "applied": rec.discount_code == result["code"]}
            rec.discount_code = result["code"]
            rec.discount_percentage = Decimal(str(result["discount"]))
            rec.updated_at = datetime.utcnow()
            self._mirror(session, rec, cart)
        return {**result, "applied": True}

    def select_payment_method(
        self, session_id: str, method: str, discount_code: Optional[str] = None
    ) -> Dict[str, Any]:
        method = (method or "").strip().lower()
        if method not in PAYMENT_METHODS:
            raise ValueError(f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}")
        if discount_code:
            applied = self.apply_discount(session_id, discount_code)
            if not applied["valid"]:
                raise ValueError("Invalid discount code")

        cart = self._cart.get(session_id)
        if not cart["item_count"]:
            raise ValueError("Cart is empty")
        with self._lock, self._session_factory() as session:
            rec = self._load(session, session_id) if session_id else None
            if rec is None or not rec.personal or not rec.shipping:
                raise ValueError("Personal and shipping information must be submitted first")
            self._move(rec, CheckoutStatus.PAYMENT_SELECTION)
            rec.shipping = {**rec.shipping, "price": as_float(shipping_for(cart["item_count"]))}
            totals = self._totals(rec, cart)
            rec.payment_method = method
            rec.payment = {"method": method, **{k: as_float(v) for k, v in totals.items()}}
            checkout_id = rec.checkout_id
            email = rec.personal.get("email")
            session.flush()

        response: Dict[str, Any] = {"method": method, "totals": {k: as_float(v) for k, v in totals.items()}}
        if method == "card":
            intent = self._payments.create_intent(
                totals["total"],
                currency=self._currency,
                email=email,
                metadata={"checkout_id": checkout_id, "session_id": session_id},
            )
            response.update({"clientSecret": intent["client_secret"], "paymentIntentId": intent["id"]})
        elif method == "bank":
            response["bankInfo"] = dict(self._bank_info)
        else:
            response["cryptoInfo"] = dict(self._crypto_info)

        with self._lock, self._session_factory() as session:
            rec = self._require(session, session_id)
            rec.payment_intent_id = response.get("paymentIntentId")
            if rec.payment_intent_id:
                rec.payment = {**(rec.payment or {}), "intentId": rec.payment_intent_id}
            self._mirror(session, rec, cart)
            response["checkout"] = self._view(rec, cart)
        return response

    # -- confirmation ----------------------------------------------------

    def _begin_processing(self, session_id: str, method: Optional[str]) -> Dict[str, Any]:
        with self._lock, self._session_factory() as session:
            rec = self._require(session, session_id)
            transition(rec.status, CheckoutStatus.PAYMENT_PROCESSING)
            cart = self._cart.get(session_id)
            if not cart["item_count"]:
                raise ValueError("Cart is empty")
            if method and rec.payment_method and method != rec.payment_method:
                raise ValueError(f"Checkout was set up for {rec.payment_method} payment")
            self._move(rec, CheckoutStatus.PAYMENT_PROCESSING)
            self._mirror(session, rec, cart)
            return {
                "checkout_id": rec.checkout_id,
                "method": rec.payment_method,
                "intent_id": rec.payment_intent_id,
                "personal": dict(rec.personal or {}),
                "shipping": dict(rec.shipping or {}),
                "discount": {"code": rec.discount_code, "percentage": rec.discount_percentage or 0},
                "cart": cart,
                "total": self._totals(rec, cart)["total"],
            }

    def _rollback_processing(self, session_id: str) -> None:
        with self._lock, self._session_factory() as session:
            rec = self._require(session, session_id)
            if rec.status == CheckoutStatus.PAYMENT_PROCESSING.value:
                self._move(rec, CheckoutStatus.PAYMENT_SELECTION)
                self._mirror(session, rec, self._cart.get(session_id))

    @staticmethod
    def _check_amount(state: Dict[str, Any], paid) -> None:
        """The intent must cover exactly the cart being turned into orders."""
        if to_money(paid) != to_money(state["total"]):
            log_event(
                "warning",
                "payment.amount_mismatch",
                checkout_id=state["checkout_id"],
                paid=as_float(to_money(paid)),
                total=as_float(state["total"]),
            )
            raise ValueError("Cart changed after payment was set up; select the payment method again")

    def _complete(self, session_id: str, state: Dict[str, Any], payment: Dict[str, Any]) -> Dict[str, Any]:
        customer = {**state["personal"], **{k: state["shipping"].get(k, "") for k in ("address", "city", "state", "zip")}}
        try:
            result = self._orders.create_orders(
                session_id=session_id,
                lines=state["cart"]["items"],
                customer=customer,
                shipping={
                    "method": state["shipping"].get("method", ""),
                    "price": shipping_for(state["cart"]["item_count"]),
                },
                payment=payment,
                discount=state["discount"],
            )
        except Exception:
            self._rollback_processing(session_id)
            raise
        self._cart.clear(session_id)
        with self._lock, self._session_factory() as session:
            rec = self._require(session, session_id)
            self._move(rec, CheckoutStatus.COMPLETED)
            rec.order_id = result["order_id"]
            rec.payment = {**(rec.payment or {}), "status": payment.get("status"), "orderId": result["order_id"]}
            self._mirror(session, rec, state["cart"])
        return {"success": True, **result}

    def confirm_payment(
        self,
        session_id: str,
        *,
        method: Optional[str] = None,
        transaction_id: Optional[str] = None,
        payment_intent_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Turn the cart into orders once payment is confirmed.

        Card payments are checked with Stripe and must have succeeded. Bank
        and crypto payments are recorded as ``pending`` until staff verify
        the transfer and flip the order status.
        """
        method = (method or "").strip().lower() or None
        state = self._begin_processing(session_id, method)
        if state["method"] == "card":
            intent_id = payment_intent_id or state["intent_id"]
            try:
                if not intent_id:
                    raise ValueError("payment intent id required")
                intent = self._payments.retrieve_intent(intent_id)
                if intent["status"] != "succeeded":
                    raise ValueError(f"Payment has not succeeded (status: {intent['status']})")
                owner = intent["metadata"].get("checkout_id")
                if owner and owner != state["checkout_id"]:
                    raise ValueError("Payment intent does not belong to this checkout")
                self._check_amount(state, intent["amount"])
            except Exception:
                self._rollback_processing(session_id)
                raise
            payment = {
                "method": "card",
                "intent_id": intent_id,
                "status": "paid",
                "details": {"paymentIntentId": intent_id, "amount": str(intent["amount"])},
            }
        else:
            payment = {
                "method": state["method"],
                "intent_id": None,
                "status": "pending",
                "details": {"transactionId": transaction_id or "", "verification": "manual"},
            }
        return self._complete(session_id, state, payment)

    def handle_payment_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """Apply a verified Stripe webhook event. Replays are acknowledged without side effects."""
        intent_id = event.get("id")
        if event.get("type") != "payment_intent.succeeded" or not intent_id:
            if event.get("type") == "payment_intent.payment_failed":
                log_event("warning", "payment.failed", payment_intent_id=intent_id)
            return {"received": True, "handled": False}

        with self._session_factory() as session:
            rec = (
                session.query(CheckoutRecord)
                .filter(CheckoutRecord.payment_intent_id == intent_id)
                .order_by(CheckoutRecord.id.desc())
                .first()
            )
            session_id = rec.session_id if rec else None
            status = rec.status if rec else None
        if session_id is None:
            log_event("warning", "payment.unmatched", payment_intent_id=intent_id)
            return {"received": True, "handled": False}
        if status != CheckoutStatus.PAYMENT_SELECTION.value:
            return {"received": True, "handled": False, "status": status}

        try:
            state = self._begin_processing(session_id, "card")
        except IllegalTransition:
            # a concurrent client confirmation got there first
            return {"received": True, "handled": False}
        try:
            paid = event.get("amount")
            if paid is None:
                paid = self._payments.retrieve_intent(intent_id)["amount"]
            self._check_amount(state, paid)
        except ValueError as exc:
            self._rollback_processing(session_id)
            return {"received": True, "handled": False, "error": str(exc)}
        except Exception:
            self._rollback_processing(session_id)
            raise
        result = self._complete(
            session_id,
            state,
            {
                "method": "card",
                "intent_id": intent_id,
                "status": "paid",
                "details": {"paymentIntentId": intent_id, "amount": str(to_money(paid)), "source": "webhook"},
            },
        )
        return {"received": True, "handled": True, "orderId": result["order_id"]}

    def abandon_stale(self, max_age_seconds: int) -> int:
        cutoff = datetime.utcnow() - timedelta(seconds=max_age_seconds)
        active = [s.value for s in CheckoutStatus if s not in TERMINAL]
        count = 0
        with self._lock, self._session_factory() as session:
            rows = (
                session.query(CheckoutRecord)
                .filter(CheckoutRecord.status.in_(active), CheckoutRecord.updated_at < cutoff)
                .all()
            )
            for rec in rows:
                self._move(rec, CheckoutStatus.ABANDONED)
                self._mirror(session, rec, self._cart.get(rec.session_id))
                count += 1
        if count:
            log_event("info", "checkout.abandoned", count=count)
        return count
