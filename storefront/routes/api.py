"""商品、購物車、折扣碼、運送與訂單 API 路由。"""

from __future__ import annotations

from decimal import Decimal

from flask import Blueprint, jsonify, request

from storecore.services.address_service import AddressValidationError
from storecore.services.cart_service import CartItemNotFound
from storecore.services.checkout_state import IllegalTransition
from storecore.utils.dto import to_cart_dto
from storecore.utils.pricing import as_float, compute_totals, shipping_for

from ._helpers import components, current_session_id, is_admin


api_bp = Blueprint("storefront_api", __name__, url_prefix="/api")


def _payload() -> dict:
    return request.get_json(silent=True) or {}


# -- 商品目錄 --------------------------------------------------------------

@api_bp.get("/products")
def list_products():
    catalog = components()["catalog"]
    return jsonify([p.to_dict() for p in catalog.list_products()])


@api_bp.get("/products/featured")
def list_featured_products():
    catalog = components()["catalog"]
    return jsonify([p.to_dict() for p in catalog.list_featured_products()])


@api_bp.get("/products/category/<category_id>")
def list_products_by_category(category_id: str):
    try:
        cid = int(category_id)
    except ValueError:
        return jsonify({"error": "Invalid category ID"}), 400
    catalog = components()["catalog"]
    return jsonify([p.to_dict() for p in catalog.list_products_by_category(cid)])


@api_bp.get("/products/<slug>")
def get_product(slug: str):
    product = components()["catalog"].get_product_by_slug(slug)
    if product is None:
        return jsonify({"error": "Product not found"}), 404
    return jsonify(product.to_dict())


@api_bp.get("/categories")
def list_categories():
    return jsonify([c.to_dict() for c in components()["catalog"].list_categories()])


@api_bp.get("/categories/<slug>")
def get_category(slug: str):
    category = components()["catalog"].get_category_by_slug(slug)
    if category is None:
        return jsonify({"error": "Category not found"}), 404
    return jsonify(category.to_dict())


# -- 購物車 ----------------------------------------------------------------

def _cart_view(sid: str) -> dict:
    return to_cart_dto(components()["cart"].get(sid))


@api_bp.get("/cart")
def get_cart():
    return jsonify(_cart_view(current_session_id()))


@api_bp.post("/cart")
def add_to_cart():
    payload = _payload()
    try:
        product_id = int(payload.get("productId"))
    except (TypeError, ValueError):
        return jsonify({"error": "productId is required"}), 400

    if components()["catalog"].get_product_by_id(product_id) is None:
        return jsonify({"error": "Product not found"}), 404

    sid = current_session_id()
    try:
        line = components()["cart"].add(
            sid,
            product_id,
            payload.get("quantity", 1),
            selected_weight=payload.get("selectedWeight") or None,
        )
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify({"item": {"id": line.id, "quantity": line.quantity}, "cart": _cart_view(sid)}), 201


@api_bp.put("/cart/<int:item_id>")
def update_cart_item(item_id: int):
    sid = current_session_id()
    try:
        components()["cart"].update(sid, item_id, _payload().get("quantity"))
    except CartItemNotFound as exc:
        return jsonify({"error": str(exc)}), 404
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify({"cart": _cart_view(sid)})


@api_bp.delete("/cart/<int:item_id>")
def remove_cart_item(item_id: int):
    sid = current_session_id()
    try:
        components()["cart"].remove(sid, item_id)
    except CartItemNotFound as exc:
        return jsonify({"error": str(exc)}), 404
    return jsonify({"cart": _cart_view(sid)})


@api_bp.delete("/cart")
def clear_cart():
    sid = current_session_id()
    components()["cart"].clear(sid)
    return jsonify({"cart": _cart_view(sid)})


# -- 折扣碼 ----------------------------------------------------------------

@api_bp.post("/affiliate-code/validate")
def validate_affiliate_code():
    code = str(_payload().get("code") or "").strip()
    if not code:
        return jsonify({"error": "code is required"}), 400
    result = components()["checkout"].apply_discount(current_session_id(), code)
    return jsonify(result)


@api_bp.get("/affiliate/validate/<code>")
def validate_affiliate_link(code: str):
    # 聯盟連結不覆蓋顧客已輸入的折扣碼
    result = components()["checkout"].apply_discount(current_session_id(), code, keep_existing=True)
    return jsonify(result)


# -- 運送與金額 ------------------------------------------------------------

@api_bp.post("/validate-address")
def validate_address():
    payload = _payload()
    address = {
        "streetLine1": str(payload.get("streetLine1") or payload.get("address") or "").strip(),
        "streetLine2": str(payload.get("streetLine2") or "").strip(),
        "city": str(payload.get("city") or "").strip(),
        "state": str(payload.get("state") or "").strip(),
        "zipCode": str(payload.get("zipCode") or payload.get("zip") or "").strip(),
        "country": str(payload.get("country") or "US").strip(),
    }
    try:
        result = components()["address"].validate(address)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    except AddressValidationError as exc:
        return jsonify({"error": str(exc)}), 502
    return jsonify(result)


@api_bp.post("/shipping-rates")
def shipping_rates():
    cart = components()["cart"].get(current_session_id())
    if not cart["item_count"]:
        return jsonify({"error": "Cart is empty"}), 400
    price = shipping_for(cart["item_count"])
    return jsonify(
        {
            "rates": [
                {
                    "carrier": "USPS",
                    "service": "Flat Rate",
                    "price": as_float(price),
                    "estimatedDelivery": "1-2 business days",
                }
            ]
        }
    )


@api_bp.post("/calculate-cart-total")
def calculate_cart_total():
    sid = current_session_id()
    comps = components()
    cart = comps["cart"].get(sid)
    code = str(_payload().get("discountCode") or "").strip()
    pct = Decimal("0")
    if code:
        result = comps["affiliates"].validate(code)
        if not result["valid"]:
            return jsonify({"error": "Invalid discount code"}), 400
        pct = Decimal(str(result["discount"]))
    else:
        current = comps["checkout"].current(sid)
        if current and current["discount"]["code"]:
            pct = Decimal(str(current["discount"]["percentage"]))
    shipping = shipping_for(cart["item_count"]) if cart["item_count"] else 0
    totals = compute_totals(cart["subtotal"], pct, shipping)
    return jsonify({**{k: as_float(v) for k, v in totals.items()}, "discountPercentage": float(pct)})


# -- 付款 ------------------------------------------------------------------

@api_bp.post("/create-payment-intent")
def create_payment_intent():
    payload = _payload()
    try:
        result = components()["checkout"].select_payment_method(
            current_session_id(), "card", discount_code=payload.get("discountCode") or None
        )
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(
        {
            "clientSecret": result["clientSecret"],
            "paymentIntentId": result["paymentIntentId"],
            "totals": result["totals"],
        }
    )


@api_bp.post("/confirm-payment")
def confirm_payment():
    payload = _payload()
    try:
        result = components()["checkout"].confirm_payment(
            current_session_id(),
            method=payload.get("paymentMethod"),
            transaction_id=payload.get("transactionId"),
            payment_intent_id=payload.get("paymentIntentId"),
        )
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(result)


@api_bp.post("/webhook")
def stripe_webhook():
    comps = components()
    try:
        event = comps["payments"].parse_webhook(request.get_data(), request.headers.get("Stripe-Signature"))
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    try:
        result = comps["checkout"].handle_payment_event(event)
    except IllegalTransition:
        result = {"received": True, "handled": False}
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(result)


# -- 訂單（管理端） --------------------------------------------------------

_ORDER_ENDPOINTS = {
    "storefront_api.list_orders",
    "storefront_api.count_orders",
    "storefront_api.get_order",
    "storefront_api.update_order_status",
}


@api_bp.before_request
def guard_orders():
    if request.endpoint in _ORDER_ENDPOINTS:
        if not is_admin():
            return jsonify({"error": "Unauthorized"}), 401
    return None


@api_bp.get("/orders")
def list_orders():
    args = request.args
    try:
        orders = components()["orders"].list_orders(
            limit=args.get("limit"), offset=args.get("offset"), search=args.get("search")
        )
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(orders)


@api_bp.get("/orders/count")
def count_orders():
    return jsonify({"count": components()["orders"].count_orders(request.args.get("search"))})


@api_bp.get("/orders/<int:order_pk>")
def get_order(order_pk: int):
    order = components()["orders"].get_order(order_pk)
    if order is None:
        return jsonify({"error": "Order not found"}), 404
    return jsonify(order)


@api_bp.patch("/orders/<int:order_pk>")
def update_order_status(order_pk: int):
    try:
        order = components()["orders"].update_status(order_pk, _payload().get("paymentStatus"))
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    if order is None:
        return jsonify({"error": "Order not found"}), 404
    return jsonify(order)
