"""多步驟結帳流程路由。"""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from ._helpers import components, current_session_id


checkout_bp = Blueprint("storefront_checkout", __name__, url_prefix="/api/checkout")


def _payload() -> dict:
    return request.get_json(silent=True) or {}


def _pick(payload: dict, *keys: str):
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None


@checkout_bp.post("/initialize")
def initialize():
    try:
        result = components()["checkout"].initialize(current_session_id())
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(result)


@checkout_bp.post("/personal-info")
def personal_info():
    payload = _payload()
    data = {
        "first_name": _pick(payload, "firstName", "first_name"),
        "last_name": _pick(payload, "lastName", "last_name"),
        "email": _pick(payload, "email"),
        "phone": _pick(payload, "phone"),
    }
    try:
        result = components()["checkout"].submit_personal_info(current_session_id(), data)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(result)


@checkout_bp.post("/shipping-info")
def shipping_info():
    payload = _payload()
    data = {
        "address": _pick(payload, "address"),
        "city": _pick(payload, "city"),
        "state": _pick(payload, "state"),
        "zip": _pick(payload, "zipCode", "zip"),
        "method": _pick(payload, "shippingMethod", "method"),
    }
    try:
        result = components()["checkout"].submit_shipping_info(current_session_id(), data)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(result)


@checkout_bp.post("/payment-method")
def payment_method():
    payload = _payload()
    try:
        result = components()["checkout"].select_payment_method(
            current_session_id(),
            _pick(payload, "paymentMethod", "method") or "",
            discount_code=_pick(payload, "discountCode", "affiliateCode"),
        )
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(result)


@checkout_bp.post("/confirm-payment")
def confirm_payment():
    payload = _payload()
    try:
        result = components()["checkout"].confirm_payment(
            current_session_id(),
            method=_pick(payload, "paymentMethod", "method"),
            transaction_id=_pick(payload, "transactionId"),
            payment_intent_id=_pick(payload, "paymentIntentId"),
        )
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(result)
