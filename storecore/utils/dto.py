import json
from typing import Any, Dict

from .pricing import as_float


def to_order_dto(row: Any) -> Dict:
    details = getattr(row, "payment_details", None)
    try:
        details = json.loads(details) if details else None
    except ValueError:
        details = {"raw": details}
    created = getattr(row, "created_at", None)
    pct = getattr(row, "discount_percentage", None)
    return {
        "id": row.id,
        "orderId": row.order_id,
        "firstName": row.first_name,
        "lastName": row.last_name,
        "email": row.email or "",
        "phone": row.phone or "",
        "address": row.address,
        "city": row.city,
        "state": row.state,
        "zip": row.zip,
        "productId": row.product_id,
        "productName": row.product_name,
        "quantity": row.quantity,
        "selectedWeight": row.selected_weight,
        "unitPrice": as_float(row.unit_price),
        "salesPrice": as_float(row.sales_price),
        "lineTotal": as_float(row.line_total),
        "shipping": row.shipping,
        "shippingCost": as_float(row.shipping_cost or 0),
        "paymentMethod": row.payment_method,
        "paymentIntentId": row.payment_intent_id,
        "paymentDetails": details,
        "paymentStatus": row.payment_status,
        "discountCode": row.discount_code,
        "discountPercentage": float(pct) if pct is not None else None,
        "createdAt": created.isoformat() if created else None,
    }


def to_cart_dto(cart: Dict) -> Dict:
    return {
        "items": [
            {
                "id": line["id"],
                "productId": line["product_id"],
                "quantity": line["quantity"],
                "selectedWeight": line["selected_weight"],
                "unitPrice": as_float(line["unit_price"]),
                "product": line["product"].to_dict() if line["product"] else None,
            }
            for line in cart["items"]
        ],
        "itemCount": cart["item_count"],
        "subtotal": as_float(cart["subtotal"]),
    }
