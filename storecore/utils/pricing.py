from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence

CENT = Decimal("0.01")

FLAT_RATE_SMALL = Decimal("9.99")
FLAT_RATE_LARGE = Decimal("25.00")
FLAT_RATE_MAX_SMALL_ITEMS = 5


def to_money(value) -> Decimal:
    """Coerce a number or numeric string to a Decimal rounded to cents."""
    if value is None or value == "":
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_price(value) -> Optional[Decimal]:
    """Return a positive price or None for blank, zero or non-numeric values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        price = Decimal(str(value).strip().lstrip("$"))
    except ArithmeticError:
        return None
    if not price.is_finite() or price <= 0:
        return None
    return price


def shipping_for(item_count: int) -> Decimal:
    """Flat rate: 9.99 for 1-5 items, 25.00 above."""
    return FLAT_RATE_SMALL if item_count <= FLAT_RATE_MAX_SMALL_ITEMS else FLAT_RATE_LARGE


def compute_totals(subtotal, discount_percentage=0, shipping=0) -> Dict[str, Decimal]:
    sub = to_money(subtotal)
    pct = Decimal(str(discount_percentage or 0))
    discount = to_money(sub * pct / Decimal(100))
    ship = to_money(shipping)
    return {
        "subtotal": sub,
        "discount": discount,
        "shipping": ship,
        "total": sub - discount + ship,
    }


def allocate_discount(line_amounts: Sequence[Decimal], discount_percentage=0) -> List[Decimal]:
    """Split the discounted subtotal across lines.

    Every line gets its share rounded to cents; the last line takes the
    remainder so the result always sums to the aggregate discounted subtotal.
    """
    amounts = [to_money(a) for a in line_amounts]
    if not amounts:
        return []
    totals = compute_totals(sum(amounts, Decimal("0")), discount_percentage)
    target = totals["subtotal"] - totals["discount"]
    factor = (Decimal(100) - Decimal(str(discount_percentage or 0))) / Decimal(100)
    shares = [to_money(a * factor) for a in amounts[:-1]]
    shares.append(target - sum(shares, Decimal("0")))
    return shares


def as_float(value: Decimal) -> float:
    return float(to_money(value))
