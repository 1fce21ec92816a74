from dataclasses import dataclass, field
from decimal import Decimal
import itertools
import threading
import time
from typing import Callable, Dict, List, Optional

from .catalog_service import CatalogService
from .logging import log_event


class CartItemNotFound(LookupError):
    pass


@dataclass
class CartLine:
    id: int
    product_id: int
    quantity: int
    selected_weight: Optional[str] = None


@dataclass
class _Cart:
    lines: List[CartLine] = field(default_factory=list)
    touched_at: float = 0.0


class CartStore:
    """In-memory carts keyed by session id.

    Carts untouched for longer than ``ttl_seconds`` are evicted on the next
    mutation. Item ids are unique across all sessions.
    """

    def __init__(
        self,
        catalog: CatalogService,
        *,
        ttl_seconds: int = 7 * 24 * 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._catalog = catalog
        self._ttl = ttl_seconds
        self._clock = clock
        self._carts: Dict[str, _Cart] = {}
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    @staticmethod
    def _require_session(session_id: Optional[str]) -> str:
        if not session_id:
            raise ValueError("session id required")
        return session_id

    @staticmethod
    def _quantity(quantity) -> int:
        try:
            q = int(quantity)
        except (TypeError, ValueError):
            raise ValueError("quantity must be an integer")
        if q < 1:
            raise ValueError("quantity must be >= 1")
        return q

    def _touch(self, session_id: str) -> _Cart:
        cart = self._carts.setdefault(session_id, _Cart())
        cart.touched_at = self._clock()
        return cart

    def evict_expired(self) -> int:
        cutoff = self._clock() - self._ttl
        with self._lock:
            stale = [sid for sid, cart in self._carts.items() if cart.touched_at < cutoff]
            for sid in stale:
                del self._carts[sid]
        if stale:
            log_event("info", "cart.evicted", count=len(stale))
        return len(stale)

    def lines(self, session_id: str) -> List[CartLine]:
        with self._lock:
            cart = self._carts.get(session_id)
            return [CartLine(**vars(line)) for line in cart.lines] if cart else []

    def get(self, session_id: str) -> Dict:
        """Lines joined with catalog data, plus item count and subtotal."""
        items = []
        subtotal = Decimal("0")
        for line in self.lines(session_id):
            product = self._catalog.get_product_by_id(line.product_id)
            unit_price = product.price_for(line.selected_weight) if product else Decimal("0")
            if product:
                subtotal += unit_price * line.quantity
            items.append(
                {
                    "id": line.id,
                    "product_id": line.product_id,
                    "quantity": line.quantity,
                    "selected_weight": line.selected_weight,
                    "unit_price": unit_price,
                    "product": product,
                }
            )
        return {
            "items": items,
            "item_count": sum(it["quantity"] for it in items),
            "subtotal": subtotal,
        }

    def add(self, session_id: str, product_id: int, quantity=1, selected_weight: Optional[str] = None) -> CartLine:
        sid = self._require_session(session_id)
        qty = self._quantity(quantity)
        weight = selected_weight or None
        self.evict_expired()
        with self._lock:
            cart = self._touch(sid)
            for line in cart.lines:
                if line.product_id == int(product_id) and line.selected_weight == weight:
                    line.quantity += qty
                    return CartLine(**vars(line))
            line = CartLine(id=next(self._ids), product_id=int(product_id), quantity=qty, selected_weight=weight)
            cart.lines.append(line)
            return CartLine(**vars(line))

    def update(self, session_id: str, item_id: int, quantity) -> CartLine:
        sid = self._require_session(session_id)
        qty = self._quantity(quantity)
        self.evict_expired()
        with self._lock:
            cart = self._carts.get(sid)
            line = next((ln for ln in cart.lines if ln.id == int(item_id)), None) if cart else None
            if line is None:
                raise CartItemNotFound("Cart item not found")
            line.quantity = qty
            self._touch(sid)
            return CartLine(**vars(line))

    def remove(self, session_id: str, item_id: int) -> None:
        sid = self._require_session(session_id)
        self.evict_expired()
        with self._lock:
            cart = self._carts.get(sid)
            if not cart or not any(ln.id == int(item_id) for ln in cart.lines):
                raise CartItemNotFound("Cart item not found")
            cart.lines = [ln for ln in cart.lines if ln.id != int(item_id)]
            self._touch(sid)

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._carts.pop(session_id, None)
