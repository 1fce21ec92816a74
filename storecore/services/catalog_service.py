from dataclasses import dataclass, field
from decimal import Decimal
import logging
import re
from typing import Any, Dict, List, Optional

from .airtable_client import AirtableClient, AirtableError
from ..utils.pricing import parse_price


_PRICE_FIELD = re.compile(r"^price(\d+(?:\.\d+)?[a-zA-Z]+)$")


@dataclass
class Category:
    id: int
    name: str
    slug: str
    image_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "slug": self.slug, "imageUrl": self.image_url}


@dataclass
class Product:
    id: int
    name: str
    slug: str
    price: str
    category_id: int = 1
    description: str = ""
    description2: str = ""
    weight_prices: Dict[str, str] = field(default_factory=dict)
    weight_options: List[str] = field(default_factory=lambda: ["5mg"])
    image_url: Optional[str] = None
    image2_url: Optional[str] = None
    image3_url: Optional[str] = None
    in_stock: bool = True
    featured: bool = False
    out_of_stock: bool = False

    def price_for(self, weight: Optional[str]) -> Decimal:
        """Price of one unit at ``weight``; falls back to the base price."""
        if weight:
            for key in (weight, weight.lower()):
                override = parse_price(self.weight_prices.get(key))
                if override is not None:
                    return override
        return parse_price(self.price) or Decimal("0")

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "description2": self.description2,
            "price": self.price,
            "categoryId": self.category_id,
            "imageUrl": self.image_url,
            "image2Url": self.image2_url,
            "image3Url": self.image3_url,
            "weightOptions": list(self.weight_options),
            "inStock": self.in_stock,
            "featured": self.featured,
            "outofstock": self.out_of_stock,
        }
        for weight, price in self.weight_prices.items():
            data[f"price{weight}"] = price
        return data


def _price_text(value: Any) -> Optional[str]:
    price = parse_price(value)
    if price is None:
        return None
    return format(price.normalize(), "f") if price == price.to_integral() else str(price)


def _attachment_url(attachments: Any) -> Optional[str]:
    if not attachments or not isinstance(attachments, list):
        return None
    first = attachments[0]
    if isinstance(first, str):
        return first if first.startswith("http") else None
    if not isinstance(first, dict):
        return None
    url = first.get("url")
    if isinstance(url, str) and url.startswith("http"):
        return url
    thumbs = first.get("thumbnails") or {}
    for size in ("full", "large", "small"):
        thumb_url = (thumbs.get(size) or {}).get("url")
        if thumb_url:
            return thumb_url
    return None


def _record_number(record: Dict[str, Any]) -> int:
    fields = record.get("fields") or {}
    if fields.get("id") is not None:
        try:
            return int(fields["id"])
        except (TypeError, ValueError):
            pass
    raw = str(record.get("id") or "").replace("rec", "")
    try:
        return int(raw, 36)
    except ValueError:
        return 0


def record_to_product(record: Dict[str, Any]) -> Product:
    fields = record.get("fields") or {}
    weight_prices: Dict[str, str] = {}
    for key, value in fields.items():
        match = _PRICE_FIELD.match(key)
        if match:
            text = _price_text(value)
            if text is not None:
                weight_prices[match.group(1)] = text

    base = _price_text(fields.get("price5mg")) or _price_text(fields.get("price")) or "0"
    if "5mg" not in weight_prices and base != "0":
        weight_prices["5mg"] = base

    weights = fields.get("weights")
    if not isinstance(weights, list):
        weights = fields.get("weightOptions")
    if not isinstance(weights, list) or not weights:
        weights = ["5mg"]

    out_of_stock = fields.get("outofstock") is True
    in_stock = False if out_of_stock else bool(fields.get("inStock", True))

    return Product(
        id=_record_number(record),
        name=fields.get("name") or "",
        slug=fields.get("slug") or f"product-{record.get('id')}",
        price=base,
        category_id=int(fields.get("categoryId") or 1),
        description=fields.get("description") or "",
        description2=fields.get("description2") or "",
        weight_prices=weight_prices,
        weight_options=[str(w) for w in weights],
        image_url=_attachment_url(fields.get("image")),
        image2_url=_attachment_url(fields.get("COA")) or _attachment_url(fields.get("image2")),
        image3_url=_attachment_url(fields.get("image3")),
        in_stock=in_stock,
        featured=bool(fields.get("featured", False)),
        out_of_stock=out_of_stock,
    )


def record_to_category(record: Dict[str, Any]) -> Category:
    fields = record.get("fields") or {}
    image = fields.get("image")
    if isinstance(image, list):
        image = _attachment_url(image)
    return Category(
        id=_record_number(record),
        name=fields.get("name") or "",
        slug=fields.get("slug") or f"category-{record.get('id')}",
        image_url=image or None,
    )


def formula_literal(value: str) -> str:
    """Quote a string for use inside an Airtable formula."""
    return "'" + str(value).replace("\\", "\\\\").replace("'", "\\'") + "'"


class CatalogService:
    """Product and category reads backed by Airtable.

    Airtable failures are logged and degrade to empty results so that catalog
    pages keep rendering while the upstream is unavailable.
    """

    def __init__(self, client: AirtableClient, *, products_table: str, categories_table: str) -> None:
        self._client = client
        self._products_table = products_table
        self._categories_table = categories_table
        self.logger = logging.getLogger(__name__)

    def _products(self, params: Optional[Dict[str, Any]] = None) -> List[Product]:
        try:
            records = self._client.list_records(self._products_table, params)
        except AirtableError as exc:
            self.logger.error("Error fetching products from Airtable: %s", exc)
            return []
        return [record_to_product(r) for r in records]

    def list_products(self) -> List[Product]:
        return self._products()

    def list_featured_products(self) -> List[Product]:
        return self._products({"filterByFormula": "{featured}=TRUE()"})

    def list_products_by_category(self, category_id: int) -> List[Product]:
        return self._products({"filterByFormula": f"{{categoryId}}={int(category_id)}"})

    def get_product_by_id(self, product_id: int) -> Optional[Product]:
        products = self._products({"filterByFormula": f"{{id}}={int(product_id)}"})
        if products:
            return products[0]
        # records without a numeric id field are only reachable through the full listing
        return next((p for p in self.list_products() if p.id == int(product_id)), None)

    def get_product_by_slug(self, slug: str) -> Optional[Product]:
        products = self._products({"filterByFormula": f"{{slug}}={formula_literal(slug)}"})
        return products[0] if products else None

    def list_categories(self) -> List[Category]:
        try:
            records = self._client.list_records(self._categories_table)
        except AirtableError as exc:
            self.logger.error("Error fetching categories from Airtable: %s", exc)
            return []
        return [record_to_category(r) for r in records]

    def get_category_by_slug(self, slug: str) -> Optional[Category]:
        return next((c for c in self.list_categories() if c.slug == slug), None)

    def get_category_by_id(self, category_id: int) -> Optional[Category]:
        return next((c for c in self.list_categories() if c.id == int(category_id)), None)

    def invalidate_cache(self) -> None:
        self._client.invalidate()
