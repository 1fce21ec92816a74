"""組裝 storecore 服務，供 app.extensions 使用。"""

from __future__ import annotations

from typing import Any, Dict

from storecore.config import AppConfig
from storecore.services.address_service import FedExAddressService
from storecore.services.affiliate_service import AffiliateService
from storecore.services.airtable_client import AirtableClient
from storecore.services.cart_service import CartStore
from storecore.services.catalog_service import CatalogService
from storecore.services.checkout_service import CheckoutService
from storecore.services.email_service import EmailService
from storecore.services.order_service import OrderService
from storecore.services.outbox_service import OutboxService
from storecore.services.payment_service import StripePaymentService

from .mirror_worker import MirrorWorker


def build_components(cfg: AppConfig, **overrides: Any) -> Dict[str, Any]:
    """依設定建立所有服務；overrides 可替換任一元件（測試時注入假物件）。"""

    def pick(name, factory):
        return overrides[name] if name in overrides else factory()

    airtable = pick(
        "airtable",
        lambda: AirtableClient(
            cfg.airtable_api_key,
            cfg.airtable_base_id,
            request_delay=cfg.catalog_request_delay,
            cache_ttl=cfg.catalog_cache_ttl,
        ),
    )
    catalog = pick(
        "catalog",
        lambda: CatalogService(
            airtable,
            products_table=cfg.airtable_products_table,
            categories_table=cfg.airtable_categories_table,
        ),
    )
    cart = pick("cart", lambda: CartStore(catalog, ttl_seconds=cfg.cart_ttl_seconds))
    payments = pick(
        "payments",
        lambda: StripePaymentService(
            cfg.stripe_secret_key, webhook_secret=cfg.stripe_webhook_secret, currency=cfg.currency
        ),
    )
    affiliates = pick("affiliates", lambda: AffiliateService(airtable, table=cfg.airtable_affiliates_table))
    email = pick(
        "email",
        lambda: EmailService(
            host=cfg.smtp_host,
            port=cfg.smtp_port,
            username=cfg.smtp_username,
            password=cfg.smtp_password,
            sender=cfg.mail_sender,
        ),
    )
    orders = pick("orders", lambda: OrderService(email=email))
    checkout = pick(
        "checkout",
        lambda: CheckoutService(
            cart,
            orders,
            payments,
            affiliates,
            bank_info=cfg.bank_info,
            crypto_info=cfg.crypto_info,
            currency=cfg.currency,
        ),
    )
    address = pick(
        "address",
        lambda: FedExAddressService(
            cfg.fedex_api_key,
            cfg.fedex_api_secret,
            api_url=cfg.fedex_api_url,
            production=cfg.is_production,
        ),
    )
    outbox = pick(
        "outbox",
        lambda: OutboxService(
            airtable,
            checkouts_table=cfg.airtable_checkouts_table,
            orders_table=cfg.airtable_orders_table,
            max_attempts=cfg.mirror_max_attempts,
            retry_delay=cfg.mirror_retry_delay,
        ),
    )
    worker = pick(
        "mirror_worker",
        lambda: MirrorWorker(
            outbox,
            checkout,
            interval=cfg.mirror_poll_interval,
            abandon_after=cfg.checkout_abandon_after_seconds,
        ),
    )
    return {
        "airtable": airtable,
        "catalog": catalog,
        "cart": cart,
        "payments": payments,
        "affiliates": affiliates,
        "email": email,
        "orders": orders,
        "checkout": checkout,
        "address": address,
        "outbox": outbox,
        "mirror_worker": worker,
    }
