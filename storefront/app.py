"""Storefront Flask 應用：商品目錄、購物車、結帳與訂單 API。"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Optional

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from storecore.config import AppConfig, load_env
from storecore.db.session import configure_engine
from storecore.services.logging import configure_logging
from storecore.services.payment_service import PaymentGatewayError

from .config import StorefrontConfig
from .routes import admin, api, checkout
from .services import build_components


logger = logging.getLogger(__name__)


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(PaymentGatewayError)
    def handle_gateway_error(exc):
        return jsonify({"error": str(exc)}), 502

    @app.errorhandler(Exception)
    def handle_unexpected(exc):
        if isinstance(exc, HTTPException):
            return jsonify({"error": exc.description}), exc.code
        logger.exception("Unhandled error")
        return jsonify({"error": "Internal server error"}), 500


def create_app(
    app_config: Optional[AppConfig] = None,
    config: Optional[StorefrontConfig] = None,
    *,
    start_worker: bool = True,
    **overrides: Any,
) -> Flask:
    app_config = app_config or load_env()
    config = config or StorefrontConfig.load()

    configure_logging(app_config.log_level)
    configure_engine(app_config.database_url)

    app = Flask(__name__)
    app.config["SECRET_KEY"] = app_config.secret_key or config.secret_key
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(days=app_config.session_lifetime_days)
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["SESSION_COOKIE_SECURE"] = app_config.is_production
    app.config["STOREFRONT_CONFIG"] = config
    app.config["APP_CONFIG"] = app_config

    components = build_components(app_config, **overrides)
    app.extensions["storefront_components"] = components

    app.register_blueprint(api.api_bp)
    app.register_blueprint(checkout.checkout_bp)
    app.register_blueprint(admin.admin_bp)
    _register_error_handlers(app)

    if start_worker and app_config.airtable_enabled:
        components["mirror_worker"].start()

    return app


def main() -> None:
    app = create_app()
    app.run(host="0.0.0.0", port=5000, debug=False)


if __name__ == "__main__":
    main()
