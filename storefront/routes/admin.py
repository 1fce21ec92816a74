"""管理端路由：登入、登出與 Airtable 同步狀態。"""

from __future__ import annotations

import hmac

from flask import Blueprint, jsonify, request, session

from ._helpers import ADMIN_SESSION_KEY, components, is_admin, storefront_config


admin_bp = Blueprint("storefront_admin", __name__, url_prefix="/admin")

_PUBLIC = {"storefront_admin.login", "storefront_admin.logout"}


@admin_bp.before_request
def guard_private_routes():
    if request.endpoint and request.endpoint not in _PUBLIC and not is_admin():
        return jsonify({"error": "Unauthorized"}), 401
    return None


@admin_bp.post("/login")
def login():
    payload = request.get_json(silent=True) or request.form
    username = str(payload.get("username", "")).strip()
    password = str(payload.get("password", "")).strip()
    cfg = storefront_config()
    # 未設定密碼時停用管理端登入
    if (
        cfg.admin_password
        and hmac.compare_digest(username.encode(), cfg.admin_username.encode())
        and hmac.compare_digest(password.encode(), cfg.admin_password.encode())
    ):
        session[ADMIN_SESSION_KEY] = True
        return jsonify({"status": "ok"})
    return jsonify({"error": "Invalid username or password"}), 401


@admin_bp.post("/logout")
def logout():
    session.pop(ADMIN_SESSION_KEY, None)
    return jsonify({"status": "ok"})


@admin_bp.get("/mirror/failed")
def failed_mirror_entries():
    return jsonify({"failed": components()["outbox"].failed()})


@admin_bp.post("/mirror/retry")
def retry_mirror_entries():
    count = components()["outbox"].retry_failed()
    return jsonify({"requeued": count})


@admin_bp.post("/catalog/refresh")
def refresh_catalog():
    components()["catalog"].invalidate_cache()
    return jsonify({"status": "ok"})
