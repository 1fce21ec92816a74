"""路由共用工具。"""

from __future__ import annotations

import secrets
from typing import Any, Dict

from flask import current_app, session


ADMIN_SESSION_KEY = "storefront_admin"
SESSION_ID_KEY = "sid"


def components() -> Dict[str, Any]:
    return current_app.extensions["storefront_components"]


def storefront_config():
    return current_app.config["STOREFRONT_CONFIG"]


def is_admin() -> bool:
    return bool(session.get(ADMIN_SESSION_KEY))


def current_session_id() -> str:
    """回傳目前瀏覽器 session 的識別碼，必要時建立新的。"""
    sid = session.get(SESSION_ID_KEY)
    if not sid:
        sid = secrets.token_urlsafe(24)
        session[SESSION_ID_KEY] = sid
        session.permanent = True
    return sid
