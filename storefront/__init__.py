"""Storefront 網站應用套件。"""

from .app import create_app

__all__ = ["create_app"]
