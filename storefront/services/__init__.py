"""Storefront 專用服務模組入口。"""

from .components import build_components
from .mirror_worker import MirrorWorker

__all__ = ["build_components", "MirrorWorker"]
