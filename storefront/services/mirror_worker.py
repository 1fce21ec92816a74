"""Airtable 同步背景執行緒：定期送出 outbox 並清理逾時的結帳流程。"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from storecore.services.checkout_service import CheckoutService
from storecore.services.outbox_service import OutboxService


class MirrorWorker:
    def __init__(
        self,
        outbox: OutboxService,
        checkout: CheckoutService,
        *,
        interval: float = 5.0,
        abandon_after: int = 24 * 3600,
        sweep_every: int = 60,
    ) -> None:
        self._outbox = outbox
        self._checkout = checkout
        self._interval = interval
        self._abandon_after = abandon_after
        self._sweep_every = max(1, sweep_every)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.logger = logging.getLogger(__name__)

    def run_once(self, *, sweep: bool = False) -> dict:
        """送出一輪 outbox；sweep=True 時同時將逾時的結帳標記為 abandoned。"""
        result = self._outbox.drain()
        if sweep:
            result["abandoned"] = self._checkout.abandon_stale(self._abandon_after)
        return result

    def _loop(self) -> None:
        tick = 0
        while not self._stop.wait(self._interval):
            tick += 1
            try:
                self.run_once(sweep=tick % self._sweep_every == 0)
            except Exception:
                # 背景執行緒不可中斷，記錄後於下一輪重試
                self.logger.exception("Mirror worker iteration failed")

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="mirror-worker", daemon=True)
        self._thread.start()
        self.logger.info("Mirror worker started (interval=%ss)", self._interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
