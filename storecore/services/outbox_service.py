import time
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from ..db.session import get_session
from ..models.mirror_outbox import MirrorOutbox
from .airtable_client import AirtableClient, AirtableError
from .catalog_service import formula_literal
from .logging import log_event


KIND_CHECKOUT = "checkout"
KIND_ORDER = "order"


def enqueue(session: Session, kind: str, reference: str, fields: Dict) -> MirrorOutbox:
    """Queue a mirror write inside the caller's transaction."""
    if kind not in (KIND_CHECKOUT, KIND_ORDER):
        raise ValueError(f"unknown mirror kind: {kind}")
    entry = MirrorOutbox(kind=kind, reference=reference, fields=dict(fields), status="pending", attempts=0)
    session.add(entry)
    session.flush()
    return entry


class OutboxService:
    """Delivers queued checkout and order snapshots to Airtable.

    Checkout entries are upserts keyed by the ``checkoutid`` column, order
    entries are plain creates. Each entry gets ``max_attempts`` tries spaced by
    ``retry_delay`` seconds and is marked ``failed`` once they are used up.
    A checkout entry with a newer entry for the same checkout is marked
    ``superseded`` and never sent.
    """

    def __init__(
        self,
        client: AirtableClient,
        *,
        checkouts_table: str,
        orders_table: str,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        session_factory=get_session,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._checkouts_table = checkouts_table
        self._orders_table = orders_table
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay
        self._session_factory = session_factory
        self._sleep = sleep

    def pending_ids(self, limit: int = 50) -> List[int]:
        with self._session_factory() as session:
            rows = (
                session.query(MirrorOutbox.id)
                .filter(MirrorOutbox.status == "pending")
                .order_by(MirrorOutbox.id.asc())
                .limit(limit)
                .all()
            )
            return [r.id for r in rows]

    @staticmethod
    def _superseded(session, entry: MirrorOutbox) -> bool:
        if entry.kind != KIND_CHECKOUT:
            return False
        newer = (
            session.query(MirrorOutbox.id)
            .filter(
                MirrorOutbox.kind == KIND_CHECKOUT,
                MirrorOutbox.reference == entry.reference,
                MirrorOutbox.id > entry.id,
            )
            .first()
        )
        return newer is not None

    def _deliver(self, kind: str, reference: str, fields: Dict) -> None:
        if kind == KIND_ORDER:
            self._client.create_record(self._orders_table, fields)
            return
        existing = self._client.find_first(self._checkouts_table, f"{{checkoutid}}={formula_literal(reference)}")
        if existing:
            self._client.update_record(self._checkouts_table, existing["id"], fields)
        else:
            self._client.create_record(self._checkouts_table, {"checkoutid": reference, **fields})

    def deliver(self, entry_id: int) -> Optional[str]:
        """Try one entry until it is sent or out of attempts; returns the final status."""
        with self._session_factory() as session:
            entry = session.get(MirrorOutbox, entry_id)
            if entry is None or entry.status != "pending":
                return entry.status if entry else None
            if self._superseded(session, entry):
                entry.status = "superseded"
                log_event("info", "mirror.superseded", kind=entry.kind, reference=entry.reference)
                return entry.status
            kind, reference, fields, attempts = entry.kind, entry.reference, dict(entry.fields), entry.attempts

        last_error = None
        status = "failed"
        while attempts < self._max_attempts:
            attempts += 1
            try:
                self._deliver(kind, reference, fields)
                status = "sent"
                break
            except AirtableError as exc:
                last_error = str(exc)
                log_event("warning", "mirror.retry", kind=kind, reference=reference, attempt=attempts, error=last_error)
                if attempts < self._max_attempts:
                    self._sleep(self._retry_delay)

        with self._session_factory() as session:
            entry = session.get(MirrorOutbox, entry_id)
            entry.attempts = attempts
            entry.status = status
            entry.last_error = last_error
        if status == "sent":
            log_event("info", "mirror.synced", kind=kind, reference=reference, attempts=attempts)
        else:
            log_event("error", "mirror.failed", kind=kind, reference=reference, attempts=attempts, error=last_error)
        return status

    def drain(self, limit: int = 50) -> Dict[str, int]:
        counts = {"sent": 0, "failed": 0, "superseded": 0}
        if not self._client.configured:
            return counts
        for entry_id in self.pending_ids(limit):
            status = self.deliver(entry_id)
            if status in counts:
                counts[status] += 1
        return counts

    def failed(self, limit: int = 50) -> List[Dict]:
        with self._session_factory() as session:
            rows = (
                session.query(MirrorOutbox)
                .filter(MirrorOutbox.status == "failed")
                .order_by(MirrorOutbox.id.desc())
                .limit(limit)
                .all()
            )
            return [
                {"id": r.id, "kind": r.kind, "reference": r.reference, "attempts": r.attempts, "error": r.last_error}
                for r in rows
            ]

    def retry_failed(self) -> int:
        with self._session_factory() as session:
            rows = session.query(MirrorOutbox).filter(MirrorOutbox.status == "failed").all()
            requeued = 0
            for r in rows:
                if self._superseded(session, r):
                    r.status = "superseded"
                    continue
                r.status = "pending"
                r.attempts = 0
                requeued += 1
            return requeued
