# Overview: Service-layer access to per-organization inventory ledgers and their durable snapshots.

from __future__ import annotations

import logging
import threading
from typing import Callable, TypeVar

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..ledger import SCHEMA_VERSION, InventoryLedger, LedgerError, RepairReport
from ..models import LedgerSnapshot
from .concurrency import lock_for_update, run_with_retry
from .tenant_service import get_organization

"""
Ledger Service Invariants (authoritative)

- One InventoryLedger per organization per process, created lazily from the
  organization's LedgerSnapshot row (or empty when none exists).
- Every mutation runs under that ledger's write lock, then persists the new
  snapshot. If persisting fails, the in-memory ledger is restored to its
  pre-call state, so memory never runs ahead of the database.
- Ledger errors raised by the engine propagate unchanged; they guarantee no
  partial effect, so nothing is persisted for them.
- A snapshot repaired on load is written back immediately. A snapshot that
  cannot be loaded at all is never overwritten by the empty fallback; loading
  raises LedgerServiceError instead and nothing is cached.
- Import and reset swap state under the ledger write lock.
"""

logger = logging.getLogger(__name__)

T = TypeVar("T")

REGISTRY_KEY = "stockflow_ledgers"


class LedgerServiceError(Exception):
    """Raised when ledger state cannot be loaded or persisted."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class LedgerRegistry:
    """In-process cache: org_id -> InventoryLedger."""

    def __init__(self):
        self._ledgers: dict[int, InventoryLedger] = {}
        self._lock = threading.RLock()

    def get(self, org_id: int, loader: Callable[[], InventoryLedger]) -> InventoryLedger:
        with self._lock:
            ledger = self._ledgers.get(org_id)
            if ledger is None:
                ledger = loader()
                self._ledgers[org_id] = ledger
            return ledger

    def put(self, org_id: int, ledger: InventoryLedger) -> None:
        with self._lock:
            self._ledgers[org_id] = ledger

    def evict(self, org_id: int) -> None:
        with self._lock:
            self._ledgers.pop(org_id, None)

    def clear(self) -> None:
        with self._lock:
            self._ledgers.clear()

    def __contains__(self, org_id: int) -> bool:
        with self._lock:
            return org_id in self._ledgers


def get_registry() -> LedgerRegistry:
    return current_app.extensions[REGISTRY_KEY]


# -----------------------------------------------------------------------------
# Snapshot persistence
# -----------------------------------------------------------------------------


def load_snapshot(org_id: int) -> dict | None:
    row = db.session.query(LedgerSnapshot).filter_by(org_id=org_id).first()
    return row.payload if row else None


def save_snapshot(org_id: int, payload: dict) -> LedgerSnapshot:
    attempts = int(current_app.config.get("SNAPSHOT_SAVE_ATTEMPTS", 3))

    def _op():
        row = lock_for_update(db.session.query(LedgerSnapshot).filter_by(org_id=org_id)).first()
        if row is None:
            row = LedgerSnapshot(org_id=org_id, schema_version=SCHEMA_VERSION, payload=payload)
            db.session.add(row)
        else:
            row.payload = payload
            row.schema_version = SCHEMA_VERSION
        db.session.commit()
        return row

    row = run_with_retry(_op, attempts=attempts, label=f"snapshot save org_id={org_id}")
    logger.debug("Ledger snapshot persisted org_id=%s version=%s", org_id, row.version_id)
    return row


def _load_ledger(org_id: int) -> InventoryLedger:
    raw = load_snapshot(org_id)
    ledger = InventoryLedger.from_snapshot(raw)
    report = ledger.last_repair
    if raw is not None and report is not None and report.fell_back_to_empty:
        # The stored row is left as it is and nothing is cached.
        logger.error("Ledger snapshot for org_id=%s could not be loaded: %s", org_id, report.error)
        raise LedgerServiceError(
            "Stored ledger state could not be loaded",
            {"org_id": org_id, "error": report.error},
        )
    if raw is not None and report is not None and report.changed:
        logger.warning(
            "Ledger snapshot for org_id=%s repaired on load fixes=%d legacy=%s",
            org_id, len(report.fixes), report.legacy_migrated,
        )
        save_snapshot(org_id, ledger.snapshot())
    logger.info("Ledger loaded org_id=%s products=%d", org_id, len(ledger.catalog.products))
    return ledger


def _loaded_ledger_or_none(org_id: int) -> InventoryLedger | None:
    """The cached ledger, or None when the stored state cannot be loaded at all."""
    try:
        return get_ledger(org_id)
    except (LedgerServiceError, LedgerError) as exc:
        logger.warning("Replacing unloadable ledger org_id=%s: %s", org_id, exc)
        return None


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------


def get_ledger(org_id: int) -> InventoryLedger:
    get_organization(org_id)
    return get_registry().get(org_id, lambda: _load_ledger(org_id))


def mutate(org_id: int, operation: Callable[[InventoryLedger], T]) -> T:
    """Run one mutating ledger operation and persist it, or leave both memory and DB unchanged."""
    ledger = get_ledger(org_id)
    with ledger.lock.write():
        before = ledger.snapshot()
        try:
            result = operation(ledger)
        except LedgerError:
            raise
        except Exception:
            ledger.restore(before)
            raise
        try:
            save_snapshot(org_id, ledger.snapshot())
        except SQLAlchemyError as exc:
            db.session.rollback()
            ledger.restore(before)
            logger.exception("Ledger snapshot persist failed org_id=%s; in-memory state restored", org_id)
            raise LedgerServiceError("Failed to persist ledger state", {"org_id": org_id}) from exc
        return result


def export_state(org_id: int) -> dict:
    return get_ledger(org_id).snapshot()


def import_state(org_id: int, raw) -> RepairReport:
    """
    Replace an organization's ledger with a stored or legacy document (repaired on the way in).

    The cached ledger is restored in place under its write lock, so callers
    already holding it see either the old or the new state, never a mix.
    """
    get_organization(org_id)
    incoming = InventoryLedger.from_snapshot(raw)
    report = incoming.last_repair
    data = incoming.snapshot()

    ledger = _loaded_ledger_or_none(org_id)
    if ledger is None:
        try:
            save_snapshot(org_id, data)
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Ledger import persist failed org_id=%s", org_id)
            raise LedgerServiceError("Failed to persist imported ledger state", {"org_id": org_id}) from exc
        get_registry().put(org_id, incoming)
    else:
        with ledger.lock.write():
            before = ledger.snapshot()
            ledger.restore(data)
            try:
                save_snapshot(org_id, data)
            except SQLAlchemyError as exc:
                db.session.rollback()
                ledger.restore(before)
                logger.exception("Ledger import persist failed org_id=%s; in-memory state restored", org_id)
                raise LedgerServiceError("Failed to persist imported ledger state", {"org_id": org_id}) from exc
            ledger.last_repair = report

    logger.info(
        "Ledger imported org_id=%s fixes=%d legacy=%s",
        org_id, len(report.fixes), report.legacy_migrated,
    )
    return report


def repair_ledger(org_id: int) -> RepairReport:
    return mutate(org_id, lambda ledger: ledger.repair())


def _delete_snapshot_row(org_id: int) -> None:
    db.session.query(LedgerSnapshot).filter_by(org_id=org_id).delete()
    db.session.commit()


def reset_ledger(org_id: int) -> None:
    """Drop an organization's ledger state entirely."""
    get_organization(org_id)
    ledger = _loaded_ledger_or_none(org_id)
    try:
        if ledger is None:
            _delete_snapshot_row(org_id)
            get_registry().evict(org_id)
        else:
            with ledger.lock.write():
                _delete_snapshot_row(org_id)
                ledger.reset()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Ledger reset failed org_id=%s", org_id)
        raise LedgerServiceError("Failed to reset ledger state", {"org_id": org_id}) from exc
    logger.warning("Ledger reset org_id=%s", org_id)
