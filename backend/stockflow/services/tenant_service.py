"""
Tenant Service: organizations, their stores, and store-scope validation.

Every ledger call is scoped to one organization. Store ids arriving from
client input must belong to that organization before they are used as a
ledger store scope.

USAGE:
    from stockflow.services.tenant_service import require_store_in_org

    store = require_store_in_org(store_id, org_id)
    ledger.commit_bill(..., BillMetadata(store_id=store.scope_id))
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Organization, Store
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)


class TenantError(Exception):
    """Raised when organization or store operations fail."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TenantNotFoundError(TenantError):
    """Unknown organization or store."""


class TenantAccessError(TenantError):
    """Store does not belong to the organization it was used with."""


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


# -----------------------------------------------------------------------------
# Organizations
# -----------------------------------------------------------------------------


def create_organization(name: str, code: str | None = None) -> Organization:
    name = _clean(name)
    code = _clean(code)
    if not name:
        raise TenantError("Organization name is required")

    def _op():
        org = Organization(name=name, code=code, is_active=True)
        db.session.add(org)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise TenantError(f"Organization code {code!r} already exists", {"code": code})
        return org

    org = run_with_retry(_op, label="organization create")
    logger.info("Organization created id=%s name=%r", org.id, org.name)
    return org


def get_organization(org_id: int) -> Organization:
    org = db.session.get(Organization, org_id)
    if org is None or not org.is_active:
        raise TenantNotFoundError(f"Organization {org_id} not found", {"org_id": org_id})
    return org


def list_organizations() -> list[Organization]:
    return db.session.query(Organization).order_by(Organization.id.asc()).all()


# -----------------------------------------------------------------------------
# Stores
# -----------------------------------------------------------------------------


def create_store(
    org_id: int,
    name: str,
    *,
    code: str | None = None,
    location: str | None = None,
    phone: str | None = None,
    email: str | None = None,
) -> Store:
    get_organization(org_id)
    name = _clean(name)
    if not name:
        raise TenantError("Store name is required")

    def _op():
        store = Store(
            org_id=org_id,
            name=name,
            code=_clean(code),
            location=_clean(location),
            phone=_clean(phone),
            email=_clean(email),
        )
        db.session.add(store)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise TenantError(
                "Store name and code must be unique within the organization",
                {"name": name, "code": code},
            )
        return store

    store = run_with_retry(_op, label="store create")
    logger.info("Store created id=%s org_id=%s name=%r", store.id, org_id, store.name)
    return store


def list_stores(org_id: int) -> list[Store]:
    get_organization(org_id)
    return db.session.query(Store).filter_by(org_id=org_id).order_by(Store.name.asc()).all()


def require_store_in_org(store_id, org_id: int) -> Store:
    """
    Validate that a store belongs to the specified organization.

    Raises TenantNotFoundError for unknown ids and TenantAccessError when the
    store belongs to another organization.
    """
    try:
        store_pk = int(store_id)
    except (TypeError, ValueError):
        raise TenantNotFoundError(f"Store {store_id!r} not found", {"store_id": store_id}) from None

    store = db.session.get(Store, store_pk)
    if store is None:
        raise TenantNotFoundError(f"Store {store_id} not found", {"store_id": store_id})
    if store.org_id != org_id:
        logger.warning("Cross-tenant store access denied store_id=%s org_id=%s", store_pk, org_id)
        raise TenantAccessError("Store does not belong to this organization", {"store_id": store_pk})
    return store


def resolve_store_scope(store_id, org_id: int) -> str | None:
    """Client store id -> ledger store scope. Blank means the unscoped bucket."""
    if store_id is None or (isinstance(store_id, str) and not store_id.strip()):
        return None
    return require_store_in_org(store_id, org_id).scope_id
