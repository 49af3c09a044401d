# Overview: Request decorators for API routes: tenant context and error-to-HTTP mapping.

from functools import wraps

from flask import current_app, g, jsonify

from .ledger import (
    ANY_STORE,
    InsufficientStockError,
    InvalidInputError,
    LedgerError,
    NotFoundError,
    UnsupportedOperationError,
)
from .services.ledger_service import LedgerServiceError
from .services.tenant_service import (
    TenantAccessError,
    TenantError,
    TenantNotFoundError,
    get_organization,
    resolve_store_scope,
)
from .validation import ValidationError

LEDGER_STATUS = {
    NotFoundError: 404,
    InvalidInputError: 400,
    InsufficientStockError: 409,
    UnsupportedOperationError: 422,
}


def ledger_error_status(exc: LedgerError) -> int:
    for cls, status in LEDGER_STATUS.items():
        if isinstance(exc, cls):
            return status
    return 400


def require_org(f):
    """
    Establish tenant context from the <org_id> URL segment.

    Sets g.org_id and g.organization; returns 404 for unknown or inactive
    organizations.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        org_id = kwargs.get("org_id")
        try:
            org = get_organization(org_id)
        except TenantNotFoundError as exc:
            return jsonify({"error": exc.message, "details": exc.details}), 404

        g.org_id = org.id
        g.organization = org
        return f(*args, **kwargs)

    return decorated_function


def json_errors(f):
    """
    Map service/engine exceptions to JSON error responses.

    LedgerError kinds map to 404/400/409/422; validation problems are 400;
    cross-tenant store use is 403; anything unexpected is logged and 500.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except LedgerError as exc:
            return jsonify(exc.to_dict()), ledger_error_status(exc)
        except ValidationError as exc:
            return jsonify({"error": str(exc)}), 400
        except TenantNotFoundError as exc:
            return jsonify({"error": exc.message, "details": exc.details}), 404
        except TenantAccessError as exc:
            return jsonify({"error": exc.message, "details": exc.details}), 403
        except TenantError as exc:
            return jsonify({"error": exc.message, "details": exc.details}), 400
        except LedgerServiceError as exc:
            current_app.logger.exception("Ledger persistence failed")
            return jsonify({"error": exc.message}), 503
        except Exception:
            current_app.logger.exception("Unhandled error in %s", f.__name__)
            return jsonify({"error": "Internal server error"}), 500

    return decorated_function


def request_store_scope(args, org_id: int):
    """
    Store scope from a query string.

    Absent -> ANY_STORE (all stores); empty or "none" -> the unscoped bucket;
    otherwise a store id that must belong to the organization.
    """
    if "store_id" not in args:
        return ANY_STORE
    raw = args.get("store_id", "").strip()
    if raw.lower() in ("", "none", "null"):
        return None
    return resolve_store_scope(raw, org_id)
