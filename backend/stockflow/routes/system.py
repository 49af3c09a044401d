# backend/stockflow/routes/system.py
"""
System health endpoint.

Reports database connectivity and how many tenant ledgers are loaded in
this process.
"""

import time

from flask import Blueprint, current_app, jsonify

from ..extensions import db
from ..models import LedgerSnapshot, Organization, Store
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        details = {
            "organizations": db.session.query(Organization).count(),
            "stores": db.session.query(Store).count(),
            "ledger_snapshots": db.session.query(LedgerSnapshot).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2), "details": details}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


@system_bp.get("/health")
def health():
    database = check_database_health()
    status = "healthy" if database["status"] == "healthy" else "unhealthy"
    body = {
        "status": status,
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }
    return jsonify(body), 200 if status == "healthy" else 503
