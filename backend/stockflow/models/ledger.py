from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class LedgerSnapshot(db.Model):
    """
    Durable state of one organization's inventory ledger.

    The whole ledger (catalog, stock layers, bills, bill sequences) is stored as
    one JSON document written after every successful mutation.
    version_id gives optimistic locking: a concurrent writer fails with
    StaleDataError instead of silently overwriting.
    """
    __tablename__ = "ledger_snapshots"
    __table_args__ = (
        db.UniqueConstraint("org_id", name="uq_ledger_snapshots_org"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    schema_version = db.Column(db.Integer, nullable=False, default=1)
    payload = db.Column(db.JSON, nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("ledger_snapshot", uselist=False, lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<LedgerSnapshot org_id={self.org_id} version={self.version_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "schema_version": self.schema_version,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
