from __future__ import annotations

from ..extensions import db
from sale_engine.time_utils import to_utc_z


class AuditLogEntry(db.Model):
    """
    Audit log of administrative actions.

    WHY: Who changed what, when, and the before/after values. Supplementary
    to the sale and stock records, which stay authoritative for correctness.

    IMMUTABLE: Never update. Rows are removed only by the explicitly
    confirmed bulk purge (services.audit_service.purge_all).
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_table_record", "table_name", "record_id"),
        db.Index("ix_audit_logs_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # CREATE, UPDATE, DELETE, LOGIN, PURGE, INCIDENT, ...
    action_type = db.Column(db.String(32), nullable=False, index=True)
    table_name = db.Column(db.String(64), nullable=False, index=True)
    record_id = db.Column(db.String(64), nullable=True)

    details = db.Column(db.JSON, nullable=True)
    old_values = db.Column(db.JSON, nullable=True)
    new_values = db.Column(db.JSON, nullable=True)

    user_id = db.Column(db.Integer, nullable=True, index=True)

    # Client context
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action_type": self.action_type,
            "table_name": self.table_name,
            "record_id": self.record_id,
            "details": self.details,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "user_id": self.user_id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": to_utc_z(self.created_at),
        }
