# Overview: Service-layer operations for the audit log; append, query and the confirmed bulk purge.

from __future__ import annotations

import hmac
from datetime import datetime, time as dtime

from flask import current_app, has_request_context, request
from sqlalchemy import or_, String, cast
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import AuditLogEntry
from .concurrency import begin_write
from .exceptions import AuditWriteError, BadConfirmationError
"""
Audit Log Invariants (authoritative)

- Append-only: record() only inserts; nothing in the engine updates an entry.
- The audit trail is supplementary. A failed append is reported, never used to
  unwind a sale or stock mutation that already committed.
- The only delete path is purge_all(), which needs the exact configured
  confirmation phrase and leaves exactly one entry behind: its own.
"""

CREATE = "CREATE"
UPDATE = "UPDATE"
DELETE = "DELETE"
PURGE = "PURGE"
INCIDENT = "INCIDENT"

DEFAULT_PAGE_SIZE = 50


def record(
    action_type: str,
    table_name: str,
    record_id=None,
    details: dict | None = None,
    *,
    user_id: int | None = None,
    old_values: dict | None = None,
    new_values: dict | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuditLogEntry:
    """
    Append one audit entry and commit it on its own.

    Inside a request the client address and user agent are filled in when the
    caller does not pass them.
    """
    if has_request_context():
        ip_address = ip_address or request.remote_addr
        user_agent = user_agent or (request.headers.get("User-Agent") or "")[:512] or None
    record_key = str(record_id) if record_id is not None else None
    entry = AuditLogEntry(
        action_type=action_type,
        table_name=table_name,
        record_id=record_key,
        details=details,
        old_values=old_values,
        new_values=new_values,
        user_id=user_id,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    try:
        begin_write()
        db.session.add(entry)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise AuditWriteError(
            "Failed to write audit entry",
            details={"action_type": action_type, "table_name": table_name, "record_id": record_key},
        ) from exc
    return entry


def record_safely(action_type: str, table_name: str, record_id=None, details: dict | None = None, **kwargs) -> bool:
    """
    Best-effort append used after a committed mutation.

    Returns False (and logs the failure) instead of raising, so the caller
    can surface the missing audit entry to an operator.
    """
    try:
        record(action_type, table_name, record_id, details, **kwargs)
    except AuditWriteError as exc:
        current_app.logger.error(
            "Audit entry not recorded: %s %s/%s (%s)",
            action_type, table_name, record_id, exc.__cause__ or exc,
        )
        return False
    return True


def list_entries(
    *,
    search: str | None = None,
    user_id: int | None = None,
    action_type: str | None = None,
    table_name: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = 1,
    per_page: int = DEFAULT_PAGE_SIZE,
) -> tuple[list[AuditLogEntry], int]:
    """
    Filtered, newest-first page of audit entries plus the total match count.

    date_to given as a bare date (midnight) includes the whole day.
    """
    q = db.session.query(AuditLogEntry)
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(
            AuditLogEntry.table_name.ilike(pattern),
            cast(AuditLogEntry.details, String).ilike(pattern),
        ))
    if user_id is not None:
        q = q.filter(AuditLogEntry.user_id == user_id)
    if action_type:
        q = q.filter(AuditLogEntry.action_type == action_type)
    if table_name:
        q = q.filter(AuditLogEntry.table_name == table_name)
    if date_from is not None:
        q = q.filter(AuditLogEntry.created_at >= date_from)
    if date_to is not None:
        if date_to.time() == dtime.min:
            date_to = datetime.combine(date_to.date(), dtime.max)
        q = q.filter(AuditLogEntry.created_at <= date_to)

    total = q.count()
    page = max(page, 1)
    entries = (
        q.order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return entries, total


def purge_all(confirmation: str, *, user_id: int | None = None) -> int:
    """
    Delete every audit entry except the PURGE entry written by this call.

    Requires the exact phrase configured as AUDIT_PURGE_CONFIRMATION; a boolean
    or a near-miss is rejected. Returns the number of entries deleted.
    """
    expected = current_app.config.get("AUDIT_PURGE_CONFIRMATION")
    if not expected or not isinstance(confirmation, str) or not hmac.compare_digest(
        confirmation.encode(), expected.encode()
    ):
        raise BadConfirmationError("Confirmation phrase does not match")

    begin_write()
    deleted = db.session.query(AuditLogEntry).delete(synchronize_session=False)
    db.session.add(AuditLogEntry(
        action_type=PURGE,
        table_name="audit_logs",
        details={"deleted_count": deleted},
        user_id=user_id,
    ))
    db.session.commit()

    current_app.logger.warning("Audit log purged by user %s: %s entries deleted", user_id, deleted)
    return deleted
