"""Audit recorder tests: append, filtered listing and the confirmed purge."""

from datetime import datetime, timedelta

import pytest

from sale_engine.extensions import db
from sale_engine.models import AuditLogEntry
from sale_engine.services import audit_service
from sale_engine.services.exceptions import BadConfirmationError
from sale_engine.time_utils import utcnow

from helpers import audit_entries


def _seed():
    audit_service.record("CREATE", "sales", 1, {"product_name": "Blue Mug"}, user_id=1)
    audit_service.record("DELETE", "sales", 1, {"product_name": "Blue Mug"}, user_id=2)
    audit_service.record("UPDATE", "products", 5, {"movement_type": "entry"}, user_id=1)


def test_record_appends_entry(db_session):
    entry = audit_service.record(
        "CREATE", "sales", 10, {"quantity": 2},
        user_id=4, new_values={"quantity": 2}, ip_address="10.0.0.1",
    )

    assert entry.id is not None
    stored = db.session.get(AuditLogEntry, entry.id)
    assert stored.record_id == "10"
    assert stored.details == {"quantity": 2}
    assert stored.ip_address == "10.0.0.1"
    assert stored.to_dict()["created_at"].endswith("Z")


def test_record_safely_reports_failure(db_session, monkeypatch):
    def broken(*args, **kwargs):
        raise audit_service.AuditWriteError("down")

    monkeypatch.setattr(audit_service, "record", broken)

    assert audit_service.record_safely("CREATE", "sales", 1) is False


def test_list_filters(db_session):
    _seed()

    entries, total = audit_service.list_entries(table_name="sales")
    assert total == 2
    assert [e.action_type for e in entries] == ["DELETE", "CREATE"]

    entries, total = audit_service.list_entries(user_id=1)
    assert total == 2

    entries, total = audit_service.list_entries(action_type="UPDATE")
    assert [e.table_name for e in entries] == ["products"]

    entries, total = audit_service.list_entries(search="blue mug")
    assert total == 2


def test_list_pagination(db_session):
    for i in range(5):
        audit_service.record("CREATE", "sales", i)

    entries, total = audit_service.list_entries(page=2, per_page=2)

    assert total == 5
    assert [e.record_id for e in entries] == ["2", "1"]


def test_date_to_includes_whole_day(db_session):
    _seed()
    today = datetime.combine(utcnow().date(), datetime.min.time())

    _, total_today = audit_service.list_entries(date_from=today, date_to=today)
    _, total_yesterday = audit_service.list_entries(date_to=today - timedelta(days=1))

    assert total_today == 3
    assert total_yesterday == 0


def test_purge_with_exact_phrase(db_session):
    _seed()

    deleted = audit_service.purge_all("deletare", user_id=9)

    assert deleted == 3
    [survivor] = audit_entries()
    assert survivor.action_type == "PURGE"
    assert survivor.user_id == 9
    assert survivor.details == {"deleted_count": 3}


@pytest.mark.parametrize("confirmation", ["DELETARE", "deletare ", "", None, True])
def test_purge_rejects_anything_else(db_session, confirmation):
    _seed()

    with pytest.raises(BadConfirmationError):
        audit_service.purge_all(confirmation)

    assert len(audit_entries()) == 3


def test_purge_phrase_is_configurable(db_session, app, monkeypatch):
    _seed()
    monkeypatch.setitem(app.config, "AUDIT_PURGE_CONFIRMATION", "wipe audit")

    with pytest.raises(BadConfirmationError):
        audit_service.purge_all("deletare")
    assert audit_service.purge_all("wipe audit") == 3
