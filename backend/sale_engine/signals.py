"""
Outbound change notifications.

Advisory only: emitted after an operation is done so that list views can
re-fetch. Nothing in the engine waits on a receiver, and a failing receiver
never changes the outcome of the operation that emitted the signal.
"""

from __future__ import annotations

from blinker import Namespace
from flask import current_app

_signals = Namespace()

sale_created = _signals.signal("sale-created")
sale_deleted = _signals.signal("sale-deleted")
stock_changed = _signals.signal("stock-changed")


def notify(signal, **payload) -> None:
    try:
        signal.send(current_app._get_current_object(), **payload)
    except Exception:
        current_app.logger.exception("Receiver for %s failed", signal.name)
