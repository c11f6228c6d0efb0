# Overview: Retry and write-lock helpers shared by the stock ledger and the sale coordinator.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text

from ..extensions import db
from .exceptions import ConcurrentModificationError


def begin_write() -> None:
    """
    Open the current transaction as a write transaction.

    NOTE: SQLite otherwise starts deferred transactions; two connections that
    both read before writing can then deadlock and fail immediately instead of
    waiting on the busy timeout. Other DBs rely on the conditional UPDATE alone.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute an optimistic operation, retrying from a fresh read when the
    conditional write loses a race.

    Only ConcurrentModificationError is retried; every other error propagates
    on the first occurrence. After the last attempt the conflict is re-raised.
    """
    if attempts is None:
        attempts = current_app.config.get("STOCK_RESERVE_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("STOCK_RETRY_BACKOFF_SECONDS", 0.05)

    for attempt in range(attempts):
        try:
            return func()
        except ConcurrentModificationError:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.info(
                "Stock write conflict, retrying (attempt %s of %s)", attempt + 2, attempts
            )
            if backoff_base:
                time.sleep(backoff_base * (2 ** attempt))
