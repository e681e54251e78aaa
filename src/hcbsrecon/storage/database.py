"""SQLite connection and transaction management."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from hcbsrecon.storage.schema import INIT_SCHEMA


if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)


class Database:
    """SQLite database shared by the repositories and services.

    Connections run in autocommit mode; write work happens inside explicit
    ``BEGIN IMMEDIATE`` transactions so two writers never interleave.
    """

    def __init__(self, db_path: str | Path = "hcbs.db") -> None:
        self.db_path = Path(db_path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, isolation_level=None, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_db(self) -> None:
        with self.connection() as conn:
            conn.executescript(INIT_SCHEMA)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Connection for reads outside a transaction."""
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block atomically: commit on success, roll back on any error."""
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                logger.debug("Transaction rolled back on %s", self.db_path)
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    @contextmanager
    def scope(self, tx: sqlite3.Connection | None = None) -> Iterator[sqlite3.Connection]:
        """Join the caller's transaction, or open one owned by this block."""
        if tx is not None:
            yield tx
            return
        with self.transaction() as conn:
            yield conn

    @contextmanager
    def reading(self, tx: sqlite3.Connection | None = None) -> Iterator[sqlite3.Connection]:
        """Join the caller's transaction, or read on a fresh connection."""
        if tx is not None:
            yield tx
            return
        with self.connection() as conn:
            yield conn

    def get_stats(self) -> dict[str, Any]:
        """Row counts for the main tables."""
        with self.connection() as conn:
            return {
                "payers": conn.execute(
                    "SELECT COUNT(*) FROM payers WHERE deleted_at IS NULL"
                ).fetchone()[0],
                "claims": conn.execute(
                    "SELECT COUNT(*) FROM claims WHERE deleted_at IS NULL"
                ).fetchone()[0],
                "payments": conn.execute(
                    "SELECT COUNT(*) FROM payments WHERE deleted_at IS NULL"
                ).fetchone()[0],
                "claim_payments": conn.execute(
                    "SELECT COUNT(*) FROM claim_payments WHERE deleted_at IS NULL"
                ).fetchone()[0],
                "adjustments": conn.execute(
                    "SELECT COUNT(*) FROM payment_adjustments WHERE deleted_at IS NULL"
                ).fetchone()[0],
                "by_status": {
                    r["reconciliation_status"]: r["cnt"]
                    for r in conn.execute(
                        """SELECT reconciliation_status, COUNT(*) AS cnt FROM payments
                        WHERE deleted_at IS NULL GROUP BY reconciliation_status"""
                    ).fetchall()
                },
            }
