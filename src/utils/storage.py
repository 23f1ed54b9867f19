"""Storage module for Research Agents.

Persists research plans in a single SQLite table. Rows are returned as
Pydantic models. Every public call opens its own connection, so the store
can be shared by tools without connection lifetime management.

Example:
    >>> from pathlib import Path
    >>> from src.utils.storage import ResearchPlanStore
    >>> store = ResearchPlanStore(Path("data/research.db"))
    >>> store.init()
    >>> plan = store.add("Solar storage", "Compare battery chemistries since 2022")
    >>> [p.short_summary for p in store.list_plans()]
    ['Solar storage']
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import BaseModel

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class StorageIOError(Exception):
    """Database read/write failed.

    Example:
        >>> raise StorageIOError("Cannot write plan", Path("research.db"), cause=err)
    """

    def __init__(self, message: str, path: Path, cause: Exception | None = None) -> None:
        self.path = path
        self.cause = cause
        super().__init__(message)


# =============================================================================
# Models
# =============================================================================


class ResearchPlan(BaseModel):
    """Stored research plan.

    Example:
        >>> plan = ResearchPlan(id=1, short_summary="AI in healthcare", details="...")
    """

    id: int
    short_summary: str
    details: str


# =============================================================================
# Store
# =============================================================================


_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS research_plans (
    id INTEGER PRIMARY KEY,
    short_summary TEXT NOT NULL,
    details TEXT NOT NULL
)
"""


class ResearchPlanStore:
    """CRUD access to the research_plans table.

    Example:
        >>> store = ResearchPlanStore(tmp_path / "research.db")
        >>> store.init()
        >>> store.delete(42)
        False
    """

    def __init__(self, db_path: Path) -> None:
        """Create store for a database file.

        Args:
            db_path: SQLite file path. Parent folders are created by init().
        """
        self.db_path = db_path

    def init(self) -> None:
        """Create the database file and table if missing.

        Raises:
            StorageIOError: If the folder or table cannot be created.
        """
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(f"Cannot create folder: {e}", self.db_path, cause=e) from e

        with self._connect() as conn:
            conn.execute(_CREATE_TABLE)
        logger.debug("Research plan table ready: %s", self.db_path)

    def add(self, short_summary: str, details: str) -> ResearchPlan:
        """Insert a plan and return it with its new id.

        Raises:
            StorageIOError: On database failure.
        """
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO research_plans (short_summary, details) VALUES (?, ?)",
                (short_summary, details),
            )
            plan_id = cursor.lastrowid

        logger.info("Stored research plan %s: %s", plan_id, short_summary)
        return ResearchPlan(id=plan_id or 0, short_summary=short_summary, details=details)

    def list_plans(self) -> list[ResearchPlan]:
        """Return all plans ordered by id.

        Raises:
            StorageIOError: On database failure.
        """
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, short_summary, details FROM research_plans ORDER BY id"
            ).fetchall()

        return [ResearchPlan(id=row[0], short_summary=row[1], details=row[2]) for row in rows]

    def delete(self, plan_id: int) -> bool:
        """Delete a plan by id.

        Returns:
            True if a row was deleted, False if the id did not exist.

        Raises:
            StorageIOError: On database failure.
        """
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM research_plans WHERE id = ?", (plan_id,))
            deleted = cursor.rowcount > 0

        logger.info("Delete research plan %d: %s", plan_id, "done" if deleted else "not found")
        return deleted

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success, always close.

        Raises:
            StorageIOError: Wrapping any sqlite3 error.
        """
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StorageIOError(f"Cannot open database: {e}", self.db_path, cause=e) from e

        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            raise StorageIOError(f"Database error: {e}", self.db_path, cause=e) from e
        finally:
            conn.close()
