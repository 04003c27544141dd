"""
Highlights Service Module

This module provides specialized database operations for storing highlight
records: the rect geometry a user marked on a page of a book, scoped to the
user who created it.
"""

import json
import logging
import math
import sqlite3
import uuid

from ..models.geometry import Rect
from ..models.highlights import Highlight, HighlightRect
from .base_database_service import (
    DEFAULT_DB_PATH,
    BaseDatabaseService,
    as_non_empty,
    normalize_page,
)
from .errors import PersistenceError

# Configure logger for this module
logger = logging.getLogger(__name__)


def _parse_rects(raw: str, highlight_id: str) -> list[HighlightRect]:
    """Decode stored rects, keeping only entries with four finite numbers."""
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning(f"Invalid rects JSON for highlight {highlight_id}")
        return []

    if not isinstance(parsed, list):
        logger.warning(f"Rects for highlight {highlight_id} are not a list")
        return []

    rects = []
    for item in parsed:
        if not isinstance(item, dict):
            continue
        values = [item.get(key) for key in ("x", "y", "w", "h")]
        if all(
            isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)
            for v in values
        ):
            rects.append(HighlightRect(x=values[0], y=values[1], w=values[2], h=values[3]))
    return rects


class HighlightsService(BaseDatabaseService):
    """
    Service class for managing highlights using SQLite.

    Highlights are keyed by (user_id, book_id, page). Every mutation that
    touches more than one row runs inside a single transaction.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """
        Initialize the highlights service.

        Args:
            db_path (str): Path to the SQLite database file
        """
        super().__init__(db_path)
        self._init_table()

    def _init_table(self):
        """
        Initialize the highlights table and indexes.
        """
        with self.get_connection() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS highlights (
                    id TEXT PRIMARY KEY,                  -- UUID of the highlight
                    user_id TEXT NOT NULL,                -- Owner of the highlight
                    book_id TEXT NOT NULL,                -- Which book this highlight belongs to
                    page INTEGER NOT NULL,                -- Which page this highlight is on
                    rects TEXT NOT NULL,                  -- JSON array of {x, y, w, h} unit rects
                    created_at INTEGER NOT NULL,          -- Epoch ms when first created
                    updated_at INTEGER NOT NULL           -- Epoch ms of the last merge
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_highlights_user_book_page
                ON highlights(user_id, book_id, page)
            """)

            # Older databases stored highlights without timestamps
            columns = {row[1] for row in conn.execute("PRAGMA table_info(highlights)")}
            if "created_at" not in columns:
                logger.info("Adding created_at column to highlights table...")
                conn.execute(
                    "ALTER TABLE highlights ADD COLUMN created_at INTEGER NOT NULL DEFAULT 0"
                )
            if "updated_at" not in columns:
                logger.info("Adding updated_at column to highlights table...")
                conn.execute(
                    "ALTER TABLE highlights ADD COLUMN updated_at INTEGER NOT NULL DEFAULT 0"
                )

            now = self.get_current_timestamp()
            conn.execute(
                """
                UPDATE highlights
                SET updated_at = CASE WHEN created_at > 0 THEN created_at ELSE ? END
                WHERE updated_at IS NULL OR updated_at <= 0
                """,
                (now,),
            )
            conn.execute("""
                UPDATE highlights
                SET created_at = updated_at
                WHERE created_at IS NULL OR created_at <= 0
            """)

    def _row_to_highlight(self, row: sqlite3.Row) -> Highlight | None:
        rects = _parse_rects(row["rects"], row["id"])
        if not rects:
            return None
        return Highlight(
            id=row["id"],
            user_id=row["user_id"],
            book_id=row["book_id"],
            page=row["page"],
            rects=rects,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _insert(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        book_id: str,
        page: int,
        rects: list[Rect],
        highlight_id: str,
        created_at: int,
        updated_at: int,
    ) -> Highlight:
        rects_json = json.dumps([rect.to_dict() for rect in rects])
        conn.execute(
            """
            INSERT INTO highlights (id, user_id, book_id, page, rects, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (highlight_id, user_id, book_id, page, rects_json, created_at, updated_at),
        )
        return Highlight(
            id=highlight_id,
            user_id=user_id,
            book_id=book_id,
            page=page,
            rects=[HighlightRect.from_rect(rect) for rect in rects],
            created_at=created_at,
            updated_at=updated_at,
        )

    def _validate_key(
        self, user_id: str, book_id: str, page: int
    ) -> tuple[str, str, int]:
        safe_user_id = as_non_empty(user_id)
        safe_book_id = as_non_empty(book_id)
        safe_page = normalize_page(page)
        if not safe_user_id or not safe_book_id or not safe_page:
            raise PersistenceError(
                f"Invalid highlight key ({user_id!r}, {book_id!r}, {page!r})"
            )
        return safe_user_id, safe_book_id, safe_page

    def list_highlights(self, user_id: str, book_id: str, page: int) -> list[Highlight]:
        """
        Retrieve highlights for one page of a book.

        Rows whose stored rects cannot be decoded are skipped.

        Args:
            user_id (str): Owner of the highlights
            book_id (str): Book identifier
            page (int): 1-based page number

        Returns:
            list[Highlight]: Highlights, newest first

        Raises:
            PersistenceError: If the query fails
        """
        safe_user_id = as_non_empty(user_id)
        safe_book_id = as_non_empty(book_id)
        safe_page = normalize_page(page)
        if not safe_user_id or not safe_book_id or not safe_page:
            return []

        try:
            with self.get_connection() as conn:
                rows = conn.execute(
                    """
                    SELECT id, user_id, book_id, page, rects, created_at, updated_at
                    FROM highlights
                    WHERE user_id = ? AND book_id = ? AND page = ?
                    ORDER BY created_at DESC
                    """,
                    (safe_user_id, safe_book_id, safe_page),
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Error listing highlights: {e}")
            raise PersistenceError(f"Could not list highlights: {e}") from e

        highlights = []
        for row in rows:
            highlight = self._row_to_highlight(row)
            if highlight:
                highlights.append(highlight)
        return highlights

    def get_highlight_by_id(self, highlight_id: str) -> Highlight | None:
        """
        Retrieve a specific highlight by its ID.

        Args:
            highlight_id (str): Unique identifier of the highlight

        Returns:
            Highlight | None: The highlight, or None if not found or unreadable
        """
        safe_id = as_non_empty(highlight_id)
        if not safe_id:
            return None

        row = self.execute_query(
            """
            SELECT id, user_id, book_id, page, rects, created_at, updated_at
            FROM highlights
            WHERE id = ?
            """,
            (safe_id,),
            fetch_one=True,
        )
        if row is None:
            return None
        return self._row_to_highlight(row)

    def insert_highlight(
        self,
        user_id: str,
        book_id: str,
        page: int,
        rects: list[Rect],
        highlight_id: str | None = None,
        created_at: int | None = None,
    ) -> Highlight:
        """
        Insert a highlight without any reconciliation.

        Args:
            user_id (str): Owner of the highlight
            book_id (str): Book identifier
            page (int): 1-based page number
            rects (list[Rect]): Normalized rects, must be non-empty
            highlight_id (str | None): Identity to use; a new UUID if omitted
            created_at (int | None): Creation time to record; now if omitted

        Returns:
            Highlight: The stored highlight

        Raises:
            PersistenceError: If the key is invalid, rects are empty, or the insert fails
        """
        safe_user_id, safe_book_id, safe_page = self._validate_key(user_id, book_id, page)
        if not rects:
            raise PersistenceError("A highlight needs at least one rect")

        now = self.get_current_timestamp()
        try:
            with self.get_connection() as conn:
                highlight = self._insert(
                    conn,
                    safe_user_id,
                    safe_book_id,
                    safe_page,
                    rects,
                    highlight_id or str(uuid.uuid4()),
                    created_at if created_at is not None else now,
                    now,
                )
        except sqlite3.Error as e:
            logger.error(f"Error inserting highlight: {e}")
            raise PersistenceError(f"Could not insert highlight: {e}") from e

        logger.info(
            f"Saved highlight {highlight.id} for {safe_book_id}, page {safe_page}"
        )
        return highlight

    def replace_highlights(
        self,
        user_id: str,
        book_id: str,
        page: int,
        remove_ids: list[str],
        rects: list[Rect],
    ) -> Highlight:
        """
        Delete a set of highlights and insert their replacement atomically.

        Both steps share one transaction: readers see either the old
        highlights or the new one, never neither or both.

        Args:
            user_id (str): Owner of the highlights
            book_id (str): Book identifier
            page (int): 1-based page number
            remove_ids (list[str]): Highlights folded into the replacement
            rects (list[Rect]): Final merged rects

        Returns:
            Highlight: The inserted replacement

        Raises:
            PersistenceError: If the transaction could not complete
        """
        safe_user_id, safe_book_id, safe_page = self._validate_key(user_id, book_id, page)
        if not rects:
            raise PersistenceError("A highlight needs at least one rect")

        safe_ids = [i.strip() for i in remove_ids if i and i.strip()]
        now = self.get_current_timestamp()
        try:
            with self.transaction() as conn:
                if safe_ids:
                    conn.execute(
                        """
                        DELETE FROM highlights
                        WHERE user_id = ?
                          AND id IN (SELECT value FROM json_each(?))
                        """,
                        (safe_user_id, json.dumps(safe_ids)),
                    )
                highlight = self._insert(
                    conn,
                    safe_user_id,
                    safe_book_id,
                    safe_page,
                    rects,
                    str(uuid.uuid4()),
                    now,
                    now,
                )
        except sqlite3.Error as e:
            logger.error(f"Error replacing highlights on page {safe_page}: {e}")
            raise PersistenceError(f"Could not merge highlights: {e}") from e

        logger.info(
            f"Merged {len(safe_ids)} highlight(s) into {highlight.id} "
            f"for {safe_book_id}, page {safe_page}"
        )
        return highlight

    def delete_highlight(self, highlight_id: str, user_id: str | None = None) -> bool:
        """
        Delete a specific highlight by its ID.

        Args:
            highlight_id (str): Unique identifier of the highlight to delete
            user_id (str | None): When given, only delete if owned by this user

        Returns:
            bool: True if a highlight was deleted, False if none matched

        Raises:
            PersistenceError: If the delete fails
        """
        safe_id = as_non_empty(highlight_id)
        if not safe_id:
            return False

        if user_id is None:
            query, params = "DELETE FROM highlights WHERE id = ?", (safe_id,)
        else:
            query = "DELETE FROM highlights WHERE id = ? AND user_id = ?"
            params = (safe_id, user_id.strip())

        try:
            with self.get_connection() as conn:
                deleted = conn.execute(query, params).rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"Error deleting highlight: {e}")
            raise PersistenceError(f"Could not delete highlight: {e}") from e

        if deleted:
            logger.info(f"Deleted highlight {safe_id}")
        return deleted

    def count_highlights(self, user_id: str, book_id: str) -> dict[int, int]:
        """
        Count highlights per page for a book.

        Args:
            user_id (str): Owner of the highlights
            book_id (str): Book identifier

        Returns:
            dict[int, int]: Mapping of page number to highlight count
        """
        rows = self.execute_query(
            """
            SELECT page, COUNT(*) AS highlights_count
            FROM highlights
            WHERE user_id = ? AND book_id = ?
            GROUP BY page
            ORDER BY page
            """,
            (user_id.strip(), book_id.strip()),
            fetch_all=True,
        )
        counts: dict[int, int] = {}
        for row in rows or []:
            counts[row["page"]] = row["highlights_count"]
        return counts
