"""
Bookmarks Service Module

Stores per-page bookmarks. A page is either bookmarked or not; toggling
flips that state inside a single transaction.
"""

import logging
import sqlite3
import uuid
from typing import Any, Dict, List, Optional

from .base_database_service import (
    DEFAULT_DB_PATH,
    BaseDatabaseService,
    as_non_empty,
    normalize_page,
)
from .errors import PersistenceError

logger = logging.getLogger(__name__)


class BookmarksService(BaseDatabaseService):
    """Service class for managing page bookmarks using SQLite."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        super().__init__(db_path)
        self._init_table()

    def _init_table(self):
        with self.get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS bookmarks (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    book_id TEXT NOT NULL,
                    page INTEGER NOT NULL,
                    created_at INTEGER NOT NULL,
                    UNIQUE(user_id, book_id, page)
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_bookmarks_user_book_page
                ON bookmarks(user_id, book_id, page)
            """)

    def list_bookmarks(self, user_id: str, book_id: str) -> List[Dict[str, Any]]:
        """
        List the bookmarks of a book, in page order.

        Args:
            user_id (str): Reader
            book_id (str): Book identifier

        Returns:
            List[Dict[str, Any]]: Bookmark rows
        """
        safe_user_id = as_non_empty(user_id)
        safe_book_id = as_non_empty(book_id)
        if not safe_user_id or not safe_book_id:
            return []

        rows = self.execute_query(
            """
            SELECT id, user_id, book_id, page, created_at
            FROM bookmarks
            WHERE user_id = ? AND book_id = ?
            ORDER BY page ASC
            """,
            (safe_user_id, safe_book_id),
            fetch_all=True,
        )
        return [dict(row) for row in rows or []]

    def toggle_bookmark(self, user_id: str, book_id: str, page: int) -> Optional[bool]:
        """
        Add a bookmark for a page, or remove it if it already exists.

        Args:
            user_id (str): Reader
            book_id (str): Book identifier
            page (int): 1-based page number

        Returns:
            Optional[bool]: True if added, False if removed, None for invalid input

        Raises:
            PersistenceError: If the transaction fails
        """
        safe_user_id = as_non_empty(user_id)
        safe_book_id = as_non_empty(book_id)
        safe_page = normalize_page(page)
        if not safe_user_id or not safe_book_id or not safe_page:
            return None

        try:
            with self.transaction() as conn:
                try:
                    conn.execute(
                        """
                        INSERT INTO bookmarks (id, user_id, book_id, page, created_at)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (
                            str(uuid.uuid4()),
                            safe_user_id,
                            safe_book_id,
                            safe_page,
                            self.get_current_timestamp(),
                        ),
                    )
                    added = True
                except sqlite3.IntegrityError:
                    conn.execute(
                        """
                        DELETE FROM bookmarks
                        WHERE user_id = ? AND book_id = ? AND page = ?
                        """,
                        (safe_user_id, safe_book_id, safe_page),
                    )
                    added = False
        except sqlite3.Error as e:
            logger.error(f"Error toggling bookmark: {e}")
            raise PersistenceError(f"Could not toggle bookmark: {e}") from e

        logger.info(
            f"{'Added' if added else 'Removed'} bookmark for {safe_book_id}, page {safe_page}"
        )
        return added
