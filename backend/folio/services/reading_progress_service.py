"""
Reading Progress Service Module

This module provides specialized database operations for managing reading
progress. It tracks the last page a user viewed in each book.
"""

import logging
import sqlite3
from typing import Any, Dict, Optional

from .base_database_service import (
    DEFAULT_DB_PATH,
    BaseDatabaseService,
    as_non_empty,
    normalize_page,
)
from .errors import PersistenceError

# Configure logger for this module
logger = logging.getLogger(__name__)


class ReadingProgressService(BaseDatabaseService):
    """
    Service class for managing reading progress using SQLite.

    One row per (user_id, book_id); rows are upserted by the autosave and
    never deleted here (removal belongs to book deletion).
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """
        Initialize the reading progress service.

        Args:
            db_path (str): Path to the SQLite database file
        """
        super().__init__(db_path)
        self._init_table()

    def _init_table(self):
        """
        Initialize the reading progress table.
        """
        with self.get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS reading_progress (
                    user_id TEXT NOT NULL,                -- Reader
                    book_id TEXT NOT NULL,                -- Book being read
                    last_page INTEGER NOT NULL,           -- Last page the user was reading
                    updated_at INTEGER NOT NULL,          -- Epoch ms of the last write
                    PRIMARY KEY (user_id, book_id)
                )
            """)

    def get_last_page(self, user_id: str, book_id: str) -> Optional[int]:
        """
        Retrieve the last page read for a book.

        Args:
            user_id (str): Reader
            book_id (str): Book identifier

        Returns:
            Optional[int]: The last page, or None if never saved or invalid
        """
        safe_user_id = as_non_empty(user_id)
        safe_book_id = as_non_empty(book_id)
        if not safe_user_id or not safe_book_id:
            return None

        row = self.execute_query(
            """
            SELECT last_page FROM reading_progress
            WHERE user_id = ? AND book_id = ?
            LIMIT 1
            """,
            (safe_user_id, safe_book_id),
            fetch_one=True,
        )
        if not row:
            return None
        return normalize_page(row["last_page"])

    def set_last_page(self, user_id: str, book_id: str, last_page: int) -> bool:
        """
        Save or update the last page read for a book.

        Pages below 1 and blank identifiers are ignored.

        Args:
            user_id (str): Reader
            book_id (str): Book identifier
            last_page (int): Page the user is on

        Returns:
            bool: True if a row was written, False if the input was ignored

        Raises:
            PersistenceError: If the write fails
        """
        safe_user_id = as_non_empty(user_id)
        safe_book_id = as_non_empty(book_id)
        safe_last_page = normalize_page(last_page)
        if not safe_user_id or not safe_book_id or not safe_last_page:
            logger.debug(
                f"Ignoring progress write ({user_id!r}, {book_id!r}, {last_page!r})"
            )
            return False

        try:
            with self.get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO reading_progress (user_id, book_id, last_page, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(user_id, book_id) DO UPDATE SET
                        last_page = excluded.last_page,
                        updated_at = excluded.updated_at
                    """,
                    (
                        safe_user_id,
                        safe_book_id,
                        safe_last_page,
                        self.get_current_timestamp(),
                    ),
                )
        except sqlite3.Error as e:
            logger.error(f"Error saving reading progress: {e}")
            raise PersistenceError(f"Could not save reading progress: {e}") from e

        logger.info(f"Saved reading progress for {safe_book_id}: page {safe_last_page}")
        return True

    def get_progress(self, user_id: str, book_id: str) -> Optional[Dict[str, Any]]:
        """
        Retrieve the full progress row for a book.

        Args:
            user_id (str): Reader
            book_id (str): Book identifier

        Returns:
            Optional[Dict[str, Any]]: Progress information or None
        """
        row = self.execute_query(
            """
            SELECT user_id, book_id, last_page, updated_at
            FROM reading_progress
            WHERE user_id = ? AND book_id = ?
            """,
            (str(user_id).strip(), str(book_id).strip()),
            fetch_one=True,
        )
        if not row:
            return None
        return {
            "user_id": row["user_id"],
            "book_id": row["book_id"],
            "last_page": row["last_page"],
            "updated_at": row["updated_at"],
        }
