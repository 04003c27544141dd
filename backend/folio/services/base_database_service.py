"""
Base Database Service Module

This module provides shared database utilities and connection management
for the persistence services backing highlights, bookmarks and reading
progress.
"""

import logging
import math
import os
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

# Configure logger for this module
logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "data/reader.db"


def as_non_empty(value: str | None) -> str | None:
    """
    Trim a key component and reject blank values.

    Args:
        value (str | None): Raw identifier

    Returns:
        str | None: The trimmed identifier, or None if blank
    """
    if value is None:
        return None
    trimmed = str(value).strip()
    return trimmed or None


def normalize_page(value: Any) -> int | None:
    """
    Floor a page number and reject anything below 1.

    Args:
        value (Any): Raw page number

    Returns:
        int | None: A valid 1-based page number, or None
    """
    try:
        page = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(page):
        return None
    page_int = math.floor(page)
    return page_int if page_int >= 1 else None


class BaseDatabaseService:
    """
    Base class providing shared database utilities and connection management.

    This class handles common database operations like connection management,
    directory creation, and provides utility methods that can be used by
    specialized service classes.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """
        Initialize the base database service.

        Args:
            db_path (str): Path to the SQLite database file. Defaults to "data/reader.db"
                          The directory will be created if it doesn't exist.
        """
        self.db_path = db_path
        self._ensure_data_dir()

    def _ensure_data_dir(self):
        """
        Ensure the data directory exists for the database file.
        """
        data_dir = os.path.dirname(self.db_path)
        if data_dir and not os.path.exists(data_dir):
            os.makedirs(data_dir, exist_ok=True)

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """
        Context manager for database connections.
        Commits on success, rolls back on error, and always closes.
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Context manager for a write transaction.

        BEGIN IMMEDIATE takes the write lock up front so no other connection
        can observe or interleave with a partially applied change.
        """
        conn = sqlite3.connect(self.db_path, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def execute_query(
        self,
        query: str,
        params: tuple = (),
        fetch_one: bool = False,
        fetch_all: bool = False,
    ) -> Any:
        """
        Execute a database query with error handling.

        Args:
            query (str): SQL query to execute
            params (tuple): Query parameters
            fetch_one (bool): Whether to fetch one result
            fetch_all (bool): Whether to fetch all results

        Returns:
            Any: Query result or None if error occurred
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.execute(query, params)

                if fetch_one:
                    return cursor.fetchone()
                elif fetch_all:
                    return cursor.fetchall()
                else:
                    return cursor.lastrowid
        except Exception as e:
            logger.error(f"Database query error: {e}")
            return None

    def get_current_timestamp(self) -> int:
        """
        Get current timestamp for database operations.

        Returns:
            int: Milliseconds since the Unix epoch
        """
        return int(time.time() * 1000)

