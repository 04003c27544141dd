"""
Notes Service Module

This module provides database operations for page-anchored notes. A note
belongs to one reader and one book, points at a page and carries free text
that can be edited after it was written.
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
from .errors import InvalidNote, NotFound, PersistenceError

# Configure logger for this module
logger = logging.getLogger(__name__)

NOTE_COLUMNS = "id, user_id, book_id, page, content, created_at, updated_at"


def normalize_content(value: Optional[str]) -> Optional[str]:
    """Trim note text, returning None when nothing is left."""
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class NotesService(BaseDatabaseService):
    """
    Service class for managing notes using SQLite.

    Notes are listed most recently edited first.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """
        Initialize the notes service.

        Args:
            db_path (str): Path to the SQLite database file
        """
        super().__init__(db_path)
        self._init_table()

    def _init_table(self):
        """
        Initialize the notes table and indexes.
        """
        with self.get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS notes (
                    id TEXT PRIMARY KEY,                  -- Unique identifier for each note
                    user_id TEXT NOT NULL,                -- Reader who wrote the note
                    book_id TEXT NOT NULL,                -- Which book this note belongs to
                    page INTEGER NOT NULL,                -- Which page this note is anchored to
                    content TEXT NOT NULL,                -- Trimmed note text
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_notes_user_updated_at
                ON notes(user_id, updated_at DESC)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_notes_user_book_page
                ON notes(user_id, book_id, page)
            """)

    def create_note(
        self, user_id: str, book_id: str, page: int, content: str
    ) -> Dict[str, Any]:
        """
        Write a note on a page of a book.

        Args:
            user_id (str): Reader
            book_id (str): Book identifier
            page (int): 1-based page number, floored
            content (str): Note text, trimmed before storing

        Returns:
            Dict[str, Any]: The stored note

        Raises:
            NotFound: If the user or book id is blank
            InvalidNote: If the page is invalid or the content is blank
            PersistenceError: If the insert fails
        """
        safe_user_id = as_non_empty(user_id)
        safe_book_id = as_non_empty(book_id)
        if not safe_user_id or not safe_book_id:
            raise NotFound("Book not found")

        safe_page = normalize_page(page)
        if not safe_page:
            raise InvalidNote("Invalid page")

        safe_content = normalize_content(content)
        if not safe_content:
            raise InvalidNote("Note content is required.")

        now = self.get_current_timestamp()
        note = {
            "id": str(uuid.uuid4()),
            "user_id": safe_user_id,
            "book_id": safe_book_id,
            "page": safe_page,
            "content": safe_content,
            "created_at": now,
            "updated_at": now,
        }
        try:
            with self.get_connection() as conn:
                conn.execute(
                    f"INSERT INTO notes ({NOTE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    tuple(note.values()),
                )
        except sqlite3.Error as e:
            logger.error(f"Error creating note: {e}")
            raise PersistenceError(f"Could not create note: {e}") from e

        logger.info(f"Created note {note['id']} for {safe_book_id}, page {safe_page}")
        return note

    def list_notes(
        self,
        user_id: str,
        book_id: Optional[str] = None,
        query: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        List a reader's notes, optionally for one book or matching some text.

        Args:
            user_id (str): Reader
            book_id (Optional[str]): Only notes of this book when given
            query (Optional[str]): Only notes whose content contains this text

        Returns:
            List[Dict[str, Any]]: Notes, most recently edited first
        """
        safe_user_id = as_non_empty(user_id)
        if not safe_user_id:
            return []

        where = ["user_id = ?"]
        params: list[Any] = [safe_user_id]

        safe_book_id = as_non_empty(book_id)
        if safe_book_id:
            where.append("book_id = ?")
            params.append(safe_book_id)

        safe_query = normalize_content(query)
        if safe_query:
            where.append("content LIKE ? ESCAPE '\\'")
            params.append(f"%{_escape_like(safe_query)}%")

        try:
            with self.get_connection() as conn:
                rows = conn.execute(
                    f"""
                    SELECT {NOTE_COLUMNS}
                    FROM notes
                    WHERE {" AND ".join(where)}
                    ORDER BY updated_at DESC
                    """,
                    tuple(params),
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Error listing notes: {e}")
            raise PersistenceError(f"Could not list notes: {e}") from e

        return [dict(row) for row in rows]

    def update_note(
        self, user_id: str, note_id: str, content: str
    ) -> Optional[Dict[str, Any]]:
        """
        Replace the text of a note.

        Args:
            user_id (str): Reader owning the note
            note_id (str): Note identifier
            content (str): New text, trimmed before storing

        Returns:
            Optional[Dict[str, Any]]: The updated note, or None if it does not exist

        Raises:
            InvalidNote: If the content is blank
            PersistenceError: If the update fails
        """
        safe_content = normalize_content(content)
        if not safe_content:
            raise InvalidNote("Note content is required.")

        safe_user_id = as_non_empty(user_id)
        safe_note_id = as_non_empty(note_id)
        if not safe_user_id or not safe_note_id:
            return None

        try:
            with self.get_connection() as conn:
                cursor = conn.execute(
                    """
                    UPDATE notes
                    SET content = ?, updated_at = ?
                    WHERE user_id = ? AND id = ?
                    """,
                    (
                        safe_content,
                        self.get_current_timestamp(),
                        safe_user_id,
                        safe_note_id,
                    ),
                )
                if cursor.rowcount == 0:
                    return None
                row = conn.execute(
                    f"SELECT {NOTE_COLUMNS} FROM notes WHERE user_id = ? AND id = ?",
                    (safe_user_id, safe_note_id),
                ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Error updating note {note_id}: {e}")
            raise PersistenceError(f"Could not update note: {e}") from e

        return dict(row) if row else None

    def delete_note(self, user_id: str, note_id: str) -> bool:
        """
        Delete one of a reader's notes.

        Returns:
            bool: True if a note was deleted
        """
        safe_user_id = as_non_empty(user_id)
        safe_note_id = as_non_empty(note_id)
        if not safe_user_id or not safe_note_id:
            return False

        try:
            with self.get_connection() as conn:
                cursor = conn.execute(
                    "DELETE FROM notes WHERE user_id = ? AND id = ?",
                    (safe_user_id, safe_note_id),
                )
                deleted = cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"Error deleting note {note_id}: {e}")
            raise PersistenceError(f"Could not delete note: {e}") from e

        if deleted:
            logger.info(f"Deleted note {safe_note_id}")
        return deleted
