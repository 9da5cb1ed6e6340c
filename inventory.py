from __future__ import annotations

import logging
import re
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from api import PAGE_SIZE, PUBLIC_COLUMNS, SearchType
from config import Config

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize(value: str) -> str:
    """Key used for duplicate detection: lowercase, all whitespace removed."""
    return _WHITESPACE.sub("", value).lower()


def _unicode_lower(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


def _like_pattern(keyword: str) -> str:
    escaped = keyword.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class StoreError(RuntimeError):
    """Raised when the underlying database rejects an operation."""


class DuplicateBookError(StoreError):
    """Raised when a write collides with an existing normalized title/author."""


class InventoryStore:
    """SQLite-backed store for the bookstore catalog."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path or Config.DB_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.create_function("unicode_lower", 1, _unicode_lower, deterministic=True)
        self._ensure_schema()

    # --------------------------------------------------------------------- #
    # Schema
    # --------------------------------------------------------------------- #
    def _ensure_schema(self) -> None:
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS books (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    author TEXT NOT NULL,
                    detail TEXT,
                    quantity INTEGER NOT NULL DEFAULT 0 CHECK (quantity >= 0),
                    normalized_title TEXT NOT NULL,
                    normalized_author TEXT NOT NULL,
                    UNIQUE (normalized_title, normalized_author)
                );
                """
            )

    # --------------------------------------------------------------------- #
    # Utility helpers
    # --------------------------------------------------------------------- #
    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def _translate_errors(self) -> Iterator[None]:
        try:
            yield
        except sqlite3.IntegrityError as exc:
            if "UNIQUE" in str(exc).upper():
                raise DuplicateBookError(str(exc)) from exc
            logger.error("Integrity error from store: %s", exc)
            raise StoreError(str(exc)) from exc
        except sqlite3.Error as exc:
            logger.error("Store operation failed: %s", exc)
            raise StoreError(str(exc)) from exc
        except OverflowError as exc:
            # Integers beyond 64 bits cannot be bound as parameters.
            logger.error("Store rejected out-of-range value: %s", exc)
            raise StoreError(str(exc)) from exc

    def _fetch_book(self, book_id: int) -> Optional[Dict[str, Any]]:
        row = self._conn.execute(
            f"SELECT {', '.join(PUBLIC_COLUMNS)} FROM books WHERE id = ?",
            (book_id,),
        ).fetchone()
        return dict(row) if row else None

    # --------------------------------------------------------------------- #
    # Book management
    # --------------------------------------------------------------------- #
    def list_books(
        self,
        *,
        page: int = 1,
        page_size: int = PAGE_SIZE,
        search_type: SearchType = SearchType.ALL,
        keyword: str = "",
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Return one page of books ordered by id, plus the filtered total."""
        where = ""
        params: Tuple[Any, ...] = ()
        keyword = (keyword or "").lower()
        if keyword:
            pattern = _like_pattern(keyword)
            title_match = "unicode_lower(title) LIKE ? ESCAPE '\\'"
            author_match = "unicode_lower(author) LIKE ? ESCAPE '\\'"
            if search_type is SearchType.TITLE:
                where = f"WHERE {title_match}"
                params = (pattern,)
            elif search_type is SearchType.AUTHOR:
                where = f"WHERE {author_match}"
                params = (pattern,)
            else:
                where = f"WHERE {title_match} OR {author_match}"
                params = (pattern, pattern)

        offset = (page - 1) * page_size
        with self._lock, self._translate_errors():
            total = self._conn.execute(
                f"SELECT COUNT(*) FROM books {where}", params
            ).fetchone()[0]
            rows = self._conn.execute(
                f"""
                SELECT {', '.join(PUBLIC_COLUMNS)}
                FROM books
                {where}
                ORDER BY id ASC
                LIMIT ? OFFSET ?
                """,
                (*params, page_size, offset),
            ).fetchall()
        return [dict(row) for row in rows], int(total)

    def get_book(self, book_id: int) -> Optional[Dict[str, Any]]:
        with self._lock, self._translate_errors():
            return self._fetch_book(book_id)

    def add_book(
        self,
        *,
        title: str,
        author: str,
        detail: Optional[str] = None,
        quantity: int = 0,
    ) -> Dict[str, Any]:
        """Insert a new book and return it with its assigned id."""
        values = (title, author, detail, quantity, normalize(title), normalize(author))
        with self._lock, self._translate_errors():
            with self._conn:
                cursor = self._conn.execute(
                    """
                    INSERT INTO books
                        (title, author, detail, quantity, normalized_title, normalized_author)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    values,
                )
            book = self._fetch_book(int(cursor.lastrowid))
        logger.info("Added book %s: %r by %r", book["id"], title, author)
        return book

    def update_book(self, book_id: int, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply a partial update. Returns the updated book, or None if absent.

        Only keys present in ``changes`` are written. ``title`` and ``author``
        are skipped when empty; ``quantity`` is skipped when None.
        """
        assignments: List[str] = []
        values: List[Any] = []
        title = changes.get("title")
        if title:
            assignments += ["title = ?", "normalized_title = ?"]
            values += [title, normalize(title)]
        author = changes.get("author")
        if author:
            assignments += ["author = ?", "normalized_author = ?"]
            values += [author, normalize(author)]
        if "detail" in changes:
            assignments.append("detail = ?")
            values.append(changes["detail"])
        if changes.get("quantity") is not None:
            assignments.append("quantity = ?")
            values.append(changes["quantity"])

        with self._lock, self._translate_errors():
            if assignments:
                with self._conn:
                    cursor = self._conn.execute(
                        f"UPDATE books SET {', '.join(assignments)} WHERE id = ?",
                        (*values, book_id),
                    )
                if cursor.rowcount == 0:
                    return None
                logger.info("Updated book %s (%s)", book_id, ", ".join(sorted(changes)))
            return self._fetch_book(book_id)

    def delete_book(self, book_id: int) -> None:
        """Delete a book. Deleting a missing id is not an error."""
        with self._lock, self._translate_errors():
            with self._conn:
                cursor = self._conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
        if cursor.rowcount:
            logger.info("Deleted book %s", book_id)

