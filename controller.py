from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from api import ALL_ROWS_PAGE_SIZE, PAGE_SIZE, ApiError, Book, BookPage, BookstoreClient, SearchType

logger = logging.getLogger(__name__)

MISSING_FIELDS_ALERT = "제목, 저자는 필수입니다."
CONFIRM_DELETE_PROMPT = "정말 삭제하시겠습니까?"
EMPTY_CATALOG_MESSAGE = "현재 등록된 책이 없습니다."
NO_RESULTS_MESSAGE = "검색 결과가 없습니다."

CacheKey = Tuple[int, SearchType, str]


@dataclass(frozen=True)
class SearchFilter:
    keyword: str = ""
    search_type: SearchType = SearchType.ALL

    @property
    def is_empty(self) -> bool:
        return self.keyword == "" and self.search_type is SearchType.ALL


@dataclass
class NewBookDraft:
    title: str = ""
    author: str = ""
    detail: str = ""


class PageCache:
    """List responses keyed by (page, search type, keyword).

    Any successful mutation clears the whole cache.
    """

    def __init__(self) -> None:
        self._pages: Dict[CacheKey, BookPage] = {}

    def get(self, key: CacheKey) -> Optional[BookPage]:
        return self._pages.get(key)

    def put(self, key: CacheKey, page: BookPage) -> None:
        self._pages[key] = page

    def invalidate(self) -> None:
        self._pages.clear()

    def __len__(self) -> int:
        return len(self._pages)


def _noop_alert(message: str) -> None:
    logger.warning("Alert: %s", message)


def _always_confirm(_message: str) -> bool:
    return True


class BookstoreController:
    """UI state for the catalog screen and the calls that keep it in sync."""

    def __init__(
        self,
        client: BookstoreClient,
        *,
        alert: Optional[Callable[[str], None]] = None,
        confirm: Optional[Callable[[str], bool]] = None,
        page_size: int = PAGE_SIZE,
    ):
        self.client = client
        self.alert = alert or _noop_alert
        self.confirm = confirm or _always_confirm
        self.page_size = page_size
        self.cache = PageCache()

        self.books: List[Book] = []
        self.total = 0
        self.page = 1
        self.loading = False

        self.applied = SearchFilter()
        self.draft = SearchFilter()

        self.show_add_modal = False
        self.show_edit_modal = False
        self.new_book = NewBookDraft()
        self.edit_book: Optional[Book] = None

    # ------------------------------------------------------------------ #
    # Loading and pagination
    # ------------------------------------------------------------------ #
    def _cache_key(self) -> CacheKey:
        return (self.page, self.applied.search_type, self.applied.keyword)

    def load(self) -> None:
        key = self._cache_key()
        cached = self.cache.get(key)
        if cached is not None:
            self._apply_page(cached)
            return
        self.loading = True
        try:
            result = self.client.list_books(
                page=self.page,
                page_size=self.page_size,
                search_type=self.applied.search_type,
                keyword=self.applied.keyword,
            )
        except ApiError as error:
            logger.error("Failed to load books: %s", error.message)
            self.alert(error.message)
            return
        finally:
            self.loading = False
        self.cache.put(key, result)
        self._apply_page(result)

    def _apply_page(self, result: BookPage) -> None:
        self.books = list(result.data)
        self.total = result.total

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size)

    @property
    def page_label(self) -> str:
        return f"{self.page} / {self.total_pages or 1}"

    @property
    def can_go_previous(self) -> bool:
        return self.page > 1

    @property
    def can_go_next(self) -> bool:
        return self.total_pages > 0 and self.page < self.total_pages

    def previous_page(self) -> None:
        if self.can_go_previous:
            self.page -= 1
            self.load()

    def next_page(self) -> None:
        if self.can_go_next:
            self.page += 1
            self.load()

    @property
    def empty_message(self) -> Optional[str]:
        if self.books:
            return None
        return EMPTY_CATALOG_MESSAGE if self.applied.is_empty else NO_RESULTS_MESSAGE

    # ------------------------------------------------------------------ #
    # Search
    # ------------------------------------------------------------------ #
    def set_search_input(
        self,
        keyword: Optional[str] = None,
        search_type: Optional[SearchType] = None,
    ) -> None:
        """Edit the search draft without touching the applied filter."""
        self.draft = SearchFilter(
            keyword=self.draft.keyword if keyword is None else keyword,
            search_type=self.draft.search_type if search_type is None else SearchType.parse(search_type),
        )

    def submit_search(self) -> None:
        self.page = 1
        self.applied = self.draft
        self.load()

    def _reset_filters(self, page: int) -> None:
        self.applied = SearchFilter()
        self.draft = SearchFilter()
        self.page = page

    # ------------------------------------------------------------------ #
    # Add
    # ------------------------------------------------------------------ #
    def open_add_modal(self) -> None:
        self.show_add_modal = True

    def close_add_modal(self) -> None:
        self.show_add_modal = False

    def change_new_book(self, **fields: Any) -> None:
        self.new_book = replace(self.new_book, **fields)

    def add_book(self) -> Optional[Book]:
        """Create the drafted book and move to the page that shows it."""
        draft = self.new_book
        if not draft.title or not draft.author:
            self.alert(MISSING_FIELDS_ALERT)
            return None
        try:
            created = self.client.create_book(draft.title, draft.author, draft.detail, 0)
        except ApiError as error:
            self.alert(error.message)
            return None

        self.new_book = NewBookDraft()
        self.show_add_modal = False
        self.cache.invalidate()
        self._reset_filters(self._locate_page(created))
        self.load()
        return created

    def _locate_page(self, book: Book) -> int:
        try:
            everything = self.client.list_books(page=1, page_size=ALL_ROWS_PAGE_SIZE)
        except ApiError as error:
            logger.warning("Could not locate new book %s: %s", book.id, error.message)
            return 1
        for index, item in enumerate(everything.data):
            if item.id == book.id:
                return index // self.page_size + 1
        logger.warning("New book %s missing from full listing", book.id)
        return 1

    # ------------------------------------------------------------------ #
    # Update and delete
    # ------------------------------------------------------------------ #
    def _replace_local(self, updated: Book) -> None:
        self.books = [updated if book.id == updated.id else book for book in self.books]

    def update_quantity(self, book: Book, quantity: int) -> Optional[Book]:
        try:
            updated = self.client.update_book(book.id, quantity=max(quantity, 0))
        except ApiError as error:
            self.alert(error.message)
            return None
        self.cache.invalidate()
        self._replace_local(updated)
        return updated

    def increase_quantity(self, book: Book) -> Optional[Book]:
        return self.update_quantity(book, book.quantity + 1)

    def decrease_quantity(self, book: Book) -> Optional[Book]:
        return self.update_quantity(book, max(book.quantity - 1, 0))

    def open_edit_modal(self, book: Book) -> None:
        self.edit_book = replace(book)
        self.show_edit_modal = True

    def close_edit_modal(self) -> None:
        self.show_edit_modal = False

    def change_edit_book(self, **fields: Any) -> None:
        if self.edit_book is not None:
            self.edit_book = replace(self.edit_book, **fields)

    def save_edit(self) -> Optional[Book]:
        book = self.edit_book
        if book is None:
            return None
        try:
            updated = self.client.update_book(
                book.id,
                title=book.title,
                author=book.author,
                detail=book.detail,
                quantity=book.quantity,
            )
        except ApiError as error:
            self.alert(error.message)
            return None
        self.cache.invalidate()
        self._replace_local(updated)
        self.show_edit_modal = False
        self.edit_book = None
        return updated

    def delete_book(self, book_id: int) -> bool:
        if not self.confirm(CONFIRM_DELETE_PROMPT):
            return False
        try:
            self.client.delete_book(book_id)
        except ApiError as error:
            self.alert(error.message)
            return False
        self.cache.invalidate()
        remaining = [book for book in self.books if book.id != book_id]
        if len(remaining) != len(self.books):
            self.total = max(self.total - 1, 0)
        self.books = remaining
        return True
