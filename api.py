from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

PUBLIC_COLUMNS = ["id", "title", "author", "detail", "quantity"]

PAGE_SIZE = 10
# Large enough to return the whole collection in one page.
ALL_ROWS_PAGE_SIZE = 999999

INVALID_RESPONSE_MESSAGE = "Invalid response from server"


class SearchType(str, Enum):
    ALL = "전체"
    TITLE = "제목"
    AUTHOR = "저자"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SearchType":
        """Map a wire value (Korean label or english alias) to a member.

        Unknown values fall back to ``ALL``.
        """
        if not value:
            return cls.ALL
        for member in cls:
            if value == member.value:
                return member
        return _SEARCH_ALIASES.get(value.strip().lower(), cls.ALL)


_SEARCH_ALIASES = {
    "all": SearchType.ALL,
    "title": SearchType.TITLE,
    "author": SearchType.AUTHOR,
}


@dataclass
class Book:
    """A book as exposed over HTTP."""

    id: int
    title: str
    author: str
    detail: Optional[str] = None
    quantity: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Book":
        return cls(
            id=int(data["id"]),
            title=data.get("title") or "",
            author=data.get("author") or "",
            detail=data.get("detail"),
            quantity=int(data.get("quantity") or 0),
        )


@dataclass
class BookPage:
    total: int
    page: int
    page_size: int
    data: List[Book] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BookPage":
        return cls(
            total=int(data.get("total") or 0),
            page=int(data.get("page") or 1),
            page_size=int(data.get("pageSize") or PAGE_SIZE),
            data=[Book.from_dict(item) for item in data.get("data") or []],
        )


class ApiError(Exception):
    """A failed call to the bookstore API.

    ``status_code`` is ``None`` when the request never got a response.
    """

    def __init__(self, status_code: Optional[int], message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class BookstoreClient:
    """Thin wrapper around the ``/api/books`` routes."""

    def __init__(
        self,
        base_url: str = "",
        *,
        session: Any = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        kwargs: Dict[str, Any] = {}
        if params is not None:
            kwargs["params"] = params
        if json is not None:
            kwargs["json"] = json
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as error:
            logger.error("Unable to reach bookstore API at %s: %s", url, error)
            raise ApiError(None, str(error) or "Unknown error") from error

        if not 200 <= response.status_code < 300:
            raise ApiError(response.status_code, _error_message(response))
        if response.status_code == 204:
            return None
        try:
            return response.json()
        except ValueError as error:
            logger.error("Bookstore API at %s returned a non-JSON body", url)
            raise ApiError(response.status_code, INVALID_RESPONSE_MESSAGE) from error

    def list_books(
        self,
        *,
        page: int = 1,
        page_size: int = PAGE_SIZE,
        search_type: SearchType = SearchType.ALL,
        keyword: str = "",
    ) -> BookPage:
        params = {
            "page": str(page),
            "pageSize": str(page_size),
            "searchType": SearchType.parse(search_type).value,
            "keyword": keyword,
        }
        return BookPage.from_dict(self._request("GET", "/api/books", params=params))

    def create_book(
        self,
        title: str,
        author: str,
        detail: Optional[str] = None,
        quantity: int = 0,
    ) -> Book:
        payload = {"title": title, "author": author, "detail": detail, "quantity": quantity}
        return Book.from_dict(self._request("POST", "/api/books", json=payload))

    def get_book(self, book_id: int) -> Book:
        return Book.from_dict(self._request("GET", f"/api/books/{book_id}"))

    def update_book(self, book_id: int, **changes: Any) -> Book:
        """Send a partial update; only the given keyword arguments are sent."""
        return Book.from_dict(self._request("PUT", f"/api/books/{book_id}", json=changes))

    def delete_book(self, book_id: int) -> None:
        self._request("DELETE", f"/api/books/{book_id}")


def _error_message(response: Any) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.text or f"HTTP {response.status_code}"
