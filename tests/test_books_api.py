from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from inventory import InventoryStore, StoreError, normalize
from server import (
    DUPLICATE_MESSAGE,
    NOT_FOUND_MESSAGE,
    REQUIRED_FIELDS_MESSAGE,
    UNKNOWN_ERROR_MESSAGE,
    UPDATE_FAILED_MESSAGE,
    app,
    get_store,
)

HUGE = 10**20


def _reset_store_singleton() -> None:
    if hasattr(get_store, "_instance"):
        instance = getattr(get_store, "_instance")
        if isinstance(instance, InventoryStore):
            instance.close()
        delattr(get_store, "_instance")


@pytest.fixture
def store(tmp_path: Path) -> InventoryStore:
    _reset_store_singleton()
    test_store = InventoryStore(db_path=tmp_path / "books.db")
    app.dependency_overrides[get_store] = lambda: test_store
    yield test_store
    test_store.close()
    app.dependency_overrides.pop(get_store, None)
    _reset_store_singleton()


@pytest.fixture
def client(store: InventoryStore) -> TestClient:
    with TestClient(app) as test_client:
        yield test_client


def _count_with_key(store: InventoryStore, title: str, author: str) -> int:
    conn = sqlite3.connect(store.db_path)
    try:
        return conn.execute(
            "SELECT COUNT(*) FROM books WHERE normalized_title = ? AND normalized_author = ?",
            (normalize(title), normalize(author)),
        ).fetchone()[0]
    finally:
        conn.close()


class _BrokenStore:
    """Stands in for the store and fails every call with the same error."""

    def __init__(self, message: str):
        self.message = message

    def _fail(self, *_args, **_kwargs):
        raise StoreError(self.message)

    list_books = get_book = add_book = update_book = delete_book = _fail


@pytest.fixture
def broken_client():
    def _make(message: str) -> TestClient:
        app.dependency_overrides[get_store] = lambda: _BrokenStore(message)
        return TestClient(app)

    yield _make
    app.dependency_overrides.pop(get_store, None)


def _create(client: TestClient, **payload) -> dict:
    response = client.post("/api/books", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_returns_book_with_id(client: TestClient) -> None:
    response = client.post("/api/books", json={"title": "Dune", "author": "Herbert", "detail": "Spice"})

    assert response.status_code == 201
    body = response.json()
    assert body["id"] > 0
    assert body["title"] == "Dune"
    assert body["detail"] == "Spice"
    assert body["quantity"] == 0
    assert "normalized_title" not in body


def test_create_duplicate_returns_409(client: TestClient, store: InventoryStore) -> None:
    _create(client, title="Dune", author="Herbert")

    response = client.post("/api/books", json={"title": "dune", "author": "herbert"})
    assert response.status_code == 409
    assert response.json() == {"error": DUPLICATE_MESSAGE}

    response = client.post("/api/books", json={"title": "  D u n e ", "author": "HER BERT"})
    assert response.status_code == 409
    assert _count_with_key(store, "Dune", "Herbert") == 1


@pytest.mark.parametrize(
    "payload",
    [
        {"title": "Dune"},
        {"title": "Dune", "author": ""},
        {"author": "Herbert"},
        {},
    ],
)
def test_create_requires_title_and_author(client: TestClient, store: InventoryStore, payload: dict) -> None:
    response = client.post("/api/books", json=payload)

    assert response.status_code == 400
    assert response.json() == {"error": REQUIRED_FIELDS_MESSAGE}
    _rows, total = store.list_books()
    assert total == 0


def test_create_rejects_negative_quantity(client: TestClient) -> None:
    response = client.post("/api/books", json={"title": "Dune", "author": "Herbert", "quantity": -3})
    assert response.status_code == 400
    assert "error" in response.json()


def test_list_defaults_and_shape(client: TestClient) -> None:
    _create(client, title="Dune", author="Herbert")

    response = client.get("/api/books")
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["page"] == 1
    assert body["pageSize"] == 10
    assert [book["title"] for book in body["data"]] == ["Dune"]


def test_list_second_page_of_fifteen(client: TestClient) -> None:
    for index in range(15):
        _create(client, title=f"Book {index}", author="Author")

    response = client.get("/api/books", params={"page": 2, "pageSize": 10})
    body = response.json()
    assert response.status_code == 200
    assert body["total"] == 15
    assert len(body["data"]) == 5
    assert [book["title"] for book in body["data"]] == [f"Book {index}" for index in range(10, 15)]


def test_list_title_search(client: TestClient) -> None:
    _create(client, title="Dune", author="Herbert")
    _create(client, title="Foundation", author="Asimov")
    _create(client, title="The Dunwich Horror", author="Lovecraft")
    _create(client, title="Emma", author="Dunn")

    response = client.get("/api/books", params={"searchType": "제목", "keyword": "dun"})
    titles = [book["title"] for book in response.json()["data"]]
    assert titles == ["Dune", "The Dunwich Horror"]

    response = client.get("/api/books", params={"searchType": "저자", "keyword": "DUN"})
    assert [book["title"] for book in response.json()["data"]] == ["Emma"]

    response = client.get("/api/books", params={"searchType": "전체", "keyword": "dun"})
    assert response.json()["total"] == 3

    response = client.get("/api/books", params={"searchType": "title", "keyword": "dun"})
    assert response.json()["total"] == 2


def test_list_rejects_invalid_paging(client: TestClient) -> None:
    for params in ({"page": 0}, {"pageSize": 0}, {"page": "abc"}):
        response = client.get("/api/books", params=params)
        assert response.status_code == 400
        assert "error" in response.json()


def test_get_book(client: TestClient) -> None:
    created = _create(client, title="Dune", author="Herbert")

    response = client.get(f"/api/books/{created['id']}")
    assert response.status_code == 200
    assert response.json() == created

    response = client.get("/api/books/9999")
    assert response.status_code == 404
    assert response.json() == {"error": NOT_FOUND_MESSAGE}

    response = client.get("/api/books/not-a-number")
    assert response.status_code == 400


def test_update_only_quantity_keeps_other_fields(client: TestClient) -> None:
    created = _create(client, title="Dune", author="Herbert", detail="Spice", quantity=1)

    response = client.put(f"/api/books/{created['id']}", json={"quantity": 4})

    assert response.status_code == 200
    assert response.json() == {**created, "quantity": 4}


def test_update_null_detail_clears_it(client: TestClient) -> None:
    created = _create(client, title="Dune", author="Herbert", detail="Spice")

    response = client.put(f"/api/books/{created['id']}", json={"detail": None})
    assert response.status_code == 200
    assert response.json()["detail"] is None
    assert response.json()["title"] == "Dune"


def test_update_duplicate_and_missing(client: TestClient) -> None:
    _create(client, title="Dune", author="Herbert")
    other = _create(client, title="Emma", author="Austen")

    response = client.put(f"/api/books/{other['id']}", json={"title": "DUNE", "author": "herbert"})
    assert response.status_code == 409
    assert response.json() == {"error": DUPLICATE_MESSAGE}

    response = client.put("/api/books/9999", json={"quantity": 1})
    assert response.status_code == 404
    assert response.json() == {"error": UPDATE_FAILED_MESSAGE}


def test_delete_is_idempotent(client: TestClient) -> None:
    created = _create(client, title="Dune", author="Herbert")

    response = client.delete(f"/api/books/{created['id']}")
    assert response.status_code == 204
    assert response.content == b""

    response = client.delete(f"/api/books/{created['id']}")
    assert response.status_code == 204

    response = client.delete("/api/books/424242")
    assert response.status_code == 204

    assert client.get(f"/api/books/{created['id']}").status_code == 404


def test_create_then_duplicate_leaves_single_row(client: TestClient, store: InventoryStore) -> None:
    created = _create(client, title="The Hobbit", author="J. R. R. Tolkien")

    response = client.post("/api/books", json={"title": "the hobbit", "author": "J.R.R. Tolkien"})
    assert response.status_code == 409

    assert _count_with_key(store, "The Hobbit", "J. R. R. Tolkien") == 1
    listing = client.get("/api/books", params={"keyword": "hobbit"}).json()
    assert [book["id"] for book in listing["data"]] == [created["id"]]


def test_out_of_range_integers_are_rejected_with_400(client: TestClient) -> None:
    for params in (
        {"page": 10**19},
        {"pageSize": 10**19},
        {"page": 2**62, "pageSize": 10},
    ):
        response = client.get("/api/books", params=params)
        assert response.status_code == 400, params
        assert response.json()["error"]

    for response in (
        client.get(f"/api/books/{HUGE}"),
        client.put(f"/api/books/{HUGE}", json={"quantity": 1}),
        client.delete(f"/api/books/{HUGE}"),
        client.post("/api/books", json={"title": "Dune", "author": "Herbert", "quantity": HUGE}),
    ):
        assert response.status_code == 400
        assert response.json()["error"]

    assert client.get("/api/books").json()["total"] == 0


@pytest.mark.parametrize(
    "message, expected",
    [("disk I/O error", "disk I/O error"), ("", UNKNOWN_ERROR_MESSAGE)],
)
def test_store_failures_become_400(broken_client, message: str, expected: str) -> None:
    client = broken_client(message)

    responses = [
        client.get("/api/books"),
        client.post("/api/books", json={"title": "Dune", "author": "Herbert"}),
        client.get("/api/books/1"),
        client.put("/api/books/1", json={"quantity": 2}),
        client.delete("/api/books/1"),
    ]

    for response in responses:
        assert response.status_code == 400
        assert response.json() == {"error": expected}
