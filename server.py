from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from api import PAGE_SIZE, SearchType
from config import Config
from inventory import DuplicateBookError, InventoryStore, StoreError

logger = logging.getLogger(__name__)

REQUIRED_FIELDS_MESSAGE = "제목과 저자는 필수입니다."
NOT_FOUND_MESSAGE = "책을 찾을 수 없습니다."
UPDATE_FAILED_MESSAGE = "수정 실패"
DUPLICATE_MESSAGE = "이미 같은 제목과 저자의 책이 존재합니다."
UNKNOWN_ERROR_MESSAGE = "Unknown error"


# -----------------------------------------------------------------------------
# Application setup
# -----------------------------------------------------------------------------

app = FastAPI(title="Bookstore API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_store() -> InventoryStore:
    if not hasattr(get_store, "_instance"):
        get_store._instance = InventoryStore(db_path=Config.DB_PATH)
    return get_store._instance  # type: ignore[attr-defined]


@app.on_event("shutdown")
def _shutdown() -> None:
    store = getattr(get_store, "_instance", None)
    if isinstance(store, InventoryStore):
        store.close()


# -----------------------------------------------------------------------------
# Pydantic models
# -----------------------------------------------------------------------------


class BookOut(BaseModel):
    id: int
    title: str
    author: str
    detail: Optional[str] = None
    quantity: int = 0


class BookPage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total: int
    page: int
    page_size: int = Field(alias="pageSize")
    data: List[BookOut] = Field(default_factory=list)


class BookCreate(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    detail: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=0)


class BookUpdate(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    detail: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=0)


# -----------------------------------------------------------------------------
# Error rendering
# -----------------------------------------------------------------------------


def _error_text(exc: Exception) -> str:
    return str(exc) or UNKNOWN_ERROR_MESSAGE


@app.exception_handler(StarletteHTTPException)
async def _http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        {"error": exc.detail or UNKNOWN_ERROR_MESSAGE},
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def _validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        message = error.get("msg", "")
        parts.append(f"{location}: {message}" if location else message)
    return JSONResponse(
        {"error": "; ".join(parts) or UNKNOWN_ERROR_MESSAGE},
        status_code=status.HTTP_400_BAD_REQUEST,
    )


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------


@app.get("/api/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/books", response_model=BookPage)
def list_books(
    page: int = Query(1, ge=1),
    page_size: int = Query(PAGE_SIZE, ge=1, alias="pageSize"),
    search_type: Optional[str] = Query(None, alias="searchType"),
    keyword: str = Query(""),
    store: InventoryStore = Depends(get_store),
) -> Dict[str, Any]:
    try:
        books, total = store.list_books(
            page=page,
            page_size=page_size,
            search_type=SearchType.parse(search_type),
            keyword=keyword,
        )
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_error_text(exc))
    return {"total": total, "page": page, "pageSize": page_size, "data": books}


@app.post("/api/books", status_code=status.HTTP_201_CREATED, response_model=BookOut)
def create_book(
    payload: BookCreate,
    store: InventoryStore = Depends(get_store),
) -> Dict[str, Any]:
    if not payload.title or not payload.author:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=REQUIRED_FIELDS_MESSAGE)
    try:
        return store.add_book(
            title=payload.title,
            author=payload.author,
            detail=payload.detail,
            quantity=payload.quantity if payload.quantity is not None else 0,
        )
    except DuplicateBookError:
        logger.warning("Rejected duplicate book %r by %r", payload.title, payload.author)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=DUPLICATE_MESSAGE)
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_error_text(exc))


@app.get("/api/books/{book_id}", response_model=BookOut)
def get_book(book_id: int, store: InventoryStore = Depends(get_store)) -> Dict[str, Any]:
    try:
        record = store.get_book(book_id)
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_error_text(exc))
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_MESSAGE)
    return record


@app.put("/api/books/{book_id}", response_model=BookOut)
def update_book(
    book_id: int,
    payload: BookUpdate,
    store: InventoryStore = Depends(get_store),
) -> Dict[str, Any]:
    changes = payload.model_dump(exclude_unset=True)
    try:
        record = store.update_book(book_id, changes)
    except DuplicateBookError:
        logger.warning("Rejected update of book %s: duplicate title/author", book_id)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=DUPLICATE_MESSAGE)
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_error_text(exc))
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=UPDATE_FAILED_MESSAGE)
    return record


@app.delete("/api/books/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_book(book_id: int, store: InventoryStore = Depends(get_store)) -> None:
    try:
        store.delete_book(book_id)
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_error_text(exc))


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=Config.LOG_LEVEL, format=Config.LOG_FORMAT)
    uvicorn.run(app, host=Config.HOST, port=Config.PORT)
