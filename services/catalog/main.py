"""Catalog service API built with FastAPI.

This module exposes the book catalog to the orders web app: book lookup,
atomic stock/sold adjustment and inventory imports. Validation is
performed with Pydantic models, while persistence is delegated to the
SQLAlchemy-backed repository in ``repo.CatalogRepo``.
"""

import logging
import time
import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Path, Query, Request
from pydantic import BaseModel, Field, field_validator
from pythonjsonlogger import jsonlogger
from sqlalchemy import text

from repo import CatalogRepo, UnknownBookError, engine, init_db

app = FastAPI(title="Catalog Service")

CODE_PATTERN = r"^[A-Za-z0-9_-]{1,32}$"

logger = logging.getLogger("catalog")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


@app.on_event("startup")
def _startup_db():
    # wait briefly for the database to accept connections
    deadline = time.time() + 30
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except Exception:
            if time.time() > deadline:
                raise
            time.sleep(1)
    init_db()


class BookIn(BaseModel):
    """Body for creating or replacing a book.

    Attributes:
        name: Title.
        author: Author name.
        price: Non-negative selling price.
        in_stock: Non-negative stock level.
    """
    name: str = Field(min_length=1, max_length=300)
    author: str = Field(default="", max_length=200)
    price: int = Field(ge=0)
    in_stock: int = Field(default=0, ge=0)


class BookOut(BaseModel):
    code: str
    name: str
    author: str
    price: int
    in_stock: int
    sold: int


class AdjustRequest(BaseModel):
    """Body for the adjust endpoint.

    Attributes:
        delta: Copies to move from stock to sold; negative gives copies back.
    """
    delta: int

    @field_validator("delta")
    @classmethod
    def non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("delta must not be zero")
        return v


class AdjustResponse(BaseModel):
    adjusted: bool
    detail: str | None = None


class ImportItem(BaseModel):
    book_code: str = Field(pattern=CODE_PATTERN)
    quantity: int = Field(gt=0)
    unit_price: int = Field(ge=0)


class ImportRequest(BaseModel):
    items: List[ImportItem] = Field(min_length=1)
    note: Optional[str] = Field(default=None, max_length=500)


class ImportLineOut(BaseModel):
    book_code: str
    book_name: str
    quantity: int
    unit_price: int
    line_total: int


class ImportInvoiceOut(BaseModel):
    code: str
    created_at: datetime
    total_quantity: int
    total_amount: int
    note: Optional[str] = None
    items: List[ImportLineOut]


class ImportPage(BaseModel):
    total: int
    page: int
    page_size: int
    items: List[ImportInvoiceOut]


@app.get("/health")
def health():
    return {"ok": True}


@app.get("/books/{code}", response_model=BookOut)
def get_book(code: str = Path(pattern=CODE_PATTERN)):
    book = CatalogRepo().get(code)
    if book is None:
        raise HTTPException(status_code=404, detail="NOT_FOUND")
    return book


@app.put("/books/{code}", response_model=BookOut)
def put_book(req: BookIn, code: str = Path(pattern=CODE_PATTERN)):
    """Create or replace a book (admin seeding); ``sold`` is preserved."""
    return CatalogRepo().upsert(code, req.name, req.author, req.price, req.in_stock)


@app.post("/books/{code}/adjust", response_model=AdjustResponse)
def adjust_book(req: AdjustRequest, code: str = Path(pattern=CODE_PATTERN)):
    """Atomically move ``delta`` copies between stock and sold.

    Raises:
        HTTPException: 409 when the book is unknown or has fewer than
            ``delta`` copies in stock; nothing changes in that case.
    """
    ok = CatalogRepo().adjust_stock_and_sold(code, req.delta)
    if not ok:
        logger.info("stock adjustment refused", extra={"book_code": code, "delta": req.delta})
        raise HTTPException(status_code=409, detail={"adjusted": False, "detail": "INSUFFICIENT_STOCK"})
    return AdjustResponse(adjusted=True)


@app.post("/inventory/imports", response_model=ImportInvoiceOut, status_code=201)
def create_import(req: ImportRequest):
    """Receive stock for one or more books and record the invoice.

    Raises:
        HTTPException: 422 when any book code is unknown; no stock moves.
    """
    items = [(it.book_code, it.quantity, it.unit_price) for it in req.items]
    try:
        invoice = CatalogRepo().create_import(items, req.note)
    except UnknownBookError as e:
        raise HTTPException(status_code=422, detail={"detail": "BOOK_NOT_FOUND", "book_code": str(e)})
    logger.info("inventory imported", extra={"invoice_code": invoice["code"],
                                             "total_quantity": invoice["total_quantity"]})
    return invoice


@app.get("/inventory/imports", response_model=ImportPage)
def list_imports(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
):
    items, total = CatalogRepo().list_imports(page, page_size, from_date, to_date)
    return ImportPage(total=total, page=page, page_size=page_size, items=items)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
