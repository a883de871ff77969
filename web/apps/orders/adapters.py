"""In-process adapters for the orders domain ports.

``CatalogStub`` implements ``CatalogPort`` without any network calls. It is
intended for unit tests and local development where the catalog service
is not running, and applies the same conditional stock rule as the real
service.
"""

import threading
from dataclasses import replace
from typing import Dict, Iterable, Optional

from .domain import Book, CatalogPort


class CatalogStub(CatalogPort):
    """Thread-safe in-memory book catalog.

    Adjustments follow the catalog service contract: ``in_stock`` drops and
    ``sold`` rises by ``delta`` only while ``in_stock >= delta``.
    """

    def __init__(self, books: Iterable[Book] = ()):
        self._lock = threading.Lock()
        self._books: Dict[str, Book] = {b.code: b for b in books}

    def add(self, book: Book) -> None:
        """Insert or replace a book."""
        with self._lock:
            self._books[book.code] = book

    def clear(self) -> None:
        with self._lock:
            self._books.clear()

    def get_by_code(self, code: str) -> Optional[Book]:
        with self._lock:
            return self._books.get(code)

    def adjust_stock_and_sold(self, code: str, delta: int) -> bool:
        """Move ``delta`` units from stock to sold if enough stock remains.

        Args:
            code: Book code.
            delta: Units to take (negative to give back).

        Returns:
            bool: True if the book exists and had ``in_stock >= delta``.
        """
        with self._lock:
            book = self._books.get(code)
            if book is None or book.in_stock < delta:
                return False
            self._books[code] = replace(
                book, in_stock=book.in_stock - delta, sold=book.sold + delta
            )
            return True


# Shared catalog used when HTTP adapters are disabled, so stock survives
# across requests within one process.
default_catalog = CatalogStub()
