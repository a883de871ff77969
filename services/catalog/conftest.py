# Point the catalog repository at a throwaway SQLite file before ``repo`` is imported
import os
import tempfile

import pytest

_DB_DIR = tempfile.mkdtemp(prefix="catalog-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'catalog.db')}"


@pytest.fixture()
def api():
    from fastapi.testclient import TestClient
    from main import app

    # entering the client runs the startup hook, which creates the tables
    with TestClient(app) as c:
        yield c


@pytest.fixture(autouse=True)
def _clean_tables():
    yield
    from sqlalchemy import delete

    from repo import Book, ImportInvoice, get_session, init_db

    init_db()
    with get_session() as s:
        s.execute(delete(ImportInvoice))
        s.execute(delete(Book))
        s.commit()


@pytest.fixture()
def seeded(api):
    """Two books: SP1 (100, 10 in stock) and SP2 (50, 5 in stock)."""
    api.put("/books/SP1", json={"name": "Clean Code", "author": "R. Martin", "price": 100, "in_stock": 10})
    api.put("/books/SP2", json={"name": "Refactoring", "author": "M. Fowler", "price": 50, "in_stock": 5})
    return api
