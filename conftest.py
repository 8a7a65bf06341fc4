from datetime import date

import pytest
from fastapi.testclient import TestClient

from circulation import api
from circulation.library import Library
from circulation.loans import LoanManager
from circulation.models import Book, User
from circulation.store import RecordStore


@pytest.fixture
def store(tmp_path, request):
    # Create a unique database file for each test
    db_file = str(tmp_path / f"test_{request.node.name}.db")
    return RecordStore(db_file)


@pytest.fixture
def lib(store):
    return Library(store)


@pytest.fixture
def manager(store):
    return LoanManager(store)


@pytest.fixture
def member(lib):
    return lib.register_user(User("Miquella the Kind", "miquella@kind.com", date(2019, 12, 31), "123456789"))


@pytest.fixture
def book(lib):
    return lib.add_book(Book("Neon Genesis Evangelion", "Hideaki Anno", "123456789",
                             publication_date="1994-12-26", category="Fiction"))


@pytest.fixture
def client(store):
    api.app.dependency_overrides[api.get_store] = lambda: store
    try:
        yield TestClient(api.app)
    finally:
        api.app.dependency_overrides.clear()
