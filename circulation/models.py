from __future__ import annotations

from datetime import date, datetime
from enum import Enum


def _strip(value: str | None) -> str | None:
    return value.strip() if isinstance(value, str) else value


def _as_date(value) -> date | None:
    # SQLite hands dates back as ISO strings
    if isinstance(value, datetime):
        return value.date()
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


class LoanStatus(str, Enum):
    """Loan state: EMPRESTADO is checked out, PRESENTE is back on the shelf."""

    EMPRESTADO = "EMPRESTADO"
    PRESENTE = "PRESENTE"


class Book:
    """Represents a single book item in the library."""

    def __init__(self, title: str | None, author: str | None, isbn: str | None,
                 publication_date: str | None = None, category: str | None = None,
                 thumbnail_url: str | None = None, id: int | None = None) -> None:
        self.id = id
        self.title = _strip(title)
        self.author = _strip(author)
        self.isbn = _strip(isbn)
        self.publication_date = publication_date
        self.category = category
        self.thumbnail_url = thumbnail_url

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (ISBN: {self.isbn})"

    def __repr__(self) -> str:  # pragma: no cover
        return f"Book(id={self.id!r}, title={self.title!r}, category={self.category!r})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "publication_date": self.publication_date,
            "category": self.category,
            "thumbnail_url": self.thumbnail_url,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            id=data.get("id"),
            title=data.get("title"),
            author=data.get("author"),
            isbn=data.get("isbn"),
            publication_date=data.get("publication_date"),
            category=data.get("category"),
            thumbnail_url=data.get("thumbnail_url"),
        )


class User:
    """A library member."""

    def __init__(self, name: str, email: str, registration_date: date,
                 phone_number: str, id: int | None = None) -> None:
        self.id = id
        self.name = _strip(name)
        self.email = _strip(email)
        self.registration_date = _as_date(registration_date)
        self.phone_number = phone_number

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.name} <{self.email}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "registration_date": self.registration_date.isoformat() if self.registration_date else None,
            "phone_number": self.phone_number,
        }

    @staticmethod
    def from_dict(data: dict) -> "User":
        return User(
            id=data.get("id"),
            name=data["name"],
            email=data["email"],
            registration_date=data["registration_date"],
            phone_number=data["phone_number"],
        )


class Loan:
    """A book checked out to a user.

    Only the foreign keys are held here; the referenced user and book are
    resolved by the caller when it needs them.
    """

    def __init__(self, user_id: int, book_id: int, loan_date: date | None = None,
                 return_date: date | None = None, status: LoanStatus | str | None = None,
                 id: int | None = None) -> None:
        self.id = id
        self.user_id = user_id
        self.book_id = book_id
        self.loan_date = _as_date(loan_date)
        self.return_date = _as_date(return_date)
        self.status = LoanStatus(status) if status is not None else None

    def __repr__(self) -> str:  # pragma: no cover
        return (f"Loan(id={self.id!r}, user_id={self.user_id!r}, book_id={self.book_id!r}, "
                f"status={self.status!r})")

    @property
    def is_active(self) -> bool:
        return self.status == LoanStatus.EMPRESTADO

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "book_id": self.book_id,
            "loan_date": self.loan_date.isoformat() if self.loan_date else None,
            "return_date": self.return_date.isoformat() if self.return_date else None,
            "status": self.status.value if self.status else None,
        }

    @staticmethod
    def from_dict(data: dict) -> "Loan":
        return Loan(
            id=data.get("id"),
            user_id=data["user_id"],
            book_id=data["book_id"],
            loan_date=data.get("loan_date"),
            return_date=data.get("return_date"),
            status=data.get("status"),
        )
