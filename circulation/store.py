"""SQLite-backed record store for books, users and loans.

Every call opens its own connection and closes it before returning, so a
``RecordStore`` can be shared freely between requests. Integrity errors raised
by SQLite are translated into the domain errors of ``circulation.exceptions``.
"""

import logging
import sqlite3
from typing import Iterable, List, Optional

from circulation.database import get_db_connection, initialize_database
from circulation.exceptions import (
    BookAlreadyLoaned,
    BookNotFound,
    RecordInUse,
    UserNotFound,
    ValidationFailure,
)
from circulation.models import Book, Loan, LoanStatus, User

logger = logging.getLogger(__name__)

BOOK_COLUMNS = "id, title, author, isbn, publication_date, category, thumbnail_url"
USER_COLUMNS = "id, name, email, registration_date, phone_number"
LOAN_COLUMNS = "id, user_id, book_id, loan_date, return_date, status"


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


class RecordStore:
    """Durable storage for Book, User and Loan records."""

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file
        initialize_database(db_file)

    def _connect(self) -> sqlite3.Connection:
        return get_db_connection(self.db_file)

    def _fetch_all(self, query: str, params: Iterable = ()) -> List[dict]:
        conn = self._connect()
        try:
            return [dict(row) for row in conn.execute(query, tuple(params)).fetchall()]
        finally:
            conn.close()

    def _fetch_one(self, query: str, params: Iterable = ()) -> Optional[dict]:
        conn = self._connect()
        try:
            row = conn.execute(query, tuple(params)).fetchone()
            return dict(row) if row else None
        finally:
            conn.close()

    def _execute(self, query: str, params: Iterable = ()) -> sqlite3.Cursor:
        conn = self._connect()
        try:
            cursor = conn.execute(query, tuple(params))
            conn.commit()
            return cursor
        finally:
            conn.close()

    # ------------------------- Books ------------------------- #
    def save_book(self, book: Book) -> Book:
        """Insert a new book or replace an existing one; assigns ``book.id`` on insert."""
        params = (book.title, book.author, book.isbn, book.publication_date,
                  book.category, book.thumbnail_url)
        try:
            if book.id is None:
                cursor = self._execute(
                    "INSERT INTO books (title, author, isbn, publication_date, category, thumbnail_url) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    params,
                )
                book.id = cursor.lastrowid
            else:
                self._execute(
                    "UPDATE books SET title = ?, author = ?, isbn = ?, publication_date = ?, "
                    "category = ?, thumbnail_url = ? WHERE id = ?",
                    params + (book.id,),
                )
        except sqlite3.IntegrityError as e:
            raise ValidationFailure(f"Invalid book record: {e}") from e
        return book

    def find_book(self, book_id: int) -> Optional[Book]:
        row = self._fetch_one(f"SELECT {BOOK_COLUMNS} FROM books WHERE id = ?", (book_id,))
        return Book.from_dict(row) if row else None

    def find_all_books(self) -> List[Book]:
        rows = self._fetch_all(f"SELECT {BOOK_COLUMNS} FROM books ORDER BY id")
        return [Book.from_dict(row) for row in rows]

    def find_books_by_category_in_and_id_not_in(self, categories: Iterable[str],
                                                excluded_ids: Iterable[int]) -> List[Book]:
        """Books whose category is in ``categories`` and whose id is not excluded."""
        categories = [c for c in categories if c is not None]
        if not categories:
            return []
        excluded_ids = list(excluded_ids)

        query = f"SELECT {BOOK_COLUMNS} FROM books WHERE category IN ({', '.join('?' for _ in categories)})"
        params: list = list(categories)
        if excluded_ids:
            query += f" AND id NOT IN ({', '.join('?' for _ in excluded_ids)})"
            params.extend(excluded_ids)
        query += " ORDER BY id"

        return [Book.from_dict(row) for row in self._fetch_all(query, params)]

    def delete_book(self, book_id: int) -> bool:
        try:
            cursor = self._execute("DELETE FROM books WHERE id = ?", (book_id,))
        except sqlite3.IntegrityError as e:
            raise RecordInUse(f"Book {book_id} still has loans on record.") from e
        return cursor.rowcount > 0

    # ------------------------- Users ------------------------- #
    def save_user(self, user: User) -> User:
        params = (user.name, user.email, _iso(user.registration_date), user.phone_number)
        try:
            if user.id is None:
                cursor = self._execute(
                    "INSERT INTO users (name, email, registration_date, phone_number) VALUES (?, ?, ?, ?)",
                    params,
                )
                user.id = cursor.lastrowid
            else:
                self._execute(
                    "UPDATE users SET name = ?, email = ?, registration_date = ?, phone_number = ? "
                    "WHERE id = ?",
                    params + (user.id,),
                )
        except sqlite3.IntegrityError as e:
            raise ValidationFailure(f"Invalid user record: {e}") from e
        return user

    def find_user(self, user_id: int) -> Optional[User]:
        row = self._fetch_one(f"SELECT {USER_COLUMNS} FROM users WHERE id = ?", (user_id,))
        return User.from_dict(row) if row else None

    def find_all_users(self) -> List[User]:
        rows = self._fetch_all(f"SELECT {USER_COLUMNS} FROM users ORDER BY id")
        return [User.from_dict(row) for row in rows]

    def delete_user(self, user_id: int) -> bool:
        try:
            cursor = self._execute("DELETE FROM users WHERE id = ?", (user_id,))
        except sqlite3.IntegrityError as e:
            raise RecordInUse(f"User {user_id} still has loans on record.") from e
        return cursor.rowcount > 0

    # ------------------------- Loans ------------------------- #
    def save_loan(self, loan: Loan) -> Loan:
        """Insert or update a loan.

        The partial unique index on active loans turns a lost check-then-act
        race into ``BookAlreadyLoaned`` instead of a second active loan.
        """
        params = (loan.user_id, loan.book_id, _iso(loan.loan_date), _iso(loan.return_date),
                  loan.status.value if loan.status else None)
        try:
            if loan.id is None:
                cursor = self._execute(
                    "INSERT INTO loans (user_id, book_id, loan_date, return_date, status) "
                    "VALUES (?, ?, ?, ?, ?)",
                    params,
                )
                loan.id = cursor.lastrowid
            else:
                self._execute(
                    "UPDATE loans SET user_id = ?, book_id = ?, loan_date = ?, return_date = ?, status = ? "
                    "WHERE id = ?",
                    params + (loan.id,),
                )
        except sqlite3.IntegrityError as e:
            message = str(e)
            if "UNIQUE" in message:
                logger.warning(f"Rejected second active loan for book {loan.book_id}")
                raise BookAlreadyLoaned() from e
            if "FOREIGN KEY" in message:
                if self.find_user(loan.user_id) is None:
                    raise UserNotFound() from e
                raise BookNotFound() from e
            raise ValidationFailure(f"Invalid loan record: {e}") from e
        return loan

    def find_loan(self, loan_id: int) -> Optional[Loan]:
        row = self._fetch_one(f"SELECT {LOAN_COLUMNS} FROM loans WHERE id = ?", (loan_id,))
        return Loan.from_dict(row) if row else None

    def find_all_loans(self) -> List[Loan]:
        rows = self._fetch_all(f"SELECT {LOAN_COLUMNS} FROM loans ORDER BY id")
        return [Loan.from_dict(row) for row in rows]

    def find_loans_by_user(self, user_id: int) -> List[Loan]:
        rows = self._fetch_all(f"SELECT {LOAN_COLUMNS} FROM loans WHERE user_id = ? ORDER BY id", (user_id,))
        return [Loan.from_dict(row) for row in rows]

    def find_loans_by_book(self, book_id: int) -> List[Loan]:
        rows = self._fetch_all(f"SELECT {LOAN_COLUMNS} FROM loans WHERE book_id = ? ORDER BY id", (book_id,))
        return [Loan.from_dict(row) for row in rows]

    def find_loans_by_book_and_status(self, book_id: int, status: LoanStatus) -> List[Loan]:
        rows = self._fetch_all(
            f"SELECT {LOAN_COLUMNS} FROM loans WHERE book_id = ? AND status = ? ORDER BY id",
            (book_id, LoanStatus(status).value),
        )
        return [Loan.from_dict(row) for row in rows]

    def exists_loan(self, loan_id: int) -> bool:
        return self._fetch_one("SELECT 1 AS found FROM loans WHERE id = ?", (loan_id,)) is not None

    def delete_loan(self, loan_id: int) -> None:
        self._execute("DELETE FROM loans WHERE id = ?", (loan_id,))
