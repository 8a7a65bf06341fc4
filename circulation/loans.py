"""Loan lifecycle: opening, closing, listing and cancelling loans.

Loan dates follow a single policy: a loan may start today or later, never in
the past, and defaults to today when no date is given.
"""

import logging
from datetime import date, datetime
from typing import Dict, List, Optional

from circulation.exceptions import (
    BookAlreadyLoaned,
    InvalidLoanDate,
    InvalidReturnDate,
    LoanNotFound,
)
from circulation.models import Book, Loan, LoanStatus, User
from circulation.store import RecordStore

logger = logging.getLogger(__name__)


def summarize_loan(loan: Loan, user: Optional[User], book: Optional[Book]) -> Dict[str, object]:
    """Flatten a loan and its resolved user and book into a display row."""
    return {
        "loan_id": loan.id,
        "loan_date": loan.loan_date.isoformat() if loan.loan_date else None,
        "return_date": loan.return_date.isoformat() if loan.return_date else None,
        "status": loan.status.value if loan.status else None,
        "user_name": user.name if user else None,
        "book_title": book.title if book else None,
    }


class LoanManager:
    """Sole mutator of loan status and return dates."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    # ------------------------- Lifecycle ------------------------- #
    def create_loan(self, loan: Loan) -> Loan:
        """Check a book out to a user.

        Raises InvalidLoanDate, BookAlreadyLoaned or InvalidReturnDate, in
        that order, before anything is persisted.
        """
        today = date.today()
        if loan.loan_date is not None and loan.loan_date < today:
            raise InvalidLoanDate()
        if loan.loan_date is None:
            loan.loan_date = today

        active = self.store.find_loans_by_book_and_status(loan.book_id, LoanStatus.EMPRESTADO)
        if active:
            raise BookAlreadyLoaned()

        if loan.return_date is not None and loan.return_date < loan.loan_date:
            raise InvalidReturnDate()

        loan.status = LoanStatus.EMPRESTADO
        saved = self.store.save_loan(loan)
        logger.info(f"Loan {saved.id} opened: book={saved.book_id} user={saved.user_id}")
        return saved

    def update_loan(self, loan_id: int, return_date: Optional[date] = None,
                    status: Optional[LoanStatus] = None) -> Loan:
        """Record a return (or reopen a loan).

        An explicit ``status`` always wins; without one the status follows the
        return date: no date means still checked out.
        """
        loan = self.store.find_loan(loan_id)
        if loan is None:
            raise LoanNotFound()

        loan.return_date = return_date.date() if isinstance(return_date, datetime) else return_date
        if status is not None:
            loan.status = LoanStatus(status)
        else:
            loan.status = LoanStatus.EMPRESTADO if return_date is None else LoanStatus.PRESENTE

        saved = self.store.save_loan(loan)
        logger.info(f"Loan {loan_id} updated: status={saved.status.value} return_date={saved.return_date}")
        return saved

    def delete_loan(self, loan_id: int) -> None:
        if not self.store.exists_loan(loan_id):
            raise LoanNotFound()
        self.store.delete_loan(loan_id)
        logger.info(f"Loan {loan_id} cancelled")

    # ------------------------- Queries ------------------------- #
    def get_loan(self, loan_id: int) -> Loan:
        loan = self.store.find_loan(loan_id)
        if loan is None:
            raise LoanNotFound()
        return loan

    def list_all(self) -> List[Loan]:
        return self.store.find_all_loans()

    def list_by_user(self, user_id: int) -> List[Loan]:
        return self.store.find_loans_by_user(user_id)

    def list_by_book(self, book_id: int) -> List[Loan]:
        return self.store.find_loans_by_book(book_id)

    def list_details(self) -> List[Dict[str, object]]:
        """All loans with the borrower's name and the book title filled in."""
        users: Dict[int, Optional[User]] = {}
        books: Dict[int, Optional[Book]] = {}
        details = []
        for loan in self.store.find_all_loans():
            if loan.user_id not in users:
                users[loan.user_id] = self.store.find_user(loan.user_id)
            if loan.book_id not in books:
                books[loan.book_id] = self.store.find_book(loan.book_id)
            details.append(summarize_loan(loan, users[loan.user_id], books[loan.book_id]))
        return details

    def recommend_for_user(self, user_id: int) -> List[Book]:
        """Books sharing a category with the user's past loans, minus those already borrowed."""
        loans = self.store.find_loans_by_user(user_id)

        borrowed_ids = {loan.book_id for loan in loans}
        categories = set()
        for book_id in borrowed_ids:
            book = self.store.find_book(book_id)
            if book is not None and book.category is not None:
                categories.add(book.category)

        if not categories:
            return []
        return self.store.find_books_by_category_in_and_id_not_in(categories, borrowed_ids)
