from datetime import date, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from circulation.exceptions import (
    BookAlreadyLoaned,
    BookNotFound,
    InvalidLoanDate,
    InvalidReturnDate,
    LoanNotFound,
    UserNotFound,
)
from circulation.loans import LoanManager, summarize_loan
from circulation.models import Book, Loan, LoanStatus, User
from circulation.store import RecordStore


def _programming_book(lib, title):
    return lib.add_book(Book(title, "Some Author", "978000000000", publication_date="2020",
                             category="Programming"))


# ------------------------- create_loan ------------------------- #
def test_create_loan_defaults_to_today(manager, member, book):
    loan = manager.create_loan(Loan(user_id=member.id, book_id=book.id))

    assert loan.id is not None
    assert loan.loan_date == date.today()
    assert loan.return_date is None
    assert loan.status == LoanStatus.EMPRESTADO
    assert manager.get_loan(loan.id).status == LoanStatus.EMPRESTADO


def test_create_loan_accepts_datetime_values(manager, member, book):
    loan = manager.create_loan(Loan(user_id=member.id, book_id=book.id, loan_date=datetime.now()))

    assert loan.loan_date == date.today()
    assert manager.get_loan(loan.id).loan_date == date.today()


def test_create_loan_rejects_past_datetime(manager, member, book):
    with pytest.raises(InvalidLoanDate):
        manager.create_loan(Loan(user_id=member.id, book_id=book.id,
                                 loan_date=datetime.now() - timedelta(days=2)))


def test_create_loan_with_today_succeeds(manager, member, book):
    loan = manager.create_loan(Loan(user_id=member.id, book_id=book.id, loan_date=date.today()))
    assert loan.status == LoanStatus.EMPRESTADO


def test_create_loan_rejects_past_date(manager, member, book):
    yesterday = date.today() - timedelta(days=1)
    with pytest.raises(InvalidLoanDate, match="past"):
        manager.create_loan(Loan(user_id=member.id, book_id=book.id, loan_date=yesterday))
    assert manager.list_all() == []


def test_create_loan_allows_future_date(manager, member, book):
    tomorrow = date.today() + timedelta(days=1)
    loan = manager.create_loan(Loan(user_id=member.id, book_id=book.id, loan_date=tomorrow))
    assert loan.loan_date == tomorrow


def test_create_loan_when_book_is_already_loaned(manager, lib, member, book):
    manager.create_loan(Loan(user_id=member.id, book_id=book.id))
    other = lib.register_user(User("Other Reader", "other@reader.com", date(2020, 1, 1), "555"))

    with pytest.raises(BookAlreadyLoaned):
        manager.create_loan(Loan(user_id=other.id, book_id=book.id))

    assert len(manager.list_by_book(book.id)) == 1


def test_create_loan_after_return_is_allowed(manager, member, book):
    first = manager.create_loan(Loan(user_id=member.id, book_id=book.id))
    manager.update_loan(first.id, date.today())

    second = manager.create_loan(Loan(user_id=member.id, book_id=book.id))
    assert second.status == LoanStatus.EMPRESTADO
    assert len(manager.list_by_book(book.id)) == 2


def test_create_loan_rejects_return_before_loan_date(manager, member, book):
    loan = Loan(user_id=member.id, book_id=book.id, loan_date=date.today(),
                return_date=date.today() - timedelta(days=3))
    with pytest.raises(InvalidReturnDate):
        manager.create_loan(loan)
    assert manager.list_all() == []


def test_create_loan_past_date_is_checked_before_availability():
    store = MagicMock(spec=RecordStore)
    manager = LoanManager(store)

    with pytest.raises(InvalidLoanDate):
        manager.create_loan(Loan(user_id=1, book_id=1, loan_date=date(2000, 1, 1)))

    store.find_loans_by_book_and_status.assert_not_called()
    store.save_loan.assert_not_called()


def test_create_loan_already_loaned_does_not_save():
    store = MagicMock(spec=RecordStore)
    store.find_loans_by_book_and_status.return_value = [
        Loan(id=7, user_id=2, book_id=1, loan_date=date.today(), status=LoanStatus.EMPRESTADO)
    ]
    manager = LoanManager(store)

    with pytest.raises(BookAlreadyLoaned):
        manager.create_loan(Loan(user_id=1, book_id=1))

    store.find_loans_by_book_and_status.assert_called_once_with(1, LoanStatus.EMPRESTADO)
    store.save_loan.assert_not_called()


def test_create_loan_for_unknown_book_or_user(manager, member, book):
    with pytest.raises(BookNotFound):
        manager.create_loan(Loan(user_id=member.id, book_id=9999))
    with pytest.raises(UserNotFound):
        manager.create_loan(Loan(user_id=9999, book_id=book.id))


def test_store_rejects_second_active_loan_even_without_precheck(store, member, book):
    # Simulates the loser of a check-then-act race: both callers passed the check
    store.save_loan(Loan(user_id=member.id, book_id=book.id, loan_date=date.today(),
                         status=LoanStatus.EMPRESTADO))
    with pytest.raises(BookAlreadyLoaned):
        store.save_loan(Loan(user_id=member.id, book_id=book.id, loan_date=date.today(),
                             status=LoanStatus.EMPRESTADO))
    assert len(store.find_loans_by_book_and_status(book.id, LoanStatus.EMPRESTADO)) == 1


# ------------------------- update_loan ------------------------- #
def test_update_loan_with_return_date_marks_present(manager, member, book):
    loan = manager.create_loan(Loan(user_id=member.id, book_id=book.id))

    updated = manager.update_loan(loan.id, date(2023, 9, 10))

    assert updated.status == LoanStatus.PRESENTE
    assert updated.return_date == date(2023, 9, 10)
    assert manager.get_loan(loan.id).status == LoanStatus.PRESENTE


def test_update_loan_without_return_date_stays_checked_out(manager, member, book):
    loan = manager.create_loan(Loan(user_id=member.id, book_id=book.id))

    updated = manager.update_loan(loan.id, None)

    assert updated.status == LoanStatus.EMPRESTADO
    assert updated.return_date is None


def test_update_loan_explicit_status_overrides_derivation(manager, member, book):
    loan = manager.create_loan(Loan(user_id=member.id, book_id=book.id))

    updated = manager.update_loan(loan.id, date(2023, 9, 10), LoanStatus.EMPRESTADO)

    assert updated.status == LoanStatus.EMPRESTADO
    assert updated.return_date == date(2023, 9, 10)


def test_update_loan_clearing_return_date_reopens(manager, member, book):
    loan = manager.create_loan(Loan(user_id=member.id, book_id=book.id))
    manager.update_loan(loan.id, date.today())

    reopened = manager.update_loan(loan.id, None)

    assert reopened.status == LoanStatus.EMPRESTADO
    assert reopened.return_date is None


def test_reopening_returned_loan_while_book_is_out_again(manager, member, book):
    first = manager.create_loan(Loan(user_id=member.id, book_id=book.id))
    manager.update_loan(first.id, date.today())
    manager.create_loan(Loan(user_id=member.id, book_id=book.id))

    with pytest.raises(BookAlreadyLoaned):
        manager.update_loan(first.id, None)

    assert manager.get_loan(first.id).status == LoanStatus.PRESENTE


def test_update_loan_not_found(manager):
    with pytest.raises(LoanNotFound):
        manager.update_loan(42, date.today())


# ------------------------- listing / delete ------------------------- #
def test_list_loans_by_user_and_book(manager, lib, member, book):
    other_book = _programming_book(lib, "Clean Code")
    manager.create_loan(Loan(user_id=member.id, book_id=book.id))
    manager.create_loan(Loan(user_id=member.id, book_id=other_book.id))

    assert len(manager.list_all()) == 2
    assert {l.book_id for l in manager.list_by_user(member.id)} == {book.id, other_book.id}
    assert [l.user_id for l in manager.list_by_book(other_book.id)] == [member.id]
    assert manager.list_by_user(9999) == []


def test_delete_loan(manager, member, book):
    loan = manager.create_loan(Loan(user_id=member.id, book_id=book.id))
    manager.delete_loan(loan.id)
    assert manager.list_all() == []


def test_delete_loan_not_found_skips_store_delete():
    store = MagicMock(spec=RecordStore)
    store.exists_loan.return_value = False
    manager = LoanManager(store)

    with pytest.raises(LoanNotFound):
        manager.delete_loan(5)

    store.exists_loan.assert_called_once_with(5)
    store.delete_loan.assert_not_called()


def test_list_details_resolves_names(manager, member, book):
    manager.create_loan(Loan(user_id=member.id, book_id=book.id))

    details = manager.list_details()

    assert details == [{
        "loan_id": 1,
        "loan_date": date.today().isoformat(),
        "return_date": None,
        "status": "EMPRESTADO",
        "user_name": "Miquella the Kind",
        "book_title": "Neon Genesis Evangelion",
    }]


def test_summarize_loan_handles_missing_references():
    loan = Loan(id=3, user_id=1, book_id=2, loan_date=date(2024, 5, 1),
                return_date=date(2024, 5, 20), status=LoanStatus.PRESENTE)
    summary = summarize_loan(loan, None, None)
    assert summary["return_date"] == "2024-05-20"
    assert summary["status"] == "PRESENTE"
    assert summary["user_name"] is None
    assert summary["book_title"] is None


# ------------------------- recommendations ------------------------- #
def test_recommend_for_user_uses_borrowed_categories(manager, lib, member):
    read_one = _programming_book(lib, "The Pragmatic Programmer")
    read_two = _programming_book(lib, "Refactoring")
    unread = _programming_book(lib, "Domain-Driven Design")
    lib.add_book(Book("Dune", "Frank Herbert", "9780441013593", publication_date="1965",
                      category="Science Fiction"))

    for b in (read_one, read_two):
        loan = manager.create_loan(Loan(user_id=member.id, book_id=b.id))
        manager.update_loan(loan.id, date.today())

    recommendations = manager.recommend_for_user(member.id)

    assert [b.id for b in recommendations] == [unread.id]
    assert all(b.category == "Programming" for b in recommendations)


def test_recommend_for_user_without_history_is_empty(manager, book, member):
    assert manager.recommend_for_user(member.id) == []


def test_recommend_for_user_keeps_blank_category(manager, lib, member):
    read = lib.add_book(Book("Untitled Zine", "Anon", "0001", publication_date="2001", category=""))
    other = lib.add_book(Book("Another Zine", "Anon", "0002", publication_date="2002", category=""))
    manager.create_loan(Loan(user_id=member.id, book_id=read.id))

    assert [b.id for b in manager.recommend_for_user(member.id)] == [other.id]


def test_recommend_for_user_without_history_skips_category_query():
    store = MagicMock(spec=RecordStore)
    store.find_loans_by_user.return_value = []
    manager = LoanManager(store)

    assert manager.recommend_for_user(1) == []
    store.find_books_by_category_in_and_id_not_in.assert_not_called()


def test_recommend_for_user_passes_categories_and_exclusions():
    store = MagicMock(spec=RecordStore)
    store.find_loans_by_user.return_value = [
        Loan(id=1, user_id=1, book_id=10, loan_date=date.today(), status=LoanStatus.PRESENTE),
        Loan(id=2, user_id=1, book_id=11, loan_date=date.today(), status=LoanStatus.EMPRESTADO),
    ]
    store.find_book.side_effect = lambda book_id: Book("T", "A", "I", "2000", "Programming", id=book_id)
    store.find_books_by_category_in_and_id_not_in.return_value = ["sentinel"]
    manager = LoanManager(store)

    assert manager.recommend_for_user(1) == ["sentinel"]
    categories, excluded = store.find_books_by_category_in_and_id_not_in.call_args[0]
    assert set(categories) == {"Programming"}
    assert set(excluded) == {10, 11}
