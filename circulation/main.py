import asyncio
import logging
import subprocess
import sys
from datetime import datetime
from typing import NoReturn, Optional

import typer

from circulation.config import settings
from circulation.exceptions import LibraryError
from circulation.library import Library
from circulation.loans import LoanManager
from circulation.models import Book, Loan, LoanStatus, User
from circulation.services.google_books_service import GoogleBooksService
from circulation.store import RecordStore
from circulation.ui_helpers import print_record, print_records, set_output_mode

BOOK_COLUMNS = ["id", "title", "author", "isbn", "category"]
USER_COLUMNS = ["id", "name", "email", "registration_date", "phone_number"]
LOAN_COLUMNS = ["id", "user_id", "book_id", "loan_date", "return_date", "status"]
DETAIL_COLUMNS = ["loan_id", "book_title", "user_name", "loan_date", "return_date", "status"]
DATE_FORMATS = ["%Y-%m-%d"]

app = typer.Typer(help="Library circulation CLI")


def _store() -> RecordStore:
    return RecordStore(settings.database_file)


def _as_date(value: Optional[datetime]):
    return value.date() if value is not None else None


def _fail(error: LibraryError) -> NoReturn:
    print(f"Error: {error}")
    raise typer.Exit(code=1)


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    )
):
    """Global CLI options (e.g. output mode)."""
    logging.basicConfig(level=settings.log_level)
    if output:
        set_output_mode(output)


# ------------------------- Books ------------------------- #
@app.command("books")
def cli_books():
    """List all books."""
    print_records(Library(_store()).list_books(), BOOK_COLUMNS, "Books", "No books in library.")


@app.command("add-book")
def cli_add_book(
    title: str,
    author: str,
    isbn: str,
    publication_date: str = typer.Option(..., "--published", help="Publication date, free form"),
    category: str = typer.Option(..., "--category"),
    thumbnail_url: Optional[str] = typer.Option(None, "--thumbnail"),
):
    """Add a book to the collection."""
    try:
        book = Library(_store()).add_book(
            Book(title, author, isbn, publication_date=publication_date,
                 category=category, thumbnail_url=thumbnail_url)
        )
    except LibraryError as e:
        _fail(e)
    print(f"Successfully added: {book.title} by {book.author} (id {book.id})")


@app.command("search")
def cli_search(query: str):
    """Search Google Books (results are not saved)."""
    service = GoogleBooksService()
    try:
        books = asyncio.run(service.search(query))
    except LibraryError as e:
        _fail(e)
    print_records(books, ["title", "author", "isbn", "publication_date", "category"],
                  "Google Books", "No results.")


# ------------------------- Users ------------------------- #
@app.command("users")
def cli_users():
    """List registered users."""
    print_records(Library(_store()).list_users(), USER_COLUMNS, "Users", "No users registered.")


@app.command("add-user")
def cli_add_user(
    name: str,
    email: str,
    phone_number: str,
    registered: Optional[datetime] = typer.Option(None, "--registered", formats=DATE_FORMATS,
                                                  help="Registration date (default: today)"),
):
    """Register a new member."""
    registration_date = _as_date(registered) or datetime.now().date()
    try:
        user = Library(_store()).register_user(User(name, email, registration_date, phone_number))
    except LibraryError as e:
        _fail(e)
    print(f"Registered user {user.name} (id {user.id})")


# ------------------------- Loans ------------------------- #
@app.command("loans")
def cli_loans(
    user_id: Optional[int] = typer.Option(None, "--user", help="Only loans of this user"),
    book_id: Optional[int] = typer.Option(None, "--book", help="Only loans of this book"),
    details: bool = typer.Option(False, "--details", help="Show user names and book titles"),
):
    """List loans, optionally filtered by user or book."""
    manager = LoanManager(_store())
    if details:
        print_records(manager.list_details(), DETAIL_COLUMNS, "Loans", "No loans.")
        return
    if user_id is not None:
        loans = manager.list_by_user(user_id)
    elif book_id is not None:
        loans = manager.list_by_book(book_id)
    else:
        loans = manager.list_all()
    print_records(loans, LOAN_COLUMNS, "Loans", "No loans.")


@app.command("lend")
def cli_lend(
    user_id: int,
    book_id: int,
    loan_date: Optional[datetime] = typer.Option(None, "--date", formats=DATE_FORMATS,
                                                 help="Loan date (default: today)"),
    return_date: Optional[datetime] = typer.Option(None, "--due", formats=DATE_FORMATS),
):
    """Check a book out to a user."""
    try:
        loan = LoanManager(_store()).create_loan(
            Loan(user_id=user_id, book_id=book_id, loan_date=_as_date(loan_date),
                 return_date=_as_date(return_date))
        )
    except LibraryError as e:
        _fail(e)
    print_record(loan, "Loan created")


@app.command("return")
def cli_return(
    loan_id: int,
    return_date: Optional[datetime] = typer.Option(None, "--date", formats=DATE_FORMATS,
                                                   help="Return date (default: today)"),
    status: Optional[LoanStatus] = typer.Option(None, "--status", help="Override the derived status"),
    reopen: bool = typer.Option(False, "--reopen", help="Clear the return date"),
):
    """Record the return of a loan (or reopen it with --reopen)."""
    when = None if reopen else (_as_date(return_date) or datetime.now().date())
    try:
        loan = LoanManager(_store()).update_loan(loan_id, when, status)
    except LibraryError as e:
        _fail(e)
    print_record(loan, "Loan updated")


@app.command("cancel")
def cli_cancel(loan_id: int):
    """Delete a loan record."""
    try:
        LoanManager(_store()).delete_loan(loan_id)
    except LibraryError as e:
        _fail(e)
    print(f"Loan {loan_id} has been cancelled.")


@app.command("recommend")
def cli_recommend(user_id: int):
    """Recommend books from the categories a user already borrowed."""
    books = LoanManager(_store()).recommend_for_user(user_id)
    print_records(books, BOOK_COLUMNS, "Recommendations", "No recommendations.")


@app.command("serve")
def cli_serve(
    host: str = typer.Option(settings.api_host, "--host"),
    port: int = typer.Option(settings.api_port, "--port"),
):
    """Serve the HTTP API with uvicorn."""
    print(f"Starting API on http://{host}:{port}")
    subprocess.run(
        [sys.executable, "-m", "uvicorn", "circulation.api:app", "--host", host, "--port", str(port)],
        check=False,
    )


if __name__ == "__main__":
    app()
