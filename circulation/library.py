import logging
from typing import List

from circulation.exceptions import BookNotFound, UserNotFound
from circulation.models import Book, User
from circulation.store import RecordStore
from circulation.validators import DateValidator, EmailValidator

logger = logging.getLogger(__name__)


class Library:
    """Manages the book collection and the member register."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    # ------------------------- Books ------------------------- #
    def add_book(self, book: Book) -> Book:
        saved = self.store.save_book(book)
        logger.info(f"Book {saved.id} added: {saved.title}")
        return saved

    def list_books(self) -> List[Book]:
        return self.store.find_all_books()

    def get_book(self, book_id: int) -> Book:
        book = self.store.find_book(book_id)
        if book is None:
            raise BookNotFound()
        return book

    def update_book(self, book_id: int, changes: Book) -> Book:
        """Replace title, author, ISBN, category and thumbnail of a book.

        The publication date is kept as it was.
        """
        existing = self.get_book(book_id)
        existing.title = changes.title
        existing.author = changes.author
        existing.isbn = changes.isbn
        existing.category = changes.category
        existing.thumbnail_url = changes.thumbnail_url
        return self.store.save_book(existing)

    def remove_book(self, book_id: int) -> None:
        if not self.store.delete_book(book_id):
            raise BookNotFound()
        logger.info(f"Book {book_id} removed")

    # ------------------------- Users ------------------------- #
    def register_user(self, user: User) -> User:
        """Validate email and registration date, then persist the member."""
        EmailValidator.validate(user.email)
        DateValidator.validate_registration_date(user.registration_date)
        saved = self.store.save_user(user)
        logger.info(f"User {saved.id} registered")
        return saved

    def list_users(self) -> List[User]:
        return self.store.find_all_users()

    def get_user(self, user_id: int) -> User:
        user = self.store.find_user(user_id)
        if user is None:
            raise UserNotFound()
        return user

    def update_user(self, user_id: int, changes: User) -> User:
        # No re-validation on update
        existing = self.get_user(user_id)
        existing.name = changes.name
        existing.email = changes.email
        existing.registration_date = changes.registration_date
        existing.phone_number = changes.phone_number
        return self.store.save_user(existing)

    def remove_user(self, user_id: int) -> None:
        if not self.store.delete_user(user_id):
            raise UserNotFound()
        logger.info(f"User {user_id} removed")
