"""Domain errors raised by the circulation services.

Every error carries a human-readable message; the HTTP layer turns the four
families below into client or server error responses.
"""


class LibraryError(Exception):
    """Base exception for library circulation errors."""


# --- NotFound ---
class NotFoundError(LibraryError, LookupError):
    """A book, user or loan lookup missed."""


class BookNotFound(NotFoundError):
    def __init__(self, message: str = "Book not found.") -> None:
        super().__init__(message)


class UserNotFound(NotFoundError):
    def __init__(self, message: str = "User not found.") -> None:
        super().__init__(message)


class LoanNotFound(NotFoundError):
    def __init__(self, message: str = "Loan not found.") -> None:
        super().__init__(message)


# --- ValidationFailure ---
class ValidationFailure(LibraryError, ValueError):
    """Input rejected by a domain rule."""


class InvalidEmail(ValidationFailure):
    def __init__(self, message: str = "Invalid email!") -> None:
        super().__init__(message)


class InvalidRegistrationDate(ValidationFailure):
    def __init__(self, message: str = "Registration date cannot be later than today!") -> None:
        super().__init__(message)


class InvalidLoanDate(ValidationFailure):
    def __init__(self, message: str = "Loan date cannot be in the past!") -> None:
        super().__init__(message)


class InvalidReturnDate(ValidationFailure):
    def __init__(self, message: str = "Return date cannot be earlier than the loan date!") -> None:
        super().__init__(message)


# --- ConflictFailure ---
class ConflictError(LibraryError):
    """The request collides with the current state of another record."""


class BookAlreadyLoaned(ConflictError):
    def __init__(self, message: str = "Book is already on loan!") -> None:
        super().__init__(message)


class RecordInUse(ConflictError):
    """A book or user cannot be removed while loans still reference it."""


# --- UpstreamFailure ---
class ExternalServiceError(LibraryError):
    """An external collaborator failed or answered with garbage."""


class GoogleBooksAPIError(ExternalServiceError):
    """Custom exception for Google Books API errors"""


class RateLimitExceeded(GoogleBooksAPIError):
    """Exception raised when rate limit is exceeded"""
