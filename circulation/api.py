import logging
from datetime import date, datetime
from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from circulation.config import settings
from circulation.exceptions import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationFailure,
)
from circulation.library import Library
from circulation.loans import LoanManager
from circulation.models import Book, Loan, LoanStatus, User
from circulation.services.google_books_service import GoogleBooksService
from circulation.store import RecordStore

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, version=settings.app_version)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "HEAD"],
    allow_headers=["*"],
)


# --- Dependencies ---
@lru_cache(maxsize=1)
def get_store() -> RecordStore:
    return RecordStore(settings.database_file)


def get_library(store: RecordStore = Depends(get_store)) -> Library:
    return Library(store)


def get_loan_manager(store: RecordStore = Depends(get_store)) -> LoanManager:
    return LoanManager(store)


def get_google_books() -> GoogleBooksService:
    return GoogleBooksService()


# --- Error mapping ---
@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValidationFailure)
async def validation_handler(request: Request, exc: ValidationFailure):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ExternalServiceError)
async def upstream_handler(request: Request, exc: ExternalServiceError):
    logger.error(f"Upstream failure on {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"detail": str(exc)})


# --- Models ---
class BookModel(BaseModel):
    id: int | None = None
    title: str | None = None
    author: str | None = None
    isbn: str | None = None
    publication_date: str | None = None
    category: str | None = None
    thumbnail_url: str | None = None


class BookCreateModel(BaseModel):
    title: str
    author: str
    isbn: str
    publication_date: str
    category: str
    thumbnail_url: str | None = None


class BookUpdateModel(BaseModel):
    title: str
    author: str
    isbn: str
    category: str
    thumbnail_url: str | None = None


class UserModel(BaseModel):
    id: int
    name: str
    email: str
    registration_date: date
    phone_number: str


class UserCreateModel(BaseModel):
    name: str
    email: str
    registration_date: date
    phone_number: str


class LoanModel(BaseModel):
    id: int
    user_id: int
    book_id: int
    loan_date: date
    return_date: date | None = None
    status: LoanStatus


class LoanCreateModel(BaseModel):
    user_id: int
    book_id: int
    loan_date: date | None = Field(default=None, description="Defaults to today; past dates are rejected")
    return_date: date | None = None


class LoanDetailModel(BaseModel):
    loan_id: int
    loan_date: str | None = None
    return_date: str | None = None
    status: str | None = None
    user_name: str | None = None
    book_title: str | None = None


# --- Helper Functions ---
def _book_model(book: Book) -> BookModel:
    return BookModel(**book.to_dict())


def _user_model(user: User) -> UserModel:
    return UserModel(**user.to_dict())


def _loan_model(loan: Loan) -> LoanModel:
    return LoanModel(**loan.to_dict())


# --- Health Check ---
@app.get("/health")
def health(store: RecordStore = Depends(get_store)):
    """Lightweight health endpoint with a quick database round-trip."""
    db_ok = True
    try:
        store.find_all_books()
    except Exception as e:
        logger.error(f"Health check database probe failed: {e}")
        db_ok = False
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "db": db_ok,
        "services": {"google_books": settings.enable_google_books},
    }


# --- Books ---
@app.post("/api/books", response_model=BookModel, status_code=201)
def create_book(payload: BookCreateModel, library: Library = Depends(get_library)):
    return _book_model(library.add_book(Book(**payload.model_dump())))


@app.get("/api/books", response_model=List[BookModel])
def list_books(library: Library = Depends(get_library)):
    return [_book_model(b) for b in library.list_books()]


@app.get("/api/books/search", response_model=List[BookModel])
async def search_books(query: str = Query(..., min_length=1),
                       google_books: GoogleBooksService = Depends(get_google_books)):
    """Search the Google Books catalogue; results are not saved."""
    if not google_books.is_available():
        raise HTTPException(status_code=503, detail="Google Books service unavailable")
    books = await google_books.search(query)
    return [_book_model(b) for b in books]


@app.get("/api/books/{book_id}", response_model=BookModel)
def get_book(book_id: int, library: Library = Depends(get_library)):
    return _book_model(library.get_book(book_id))


@app.put("/api/books/{book_id}", response_model=BookModel)
def update_book(book_id: int, payload: BookUpdateModel, library: Library = Depends(get_library)):
    return _book_model(library.update_book(book_id, Book(**payload.model_dump())))


@app.delete("/api/books/{book_id}", status_code=204)
def delete_book(book_id: int, library: Library = Depends(get_library)):
    library.remove_book(book_id)
    return Response(status_code=204)


# --- Users ---
@app.post("/api/users", response_model=UserModel, status_code=201)
def create_user(payload: UserCreateModel, library: Library = Depends(get_library)):
    return _user_model(library.register_user(User(**payload.model_dump())))


@app.get("/api/users", response_model=List[UserModel])
def list_users(library: Library = Depends(get_library)):
    return [_user_model(u) for u in library.list_users()]


@app.get("/api/users/{user_id}", response_model=UserModel)
def get_user(user_id: int, library: Library = Depends(get_library)):
    return _user_model(library.get_user(user_id))


@app.put("/api/users/{user_id}", response_model=UserModel)
def update_user(user_id: int, payload: UserCreateModel, library: Library = Depends(get_library)):
    return _user_model(library.update_user(user_id, User(**payload.model_dump())))


@app.delete("/api/users/{user_id}", status_code=204)
def delete_user(user_id: int, library: Library = Depends(get_library)):
    library.remove_user(user_id)
    return Response(status_code=204)


# --- Loans ---
@app.post("/api/loans", response_model=LoanModel, status_code=201)
def create_loan(payload: LoanCreateModel, loans: LoanManager = Depends(get_loan_manager)):
    """Check a book out. Loan dates in the past are rejected; no date means today."""
    return _loan_model(loans.create_loan(Loan(**payload.model_dump())))


@app.get("/api/loans", response_model=List[LoanModel])
def list_loans(loans: LoanManager = Depends(get_loan_manager)):
    return [_loan_model(l) for l in loans.list_all()]


@app.get("/api/loans/details", response_model=List[LoanDetailModel])
def list_loan_details(loans: LoanManager = Depends(get_loan_manager)):
    return [LoanDetailModel(**d) for d in loans.list_details()]


@app.get("/api/loans/user/{user_id}", response_model=List[LoanModel])
def list_loans_by_user(user_id: int, loans: LoanManager = Depends(get_loan_manager)):
    return [_loan_model(l) for l in loans.list_by_user(user_id)]


@app.get("/api/loans/book/{book_id}", response_model=List[LoanModel])
def list_loans_by_book(book_id: int, loans: LoanManager = Depends(get_loan_manager)):
    return [_loan_model(l) for l in loans.list_by_book(book_id)]


@app.get("/api/loans/recommendations/{user_id}", response_model=List[BookModel])
def recommend_books(user_id: int, loans: LoanManager = Depends(get_loan_manager)):
    return [_book_model(b) for b in loans.recommend_for_user(user_id)]


@app.get("/api/loans/{loan_id}", response_model=LoanModel)
def get_loan(loan_id: int, loans: LoanManager = Depends(get_loan_manager)):
    return _loan_model(loans.get_loan(loan_id))


@app.put("/api/loans/{loan_id}", response_model=LoanModel)
def update_loan(loan_id: int,
                return_date: Optional[date] = Query(default=None, alias="returnDate"),
                status: Optional[LoanStatus] = Query(default=None),
                loans: LoanManager = Depends(get_loan_manager)):
    """Record a return. Without an explicit status, a return date marks the loan PRESENTE."""
    return _loan_model(loans.update_loan(loan_id, return_date, status))


@app.delete("/api/loans/{loan_id}", status_code=204)
def delete_loan(loan_id: int, loans: LoanManager = Depends(get_loan_manager)):
    loans.delete_loan(loan_id)
    return Response(status_code=204)
