from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from library_api.api.v1.dependencies import get_db
from library_api.api.v1.dependencies_auth import get_current_user, require_role
from library_api.core.errors import ServerError
from library_api.core.logging import get_logger
from library_api.db.models import User, UserRole
from library_api.schemas.base import MessageResponse
from library_api.schemas.book import (
    BookCreate,
    BookCreatedResponse,
    BookData,
    BookListResponse,
    BookRead,
    BorrowData,
    BorrowedBook,
    BorrowResponse,
)
from library_api.schemas.loan import LoanRead, MyBooksResponse
from library_api.services.catalog_service import (
    DEFAULT_PAGE,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    add_book,
    page_count,
    search_books,
)
from library_api.services.loan_service import borrow_book, list_user_loans, return_book

logger = get_logger("api.books")

router = APIRouter(
    prefix="/api/books",
    tags=["books"],
)


# ---- Catálogo (público) ----
@router.get("", response_model=BookListResponse)
def list_books(
    search: Optional[str] = Query(None),
    genre: Optional[str] = Query(None),
    page: int = Query(DEFAULT_PAGE, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    try:
        books, total = search_books(db, search=search, genre=genre, page=page, limit=limit)
    except SQLAlchemyError:
        logger.error("books_list_failed", extra={"operation": "book_list", "resource": "book"}, exc_info=True)
        raise ServerError("Server error fetching books")

    logger.info(
        "books_listed",
        extra={
            "operation": "book_list",
            "resource": "book",
            "search": search,
            "genre": genre,
            "count": len(books),
            "total": total,
        },
    )

    return BookListResponse(
        books=[BookRead.model_validate(book) for book in books],
        total=total,
        page=page,
        pages=page_count(total, limit),
    )


# ---- Préstamos del usuario actual ---- (importante: antes de las rutas con {book_id})
@router.get("/my-books", response_model=MyBooksResponse)
def my_books(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        loans = list_user_loans(db, current_user)
    except SQLAlchemyError:
        logger.error("my_books_failed", extra={"operation": "loan_list", "resource": "loan"}, exc_info=True)
        raise ServerError("Server error fetching borrowed books")

    return MyBooksResponse(
        borrowed_books=[LoanRead.model_validate(loan) for loan in loans],
        total_borrowed=len(loans),
    )


# ---- Alta de libro (Admin) ----
@router.post("", response_model=BookCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_book(
    payload: BookCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    try:
        book = add_book(db, payload, current_user)
    except SQLAlchemyError:
        db.rollback()
        logger.error("book_create_failed", extra={"operation": "book_create", "resource": "book"}, exc_info=True)
        raise ServerError("Server error adding book")

    return BookCreatedResponse(
        message="Book added successfully",
        data=BookData(book=BookRead.model_validate(book)),
    )


# ---- Pedir prestado ----
@router.post("/{book_id}/borrow", response_model=BorrowResponse)
def borrow(
    book_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        loan = borrow_book(db, current_user, book_id)
        book = loan.book
        borrowed = BorrowedBook(id=book.id, title=book.title, author=book.author, due_date=loan.due_date)
    except SQLAlchemyError:
        db.rollback()
        logger.error(
            "borrow_failed",
            extra={"operation": "loan_borrow", "resource": "book", "book_id": book_id},
            exc_info=True,
        )
        raise ServerError("Server error borrowing book")

    return BorrowResponse(
        message="Book borrowed successfully",
        data=BorrowData(book=borrowed),
    )


# ---- Devolver ----
@router.post("/{book_id}/return", response_model=MessageResponse)
def return_(
    book_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return_book(db, current_user, book_id)
    except SQLAlchemyError:
        db.rollback()
        logger.error(
            "return_failed",
            extra={"operation": "loan_return", "resource": "book", "book_id": book_id},
            exc_info=True,
        )
        raise ServerError("Server error returning book")

    return MessageResponse(message="Book returned successfully")
