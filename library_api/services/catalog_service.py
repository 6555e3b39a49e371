import math
from typing import Optional

from sqlalchemy import desc, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from library_api.core.errors import ConflictError
from library_api.core.logging import get_logger
from library_api.db.models import Book, User
from library_api.schemas.book import BookCreate

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 100

# Valor del filtro de género que equivale a "sin filtro"
ALL_GENRES = "All"

DUPLICATE_ISBN = "Book with this ISBN already exists"

logger = get_logger("services.catalog")


def _contains_pattern(search: str) -> str:
    # % y _ del usuario se buscan literalmente
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def search_books(
    db: Session,
    search: Optional[str] = None,
    genre: Optional[str] = None,
    page: int = DEFAULT_PAGE,
    limit: int = DEFAULT_PAGE_SIZE,
) -> tuple[list[Book], int]:
    """
    Devuelve (página de libros, total de coincidencias).

    `search` busca sin distinguir mayúsculas en título o autor;
    `genre` vacío o "All" no filtra. Los más nuevos primero.
    """
    query = db.query(Book)

    if search:
        pattern = _contains_pattern(search)
        query = query.filter(
            or_(Book.title.ilike(pattern, escape="\\"), Book.author.ilike(pattern, escape="\\"))
        )
    if genre and genre != ALL_GENRES:
        query = query.filter(Book.genre == genre)

    total = query.count()

    books = (
        query.options(joinedload(Book.added_by))
        .order_by(desc(Book.created_at), desc(Book.id))
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return books, total


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit)


def find_book_by_isbn(db: Session, isbn: str) -> Book | None:
    return db.query(Book).filter(Book.isbn == isbn).first()


def add_book(db: Session, payload: BookCreate, added_by: User) -> Book:
    if find_book_by_isbn(db, payload.isbn) is not None:
        raise ConflictError(DUPLICATE_ISBN)

    data = payload.model_dump()
    if data["available_copies"] is None:
        data["available_copies"] = data["total_copies"]  # al inicio, todas disponibles

    book = Book(**data, added_by_id=added_by.id)
    db.add(book)

    try:
        db.commit()
    except IntegrityError:
        # uq_books_isbn: alguien insertó el mismo ISBN entre la consulta y el commit
        db.rollback()
        raise ConflictError(DUPLICATE_ISBN)

    db.refresh(book)

    logger.info(
        "book_added",
        extra={
            "operation": "book_create",
            "resource": "book",
            "book_id": book.id,
            "isbn": book.isbn,
            "user_id": added_by.id,
        },
    )
    return book
