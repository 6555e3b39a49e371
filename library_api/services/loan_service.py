from datetime import datetime, timedelta, timezone

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from library_api.core.errors import ConflictError, NotFoundError
from library_api.core.logging import get_logger
from library_api.db.models import Book, Loan, User

LOAN_PERIOD_DAYS = 14  # plazo del préstamo

BOOK_NOT_FOUND = "Book not found"
BOOK_NOT_AVAILABLE = "Book not available"
ALREADY_BORROWED = "You have already borrowed this book"
NOT_BORROWED = "Book not borrowed by you"

logger = get_logger("services.loans")


def get_book_or_404(db: Session, book_id: int) -> Book:
    book = db.get(Book, book_id)
    if book is None:
        raise NotFoundError(BOOK_NOT_FOUND)
    return book


def find_active_loan(db: Session, user_id: int, book_id: int) -> Loan | None:
    return (
        db.query(Loan)
        .filter(Loan.user_id == user_id, Loan.book_id == book_id)
        .first()
    )


def reserve_copy(db: Session, book_id: int) -> bool:
    """
    Resta una copia disponible solo si queda alguna.

    El UPDATE condicional es lo que evita que dos préstamos simultáneos
    de la última copia dejen available_copies en negativo.
    Devuelve False si la fila no cumplía la condición.
    """
    result = db.execute(
        update(Book)
        .where(Book.id == book_id, Book.available_copies > 0)
        .values(available_copies=Book.available_copies - 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def release_copy(db: Session, book_id: int) -> bool:
    """Suma una copia disponible sin pasar de total_copies."""
    result = db.execute(
        update(Book)
        .where(Book.id == book_id, Book.available_copies < Book.total_copies)
        .values(available_copies=Book.available_copies + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def borrow_book(db: Session, user: User, book_id: int) -> Loan:
    """
    Presta un libro al usuario.

    Validaciones, en este orden:
    1. El libro existe (404).
    2. Quedan copias disponibles (400).
    3. El usuario no tiene ya un préstamo activo de ese libro (400).

    El descuento de la copia y el alta del préstamo van en la misma transacción.
    """
    book = get_book_or_404(db, book_id)

    if book.available_copies <= 0:
        logger.info(
            "borrow_rejected",
            extra={"operation": "loan_borrow", "resource": "book", "book_id": book_id, "reason": "not_available"},
        )
        raise ConflictError(BOOK_NOT_AVAILABLE)

    if find_active_loan(db, user.id, book_id) is not None:
        logger.info(
            "borrow_rejected",
            extra={"operation": "loan_borrow", "resource": "book", "book_id": book_id, "reason": "already_borrowed"},
        )
        raise ConflictError(ALREADY_BORROWED)

    if not reserve_copy(db, book_id):
        # Otro préstamo se llevó la última copia entre la lectura y el UPDATE
        db.rollback()
        logger.warning(
            "borrow_rejected",
            extra={"operation": "loan_borrow", "resource": "book", "book_id": book_id, "reason": "lost_race"},
        )
        raise ConflictError(BOOK_NOT_AVAILABLE)

    now = datetime.now(timezone.utc)
    loan = Loan(
        user_id=user.id,
        book_id=book_id,
        borrow_date=now,
        due_date=now + timedelta(days=LOAN_PERIOD_DAYS),
    )
    db.add(loan)

    try:
        db.commit()
    except IntegrityError:
        # uq_loans_user_book: préstamo duplicado concurrente; se deshace también el descuento
        db.rollback()
        raise ConflictError(ALREADY_BORROWED)

    db.refresh(loan)

    logger.info(
        "book_borrowed",
        extra={
            "operation": "loan_borrow",
            "resource": "loan",
            "loan_id": loan.id,
            "book_id": book_id,
            "user_id": user.id,
        },
    )
    return loan


def return_book(db: Session, user: User, book_id: int) -> None:
    book = get_book_or_404(db, book_id)

    loan = find_active_loan(db, user.id, book_id)
    if loan is None:
        logger.info(
            "return_rejected",
            extra={"operation": "loan_return", "resource": "book", "book_id": book_id, "reason": "not_borrowed"},
        )
        raise ConflictError(NOT_BORROWED)

    db.delete(loan)

    if not release_copy(db, book.id):
        # El contador ya estaba al máximo: se borra el préstamo pero no se pasa de total_copies
        logger.warning(
            "return_counter_at_capacity",
            extra={
                "operation": "loan_return",
                "resource": "book",
                "book_id": book.id,
                "total_copies": book.total_copies,
            },
        )

    db.commit()

    logger.info(
        "book_returned",
        extra={"operation": "loan_return", "resource": "loan", "book_id": book_id, "user_id": user.id},
    )


def list_user_loans(db: Session, user: User) -> list[Loan]:
    return (
        db.query(Loan)
        .options(selectinload(Loan.book))
        .filter(Loan.user_id == user.id)
        .order_by(Loan.borrow_date, Loan.id)
        .all()
    )
