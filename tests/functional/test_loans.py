import logging
from datetime import datetime, timedelta, timezone
from typing import Dict

import pytest
from fastapi.testclient import TestClient

from library_api.core.dates import is_overdue
from library_api.core.errors import ConflictError
from library_api.db.models import Book, Loan, User
from library_api.services import loan_service
from library_api.services.loan_service import borrow_book


def _parse(ts: str) -> datetime:
    return datetime.fromisoformat(ts.replace("Z", "+00:00"))


def _available(client: TestClient, book_id: int) -> int:
    books = client.get("/api/books", params={"limit": 100}).json()["books"]
    return next(b["availableCopies"] for b in books if b["id"] == book_id)


def _my_books(client: TestClient, headers: Dict) -> Dict:
    resp = client.get("/api/books/my-books", headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()


# ============================================================
# FLUJO COMPLETO
# ============================================================

#test funcional: 3 copias -> borrow -> 2 copias + préstamo a 14 días -> return -> 3 copias sin préstamo
def test_borrow_then_return_restores_copies(client: TestClient, member_headers, create_book):
    book = create_book(title="Libro Flujo", total_copies=3)
    assert book["availableCopies"] == 3

    resp = client.post(f"/api/books/{book['id']}/borrow", headers=member_headers)
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["success"] is True
    assert data["message"] == "Book borrowed successfully"
    assert data["data"]["book"]["id"] == book["id"]
    assert data["data"]["book"]["title"] == "Libro Flujo"
    assert "dueDate" in data["data"]["book"]

    assert _available(client, book["id"]) == 2

    mine = _my_books(client, member_headers)
    assert mine["totalBorrowed"] == 1
    loan = mine["borrowedBooks"][0]
    assert loan["book"]["id"] == book["id"]
    assert _parse(loan["dueDate"]) - _parse(loan["borrowDate"]) == timedelta(days=14)
    assert loan["isOverdue"] is False

    resp = client.post(f"/api/books/{book['id']}/return", headers=member_headers)
    assert resp.status_code == 200, resp.text
    assert resp.json() == {"success": True, "message": "Book returned successfully"}

    assert _available(client, book["id"]) == 3
    assert _my_books(client, member_headers)["totalBorrowed"] == 0


#test de los campos del libro expandidos en my-books
def test_my_books_expands_book_fields(client: TestClient, member_headers, create_book):
    first = create_book(title="Primero", author="Autor Uno", genre="History")
    second = create_book(title="Segundo", author="Autor Dos", genre="Mystery", coverImage="https://example.com/2.jpg")

    for book in (first, second):
        resp = client.post(f"/api/books/{book['id']}/borrow", headers=member_headers)
        assert resp.status_code == 200, resp.text

    mine = _my_books(client, member_headers)
    assert mine["success"] is True
    assert mine["totalBorrowed"] == 2

    # en el orden en que se pidieron
    books = [loan["book"] for loan in mine["borrowedBooks"]]
    assert [b["title"] for b in books] == ["Primero", "Segundo"]
    assert set(books[1]) == {
        "id",
        "title",
        "author",
        "genre",
        "publishedYear",
        "coverImage",
        "isbn",
        "description",
    }
    assert books[1]["coverImage"] == "https://example.com/2.jpg"
    assert books[1]["isbn"] == second["isbn"]


def test_my_books_only_lists_own_loans(client: TestClient, member_headers, other_member_headers, create_book):
    book = create_book()
    client.post(f"/api/books/{book['id']}/borrow", headers=other_member_headers)

    assert _my_books(client, member_headers)["totalBorrowed"] == 0
    assert _my_books(client, other_member_headers)["totalBorrowed"] == 1


def test_overdue_loan_is_flagged(client: TestClient, member_headers, create_book, db_session):
    book = create_book()
    client.post(f"/api/books/{book['id']}/borrow", headers=member_headers)

    # Forzar due_date al pasado directamente en la base de datos
    loan = db_session.query(Loan).filter(Loan.book_id == book["id"]).one()
    loan.due_date = datetime.now(timezone.utc) - timedelta(days=3)
    db_session.commit()

    mine = _my_books(client, member_headers)
    assert mine["borrowedBooks"][0]["isOverdue"] is True


#las fechas naive (como las devuelve SQLite) se comparan como UTC
def test_is_overdue_treats_naive_dates_as_utc():
    now = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)

    assert is_overdue(datetime(2024, 5, 10, 11, 59), now=now) is True
    assert is_overdue(datetime(2024, 5, 10, 12, 1), now=now) is False
    assert is_overdue(now + timedelta(days=14), now=now) is False


# ============================================================
# BORROW: casos límite
# ============================================================

def test_borrow_missing_book_returns_404(client: TestClient, member_headers):
    resp = client.post("/api/books/999999/borrow", headers=member_headers)
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "message": "Book not found"}


#sin copias disponibles: falla y no cambia nada
def test_borrow_without_available_copies_fails(client: TestClient, member_headers, create_book):
    book = create_book(total_copies=2, availableCopies=0)

    resp = client.post(f"/api/books/{book['id']}/borrow", headers=member_headers)
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "Book not available"}

    assert _available(client, book["id"]) == 0
    assert _my_books(client, member_headers)["totalBorrowed"] == 0


#no se puede tener dos préstamos activos del mismo libro
def test_cannot_borrow_same_book_twice(client: TestClient, member_headers, create_book):
    book = create_book(total_copies=3)

    assert client.post(f"/api/books/{book['id']}/borrow", headers=member_headers).status_code == 200
    resp = client.post(f"/api/books/{book['id']}/borrow", headers=member_headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "You have already borrowed this book"

    assert _available(client, book["id"]) == 2
    assert _my_books(client, member_headers)["totalBorrowed"] == 1


#préstamo duplicado concurrente: la consulta previa no lo ve y lo frena uq_loans_user_book
def test_duplicate_borrow_caught_by_unique_constraint(
    client: TestClient,
    member_headers,
    create_book,
    db_session,
    monkeypatch,
):
    book = create_book(total_copies=3)
    assert client.post(f"/api/books/{book['id']}/borrow", headers=member_headers).status_code == 200

    monkeypatch.setattr(loan_service, "find_active_loan", lambda db, user_id, book_id: None)

    resp = client.post(f"/api/books/{book['id']}/borrow", headers=member_headers)
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "You have already borrowed this book"}

    # el descuento de la copia se deshizo junto con el préstamo
    assert _available(client, book["id"]) == 2
    assert db_session.query(Loan).filter(Loan.book_id == book["id"]).count() == 1


#la última copia: el segundo usuario ya no puede pedirla
def test_last_copy_goes_to_first_borrower(client: TestClient, member_headers, other_member_headers, create_book):
    book = create_book(total_copies=1)

    assert client.post(f"/api/books/{book['id']}/borrow", headers=member_headers).status_code == 200
    resp = client.post(f"/api/books/{book['id']}/borrow", headers=other_member_headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Book not available"

    assert _available(client, book["id"]) == 0


#carrera por la última copia: una sesión con el libro ya leído pierde en el UPDATE condicional
def test_stale_read_of_last_copy_is_rejected(
    client: TestClient,
    member_headers,
    other_member_headers,
    create_book,
    db_session,
):
    book = create_book(total_copies=1)

    stale_book = db_session.get(Book, book["id"])
    assert stale_book.available_copies == 1

    # Otro usuario se lleva la última copia mientras tanto
    assert client.post(f"/api/books/{book['id']}/borrow", headers=member_headers).status_code == 200

    other = db_session.query(User).filter(User.email == "other_member@example.com").one()
    with pytest.raises(ConflictError) as excinfo:
        borrow_book(db_session, other, book["id"])
    assert excinfo.value.detail == "Book not available"

    # El contador nunca baja de 0 y no queda préstamo a medias
    assert _available(client, book["id"]) == 0
    assert _my_books(client, other_member_headers)["totalBorrowed"] == 0


def test_borrow_requires_token(client: TestClient, create_book):
    book = create_book()
    resp = client.post(f"/api/books/{book['id']}/borrow")
    assert resp.status_code == 401
    assert _available(client, book["id"]) == book["availableCopies"]


# ============================================================
# RETURN: casos límite
# ============================================================

def test_return_missing_book_returns_404(client: TestClient, member_headers):
    resp = client.post("/api/books/999999/return", headers=member_headers)
    assert resp.status_code == 404
    assert resp.json()["message"] == "Book not found"


#devolver algo que no se pidió: falla y no cambia nada
def test_return_without_borrow_fails(client: TestClient, member_headers, other_member_headers, create_book):
    book = create_book(total_copies=2)
    client.post(f"/api/books/{book['id']}/borrow", headers=other_member_headers)

    resp = client.post(f"/api/books/{book['id']}/return", headers=member_headers)
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "Book not borrowed by you"}

    assert _available(client, book["id"]) == 1
    assert _my_books(client, other_member_headers)["totalBorrowed"] == 1


def test_return_twice_fails_second_time(client: TestClient, member_headers, create_book):
    book = create_book(total_copies=1)
    client.post(f"/api/books/{book['id']}/borrow", headers=member_headers)

    assert client.post(f"/api/books/{book['id']}/return", headers=member_headers).status_code == 200
    resp = client.post(f"/api/books/{book['id']}/return", headers=member_headers)
    assert resp.status_code == 400
    assert _available(client, book["id"]) == 1


#si el contador ya está en total_copies, se borra el préstamo pero no se pasa del máximo
def test_return_never_exceeds_total_copies(
    client: TestClient,
    member_headers,
    create_book,
    db_session,
    caplog,
):
    book = create_book(total_copies=2)
    client.post(f"/api/books/{book['id']}/borrow", headers=member_headers)

    db_session.query(Book).filter(Book.id == book["id"]).update({"available_copies": 2})
    db_session.commit()

    caplog.set_level(logging.INFO)
    resp = client.post(f"/api/books/{book['id']}/return", headers=member_headers)
    assert resp.status_code == 200, resp.text

    assert _available(client, book["id"]) == 2
    assert _my_books(client, member_headers)["totalBorrowed"] == 0
    assert any(r.getMessage() == "return_counter_at_capacity" for r in caplog.records)


#el invariante 0 <= available <= total se mantiene en una secuencia mixta
def test_counter_stays_within_bounds(client: TestClient, member_headers, other_member_headers, create_book):
    book = create_book(total_copies=2)
    url = f"/api/books/{book['id']}"

    steps = [
        ("borrow", member_headers),
        ("borrow", other_member_headers),
        ("borrow", member_headers),
        ("return", member_headers),
        ("return", member_headers),
        ("return", other_member_headers),
        ("return", other_member_headers),
    ]
    for action, headers in steps:
        client.post(f"{url}/{action}", headers=headers)
        assert 0 <= _available(client, book["id"]) <= 2

    assert _available(client, book["id"]) == 2
