#configuracion de los test
import os
import sys
import tempfile
import uuid
from pathlib import Path
from typing import Callable, Dict, Generator

import pytest
from fastapi.testclient import TestClient

# ======================================================
# Ajuste del sys.path para que 'library_api/' sea importable
# ======================================================
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

# ======================================================
# Entorno de pruebas: SQLite en un directorio temporal.
# Tiene que definirse ANTES de importar la app (settings se lee al importar).
# ======================================================
_DB_DIR = tempfile.mkdtemp(prefix="library_api_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/library_test.db"
os.environ["JWT_SECRET"] = "test-secret-key"
os.environ.pop("ADMIN_EMAIL", None)
os.environ.pop("ADMIN_PASSWORD", None)

# ======================================================
# Imports de la aplicación
# ======================================================
from library_api.main import app
from library_api.db.session import Base, SessionLocal, engine


# ======================================================
# DB: esquema limpio para cada test
# ======================================================
@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db_session() -> Generator:
    """
    Provee una sesión de DB independiente de la del request.
    """
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# ======================================================
# CLIENT FIXTURE
# ======================================================
@pytest.fixture(scope="session")
def client():
    """
    TestClient de FastAPI (con contexto, ejecuta el startup).
    """
    with TestClient(app) as c:
        yield c


# ======================================================
# USUARIOS
# ======================================================
def register_user(
    client: TestClient,
    email: str,
    password: str = "secret123",
    name: str = "Test User",
    role: str = "Member",
) -> Dict:
    resp = client.post(
        "/api/auth/register",
        json={"name": name, "email": email, "password": password, "role": role},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def auth_headers(token: str) -> Dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(client: TestClient):
    data = register_user(client, "admin@example.com", password="admin123", name="Library Admin", role="Admin")
    return auth_headers(data["token"])


@pytest.fixture
def member_headers(client: TestClient):
    data = register_user(client, "member_test@example.com", password="member123", name="Member Test")
    return auth_headers(data["token"])


@pytest.fixture
def other_member_headers(client: TestClient):
    data = register_user(client, "other_member@example.com", password="member123", name="Other Member")
    return auth_headers(data["token"])


# ======================================================
# LIBROS
# ======================================================
@pytest.fixture
def unique_isbn() -> Callable[[str], str]:
    """Genera un ISBN único por test (máx. 20 caracteres)."""
    def _make(prefix: str) -> str:
        return f"{prefix}-{uuid.uuid4().hex[:8]}"

    return _make


@pytest.fixture
def create_book(client: TestClient, admin_headers, unique_isbn):
    """Fábrica de libros creados vía API por el admin; devuelve el JSON del libro."""
    def _create(
        title: str = "Libro de Pruebas",
        author: str = "Autor Test",
        genre: str = "Fiction",
        total_copies: int = 3,
        **extra,
    ) -> Dict:
        payload = {
            "title": title,
            "author": author,
            "isbn": unique_isbn("TEST"),
            "genre": genre,
            "publishedYear": 2024,
            "description": "Libro para pruebas",
            "totalCopies": total_copies,
        }
        payload.update(extra)
        resp = client.post("/api/books", json=payload, headers=admin_headers)
        assert resp.status_code == 201, resp.text
        return resp.json()["data"]["book"]

    return _create
