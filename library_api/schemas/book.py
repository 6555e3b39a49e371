from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field, model_validator

from library_api.schemas.base import CamelModel


Genre = Literal[
    "Fiction",
    "Non-Fiction",
    "Science",
    "History",
    "Biography",
    "Fantasy",
    "Romance",
    "Mystery",
    "Thriller",
    "Science Fiction",
]


class BookCreate(CamelModel):
    title: str = Field(min_length=1, max_length=255)
    author: str = Field(min_length=1, max_length=255)
    isbn: str = Field(min_length=1, max_length=20)
    genre: Genre
    published_year: Optional[int] = None
    description: Optional[str] = None
    cover_image: Optional[str] = Field(default=None, max_length=500)
    total_copies: int = Field(default=1, ge=1)
    available_copies: Optional[int] = Field(default=None, ge=0)  # por defecto = total_copies

    @model_validator(mode="after")
    def check_copies(self):
        if self.available_copies is not None and self.available_copies > self.total_copies:
            raise ValueError("availableCopies cannot exceed totalCopies")
        return self


class BookOwner(CamelModel):
    id: int
    name: str


class BookRead(CamelModel):
    id: int
    title: str
    author: str
    isbn: str
    genre: str
    published_year: Optional[int] = None
    description: Optional[str] = None
    cover_image: Optional[str] = None
    total_copies: int
    available_copies: int
    added_by: Optional[BookOwner] = None
    created_at: datetime


class BookSummary(CamelModel):
    """Campos de un libro que se muestran dentro de un préstamo."""

    id: int
    title: str
    author: str
    genre: str
    published_year: Optional[int] = None
    cover_image: Optional[str] = None
    isbn: str
    description: Optional[str] = None


class BookListResponse(CamelModel):
    success: bool = True
    books: List[BookRead]
    total: int
    page: int
    pages: int


class BookData(CamelModel):
    book: BookRead


class BookCreatedResponse(CamelModel):
    success: bool = True
    message: str
    data: BookData


class BorrowedBook(CamelModel):
    id: int
    title: str
    author: str
    due_date: datetime


class BorrowData(CamelModel):
    book: BorrowedBook


class BorrowResponse(CamelModel):
    success: bool = True
    message: str
    data: BorrowData
