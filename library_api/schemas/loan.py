from datetime import datetime
from typing import List

from pydantic import computed_field

from library_api.core import dates
from library_api.schemas.base import CamelModel
from library_api.schemas.book import BookSummary


class LoanRead(CamelModel):
    id: int
    book: BookSummary
    borrow_date: datetime
    due_date: datetime

    @computed_field(alias="isOverdue")
    @property
    def is_overdue(self) -> bool:
        return dates.is_overdue(self.due_date)


class LoanRef(CamelModel):
    """Préstamo tal como aparece en el perfil del usuario (libro solo por id)."""

    book: int
    borrow_date: datetime
    due_date: datetime


class MyBooksResponse(CamelModel):
    success: bool = True
    borrowed_books: List[LoanRead]
    total_borrowed: int
