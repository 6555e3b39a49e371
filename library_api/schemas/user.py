from datetime import datetime
from typing import List

from pydantic import EmailStr, Field, field_validator

from library_api.db.models import User, UserRole
from library_api.schemas.base import CamelModel
from library_api.schemas.loan import LoanRef


class UserCreate(CamelModel):
    name: str = Field(min_length=2, max_length=255)
    email: EmailStr
    password: str = Field(min_length=6)
    role: UserRole = UserRole.MEMBER

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value


class UserRead(CamelModel):
    id: int
    name: str
    email: str
    role: UserRole
    created_at: datetime
    borrowed_books: List[LoanRef] = []

    @classmethod
    def from_user(cls, user: User) -> "UserRead":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            created_at=user.created_at,
            borrowed_books=[
                LoanRef(book=loan.book_id, borrow_date=loan.borrow_date, due_date=loan.due_date)
                for loan in user.loans
            ],
        )


class UserData(CamelModel):
    user: UserRead


class UserResponse(CamelModel):
    success: bool = True
    data: UserData
