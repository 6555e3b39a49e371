from pydantic import BaseModel, EmailStr

from library_api.schemas.base import CamelModel
from library_api.schemas.user import UserData


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(CamelModel):
    success: bool = True
    message: str
    token: str
    data: UserData
