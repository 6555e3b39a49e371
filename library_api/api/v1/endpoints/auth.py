from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from library_api.api.v1.dependencies import get_db
from library_api.api.v1.dependencies_auth import get_current_user
from library_api.core.errors import ConflictError
from library_api.core.logging import get_logger
from library_api.core.security import create_access_token, hash_password, verify_password
from library_api.db.models import User
from library_api.schemas.auth import LoginRequest, TokenResponse
from library_api.schemas.user import UserCreate, UserData, UserRead, UserResponse

logger = get_logger("api.auth")

EMAIL_TAKEN = "User already exists with this email"

router = APIRouter(
    prefix="/api/auth",
    tags=["auth"],
)


def _client_ip(request: Request):
    return request.client.host if request.client else None


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register_user(
    payload: UserCreate,
    request: Request,
    db: Session = Depends(get_db),
):
    existing = db.query(User).filter(User.email == payload.email).first()
    if existing:
        raise ConflictError(EMAIL_TAKEN)

    user = User(
        name=payload.name,
        email=payload.email,
        hashed_password=hash_password(payload.password),
        role=payload.role,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(EMAIL_TAKEN)
    db.refresh(user)

    logger.info(
        "user_registered",
        extra={
            "operation": "auth_register",
            "resource": "user",
            "user_id": user.id,
            "role": user.role.value,
            "ip": _client_ip(request),
        },
    )

    return TokenResponse(
        message="User registered successfully",
        token=create_access_token(user_id=user.id, role=user.role.value),
        data=UserData(user=UserRead.from_user(user)),
    )


@router.post("/login", response_model=TokenResponse)
def login(
    payload: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    user = db.query(User).filter(User.email == payload.email).first()

    if not user or not verify_password(payload.password, user.hashed_password):
        logger.warning(
            "login_failed",
            extra={
                "operation": "auth_login",
                "resource": "user",
                "email": payload.email,
                "status_code": 401,
                "ip": _client_ip(request),
            },
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )

    logger.info(
        "login_success",
        extra={
            "operation": "auth_login",
            "resource": "user",
            "email": payload.email,
            "status_code": 200,
            "ip": _client_ip(request),
        },
    )

    return TokenResponse(
        message="Login successful",
        token=create_access_token(user_id=user.id, role=user.role.value),
        data=UserData(user=UserRead.from_user(user)),
    )


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return UserResponse(data=UserData(user=UserRead.from_user(current_user)))
