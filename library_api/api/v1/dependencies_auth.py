from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from library_api.api.v1.dependencies import get_db
from library_api.core.security import decode_access_token
from library_api.db.models import User, UserRole


# Las credenciales llegan en cada request (Authorization: Bearer <jwt>);
# auto_error=False para responder nosotros con 401 y el mensaje de la API
bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """
    Obtiene el usuario actual a partir del token JWT.
    Lanza 401 si no hay token o no se puede validar.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized, no token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authorized, token failed",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise credentials_exception

    user: User | None = db.get(User, payload["user_id"])
    if user is None:
        raise credentials_exception

    # request.state comparte el scope con el middleware, que lo añade a request_completed
    request.state.user_id = user.id

    return user


def require_role(required_role: UserRole):
    """
    Dependencia que exige un rol concreto y devuelve el usuario autenticado.
    """
    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role != required_role:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"User role {current_user.role.value} is not authorized to access this route",
            )
        return current_user

    return dependency
