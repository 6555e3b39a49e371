from sqlalchemy.orm import Session

from library_api.core.config import settings
from library_api.core.logging import get_logger
from library_api.core.security import hash_password
from library_api.db.models import User, UserRole

logger = get_logger("services.init_admin")


def ensure_builtin_admin(db: Session) -> None:
    """
    Crea el admin de arranque si ADMIN_EMAIL y ADMIN_PASSWORD están configurados
    y todavía no existe un usuario con ese email.
    """
    if not settings.ADMIN_EMAIL or not settings.ADMIN_PASSWORD:
        return

    admin = db.query(User).filter(User.email == settings.ADMIN_EMAIL).first()
    if admin:
        return

    admin = User(
        name=settings.ADMIN_NAME,
        email=settings.ADMIN_EMAIL,
        hashed_password=hash_password(settings.ADMIN_PASSWORD),
        role=UserRole.ADMIN,
    )
    db.add(admin)
    db.commit()

    logger.info(
        "builtin_admin_created",
        extra={"operation": "init_admin", "resource": "user", "email": settings.ADMIN_EMAIL},
    )
