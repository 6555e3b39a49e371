from fastapi import HTTPException, status


class NotFoundError(HTTPException):
    """Recurso inexistente (libro, usuario)."""

    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ConflictError(HTTPException):
    """
    Violación de una regla de negocio: ISBN duplicado, préstamo activo
    repetido, sin copias disponibles, devolución de algo no prestado.

    Se responde con 400, igual que el resto de validaciones de negocio.
    """

    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class ServerError(HTTPException):
    def __init__(self, detail: str = "Server error"):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)
