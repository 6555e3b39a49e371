from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    Base de todos los esquemas de la API.

    Los atributos se escriben en snake_case y viajan en camelCase
    (publishedYear, availableCopies, dueDate...), que es lo que espera el frontend.
    """

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class MessageResponse(CamelModel):
    success: bool = True
    message: str
