"""Domain errors raised by the registry services.

Each error carries the HTTP status and the user-facing message the API
returns for it; ``main.py`` turns them into JSON responses.
"""

from fastapi import status


class RegistryError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_detail: str = "Solicitud no válida"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFoundError(RegistryError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Recurso no encontrado"


class GiftNotFoundError(NotFoundError):
    default_detail = "Regalo no encontrado"


class RegistryNotFoundError(NotFoundError):
    default_detail = "Lista de regalos no encontrada"


class TokenNotFoundError(NotFoundError):
    default_detail = "Reserva no encontrada o ya cancelada"


class AlreadyReservedError(RegistryError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Este regalo ya ha sido reservado"


class ValidationError(RegistryError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Datos de reserva no válidos"


class PermissionDeniedError(RegistryError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "No tienes permiso para realizar esta acción"


class SlugConflictError(RegistryError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "No se pudo generar un enlace único para la lista"


class NotificationDispatchError(Exception):
    """Email delivery failed. Logged by the caller, never surfaced to the client."""
