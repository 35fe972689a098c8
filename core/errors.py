from typing import Any, Dict, Optional


class AppError(Exception):
    """Error de dominio con código HTTP asociado.

    `detail` guarda información interna (mensaje del driver, etc.) que solo
    se expone al cliente en modo development.
    """

    status_code = 500
    default_message = "Error interno del servidor"

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)

    def to_dict(self, include_detail: bool = False) -> Dict[str, Any]:
        body: Dict[str, Any] = {"status": "error", "message": self.message}
        if include_detail and self.detail:
            body["detail"] = self.detail
        return body


class ValidationError(AppError):
    status_code = 400
    default_message = "Datos inválidos"


class AuthorizationError(AppError):
    status_code = 403
    default_message = "Tu plan no permite acceso al panel de clientes"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Recurso no encontrado"


class ConflictError(AppError):
    status_code = 409
    default_message = "El recurso ya existe"


class DatabaseError(AppError):
    status_code = 500
    default_message = "Error en la base de datos"


class DatabaseConnectionError(DatabaseError):
    status_code = 503
    default_message = "Base de datos no disponible"


class PoolTimeoutError(DatabaseConnectionError):
    default_message = "Tiempo de espera agotado al obtener una conexión"


class PoolClosedError(DatabaseConnectionError):
    default_message = "El pool de conexiones está cerrado"
