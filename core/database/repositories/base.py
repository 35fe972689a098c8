import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from core.errors import AppError, ConflictError, DatabaseConnectionError, DatabaseError
from ..connection import ConnectionPool


class BaseRepository:
    def __init__(self, connection_pool: ConnectionPool, logger: Optional[logging.Logger] = None):
        self.pool = connection_pool
        self.logger = logger or logging.getLogger(self.__class__.__module__)

    @property
    def connection(self):
        return self.pool.connection()

    @property
    def transaction(self):
        return self.pool.unit_of_work()

    def _translate_error(self, error: Exception, action: str) -> AppError:
        """Convierte errores del driver en errores de dominio sin perder el detalle interno"""
        if isinstance(error, AppError):
            return error
        if isinstance(error, IntegrityError):
            return ConflictError(detail=str(error.orig))
        if isinstance(error, OperationalError) and error.connection_invalidated:
            self.logger.error(f"Conexión perdida al {action}: {error}")
            return DatabaseConnectionError(detail=str(error))
        if isinstance(error, SQLAlchemyError):
            self.logger.error(f"Error de base de datos al {action}: {error}")
            return DatabaseError(f"Error al {action}", detail=str(error))
        return DatabaseError(f"Error al {action}", detail=repr(error))
