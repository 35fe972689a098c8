import logging

from fastapi import Depends, Request

from core.config import Settings
from core.database.connection import ConnectionPool
from core.errors import DatabaseConnectionError
from core.services import PaymentService, UserService

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_pool(request: Request) -> ConnectionPool:
    pool = getattr(request.app.state, "pool", None)
    if pool is None or pool.closed:
        raise DatabaseConnectionError("DB no disponible")
    return pool

# --- Service Dependencies ---

def get_user_service(pool: ConnectionPool = Depends(get_pool), settings: Settings = Depends(get_settings)) -> UserService:
    return UserService(pool, settings)


def get_payment_service(pool: ConnectionPool = Depends(get_pool), settings: Settings = Depends(get_settings)) -> PaymentService:
    return PaymentService(pool, settings)
