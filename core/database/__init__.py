from .connection import (
    ConnectionPool,
    UnitOfWork,
    build_engine,
    create_pool,
    check_connection,
    database_status,
)
from .repositories.user_repository import AccountDirectory
from .repositories.payment_repository import PaymentLedger

__all__ = [
    "ConnectionPool",
    "UnitOfWork",
    "build_engine",
    "create_pool",
    "check_connection",
    "database_status",
    "AccountDirectory",
    "PaymentLedger",
]
