import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.engine import URL, make_url

from .secure_config import SecureConfig

logger = logging.getLogger(__name__)

# Tope duro para consultas de historial, independiente de lo que pida el cliente
MAX_HISTORY_LIMIT = 1000


@dataclass(frozen=True)
class Settings:
    """
    Configuración del sistema.
    Centraliza parámetros del sistema para fácil mantenimiento.
    """

    environment: str = "development"
    port: int = 3001
    database_url: Optional[str] = None
    db_params: Dict[str, Any] = field(default_factory=dict)

    # --- Pool de conexiones ---
    pool_max_connections: int = 10
    # None = esperar indefinidamente por una conexión libre
    pool_timeout: Optional[float] = None
    statement_timeout_ms: int = 30000

    # --- Política de cobro ---
    renewal_days: int = 30
    history_limit: int = 100

    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_dir: Optional[str] = None

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def sqlalchemy_url(self) -> URL:
        """URL de conexión; DATABASE_URL tiene prioridad sobre DB_*."""
        if self.database_url:
            return make_url(self.database_url)
        p = self.db_params
        query = {}
        if p.get('sslmode'):
            query['sslmode'] = p['sslmode']
        if p.get('sslrootcert'):
            query['sslrootcert'] = p['sslrootcert']
        return URL.create(
            "postgresql+psycopg2",
            username=p.get('user'),
            password=p.get('password') or None,
            host=p.get('host'),
            port=p.get('port'),
            database=p.get('database'),
            query=query,
        )


def load_settings() -> Settings:
    """Construye Settings a partir de las variables de entorno (.env ya cargado)."""
    environment = SecureConfig.get_environment()
    if environment not in ("development", "production", "test"):
        logger.warning(f"NODE_ENV desconocido '{environment}', se asume development")
        environment = "development"

    history_limit = SecureConfig.get_env_int('PAYMENT_HISTORY_LIMIT', 100)
    history_limit = max(1, min(history_limit, MAX_HISTORY_LIMIT))

    origins_raw = SecureConfig.get_env_variable('CORS_ORIGINS', '*')
    origins = [o.strip() for o in str(origins_raw).split(',') if o.strip()] or ["*"]

    return Settings(
        environment=environment,
        port=SecureConfig.get_env_int('PORT', 3001),
        database_url=SecureConfig.get_env_variable('DATABASE_URL'),
        db_params=SecureConfig.get_db_config(environment),
        pool_max_connections=max(1, SecureConfig.get_env_int('DB_POOL_MAX', 10)),
        pool_timeout=SecureConfig.get_env_float('DB_POOL_TIMEOUT', None),
        statement_timeout_ms=SecureConfig.get_env_int('DB_STATEMENT_TIMEOUT_MS', 30000),
        renewal_days=SecureConfig.get_env_int('PAYMENT_RENEWAL_DAYS', 30),
        history_limit=history_limit,
        cors_origins=origins,
        log_dir=SecureConfig.get_env_variable('LOG_DIR'),
    )
