import os
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class SecureConfig:
    @classmethod
    def get_env_variable(cls, key: str, default: Any = None, required: bool = False) -> Any:
        val = os.getenv(key)
        if val is None or str(val).strip() == "":
            if required:
                raise RuntimeError(f"Missing required environment variable: {key}")
            return default
        return val

    @classmethod
    def get_env_int(cls, key: str, default: int = 0) -> int:
        val = os.getenv(key)
        if val is None:
            return default
        try:
            return int(str(val).strip())
        except ValueError:
            logger.warning(f"Valor no numérico en {key}={val!r}, usando default {default}")
            return default

    @classmethod
    def get_env_float(cls, key: str, default: Optional[float] = 0.0) -> Optional[float]:
        val = os.getenv(key)
        if val is None or str(val).strip() == "":
            return default
        try:
            return float(str(val).strip())
        except ValueError:
            logger.warning(f"Valor no numérico en {key}={val!r}, usando default {default}")
            return default

    @classmethod
    def get_environment(cls) -> str:
        # NODE_ENV se conserva por compatibilidad con los despliegues existentes
        env = cls.get_env_variable('NODE_ENV') or cls.get_env_variable('APP_ENV', 'development')
        return str(env).strip().lower()

    @classmethod
    def get_db_config(cls, environment: Optional[str] = None) -> Dict[str, Any]:
        env = environment or cls.get_environment()
        # En producción se exige verificar el certificado del servidor
        default_sslmode = 'verify-full' if env == 'production' else 'prefer'
        cfg = {
            'host': cls.get_env_variable('DB_HOST', 'localhost'),
            'port': cls.get_env_int('DB_PORT', 5432),
            'user': cls.get_env_variable('DB_USER', 'postgres'),
            'password': cls.get_env_variable('DB_PASSWORD', ''),
            'database': cls.get_env_variable('DB_NAME', 'gymdb'),
            'sslmode': cls.get_env_variable('DB_SSLMODE', default_sslmode),
        }
        root_cert = cls.get_env_variable('DB_SSLROOTCERT')
        if root_cert:
            cfg['sslrootcert'] = root_cert
        return cfg
