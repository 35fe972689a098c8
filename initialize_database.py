#!/usr/bin/env python3
"""
Script para inicializar la base de datos: crea las tablas faltantes
(plans, users, payments) y siembra los planes por defecto.
"""

import sys
import logging

from dotenv import load_dotenv
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from core.config import load_settings
from core.database.connection import build_engine
from core.database.orm_models import create_schema
from core.logger_config import setup_logging

logger = logging.getLogger(__name__)


def main() -> int:
    """Inicializa la base de datos y crea las tablas faltantes"""
    load_dotenv()
    setup_logging(to_file=False)
    settings = load_settings()
    engine = build_engine(settings)
    try:
        logger.info("Inicializando la base de datos...")
        seeded = create_schema(engine)
        tables = inspect(engine).get_table_names()
        for name in ("plans", "users", "payments"):
            if name not in tables:
                logger.error(f"La tabla '{name}' no fue creada")
                return 1
        logger.info(f"Tablas verificadas: plans, users, payments (planes sembrados: {seeded})")
        return 0
    except SQLAlchemyError as e:
        logger.error(f"Error al inicializar la base de datos: {e}")
        return 1
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
