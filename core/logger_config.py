import logging
from logging.handlers import RotatingFileHandler
import os
import sys
import traceback
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(module)s:%(lineno)d] - %(message)s'

_configured = False


def handle_exception(exc_type, exc_value, exc_traceback):
    """
    Registra cualquier excepción no controlada antes de que el proceso termine.
    """
    if issubclass(exc_type, KeyboardInterrupt):
        # Ctrl+C no es un error
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    error_msg = "".join(traceback.format_exception(exc_type, exc_value, exc_traceback))
    logging.critical(f"Excepción no controlada:\n{error_msg}")


def _resolve_log_dir(preferred: Optional[str]) -> Optional[str]:
    for candidate in (preferred, os.path.join(os.getcwd(), 'logs')):
        if not candidate:
            continue
        try:
            os.makedirs(candidate, exist_ok=True)
            return candidate
        except OSError:
            continue
    return None


def setup_logging(level: int = logging.INFO, log_dir: Optional[str] = None, to_file: bool = True) -> None:
    """Configura el logging raíz: consola siempre, archivo rotativo si hay directorio escribible."""
    global _configured
    if _configured:
        return

    formatter = logging.Formatter(LOG_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)
    if root.hasHandlers():
        root.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    log_filepath = None
    if to_file:
        resolved = _resolve_log_dir(log_dir)
        if resolved:
            log_filepath = os.path.join(resolved, 'server.log')
            try:
                file_handler = RotatingFileHandler(log_filepath, maxBytes=5 * 1024 * 1024, backupCount=5, encoding='utf-8')
                file_handler.setFormatter(formatter)
                root.addHandler(file_handler)
            except OSError:
                log_filepath = None

    sys.excepthook = handle_exception
    _configured = True

    if log_filepath:
        logging.info(f"Sistema de logging configurado. Registrando en: {log_filepath}")
    else:
        logging.info("Sistema de logging configurado. Registrando solo en consola")
