import logging
from dotenv import load_dotenv

# Cargar variables de entorno antes de importar otras cosas
load_dotenv()

from core.config import load_settings
from core.logger_config import setup_logging
from apps.webapp.main import create_app

settings = load_settings()
setup_logging(level=logging.DEBUG if settings.is_development else logging.INFO, log_dir=settings.log_dir)

app = create_app(settings)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
