import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from apps.webapp.middlewares import RequestIDMiddleware, SecurityHeadersMiddleware, TimingAndLoadMiddleware
from apps.webapp.routers import auth, health, payments, users
from core.config import Settings, load_settings
from core.secure_config import SecureConfig
from core.database.connection import ConnectionPool, check_connection, create_pool
from core.errors import AppError, DatabaseConnectionError, DatabaseError

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, pool: Optional[ConnectionPool] = None) -> FastAPI:
    """
    Construye la aplicación. Si no se inyecta un pool, se crea al arrancar
    (con verificación de conexión) y se cierra al apagar.
    """
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_pool = app.state.pool is None
        if owns_pool:
            app.state.pool = create_pool(settings)
            # En producción no se sirve tráfico contra una base rota
            try:
                check_connection(app.state.pool, fatal=settings.is_production)
            except DatabaseConnectionError:
                app.state.pool.close_all()
                raise
        logger.info(f"API iniciada (entorno={settings.environment}, pool máx={app.state.pool.max_connections})")
        try:
            yield
        finally:
            if owns_pool:
                app.state.pool.close_all()

    app = FastAPI(
        title="Gym Membership API",
        version="1.0",
        root_path=SecureConfig.get_env_variable("ROOT_PATH", "").strip(),
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.pool = pool

    # Middlewares (orden inverso de ejecución)
    app.add_middleware(SecurityHeadersMiddleware, hsts=settings.is_production)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_middleware(TimingAndLoadMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Routers
    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(payments.router)

    # Exception Handlers
    @app.exception_handler(AppError)
    async def _app_error_handler(request: Request, exc: AppError):
        if isinstance(exc, DatabaseError):
            logger.error(f"{request.method} {request.url.path}: {exc.message} ({exc.detail})")
        return JSONResponse(exc.to_dict(include_detail=settings.is_development), status_code=exc.status_code)

    @app.exception_handler(HTTPException)
    async def _http_exc_handler(request: Request, exc: HTTPException):
        return JSONResponse({"status": "error", "message": exc.detail}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_handler(request: Request, exc: RequestValidationError):
        body = {"status": "error", "message": "Datos inválidos"}
        if settings.is_development:
            body["detail"] = str(exc.errors())
        return JSONResponse(body, status_code=400)

    @app.exception_handler(Exception)
    async def _unhandled_handler(request: Request, exc: Exception):
        logger.exception(f"Error no controlado en {request.method} {request.url.path}")
        body = {"status": "error", "message": "Error interno del servidor"}
        if settings.is_development:
            body["detail"] = repr(exc)
        return JSONResponse(body, status_code=500)

    return app
