import time
import uuid
import logging
from typing import Callable

import psutil
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable):
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = rid
        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response


class TimingAndLoadMiddleware(BaseHTTPMiddleware):
    """Mide el tiempo de cada petición y avisa si el host está saturado."""

    async def dispatch(self, request: Request, call_next: Callable):
        start_time = time.time()
        path = request.url.path
        rid = getattr(request.state, "request_id", "-")

        cpu = psutil.cpu_percent(interval=None)
        mem = psutil.virtual_memory().percent
        if cpu > 95 or mem > 95:
            logger.warning(f"Carga alta: CPU={cpu}% MEM={mem}% ({request.method} {path})")

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"[{rid}] Excepción no controlada procesando {request.method} {path}")
            raise

        process_time = (time.time() - start_time) * 1000
        response.headers["X-Process-Time"] = f"{process_time:.2f}ms"
        logger.info(f"[{rid}] {request.method} {path} -> {response.status_code} ({process_time:.1f}ms)")
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, hsts: bool = False):
        super().__init__(app)
        self.hsts = hsts

    async def dispatch(self, request: Request, call_next: Callable):
        resp = await call_next(request)
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # API JSON pura: no se carga ningún recurso
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        resp.headers["Cache-Control"] = "no-store"
        if self.hsts:
            resp.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return resp
