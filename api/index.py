"""
Entrypoint serverless (Vercel) de la API de membresías.

Expone la instancia FastAPI como `app`; el runtime de Python de Vercel
la sirve directamente, aquí no se levanta ningún servidor.
"""

from apps.webapp.server import app

__all__ = ["app"]
