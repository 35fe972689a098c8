import json
from typing import Any, Dict

from fastapi import Request

from core.errors import ValidationError


async def read_json_body(request: Request) -> Dict[str, Any]:
    """Lee el cuerpo JSON de la petición; debe ser un objeto."""
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("El cuerpo de la petición no es JSON válido")
    if not isinstance(payload, dict):
        raise ValidationError("El cuerpo de la petición debe ser un objeto JSON")
    return payload
