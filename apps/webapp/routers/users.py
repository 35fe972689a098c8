import logging

from fastapi import APIRouter, Depends, Request, status
from starlette.concurrency import run_in_threadpool

from apps.webapp.dependencies import get_user_service
from apps.webapp.utils import read_json_body
from core.services import UserService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/register-client", status_code=status.HTTP_201_CREATED)
async def register_client(request: Request, svc: UserService = Depends(get_user_service)):
    payload = await read_json_body(request)
    client_id = await run_in_threadpool(svc.register_client, payload)
    return {"status": "success", "message": "Cliente registrado correctamente", "clientId": client_id}


@router.get("/clients")
async def list_clients(svc: UserService = Depends(get_user_service)):
    clients = await run_in_threadpool(svc.list_clients)
    return {"status": "success", "count": len(clients), "data": [c.to_dict() for c in clients]}
