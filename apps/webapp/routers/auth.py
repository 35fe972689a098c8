from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from apps.webapp.dependencies import get_user_service
from apps.webapp.utils import read_json_body
from core.services import UserService

router = APIRouter()


@router.post("/login")
async def login(request: Request, svc: UserService = Depends(get_user_service)):
    payload = await read_json_body(request)
    user = await run_in_threadpool(svc.login, payload.get("dni"))
    return {"status": "success", "user": user.to_dict()}
