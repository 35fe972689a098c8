from typing import Optional

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from apps.webapp.dependencies import get_payment_service
from apps.webapp.utils import read_json_body
from core.services import PaymentService

router = APIRouter()


@router.post("/register-payment")
async def register_payment(request: Request, svc: PaymentService = Depends(get_payment_service)):
    payload = await read_json_body(request)
    await run_in_threadpool(svc.register_payment, payload)
    return {"status": "success", "message": "Pago registrado correctamente"}


@router.get("/payment-history")
async def payment_history(limit: Optional[str] = None, svc: PaymentService = Depends(get_payment_service)):
    payments = await run_in_threadpool(svc.payment_history, limit)
    return {"status": "success", "count": len(payments), "data": [p.to_dict() for p in payments]}
