from datetime import date, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Callable, Optional, Tuple

from sqlalchemy import insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from core.errors import ConflictError, NotFoundError, ValidationError
from core.models import MAX_ID, Payment, PAYMENT_PAID
from .base import BaseRepository
from ..orm_models import payments_table, users_table

DEFAULT_RENEWAL_DAYS = 30
# Numeric(10, 2)
MAX_AMOUNT = Decimal("99999999.99")
MAX_MONTH_LENGTH = 20


def parse_user_id(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        raise ValidationError("'user_id' es obligatorio y debe ser un entero")
    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            raise ValidationError("'user_id' debe ser un entero positivo")
    try:
        uid = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError("'user_id' debe ser un entero positivo")
    if isinstance(value, float) and value != uid:
        raise ValidationError("'user_id' debe ser un entero positivo")
    if uid <= 0:
        raise ValidationError("'user_id' debe ser un entero positivo")
    if uid > MAX_ID:
        raise ValidationError("'user_id' fuera de rango")
    return uid


def parse_amount(value: Any) -> Decimal:
    if isinstance(value, bool) or value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("'amount' es obligatorio")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError("'amount' debe ser numérico")
    if not amount.is_finite():
        raise ValidationError("'amount' debe ser numérico")
    if amount <= 0:
        raise ValidationError("'amount' debe ser mayor que cero")
    # quantize falla con exponentes grandes: el rango se controla antes
    if amount > MAX_AMOUNT:
        raise ValidationError("'amount' fuera de rango")
    amount = amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    if amount <= 0 or amount > MAX_AMOUNT:
        raise ValidationError("'amount' fuera de rango")
    return amount


def parse_month(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("'month' es obligatorio (ej. '2024-06')")
    label = value.strip()
    if len(label) > MAX_MONTH_LENGTH:
        raise ValidationError(f"'month' admite hasta {MAX_MONTH_LENGTH} caracteres")
    return label


class PaymentLedger(BaseRepository):
    """
    Registro atómico de pagos.

    Un pago y la actualización del estado de cobro del usuario se escriben en
    una única transacción sobre una conexión dedicada: o se confirman ambos o
    ninguno. La fila del usuario se bloquea (FOR UPDATE) durante la operación,
    así dos registros concurrentes del mismo usuario se serializan.
    """

    def __init__(self, connection_pool, renewal_days: int = DEFAULT_RENEWAL_DAYS,
                 clock: Callable[[], date] = date.today, logger=None):
        super().__init__(connection_pool, logger)
        self.renewal_days = renewal_days
        self._clock = clock

    def validate(self, user_id: Any, amount: Any, month: Any) -> Tuple[int, Decimal, str]:
        return parse_user_id(user_id), parse_amount(amount), parse_month(month)

    def register_payment(self, user_id: Any, amount: Any, month: Any) -> Payment:
        uid, value, label = self.validate(user_id, amount, month)

        try:
            with self.transaction as uow:
                uow.begin()
                if not self._lock_user(uow, uid):
                    raise NotFoundError("Usuario no encontrado")
                if self._payment_exists(uow, uid, label):
                    raise ConflictError(f"Ya existe un pago del usuario {uid} para {label}")

                today = self._clock()
                next_payment_date = today + timedelta(days=self.renewal_days)
                payment_id = self._insert_payment(uow, uid, value, today, label)
                self._mark_paid(uow, uid, next_payment_date)
                uow.commit()
        except SQLAlchemyError as e:
            error = self._translate_error(e, "registrar el pago")
            if isinstance(error, ConflictError):
                error = ConflictError(f"Ya existe un pago del usuario {uid} para {label}", detail=error.detail)
            raise error from e

        self.logger.info(
            f"Pago registrado id={payment_id} usuario={uid} monto={value} mes={label} "
            f"próximo vencimiento={next_payment_date.isoformat()}"
        )
        return Payment(id=payment_id, user_id=uid, amount=value, payment_date=today, month=label)

    # --- Pasos de la transacción ---

    def _lock_user(self, uow, user_id: int) -> bool:
        stmt = select(users_table.c.id).where(users_table.c.id == user_id).with_for_update()
        return uow.execute(stmt).first() is not None

    def _payment_exists(self, uow, user_id: int, month: str) -> bool:
        stmt = select(payments_table.c.id).where(
            payments_table.c.user_id == user_id, payments_table.c.month == month
        )
        return uow.execute(stmt).first() is not None

    def _insert_payment(self, uow, user_id: int, amount: Decimal, payment_date: date, month: str) -> int:
        result = uow.execute(
            insert(payments_table).values(user_id=user_id, amount=amount, payment_date=payment_date, month=month)
        )
        return int(result.inserted_primary_key[0])

    def _mark_paid(self, uow, user_id: int, next_payment_date: date) -> None:
        result = uow.execute(
            update(users_table)
            .where(users_table.c.id == user_id)
            .values(payment_status=PAYMENT_PAID, next_payment_date=next_payment_date)
        )
        if result.rowcount != 1:
            raise NotFoundError("Usuario no encontrado")
