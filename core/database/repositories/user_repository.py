from typing import List, Optional

from sqlalchemy import func, insert, select, text
from sqlalchemy.exc import SQLAlchemyError

from core.errors import AppError, ConflictError, ValidationError
from core.models import Payment, Plan, User, ROLE_CLIENT, STATUS_ACTIVE, PAYMENT_UNPAID
from .base import BaseRepository
from ..orm_models import payments_table, plans_table, users_table


class AccountDirectory(BaseRepository):
    """
    Acceso a usuarios y planes.

    Cada lectura usa su propia conexión del pool y la devuelve al terminar;
    nada se cachea (los permisos del plan pueden cambiar entre registro y login).
    """

    def ping(self) -> int:
        """Consulta trivial de prueba (SELECT 1 + 1)."""
        try:
            with self.connection as conn:
                return int(conn.execute(text("SELECT 1 + 1 AS result")).scalar())
        except SQLAlchemyError as e:
            raise self._translate_error(e, "probar la conexión") from e

    # --- Usuarios ---

    def find_by_id(self, user_id: int) -> Optional[User]:
        stmt = select(users_table).where(users_table.c.id == user_id)
        try:
            with self.connection as conn:
                row = conn.execute(stmt).first()
        except SQLAlchemyError as e:
            raise self._translate_error(e, "buscar el usuario") from e
        return User.from_row(row) if row else None

    def find_by_dni(self, dni: str) -> Optional[User]:
        stmt = select(users_table).where(users_table.c.dni == dni)
        try:
            with self.connection as conn:
                row = conn.execute(stmt).first()
        except SQLAlchemyError as e:
            raise self._translate_error(e, "buscar el DNI") from e
        return User.from_row(row) if row else None

    def list_clients(self) -> List[User]:
        stmt = select(users_table).where(users_table.c.role == ROLE_CLIENT).order_by(users_table.c.id)
        try:
            with self.connection as conn:
                rows = conn.execute(stmt).all()
        except SQLAlchemyError as e:
            raise self._translate_error(e, "obtener la lista de clientes") from e
        return [User.from_row(r) for r in rows]

    def count_users(self) -> int:
        try:
            with self.connection as conn:
                return int(conn.execute(select(func.count()).select_from(users_table)).scalar() or 0)
        except SQLAlchemyError as e:
            raise self._translate_error(e, "contar usuarios") from e

    def create_client(self, name: str, dni: str, email: Optional[str], phone: Optional[str], plan_id: int) -> int:
        """Alta de cliente activo. El DNI debe ser único y el plan existir."""
        try:
            with self.transaction as uow:
                uow.begin()
                exists = uow.execute(select(users_table.c.id).where(users_table.c.dni == dni)).first()
                if exists:
                    raise ConflictError("El DNI ya está registrado")
                plan = uow.execute(select(plans_table.c.id).where(plans_table.c.id == plan_id)).first()
                if not plan:
                    raise ValidationError("El plan indicado no existe")
                result = uow.execute(
                    insert(users_table).values(
                        name=name, dni=dni, email=email, phone=phone, role=ROLE_CLIENT,
                        plan_id=plan_id, status=STATUS_ACTIVE, payment_status=PAYMENT_UNPAID,
                    )
                )
                new_id = int(result.inserted_primary_key[0])
                uow.commit()
        except SQLAlchemyError as e:
            # Una alta concurrente pudo ganar la carrera: las restricciones deciden
            error = self._translate_error(e, "registrar el cliente")
            if isinstance(error, ConflictError):
                error = self._explain_conflict(dni, plan_id, error)
            raise error from e
        self.logger.info(f"Cliente registrado id={new_id} dni={dni} plan={plan_id}")
        return new_id

    def _explain_conflict(self, dni: str, plan_id: int, error: ConflictError) -> AppError:
        """Tras un rechazo por restricción, vuelve a leer para saber cuál falló."""
        if self.find_by_dni(dni) is not None:
            return ConflictError("El DNI ya está registrado", detail=error.detail)
        if self.find_plan(plan_id) is None:
            return ValidationError("El plan indicado no existe", detail=error.detail)
        return error

    # --- Planes ---

    def find_plan(self, plan_id: Optional[int]) -> Optional[Plan]:
        if plan_id is None:
            return None
        stmt = select(plans_table).where(plans_table.c.id == plan_id)
        try:
            with self.connection as conn:
                row = conn.execute(stmt).first()
        except SQLAlchemyError as e:
            raise self._translate_error(e, "buscar el plan") from e
        return Plan.from_row(row) if row else None

    # --- Reportes ---

    def list_payment_history(self, limit: int) -> List[Payment]:
        stmt = (
            select(payments_table, users_table.c.name.label("user_name"))
            .join(users_table, payments_table.c.user_id == users_table.c.id)
            .order_by(payments_table.c.payment_date.desc(), payments_table.c.id.desc())
            .limit(limit)
        )
        try:
            with self.connection as conn:
                rows = conn.execute(stmt).all()
        except SQLAlchemyError as e:
            raise self._translate_error(e, "obtener el historial de pagos") from e
        return [Payment.from_row(r) for r in rows]
