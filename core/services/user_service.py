import re
from typing import Any, Dict, List, Optional

from core.config import Settings
from core.database.connection import ConnectionPool
from core.database.repositories.user_repository import AccountDirectory
from core.errors import AuthorizationError, NotFoundError, ValidationError
from core.models import MAX_ID, User
from core.services.base import BaseService

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
DNI_RE = re.compile(r"^[0-9A-Za-z]{1,20}$")

REQUIRED_CLIENT_FIELDS = ("name", "dni", "email", "phone", "plan_id")
# Largos de columna en users
FIELD_MAX_LENGTHS = {"name": 255, "email": 255, "phone": 50}


class UserService(BaseService):
    def __init__(self, pool: ConnectionPool, settings: Optional[Settings] = None):
        super().__init__(pool, settings)
        self.directory = AccountDirectory(pool)

    def login(self, dni: Any) -> User:
        """Login por DNI: solo usuarios cuyo plan habilita el panel de clientes."""
        dni = str(dni).strip() if dni is not None else ""
        if not dni:
            raise ValidationError("'dni' es obligatorio")

        user = self.directory.find_by_dni(dni)
        if user is None:
            raise NotFoundError("DNI no encontrado")

        # El plan se consulta en cada login: sus permisos pueden haber cambiado
        plan = self.directory.find_plan(user.plan_id)
        if plan is None or not plan.can_access_client_panel:
            self.logger.info(f"Login denegado por plan: usuario={user.id} plan={user.plan_id}")
            raise AuthorizationError()
        return user

    def register_client(self, data: Dict[str, Any]) -> int:
        missing = [f for f in REQUIRED_CLIENT_FIELDS if data.get(f) in (None, "")]
        if missing:
            raise ValidationError(f"Faltan campos obligatorios: {', '.join(missing)}")

        name = str(data["name"]).strip()
        dni = str(data["dni"]).strip()
        email = str(data["email"]).strip().lower()
        phone = str(data["phone"]).strip()
        if not name:
            raise ValidationError("'name' no puede estar vacío")
        for field, value in (("name", name), ("email", email), ("phone", phone)):
            if len(value) > FIELD_MAX_LENGTHS[field]:
                raise ValidationError(f"'{field}' admite hasta {FIELD_MAX_LENGTHS[field]} caracteres")
        if not DNI_RE.match(dni):
            raise ValidationError("'dni' debe ser alfanumérico (máx. 20 caracteres)")
        if not EMAIL_RE.match(email):
            raise ValidationError("'email' no es válido")
        try:
            plan_id = int(data["plan_id"])
        except (TypeError, ValueError, OverflowError):
            raise ValidationError("'plan_id' debe ser un entero")
        if isinstance(data["plan_id"], bool) or plan_id <= 0:
            raise ValidationError("'plan_id' debe ser un entero positivo")
        if plan_id > MAX_ID:
            raise ValidationError("'plan_id' fuera de rango")

        return self.directory.create_client(name=name, dni=dni, email=email, phone=phone, plan_id=plan_id)

    def list_clients(self) -> List[User]:
        return self.directory.list_clients()

    def count_users(self) -> int:
        return self.directory.count_users()
