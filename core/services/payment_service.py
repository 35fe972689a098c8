from typing import Any, Dict, List, Optional

from core.config import MAX_HISTORY_LIMIT, Settings
from core.database.connection import ConnectionPool
from core.database.repositories.payment_repository import PaymentLedger
from core.database.repositories.user_repository import AccountDirectory
from core.errors import ValidationError
from core.models import Payment
from core.services.base import BaseService

REQUIRED_PAYMENT_FIELDS = ("user_id", "amount", "month")


class PaymentService(BaseService):
    def __init__(self, pool: ConnectionPool, settings: Optional[Settings] = None, ledger: Optional[PaymentLedger] = None):
        super().__init__(pool, settings)
        self.ledger = ledger or PaymentLedger(pool, renewal_days=self.settings.renewal_days)
        self.directory = AccountDirectory(pool)

    def register_payment(self, data: Dict[str, Any]) -> Payment:
        missing = [f for f in REQUIRED_PAYMENT_FIELDS if data.get(f) in (None, "")]
        if missing:
            raise ValidationError(f"Faltan campos obligatorios: {', '.join(missing)}")
        return self.ledger.register_payment(data["user_id"], data["amount"], data["month"])

    def payment_history(self, limit: Optional[Any] = None) -> List[Payment]:
        if limit is None:
            limit = self.settings.history_limit
        try:
            limit = int(limit)
        except (TypeError, ValueError):
            raise ValidationError("'limit' debe ser un entero")
        if limit <= 0:
            raise ValidationError("'limit' debe ser mayor que cero")
        return self.directory.list_payment_history(min(limit, MAX_HISTORY_LIMIT))
