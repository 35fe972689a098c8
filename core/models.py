from dataclasses import dataclass, asdict
from datetime import date
from decimal import Decimal
from typing import Optional, Dict, Any

ROLE_CLIENT = "client"
STATUS_ACTIVE = "active"
PAYMENT_PAID = "paid"
PAYMENT_UNPAID = "unpaid"
# Tope de las columnas INTEGER (ids)
MAX_ID = 2147483647


def _row_dict(row) -> Dict[str, Any]:
    return dict(row._mapping) if hasattr(row, "_mapping") else dict(row)


@dataclass
class Plan:
    id: int
    name: str
    can_access_client_panel: bool = False

    @classmethod
    def from_row(cls, row) -> "Plan":
        d = _row_dict(row)
        return cls(id=d["id"], name=d["name"], can_access_client_panel=bool(d.get("can_access_client_panel")))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class User:
    id: int
    name: str
    dni: str
    email: Optional[str] = None
    phone: Optional[str] = None
    role: str = ROLE_CLIENT
    plan_id: Optional[int] = None
    status: str = STATUS_ACTIVE
    payment_status: str = PAYMENT_UNPAID
    next_payment_date: Optional[date] = None

    @classmethod
    def from_row(cls, row) -> "User":
        d = _row_dict(row)
        return cls(
            id=d["id"], name=d["name"], dni=d["dni"], email=d.get("email"), phone=d.get("phone"),
            role=d.get("role") or ROLE_CLIENT, plan_id=d.get("plan_id"), status=d.get("status") or STATUS_ACTIVE,
            payment_status=d.get("payment_status") or PAYMENT_UNPAID, next_payment_date=d.get("next_payment_date"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Payment:
    id: int
    user_id: int
    amount: Decimal
    payment_date: date
    month: str
    # Solo presente en el historial (JOIN con users)
    user_name: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "Payment":
        d = _row_dict(row)
        return cls(
            id=d["id"], user_id=d["user_id"], amount=Decimal(str(d["amount"])), payment_date=d["payment_date"],
            month=d["month"], user_name=d.get("user_name"),
        )

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        if self.user_name is None:
            d.pop("user_name")
        return d
