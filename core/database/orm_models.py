from typing import Optional
from datetime import date, datetime
from sqlalchemy import (
    Integer, String, Boolean, Date, DateTime, ForeignKey, Numeric, Index,
    CheckConstraint, UniqueConstraint, false, func, insert, select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass

# --- Planes ---

class Plan(Base):
    __tablename__ = 'plans'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    can_access_client_panel: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false())

# --- Usuarios ---

class User(Base):
    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    dni: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    role: Mapped[str] = mapped_column(String(20), nullable=False, server_default='client')
    plan_id: Mapped[Optional[int]] = mapped_column(ForeignKey('plans.id', ondelete='RESTRICT'))
    status: Mapped[str] = mapped_column(String(20), nullable=False, server_default='active')
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, server_default='unpaid')
    next_payment_date: Mapped[Optional[date]] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.current_timestamp())

    __table_args__ = (
        # Todo cliente debe tener plan asignado
        CheckConstraint("role <> 'client' OR plan_id IS NOT NULL", name='ck_users_client_plan'),
        Index('idx_users_role', 'role'),
    )

# --- Pagos ---

class Payment(Base):
    __tablename__ = 'payments'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id', ondelete='RESTRICT'), nullable=False)
    amount: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    month: Mapped[str] = mapped_column(String(20), nullable=False)

    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_payments_amount_positive'),
        UniqueConstraint('user_id', 'month', name='uq_payments_user_month'),
        Index('idx_payments_payment_date', 'payment_date'),
    )


plans_table = Plan.__table__
users_table = User.__table__
payments_table = Payment.__table__


DEFAULT_PLANS = (
    {'name': 'Básico', 'can_access_client_panel': False},
    {'name': 'Premium', 'can_access_client_panel': True},
)


def create_schema(engine, seed_plans: bool = True) -> int:
    """Crea plans/users/payments si faltan y, con la tabla vacía, siembra los planes por defecto.

    Devuelve la cantidad de planes insertados.
    """
    Base.metadata.create_all(engine)
    if not seed_plans:
        return 0
    with engine.begin() as conn:
        existing = conn.execute(select(func.count()).select_from(plans_table)).scalar()
        if existing:
            return 0
        conn.execute(insert(plans_table), [dict(p) for p in DEFAULT_PLANS])
    return len(DEFAULT_PLANS)
