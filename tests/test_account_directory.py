import threading

import pytest
from sqlalchemy import delete, insert, select, update

from core.database.connection import UnitOfWork
from core.database.orm_models import plans_table, users_table
from core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from core.services import UserService
from tests.conftest import BASIC_PLAN_ID, PREMIUM_PLAN_ID


class TestDirectoryReads:
    def test_find_by_dni_is_repeatable(self, directory, ana):
        first = directory.find_by_dni("123")
        second = directory.find_by_dni("123")
        assert first == second
        assert first.id == ana
        assert first.role == "client"
        assert first.status == "active"
        assert first.payment_status == "unpaid"

    def test_find_by_dni_absent_returns_none(self, directory):
        assert directory.find_by_dni("000") is None

    def test_find_plan(self, directory):
        assert directory.find_plan(PREMIUM_PLAN_ID).can_access_client_panel is True
        assert directory.find_plan(BASIC_PLAN_ID).can_access_client_panel is False
        assert directory.find_plan(999) is None
        assert directory.find_plan(None) is None

    def test_list_clients(self, directory, ana):
        directory.create_client("Beto", "456", "beto@example.com", "341555001", PREMIUM_PLAN_ID)
        clients = directory.list_clients()
        assert [c.dni for c in clients] == ["123", "456"]

    def test_payment_history_is_bounded(self, directory, ledger, ana):
        for month in ("2024-01", "2024-02", "2024-03"):
            ledger.register_payment(ana, 100, month)
        assert len(directory.list_payment_history(2)) == 2
        assert len(directory.list_payment_history(50)) == 3

    def test_ping_and_count(self, directory, ana):
        assert directory.ping() == 2
        assert directory.count_users() == 1


class TestClientRegistration:
    def test_duplicate_dni_conflicts(self, directory, ana):
        with pytest.raises(ConflictError):
            directory.create_client("Otra Ana", "123", "otra@example.com", "1", BASIC_PLAN_ID)
        assert directory.count_users() == 1

    def test_unknown_plan_is_rejected(self, directory):
        with pytest.raises(ValidationError):
            directory.create_client("Carla", "789", "carla@example.com", "1", 999)
        assert directory.find_by_dni("789") is None

    def test_concurrent_same_dni_only_one_wins(self, pool, directory):
        outcomes = []
        lock = threading.Lock()
        barrier = threading.Barrier(2)

        def register(name):
            barrier.wait()
            try:
                directory.create_client(name, "555", f"{name.lower()}@example.com", "1", BASIC_PLAN_ID)
                result = "ok"
            except ConflictError:
                result = "conflict"
            except Exception as e:  # SQLite puede reportar "database is locked"
                result = type(e).__name__
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=register, args=(n,)) for n in ("Dani", "Eli")]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert outcomes.count("ok") <= 1
        assert directory.count_users() == outcomes.count("ok")
        assert pool.get_stats()['in_use'] == 0

    def test_plan_removed_before_insert_is_reported_as_missing_plan(self, pool, directory, monkeypatch):
        with pool.connection() as conn:
            plan_id = conn.execute(
                insert(plans_table).values(name="Temporal", can_access_client_panel=False)
            ).inserted_primary_key[0]
            conn.commit()

        original_execute = UnitOfWork.execute

        def remove_plan_first(self, statement, params=None):
            # Otra sesión borra el plan entre la verificación y el INSERT
            if getattr(statement, "is_insert", False):
                with pool.connection() as other:
                    other.execute(delete(plans_table).where(plans_table.c.id == plan_id))
                    other.commit()
            return original_execute(self, statement, params)

        monkeypatch.setattr(UnitOfWork, "execute", remove_plan_first)
        with pytest.raises(ValidationError) as exc_info:
            directory.create_client("Gabi", "777", "gabi@example.com", "1", plan_id)
        assert "plan" in exc_info.value.message
        assert directory.find_by_dni("777") is None

    def test_constraint_race_on_dni_keeps_dni_message(self, pool, directory, ana, monkeypatch):
        original_execute = UnitOfWork.execute

        def hide_existing_dni(self, statement, params=None):
            # La verificación previa no ve al otro cliente: decide la restricción UNIQUE
            if getattr(statement, "is_select", False) and "users.dni" in str(statement):
                return original_execute(self, select(users_table.c.id).where(users_table.c.id == -1))
            return original_execute(self, statement, params)

        monkeypatch.setattr(UnitOfWork, "execute", hide_existing_dni)
        with pytest.raises(ConflictError) as exc_info:
            directory.create_client("Ana Bis", "123", "bis@example.com", "1", BASIC_PLAN_ID)
        assert exc_info.value.message == "El DNI ya está registrado"


class TestUserService:
    def test_login_requires_dni(self, pool):
        with pytest.raises(ValidationError):
            UserService(pool).login("  ")

    def test_login_unknown_dni(self, pool):
        with pytest.raises(NotFoundError):
            UserService(pool).login("999")

    def test_login_denied_without_panel_access(self, pool, ana):
        with pytest.raises(AuthorizationError):
            UserService(pool).login("123")

    def test_plan_capability_is_read_on_every_login(self, pool, ana):
        svc = UserService(pool)
        with pytest.raises(AuthorizationError):
            svc.login("123")

        with pool.connection() as conn:
            conn.execute(update(plans_table).where(plans_table.c.id == BASIC_PLAN_ID).values(can_access_client_panel=True))
            conn.commit()

        assert svc.login("123").id == ana

    @pytest.mark.parametrize("field", ["name", "dni", "email", "phone", "plan_id"])
    def test_register_requires_all_fields(self, pool, field):
        data = {"name": "Fede", "dni": "321", "email": "fede@example.com", "phone": "1", "plan_id": 1}
        data[field] = ""
        with pytest.raises(ValidationError) as exc_info:
            UserService(pool).register_client(data)
        assert field in exc_info.value.message

    @pytest.mark.parametrize("overrides", [
        {"email": "sin-arroba"},
        {"dni": "12 3"},
        {"plan_id": "premium"},
        {"plan_id": -2},
        {"plan_id": 2 ** 31},
        {"plan_id": "99999999999999999999"},
        {"name": "   "},
        {"name": "x" * 256},
        {"email": "a" * 250 + "@example.com"},
        {"phone": "1" * 51},
    ])
    def test_register_rejects_malformed_fields(self, pool, overrides):
        data = {"name": "Fede", "dni": "321", "email": "fede@example.com", "phone": "1", "plan_id": 1}
        data.update(overrides)
        with pytest.raises(ValidationError):
            UserService(pool).register_client(data)
