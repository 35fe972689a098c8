import logging
import threading
import time
from collections import deque
from contextlib import contextmanager
from typing import Any, Callable, Deque, Dict, List, Optional

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from core.config import Settings
from core.errors import DatabaseConnectionError, PoolClosedError, PoolTimeoutError

logger = logging.getLogger(__name__)

POOL_EVENTS = ("acquire", "release", "enqueue")

# Marca para distinguir "sin argumento" de timeout=None (esperar indefinidamente)
_UNSET = object()


def build_engine(settings: Settings) -> Engine:
    """
    Crea el Engine de SQLAlchemy sin pool propio: la reutilización de conexiones
    la gestiona ConnectionPool.
    """
    url = settings.sqlalchemy_url()
    connect_args: Dict[str, Any] = {}
    if url.get_backend_name() == "postgresql":
        connect_args["connect_timeout"] = 10
        connect_args["application_name"] = "gym_membership_api"
        if settings.statement_timeout_ms > 0:
            # Acota cada sentencia para que una transacción colgada no retenga la conexión
            connect_args["options"] = (
                f"-c statement_timeout={settings.statement_timeout_ms} "
                f"-c idle_in_transaction_session_timeout={settings.statement_timeout_ms}"
            )
    return create_engine(url, poolclass=NullPool, connect_args=connect_args)


class _Waiter:
    __slots__ = ("event", "conn", "closed")

    def __init__(self):
        self.event = threading.Event()
        self.conn: Optional[Connection] = None
        self.closed = False


class UnitOfWork:
    """
    Transacción explícita sobre una única conexión del pool.

    No se instancia directamente: se obtiene con `ConnectionPool.unit_of_work()`,
    que garantiza rollback ante errores y la devolución de la conexión.
    """

    def __init__(self, connection: Connection):
        self.connection = connection
        self._tx = None

    @property
    def active(self) -> bool:
        return self._tx is not None and self._tx.is_active

    def begin(self) -> "UnitOfWork":
        if self.active:
            raise RuntimeError("La transacción ya fue iniciada")
        if self.connection.in_transaction():
            # Lecturas previas abren una transacción implícita (autobegin)
            self.connection.rollback()
        self._tx = self.connection.begin()
        return self

    def execute(self, statement, params=None):
        return self.connection.execute(statement, params)

    def commit(self) -> None:
        if not self.active:
            raise RuntimeError("No hay transacción activa para confirmar")
        self._tx.commit()
        self._tx = None

    def rollback(self) -> None:
        if self._tx is None:
            return
        try:
            if self._tx.is_active:
                self._tx.rollback()
        except SQLAlchemyError:
            # Una conexión que no pudo revertir no debe volver al pool
            logger.error("Falló el rollback; se invalida la conexión", exc_info=True)
            self.connection.invalidate()
        finally:
            self._tx = None


class ConnectionPool:
    """Pool de conexiones acotado; las solicitudes excedentes esperan en una cola FIFO"""

    def __init__(self, connect: Callable[[], Connection], max_connections: int = 10,
                 timeout: Optional[float] = None, pre_ping: bool = True):
        if max_connections < 1:
            raise ValueError("max_connections debe ser >= 1")
        self._connect = connect
        self.max_connections = max_connections
        self.timeout = timeout
        self.pre_ping = pre_ping
        self._lock = threading.Lock()
        self._idle: Deque[Connection] = deque()
        self._waiters: Deque[_Waiter] = deque()
        self._in_use: Dict[int, Connection] = {}
        self._size = 0
        self._closed = False
        self._listeners: Dict[str, List[Callable]] = {event: [] for event in POOL_EVENTS}
        self.stats = {
            'connections_created': 0,
            'connections_reused': 0,
            'connections_discarded': 0,
            'enqueued': 0,
            'timeouts': 0,
            'errors': 0,
        }

    @classmethod
    def from_engine(cls, engine: Engine, **kwargs) -> "ConnectionPool":
        return cls(engine.connect, **kwargs)

    # --- Eventos ---

    def on(self, event: str, callback: Callable) -> None:
        """Registra un listener para 'acquire', 'release' o 'enqueue'."""
        if event not in self._listeners:
            raise ValueError(f"Evento de pool desconocido: {event}")
        self._listeners[event].append(callback)

    def _emit(self, event: str, *args) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(*args)
            except Exception:
                # Un listener de monitoreo no puede romper la adquisición
                logger.exception(f"Error en listener del evento '{event}' del pool")

    # --- Adquisición / liberación ---

    def acquire(self, timeout: Any = _UNSET) -> Connection:
        """
        Obtiene una conexión. Si el pool está saturado, el llamador queda en cola
        (FIFO) hasta que otra conexión se libere o venza `timeout`.
        """
        if timeout is _UNSET:
            timeout = self.timeout
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            conn, must_create = self._checkout(deadline, timeout)
            if must_create:
                conn = self._create_connection()
            elif self.pre_ping and not self._is_alive(conn):
                self._discard(conn)
                continue
            else:
                with self._lock:
                    self.stats['connections_reused'] += 1

            with self._lock:
                self._in_use[id(conn)] = conn
            self._emit("acquire", conn)
            return conn

    def _checkout(self, deadline: Optional[float], timeout: Optional[float]):
        with self._lock:
            if self._closed:
                raise PoolClosedError()
            # Con gente esperando, nadie se adelanta en la cola
            if not self._waiters:
                if self._idle:
                    return self._idle.popleft(), False
                if self._size < self.max_connections:
                    self._size += 1
                    return None, True
            waiter = _Waiter()
            self._waiters.append(waiter)
            self.stats['enqueued'] += 1
            queued = len(self._waiters)

        self._emit("enqueue", queued)

        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        if not waiter.event.wait(remaining):
            with self._lock:
                if not waiter.event.is_set():
                    self._waiters.remove(waiter)
                    self.stats['timeouts'] += 1
                    raise PoolTimeoutError(detail=f"Sin conexión libre tras {timeout}s")
        if waiter.closed:
            raise PoolClosedError()
        return waiter.conn, waiter.conn is None

    def _create_connection(self) -> Connection:
        try:
            conn = self._connect()
        except (SQLAlchemyError, OSError) as e:
            with self._lock:
                self.stats['errors'] += 1
            self._free_slot()
            logger.error(f"No se pudo abrir una conexión a la base de datos: {e}")
            raise DatabaseConnectionError(detail=str(e)) from e
        with self._lock:
            self.stats['connections_created'] += 1
        return conn

    def _is_alive(self, conn: Connection) -> bool:
        if conn.closed or conn.invalidated:
            return False
        try:
            conn.exec_driver_sql("SELECT 1")
            conn.rollback()
            return True
        except SQLAlchemyError as e:
            logger.warning(f"Conexión muerta detectada: {e}")
            return False

    def release(self, conn: Connection) -> None:
        """Devuelve una conexión obtenida con acquire(); exactamente una vez."""
        with self._lock:
            if self._in_use.pop(id(conn), None) is None:
                raise ValueError("La conexión no pertenece al pool o ya fue liberada")

        healthy = self._reset(conn)
        self._emit("release", conn)

        if not healthy:
            self._discard(conn)
            return

        with self._lock:
            if self._closed:
                self._size -= 1
                handoff = None
            elif self._waiters:
                handoff = self._waiters.popleft()
                handoff.conn = conn
            else:
                self._idle.append(conn)
                return
        if handoff is None:
            self._close_quietly(conn)
        else:
            handoff.event.set()

    def _reset(self, conn: Connection) -> bool:
        """Deja la conexión sin transacción abierta; False si quedó inutilizable."""
        if conn.closed or conn.invalidated:
            return False
        try:
            if conn.in_transaction():
                conn.rollback()
            return True
        except SQLAlchemyError:
            logger.warning("Error al hacer rollback al liberar la conexión", exc_info=True)
            return False

    def _discard(self, conn: Connection) -> None:
        self._close_quietly(conn)
        with self._lock:
            self.stats['connections_discarded'] += 1
        self._free_slot()

    def _free_slot(self) -> None:
        # Un hueco libre se cede al primero de la cola para que abra su propia conexión
        with self._lock:
            self._size -= 1
            if not self._waiters or self._closed:
                return
            waiter = self._waiters.popleft()
            self._size += 1
        waiter.event.set()

    @staticmethod
    def _close_quietly(conn: Connection) -> None:
        try:
            conn.close()
        except SQLAlchemyError:
            logger.debug("Error al cerrar conexión (ignorable)", exc_info=True)

    # --- Adquisición con alcance ---

    @contextmanager
    def connection(self, timeout: Any = _UNSET):
        """Context manager: conexión para lecturas, liberada siempre al salir"""
        conn = self.acquire(timeout)
        try:
            yield conn
        finally:
            self.release(conn)

    @contextmanager
    def unit_of_work(self, timeout: Any = _UNSET):
        """Context manager: UnitOfWork sobre una conexión dedicada; rollback ante cualquier error"""
        conn = self.acquire(timeout)
        uow = UnitOfWork(conn)
        try:
            yield uow
        finally:
            # Transacción no confirmada al salir (error o salida anticipada): se descarta
            uow.rollback()
            self.release(conn)

    # --- Ciclo de vida ---

    def close_all(self) -> None:
        """Cierra el pool: conexiones ociosas ahora, las prestadas al devolverse"""
        with self._lock:
            self._closed = True
            idle = list(self._idle)
            self._idle.clear()
            self._size -= len(idle)
            waiters = list(self._waiters)
            self._waiters.clear()
        for waiter in waiters:
            waiter.closed = True
            waiter.event.set()
        for conn in idle:
            self._close_quietly(conn)
        logger.info("Pool de conexiones cerrado")

    @property
    def closed(self) -> bool:
        return self._closed

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                **self.stats,
                'size': self._size,
                'idle': len(self._idle),
                'in_use': len(self._in_use),
                'waiting': len(self._waiters),
                'max': self.max_connections,
            }


def attach_logging_listeners(pool: ConnectionPool) -> None:
    """Listeners por defecto: registran la presión del pool en nivel DEBUG"""
    pool.on("acquire", lambda conn: logger.debug(f"Conexión adquirida (id={id(conn):#x})"))
    pool.on("release", lambda conn: logger.debug(f"Conexión liberada (id={id(conn):#x})"))
    pool.on("enqueue", lambda queued: logger.debug(f"Solicitud en cola esperando conexión ({queued} en espera)"))


def create_pool(settings: Settings, engine: Optional[Engine] = None) -> ConnectionPool:
    engine = engine or build_engine(settings)
    pool = ConnectionPool.from_engine(
        engine,
        max_connections=settings.pool_max_connections,
        timeout=settings.pool_timeout,
    )
    attach_logging_listeners(pool)
    return pool


def _explain_connection_failure(detail: str) -> None:
    msg = (detail or "").lower()
    if "password authentication failed" in msg or "access denied" in msg:
        logger.error("Error de autenticación: revisa DB_USER / DB_PASSWORD en .env")
    elif "connection refused" in msg or "could not connect" in msg:
        logger.error("Error de conexión: verifica DB_HOST y DB_PORT")
    elif "does not exist" in msg and "database" in msg:
        logger.error("La base de datos especificada (DB_NAME) no existe")
    elif "ssl" in msg or "certificate" in msg:
        logger.error("Error SSL: verifica DB_SSLMODE / DB_SSLROOTCERT")


def check_connection(pool: ConnectionPool, fatal: bool = False) -> Optional[Dict[str, Any]]:
    """
    Verificación de arranque: consulta hora del servidor, base y usuario, y avisa
    si falta la tabla `users`. Con fatal=True el fallo se propaga para abortar el arranque.
    """
    try:
        with pool.connection() as conn:
            logger.info("Verificando conexión a la base de datos...")
            server_time = conn.execute(text("SELECT CURRENT_TIMESTAMP AS server_time")).scalar()
            info = {
                'server_time': server_time,
                'database': conn.engine.url.database,
                'user': conn.engine.url.username,
            }
            logger.info(
                f"Conexión exitosa: hora del servidor={info['server_time']} "
                f"base={info['database']} usuario={info['user']}"
            )
            if not inspect(conn).has_table("users"):
                logger.warning("Advertencia: la tabla 'users' no existe")
            return info
    except DatabaseConnectionError as e:
        logger.error(f"Error de conexión a la base de datos: {e.detail or e.message}")
        _explain_connection_failure(e.detail or "")
        if fatal:
            raise
        return None
    except SQLAlchemyError as e:
        logger.error(f"Error verificando la base de datos: {e}")
        if fatal:
            raise DatabaseConnectionError(detail=str(e)) from e
        return None


def database_status(pool: ConnectionPool) -> str:
    try:
        with pool.connection() as conn:
            conn.execute(text("SELECT 1"))
        return "connected"
    except (DatabaseConnectionError, SQLAlchemyError) as e:
        logger.warning(f"Health check de base de datos falló: {e}")
        return "disconnected"
