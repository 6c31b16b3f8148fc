from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from exam_portal.core.config import settings

_LOG = logging.getLogger("exam_portal.db")


class Base(DeclarativeBase):
    pass


class ConnectionManager:
    """Lazily creates one pooled engine per process and hands it out.

    Callers arriving while a connection attempt is in flight block on the
    same lock and receive the engine produced by that attempt.
    """

    def __init__(
        self,
        url: str,
        *,
        max_retries: int = 3,
        retry_delay_seconds: float = 2.0,
        engine_options: dict[str, Any] | None = None,
        engine_factory: Callable[..., Engine] = create_engine,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.url = url
        self.max_retries = max(int(max_retries), 1)
        self.retry_delay_seconds = float(retry_delay_seconds)
        self.engine_options = dict(engine_options or {})
        self._engine_factory = engine_factory
        self._sleep = sleep
        self._engine: Engine | None = None
        self._retries = 0
        self._lock = threading.Lock()

    @property
    def retries(self) -> int:
        return self._retries

    def acquire(self) -> Engine:
        engine = self._engine
        if engine is not None:
            return engine
        with self._lock:
            if self._engine is not None:
                return self._engine
            return self._connect()

    def invalidate(self, engine: Engine | None = None) -> None:
        with self._lock:
            current = self._engine
            if current is None or (engine is not None and engine is not current):
                return
            self._engine = None
        _LOG.warning("database connection invalidated; reconnecting on next request")
        current.dispose()

    def dispose(self) -> None:
        with self._lock:
            current, self._engine = self._engine, None
        if current is not None:
            current.dispose()

    def _connect(self) -> Engine:
        if self._retries >= self.max_retries:
            self._retries = 0
        while True:
            _LOG.info("database connection attempt %s/%s", self._retries + 1, self.max_retries)
            engine: Engine | None = None
            try:
                engine = self._engine_factory(self.url, **self.engine_options)
                with engine.connect() as connection:
                    connection.execute(text("SELECT 1"))
            except Exception as exc:
                if engine is not None:
                    engine.dispose()
                self._retries += 1
                _LOG.error(
                    "database connection error (attempt %s/%s): %s",
                    self._retries,
                    self.max_retries,
                    exc,
                )
                if self._retries < self.max_retries:
                    self._sleep(self.retry_delay_seconds)
                    continue
                self._retries = 0
                raise
            self._retries = 0
            self._watch(engine)
            self._engine = engine
            _LOG.info("database connected")
            return engine

    def _watch(self, engine: Engine) -> None:
        def _on_error(context) -> None:
            if context.is_disconnect:
                self.invalidate(engine)

        event.listen(engine, "handle_error", _on_error)


def engine_options_from_settings() -> dict[str, Any]:
    if settings.DATABASE_URL.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT_SECONDS,
        "pool_recycle": settings.DB_POOL_RECYCLE_SECONDS,
        "pool_pre_ping": True,
        "connect_args": {
            "connect_timeout": settings.DB_CONNECT_TIMEOUT_SECONDS,
            "options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}",
        },
    }


connection_manager = ConnectionManager(
    settings.DATABASE_URL,
    max_retries=settings.DB_CONNECT_MAX_RETRIES,
    retry_delay_seconds=settings.DB_CONNECT_RETRY_DELAY_SECONDS,
    engine_options=engine_options_from_settings(),
)

_session_factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False)


def open_session() -> Session:
    return _session_factory(bind=connection_manager.acquire())


def get_db() -> Iterator[Session]:
    db = open_session()
    try:
        yield db
    finally:
        db.close()
