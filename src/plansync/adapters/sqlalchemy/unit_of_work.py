"""SQLAlchemy-backed unit of work for the local mirror."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from sqlalchemy import create_engine, make_url
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from plansync.adapters.sqlalchemy.migrations import upgrade_head
from plansync.adapters.sqlalchemy.repositories import (
    SqlAlchemyItemRepository,
    SqlAlchemyRelationRepository,
    SqlAlchemySyncRunRepository,
    SqlAlchemyWatermarkRepository,
)
from plansync.config.storage import get_database_config
from plansync.domain.errors import PersistenceError
from plansync.domain.ports.unit_of_work import CacheRepositories

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

    from sqlalchemy.engine import Engine


class StartupError(RuntimeError):
    """Raised when a SQLAlchemy unit of work is used before initialisation."""


@dataclass(slots=True)
class _AdapterState:
    _engine: Engine | None = None
    _session_factory: sessionmaker[Session] | None = None
    _connection_lock: threading.RLock | None = None

    @property
    def engine(self) -> Engine | None:
        return self._engine

    @engine.setter
    def engine(self, value: Engine | None) -> None:
        self._session_factory = None
        self._engine = value
        # every session of a StaticPool engine shares one connection
        shared = value is not None and isinstance(value.pool, StaticPool)
        self._connection_lock = threading.RLock() if shared else None

    @property
    def connection_lock(self) -> threading.RLock | None:
        return self._connection_lock

    @property
    def session_factory(self) -> sessionmaker[Session]:
        if self._engine is None:
            raise StartupError(
                "SQLAlchemy adapter not initialised. Call plansync.adapters.sqlalchemy."
                "unit_of_work.startup() before requesting a unit of work."
            )
        if self._session_factory is None:
            self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        return self._session_factory


_STATE = _AdapterState()


def create_cache_engine(database_uri: str) -> Engine:
    """Create an engine for ``database_uri``.

    A private in-memory SQLite database exists once per connection, so it is pinned to
    a single connection that worker threads may share.
    """

    url = make_url(database_uri)
    if url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:"):
        return create_engine(url, poolclass=StaticPool, connect_args={"check_same_thread": False})
    return create_engine(url)


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Initialise the engine, bring the schema to head and prepare the session factory."""

    if _STATE.engine is not None and not force:
        raise StartupError(
            "SQLAlchemy adapter already initialised. Pass force=True to reconfigure."
        )

    resolved_engine = engine or create_cache_engine(database_uri or get_database_config().uri)
    upgrade_head(engine=resolved_engine)
    _STATE.engine = resolved_engine


def configured_engine() -> Engine | None:
    """Return the engine currently managed by the adapter (if any)."""

    return _STATE.engine


def is_started() -> bool:
    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the managed engine and reset state (primarily for tests)."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None


def _persistence_error(exc: SQLAlchemyError) -> PersistenceError:
    # locked or unavailable databases surface as OperationalError and may clear up
    return PersistenceError(
        f"database operation failed: {exc}",
        retryable=isinstance(exc, OperationalError),
    )


class SqlAlchemyCacheUnitOfWork:
    """Session-scoped unit of work over the cache repositories.

    Database failures leave the block as :class:`PersistenceError`, so callers above
    the adapter never handle SQLAlchemy exceptions directly.
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self.session_factory = session_factory or _STATE.session_factory
        self._lock = _STATE.connection_lock
        self._session: Session | None = None
        self._repositories: CacheRepositories | None = None

    def __enter__(self) -> SqlAlchemyCacheUnitOfWork:
        if self._lock is not None:
            self._lock.acquire()
        self.session = self.session_factory()
        self._repositories = CacheRepositories(
            items=SqlAlchemyItemRepository(self.session),
            relations=SqlAlchemyRelationRepository(self.session),
            watermarks=SqlAlchemyWatermarkRepository(self.session),
            runs=SqlAlchemySyncRunRepository(self.session),
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        try:
            if exc_type is not None:
                self.rollback()
        finally:
            self.session.close()
            self.session = None
            self._repositories = None
            if self._lock is not None:
                self._lock.release()
        if isinstance(exc_value, SQLAlchemyError):
            raise _persistence_error(exc_value) from exc_value
        return False

    def commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            raise _persistence_error(exc) from exc

    def rollback(self) -> None:
        self.session.rollback()

    @property
    def repositories(self) -> CacheRepositories:
        if self._repositories is None:
            raise StartupError("Unit of work session not initialised")
        return self._repositories

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work session not initialised")
        return self._session

    @session.setter
    def session(self, session: Session | None) -> None:
        if self._session is not None and session is not None:
            raise StartupError("Unit of work session already initialised")
        self._session = session


def build_unit_of_work_factory(
    session_factory: sessionmaker[Session] | None = None,
) -> Callable[[], SqlAlchemyCacheUnitOfWork]:
    """Return a factory producing units of work bound to the started engine."""

    def factory() -> SqlAlchemyCacheUnitOfWork:
        return SqlAlchemyCacheUnitOfWork(session_factory)

    return factory


if TYPE_CHECKING:
    from plansync.domain.ports.unit_of_work import CacheUnitOfWork

    _uow_check: CacheUnitOfWork = SqlAlchemyCacheUnitOfWork()
