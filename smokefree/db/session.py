"""Engine/session handle for the SQL backend.

A Database is built once by the application (or by a test fixture) and passed
to every repository; nothing in the package keeps a module-level engine.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from smokefree.core.errors import ServiceError, StorageError
from smokefree.core.logging import get_logger

Base = declarative_base()
logger = get_logger(__name__)

T = TypeVar("T")


class Database:
    """Owns the engine (connection pool) and hands out sessions/transactions."""

    def __init__(self, url: str, *, timeout_seconds: int = 10, echo: bool = False) -> None:
        url = (url or "").strip()
        if not url:
            raise RuntimeError("DATABASE_URL must be configured to use the SQL backend.")
        connect_args: dict = {}
        engine_kwargs: dict = {"future": True, "echo": echo}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = timeout_seconds
            if url in {"sqlite://", "sqlite:///:memory:"}:
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_pre_ping"] = True
            engine_kwargs["pool_timeout"] = timeout_seconds
            if url.startswith("postgresql"):
                millis = int(timeout_seconds * 1000)
                connect_args["options"] = f"-c statement_timeout={millis} -c lock_timeout={millis}"
        self.url = url
        self.engine = create_engine(url, connect_args=connect_args, **engine_kwargs)
        self._sessionmaker = sessionmaker(
            bind=self.engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True
        )

    @contextmanager
    def session(self) -> Iterator[Session]:
        session: Session = self._sessionmaker()
        try:
            yield session
        finally:
            session.close()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Session that commits on success and rolls back on any exception."""
        with self.session() as session:
            try:
                yield session
                session.commit()
            except BaseException:
                session.rollback()
                raise

    def run(self, work: Callable[[Session], T], *, retries: int = 1) -> T:
        """Run ``work`` in one transaction, retrying transient faults at the boundary.

        ServiceError subclasses raised by ``work`` roll back and propagate as-is;
        other SQLAlchemy failures surface as StorageError.
        """
        attempt = 0
        while True:
            try:
                with self.transaction() as session:
                    return work(session)
            except ServiceError:
                raise
            except OperationalError as exc:
                if attempt < retries:
                    attempt += 1
                    logger.warning("transaction_retry", attempt=attempt, error=str(exc.orig))
                    continue
                logger.error("transaction_failed", error=str(exc.orig))
                raise StorageError() from exc
            except SQLAlchemyError as exc:
                logger.error("transaction_failed", error=str(exc))
                raise StorageError() from exc

    def create_all(self) -> None:
        from . import models  # noqa: F401  # register models on the metadata

        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        Base.metadata.drop_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()
