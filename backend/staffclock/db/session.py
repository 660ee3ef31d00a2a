from contextlib import contextmanager
from functools import wraps
from typing import Callable, Iterator, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from staffclock.core.config import settings
from staffclock.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(str(settings.database_url), **_engine_kwargs(str(settings.database_url)))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_session() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def is_transient(exc: Exception) -> bool:
    if isinstance(exc, OperationalError):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def retry_once(method: Callable[..., T]) -> Callable[..., T]:
    """Retry a read-only repository call a single time after a dropped connection.

    The decorated method must belong to an object exposing ``session``. Any other
    error, or a second transient failure, propagates unchanged. The rollback
    expires every loaded instance, so writes must not be wrapped.
    """

    @wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except DBAPIError as exc:
            if not is_transient(exc):
                raise
            logger.warning("db_transient_failure_retrying", operation=method.__name__, error=str(exc.orig))
            self.session.rollback()
            return method(self, *args, **kwargs)

    return wrapper
