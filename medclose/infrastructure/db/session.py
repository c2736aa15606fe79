import logging
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from medclose.infrastructure.db.engine import get_engine

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]


def build_session_factory(bind: Engine) -> SessionFactory:
    """Transactional scopes on ``bind``: commit on exit, roll back on any error.

    Services take the result as ``session_factory``; tests build one per
    temporary database.
    """
    session_local = sessionmaker(bind=bind, autoflush=False, autocommit=False, expire_on_commit=False, future=True)

    @contextmanager
    def _scope() -> Iterator[Session]:
        session: Session = session_local()
        try:
            yield session
            session.commit()
        except Exception as exc:
            logger.debug("Rolling back session after %s", type(exc).__name__)
            session.rollback()
            raise
        finally:
            session.close()

    return _scope


engine = get_engine()
session_scope = build_session_factory(engine)
