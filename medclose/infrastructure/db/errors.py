from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from medclose.domain.errors import ConflictError, StoreUnavailableError

logger = logging.getLogger(__name__)


@contextmanager
def store_errors(operation: str, **key: Any) -> Iterator[None]:
    """Translate SQLAlchemy failures into store errors tagged with operation + key.

    Domain errors raised inside the block pass through untouched.
    """
    try:
        yield
    except IntegrityError as exc:
        raise ConflictError("El registro ya existe", operation=operation, key=key) from exc
    except SQLAlchemyError as exc:
        logger.exception("Store failure during %s %s", operation, key)
        raise StoreUnavailableError(
            "La base de datos no está disponible", operation=operation, key=key
        ) from exc
