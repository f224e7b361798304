import logging
from functools import wraps

from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import InternalError

logger = logging.getLogger(__name__)


def db_exception(message: str):
    """Turn a SQLAlchemy failure inside a service method into an InternalError."""

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except SQLAlchemyError as e:
                logger.error(f"{message}: {type(e).__name__}", exc_info=True)
                raise InternalError(message) from e

        return wrapper

    return decorator
