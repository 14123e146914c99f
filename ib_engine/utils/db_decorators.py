"""
Database decorators for module-level helpers.

Services use ``BaseService.transaction``; plain functions that receive a
session use the decorator here.
"""

from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession


T = TypeVar("T")


def _find_session(args: tuple, kwargs: dict) -> AsyncSession | None:
    session = kwargs.get("session")
    if session is None and args and isinstance(args[0], AsyncSession):
        session = args[0]
    return session


def with_rollback_on_error(func: Callable[..., T]) -> Callable[..., T]:
    """
    Roll the session back if the wrapped coroutine raises.

    The session is taken from the ``session`` keyword or the first
    positional argument. The original exception is always re-raised.

    Usage:
        @with_rollback_on_error
        async def run(session: AsyncSession, event: TradeEvent):
            ...

    Args:
        func: Async function receiving a session

    Returns:
        Wrapped function

    Raises:
        TypeError: If the call carries no session
    """
    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        session = _find_session(args, kwargs)
        if session is None:
            raise TypeError(
                f"{func.__name__} decorated with @with_rollback_on_error "
                "must receive an AsyncSession"
            )

        try:
            return await func(*args, **kwargs)
        except Exception as e:
            try:
                await session.rollback()
            except Exception as rollback_error:
                logger.error(
                    f"Failed to rollback in {func.__name__}: {rollback_error}"
                )
            logger.info(
                f"Rollback performed in {func.__name__} due to error: "
                f"{type(e).__name__}"
            )
            raise

    return wrapper
