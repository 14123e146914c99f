"""
Base service class.

Shared session handling, bound logger and the transaction decorator used by
services that own their commit boundary.
"""

import functools
from collections.abc import Callable
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession


T = TypeVar("T")


class BaseService:
    """
    Base class for commission engine services.

    Services receive the session of the caller's unit of work. Services that
    only read or flush never commit; those that own a write boundary wrap
    the method in ``transaction``.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize base service.

        Args:
            session: Async database session
        """
        self.session = session
        self.logger = logger.bind(service=self.__class__.__name__)

    async def commit(self) -> None:
        """Commit the session's transaction."""
        await self.session.commit()

    async def rollback(self) -> None:
        """Roll back the session's transaction."""
        await self.session.rollback()


def transaction(func: Callable[..., T]) -> Callable[..., T]:
    """
    Run a service method as one transaction.

    Commits when the method returns and rolls back when it raises. The
    exception is logged with the method name and re-raised unchanged, so
    domain errors such as PlanValidationError still reach the caller.

    Usage:
        @transaction
        async def update_something(self, ...):
            ...

    Args:
        func: Async service method

    Returns:
        Wrapped async method
    """
    @functools.wraps(func)
    async def wrapper(self: BaseService, *args: Any, **kwargs: Any) -> Any:
        try:
            result = await func(self, *args, **kwargs)
        except Exception as e:
            await self.rollback()
            self.logger.warning(
                f"Transaction rolled back in {func.__name__}: "
                f"{type(e).__name__}",
                extra={"function": func.__name__, "error": str(e)},
            )
            raise
        await self.commit()
        return result

    return wrapper
