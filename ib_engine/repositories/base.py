"""
Base repository.

Lookups, counts and conflict-tolerant inserts shared by all repositories.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from ib_engine.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository bound to one model and one session.

    Repositories never commit. They execute and flush inside the caller's
    transaction so the service decides where the unit of work ends.

    Example:
        class WalletRepository(BaseRepository[IBWallet]):
            def __init__(self, session: AsyncSession):
                super().__init__(IBWallet, session)
    """

    def __init__(
        self, model: type[ModelType], session: AsyncSession
    ) -> None:
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    async def get_by_id(self, id: int) -> ModelType | None:
        """Primary key lookup (served from the identity map when loaded)."""
        return await self.session.get(self.model, id)

    async def get_by(self, **filters: Any) -> ModelType | None:
        """
        Single row matching equality filters.

        Args:
            **filters: Column equality filters

        Returns:
            Matching row or None

        Raises:
            MultipleResultsFound: If the filters are not unique
        """
        result = await self.session.execute(
            select(self.model).filter_by(**filters)
        )
        return result.scalar_one_or_none()

    async def count(self, **filters: Any) -> int:
        """Number of rows matching equality filters."""
        stmt = select(func.count()).select_from(self.model)
        if filters:
            stmt = stmt.filter_by(**filters)
        return (await self.session.execute(stmt)).scalar() or 0

    def insert_stmt(self):
        """
        Dialect-specific INSERT for the model.

        Returns the PostgreSQL or SQLite insert construct so callers can use
        ON CONFLICT DO NOTHING against a uniqueness constraint.

        Raises:
            NotImplementedError: For dialects without ON CONFLICT support
        """
        dialect = self.session.bind.dialect.name
        if dialect == "postgresql":
            return postgresql.insert(self.model)
        if dialect == "sqlite":
            return sqlite.insert(self.model)
        raise NotImplementedError(
            f"ON CONFLICT inserts are not supported for dialect {dialect}"
        )
