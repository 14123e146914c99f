"""
User repository.

Data access layer for User model.
"""

from sqlalchemy import func, or_, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from ib_engine.models.user import User
from ib_engine.repositories.base import BaseRepository


# Upward walk along referrer_id. UNION ALL keeps revisits in a cyclic graph
# and the level bound is the only termination guarantee.
REFERRAL_CHAIN_QUERY = text("""
    WITH RECURSIVE referral_chain AS (
        -- Base case: start with the user
        SELECT
            u.id,
            u.username,
            u.referral_code,
            u.referrer_id,
            0 AS level
        FROM users u
        WHERE u.id = :user_id

        UNION ALL

        -- Recursive case: get referrer of previous level
        SELECT
            u.id,
            u.username,
            u.referral_code,
            u.referrer_id,
            rc.level + 1 AS level
        FROM users u
        INNER JOIN referral_chain rc ON u.id = rc.referrer_id
        WHERE rc.level < :depth
    )
    SELECT id, username, referral_code, level
    FROM referral_chain
    WHERE level > 0
    ORDER BY level ASC
""")


class UserRepository(BaseRepository[User]):
    """User repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize user repository."""
        super().__init__(User, session)

    async def get_by_referral_code(
        self, referral_code: str
    ) -> User | None:
        """
        Get user by referral code.

        Args:
            referral_code: Referral code

        Returns:
            User or None
        """
        return await self.get_by(referral_code=referral_code)

    async def referral_code_exists(self, referral_code: str) -> bool:
        """Check whether a referral code is already taken."""
        stmt = select(User.id).where(User.referral_code == referral_code)
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def set_referral_code_if_absent(
        self, user_id: int, referral_code: str
    ) -> bool:
        """
        Assign a referral code unless the user already has one.

        Args:
            user_id: User ID
            referral_code: Code to assign

        Returns:
            True if the code was written, False if a code was already set
        """
        stmt = (
            update(User)
            .where(User.id == user_id, User.referral_code.is_(None))
            .values(referral_code=referral_code)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def set_referrer_if_absent(
        self, user_id: int, referrer_id: int
    ) -> bool:
        """
        Attach a referrer unless the user already has one.

        Args:
            user_id: User ID
            referrer_id: Referrer user ID

        Returns:
            True if the edge was written, False if a referrer was already set
        """
        stmt = (
            update(User)
            .where(User.id == user_id, User.referrer_id.is_(None))
            .values(referrer_id=referrer_id)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def get_referral_chain_rows(
        self, user_id: int, depth: int
    ) -> list:
        """
        Get upward referral chain rows (recursive CTE).

        Args:
            user_id: Subject user ID
            depth: Maximum number of levels

        Returns:
            Rows with id, username, referral_code, level ordered by level
        """
        result = await self.session.execute(
            REFERRAL_CHAIN_QUERY, {"user_id": user_id, "depth": depth}
        )
        return list(result.all())

    async def get_direct_referrals(
        self, referrer_ids: list[int]
    ) -> list[User]:
        """
        Get users directly referred by any of the given users.

        Args:
            referrer_ids: Referrer user IDs (one BFS frontier)

        Returns:
            Users whose referrer_id is in referrer_ids
        """
        if not referrer_ids:
            return []

        stmt = (
            select(User)
            .where(User.referrer_id.in_(referrer_ids))
            .order_by(User.created_at, User.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_direct_referrals(self, user_id: int) -> int:
        """Count users whose direct referrer is user_id."""
        return await self.count(referrer_id=user_id)

    async def count_with_referral_code(self) -> int:
        """Count users that have been issued a referral code."""
        stmt = select(func.count(User.id)).where(
            User.referral_code.is_not(None)
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def count_referred(self) -> int:
        """Count users that joined through a referrer."""
        stmt = select(func.count(User.id)).where(
            User.referrer_id.is_not(None)
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def find_referrers_paginated(
        self,
        page: int,
        per_page: int,
        search: str | None = None,
    ) -> tuple[list[User], int]:
        """
        Find users holding a referral code, newest first.

        Args:
            page: Page number (1-indexed)
            per_page: Items per page
            search: Optional case-insensitive match on name, email or code

        Returns:
            Tuple of (users, total_count)
        """
        conditions = [User.referral_code.is_not(None)]
        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(
                    User.username.ilike(pattern),
                    User.email.ilike(pattern),
                    User.referral_code.ilike(pattern),
                )
            )

        count_stmt = select(func.count(User.id)).where(*conditions)
        total = (await self.session.execute(count_stmt)).scalar() or 0

        stmt = (
            select(User)
            .where(*conditions)
            .order_by(User.created_at.desc(), User.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total
