"""
Referral chain management module.

Handles upward chain resolution, bounded downline traversal and attaching
a referrer to a user.
"""

from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from ib_engine.config.business_constants import REFERRAL_CHAIN_HARD_LIMIT
from ib_engine.models.user import User
from ib_engine.repositories.user_repository import UserRepository
from ib_engine.utils.exceptions import (
    InvalidReferralCodeError,
    ReferralLoopError,
    ReferrerAlreadySetError,
    UserNotFoundError,
)


@dataclass(frozen=True)
class ChainEntry:
    """One upline beneficiary and its level relative to the subject."""

    user_id: int
    level: int
    username: str | None = None
    referral_code: str | None = None


@dataclass
class DownlineNode:
    """A user below the root of a downline tree."""

    user_id: int
    parent_id: int
    level: int
    username: str | None
    email: str | None
    referral_code: str | None
    created_at: datetime


@dataclass
class DownlineTree:
    """Bounded downline of a user, nodes in breadth-first order."""

    user_id: int
    username: str | None
    email: str | None
    referral_code: str | None
    max_depth: int
    downlines: list[DownlineNode] = field(default_factory=list)

    def count_by_level(self) -> dict[int, int]:
        """Number of downline users at each level."""
        counts: dict[int, int] = {}
        for node in self.downlines:
            counts[node.level] = counts.get(node.level, 0) + 1
        return counts


class ReferralChainManager:
    """Manages referral chain operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize chain manager."""
        self.session = session
        self.user_repo = UserRepository(session)

    async def resolve_chain(
        self, user_id: int, max_levels: int
    ) -> list[ChainEntry]:
        """
        Get the upline of a user, direct referrer first.

        Walks referrer_id upward until a user has no referrer, a referenced
        user is missing, or max_levels entries were produced. Referral
        cycles are not rejected; the level bound ends the walk, so a cyclic
        graph yields the same users again at deeper levels.

        Args:
            user_id: Subject user ID
            max_levels: Deepest level to return

        Returns:
            List of ChainEntry ordered by level (empty if no referrer)
        """
        depth = min(max_levels, REFERRAL_CHAIN_HARD_LIMIT)
        if depth < 1:
            return []

        rows = await self.user_repo.get_referral_chain_rows(user_id, depth)
        chain = [
            ChainEntry(
                user_id=row.id,
                level=row.level,
                username=row.username,
                referral_code=row.referral_code,
            )
            for row in rows
        ]

        logger.debug(
            "Referral chain resolved",
            extra={
                "user_id": user_id,
                "depth": depth,
                "chain_length": len(chain),
            },
        )
        return chain

    async def get_downline_tree(
        self, user_id: int, max_depth: int
    ) -> DownlineTree | None:
        """
        Get a user's downline with a bounded breadth-first traversal.

        Issues one query per depth level. Users already visited are not
        expanded again, so a cyclic graph cannot loop.

        Args:
            user_id: Root user ID
            max_depth: Number of levels below the root to include

        Returns:
            DownlineTree, or None if the root user does not exist
        """
        root = await self.user_repo.get_by_id(user_id)
        if root is None:
            return None

        tree = DownlineTree(
            user_id=root.id,
            username=root.username,
            email=root.email,
            referral_code=root.referral_code,
            max_depth=max_depth,
        )

        visited = {root.id}
        frontier = [root.id]
        level = 1

        while frontier and level <= max_depth:
            children = await self.user_repo.get_direct_referrals(frontier)
            next_frontier = []

            for child in children:
                if child.id in visited:
                    continue
                visited.add(child.id)
                next_frontier.append(child.id)
                tree.downlines.append(
                    DownlineNode(
                        user_id=child.id,
                        parent_id=child.referrer_id,
                        level=level,
                        username=child.username,
                        email=child.email,
                        referral_code=child.referral_code,
                        created_at=child.created_at,
                    )
                )

            frontier = next_frontier
            level += 1

        return tree

    async def register_with_referral(
        self, user_id: int, referral_code: str
    ) -> User:
        """
        Attach the owner of referral_code as the user's referrer.

        The edge is permanent: a user that already has a referrer is
        rejected. Self-referral and a referrer whose own upline contains
        the user are rejected as loops.

        Args:
            user_id: User joining through the code
            referral_code: Referrer's code

        Returns:
            The referring user

        Raises:
            UserNotFoundError: If user_id does not exist
            InvalidReferralCodeError: If no user owns the code
            ReferrerAlreadySetError: If the user already has a referrer
            ReferralLoopError: If the edge would close a cycle
        """
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        referrer = await self.user_repo.get_by_referral_code(referral_code)
        if referrer is None:
            raise InvalidReferralCodeError(
                f"Invalid referral code: {referral_code}"
            )

        if user.referrer_id is not None:
            raise ReferrerAlreadySetError(
                f"User {user_id} already has a referrer"
            )

        if referrer.id == user_id:
            raise ReferralLoopError("A user cannot refer themselves")

        upline = await self.resolve_chain(
            referrer.id, REFERRAL_CHAIN_HARD_LIMIT
        )
        if any(entry.user_id == user_id for entry in upline):
            logger.warning(
                "Referral loop detected",
                extra={
                    "user_id": user_id,
                    "referrer_id": referrer.id,
                    "chain_ids": [entry.user_id for entry in upline],
                },
            )
            raise ReferralLoopError(
                "Referral would create a cyclic referral chain"
            )

        if not await self.user_repo.set_referrer_if_absent(user_id, referrer.id):
            raise ReferrerAlreadySetError(
                f"User {user_id} already has a referrer"
            )

        logger.info(
            "Referrer attached",
            extra={"user_id": user_id, "referrer_id": referrer.id},
        )
        return referrer
