"""
Referral code issuance module.

Generates and validates user referral codes.
"""

import secrets
from dataclasses import dataclass

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from ib_engine.config.business_constants import REFERRAL_CODE_ALPHABET
from ib_engine.config.settings import settings
from ib_engine.repositories.user_repository import UserRepository
from ib_engine.utils.exceptions import UserNotFoundError


@dataclass
class ReferralCodeValidation:
    """Result of checking a referral code."""

    valid: bool
    referrer_id: int | None = None
    referrer_name: str | None = None


def generate_referral_code(
    prefix: str | None = None, length: int | None = None
) -> str:
    """
    Generate a random referral code such as REF7K2Q9A.

    Args:
        prefix: Code prefix (defaults to settings)
        length: Number of random characters (defaults to settings)

    Returns:
        Prefix followed by random uppercase alphanumerics
    """
    prefix = settings.referral_code_prefix if prefix is None else prefix
    length = settings.referral_code_length if length is None else length
    suffix = "".join(
        secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(length)
    )
    return f"{prefix}{suffix}"


class ReferralCodeManager:
    """Manages referral code issuance."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize code manager."""
        self.session = session
        self.user_repo = UserRepository(session)

    async def _generate_unique_code(self) -> str:
        """
        Generate a code not held by any user.

        Retries until a free code is found. With 36^6 codes a collision is
        rare, so termination is a statistical rather than structural
        guarantee. The unique index on users.referral_code still rejects a
        code taken between this check and the write.
        """
        attempts = 0
        while True:
            attempts += 1
            code = generate_referral_code()
            if not await self.user_repo.referral_code_exists(code):
                if attempts > 1:
                    logger.debug(
                        "Referral code collision resolved",
                        extra={"attempts": attempts},
                    )
                return code

    async def ensure_referral_code(self, user_id: int) -> str:
        """
        Get the user's referral code, issuing one on first use.

        The write only applies while the user has no code, so a concurrent
        issuer cannot overwrite a code already handed out. The code is
        immutable afterwards.

        Args:
            user_id: User ID

        Returns:
            The user's referral code

        Raises:
            UserNotFoundError: If the user does not exist
        """
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        if user.referral_code:
            return user.referral_code

        code = await self._generate_unique_code()
        written = await self.user_repo.set_referral_code_if_absent(
            user_id, code
        )
        await self.session.refresh(user, attribute_names=["referral_code"])

        if written:
            logger.info(
                "Referral code issued",
                extra={"user_id": user_id, "referral_code": code},
            )
        return user.referral_code

    async def validate_referral_code(
        self, referral_code: str
    ) -> ReferralCodeValidation:
        """
        Check whether a referral code belongs to a user.

        Args:
            referral_code: Code to check

        Returns:
            ReferralCodeValidation
        """
        referrer = await self.user_repo.get_by_referral_code(referral_code)
        if referrer is None:
            return ReferralCodeValidation(valid=False)

        return ReferralCodeValidation(
            valid=True,
            referrer_id=referrer.id,
            referrer_name=referrer.username,
        )
