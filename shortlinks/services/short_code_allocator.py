"""
Short Code Allocator

Hands out short codes for new URL records, either a code the user asked for
or a random one.

Design Decisions:
- Base62 alphabet [0-9a-zA-Z]: URL-safe and case-sensitive
- Random generation from a CSPRNG so codes are not guessable in sequence
- Uniqueness is checked against every row ever written, active or not:
  codes are never recycled, so old shares can never point somewhere new
- The unique index on short_urls.short_code is the final arbiter. A check
  here can race with a concurrent insert; the record manager maps the
  resulting IntegrityError to ShortCodeTakenError.
"""

import logging
import random
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shortlinks.core.exceptions import (
    InvalidShortCodeError,
    ShortCodeExhaustedError,
    ShortCodeTakenError,
)
from shortlinks.core.setting import settings
from shortlinks.core.validators import (
    SHORT_CODE_ALPHABET,
    is_reserved_short_code,
    is_valid_short_code,
)
from shortlinks.db.models import ShortURL

logger = logging.getLogger(__name__)


class ShortCodeAllocator:
    """
    Validates requested codes and generates random ones.

    The allocator does not write anything: a code is reserved by inserting
    the ShortURL row that carries it.
    """

    def __init__(
        self,
        session: AsyncSession,
        length: Optional[int] = None,
        min_length: Optional[int] = None,
        max_length: Optional[int] = None,
        max_retries: Optional[int] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Args:
            session: Database session used for uniqueness checks
            length: Length of generated codes (default: SHORT_CODE_LENGTH)
            min_length: Shortest accepted requested code
            max_length: Longest accepted requested code
            max_retries: Random candidates tried before giving up
            rng: Random source (default: SystemRandom)
        """
        self.session = session
        self.length = length or settings.SHORT_CODE_LENGTH
        self.min_length = min_length or settings.SHORT_CODE_MIN_LENGTH
        self.max_length = max_length or settings.SHORT_CODE_MAX_LENGTH
        self.max_retries = max_retries or settings.SHORT_CODE_MAX_RETRIES
        self.rng = rng or random.SystemRandom()

    def validate_format(self, short_code: str) -> None:
        """
        Raises:
            InvalidShortCodeError: If the code breaks the alphabet/length policy
                or shadows an application route
        """
        if not is_valid_short_code(short_code, self.min_length, self.max_length):
            raise InvalidShortCodeError(
                short_code,
                reason=(
                    f"Short codes must be {self.min_length}-{self.max_length} "
                    f"letters or digits"
                ),
            )
        if is_reserved_short_code(short_code):
            raise InvalidShortCodeError(short_code, reason="Short code is reserved")

    def generate_candidate(self) -> str:
        return "".join(self.rng.choice(SHORT_CODE_ALPHABET) for _ in range(self.length))

    async def is_code_taken(self, short_code: str) -> bool:
        """Check the full historical set, including soft-deleted records."""
        statement = select(ShortURL.id).where(ShortURL.short_code == short_code).limit(1)
        result = await self.session.execute(statement)
        return result.first() is not None

    async def allocate(self, requested_code: Optional[str] = None) -> str:
        """
        Return a short code that is currently unused.

        Args:
            requested_code: Code asked for by the user, returned verbatim if free

        Returns:
            The allocated short code

        Raises:
            InvalidShortCodeError: Requested code breaks the format policy
            ShortCodeTakenError: Requested code was issued before
            ShortCodeExhaustedError: Every random candidate collided
        """
        if requested_code is not None:
            self.validate_format(requested_code)
            if await self.is_code_taken(requested_code):
                raise ShortCodeTakenError(requested_code)
            return requested_code

        for attempt in range(1, self.max_retries + 1):
            candidate = self.generate_candidate()
            if is_reserved_short_code(candidate):
                continue
            if not await self.is_code_taken(candidate):
                return candidate
            logger.debug(f"Short code collision on attempt {attempt}: {candidate}")

        logger.error(
            f"Short code namespace saturated: {self.max_retries} collisions at length {self.length}"
        )
        raise ShortCodeExhaustedError(self.max_retries, self.length)
