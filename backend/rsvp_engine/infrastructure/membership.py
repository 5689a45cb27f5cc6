"""
Membership directory implementations.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rsvp_engine.core.logging import get_logger
from rsvp_engine.models.membership import Membership
from rsvp_engine.services.interfaces.membership import MembershipDirectory
from rsvp_engine.services.records import MembershipTier

logger = get_logger(__name__)


class StaticMembershipDirectory(MembershipDirectory):
    """
    Tiers held in a dict.

    Use when:
    - Running the test suite
    - Local development with the memory store
    """

    def __init__(self, tiers: Optional[dict[str, str]] = None, default: MembershipTier = MembershipTier.FREE):
        self._tiers = dict(tiers or {})
        self._default = default

    def set_tier(self, user_id: str, tier: str) -> None:
        self._tiers[user_id] = tier

    async def get_user_tier(self, user_id: str) -> MembershipTier:
        return MembershipTier.parse(self._tiers.get(user_id), self._default)


class SqlMembershipDirectory(MembershipDirectory):
    """Reads the `memberships` mirror table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], default: MembershipTier = MembershipTier.FREE):
        self.session_factory = session_factory
        self._default = default

    async def get_user_tier(self, user_id: str) -> MembershipTier:
        async with self.session_factory() as session:
            membership = await session.get(Membership, user_id)
        if membership is None:
            logger.debug("membership_not_found", user_id=user_id, tier=self._default.value)
            return self._default
        return MembershipTier.parse(membership.tier, self._default)
