"""
Membership lookup interface.

Tiers are owned by the profiles/billing side of the application; the
engine only needs to read them when it assigns a waitlist position.
"""

from abc import ABC, abstractmethod

from rsvp_engine.services.records import MembershipTier


class MembershipDirectory(ABC):

    @abstractmethod
    async def get_user_tier(self, user_id: str) -> MembershipTier:
        """
        Look up a user's membership tier.

        Returns:
            The user's tier, or MembershipTier.FREE for unknown users
        """
        pass
