"""
Membership priority for waitlist placement.

`adjust` maps a raw queue position (the first free slot) to the position a
member of the given tier should take instead. It is a pure function of its
two arguments and persists nothing, so the ledger recomputes it on every
join.

    tier      adjusted position
    vip       1 for a brand-new entry, else floor(raw * 0.1)
    premium   max(1, floor(raw * 0.3))
    basic     max(1, floor(raw * 0.7))
    free      raw

Percentages are applied in integer arithmetic so float drift can never
tip a result across an integer boundary.

A vip result can be 0 (raw < 10); clamping into the queue is the ledger's
job, not this function's.
"""

from typing import Union

from rsvp_engine.services.records import MembershipTier

# Raw position callers pass when the attendee is not yet placed anywhere
NEW_ENTRY_SENTINEL = -1

_TIER_PERCENT = {
    MembershipTier.VIP: 10,
    MembershipTier.PREMIUM: 30,
    MembershipTier.BASIC: 70,
}


def adjust(tier: Union[MembershipTier, str, None], raw_position: int) -> int:
    tier = MembershipTier.parse(tier) if not isinstance(tier, MembershipTier) else tier

    if tier == MembershipTier.VIP:
        if raw_position == NEW_ENTRY_SENTINEL:
            return 1
        return raw_position * _TIER_PERCENT[tier] // 100

    if tier in (MembershipTier.PREMIUM, MembershipTier.BASIC):
        return max(1, raw_position * _TIER_PERCENT[tier] // 100)

    return raw_position
