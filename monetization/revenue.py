"""
Revenue split between a creator and the platform.

The same function backs the earnings estimate shown before checkout and the
bookkeeping written when a charge succeeds, so the two never disagree.
"""

from dataclasses import dataclass

# 20% platform fee, in basis points to keep the arithmetic integral
PLATFORM_FEE_BASIS_POINTS = 2000


@dataclass(frozen=True)
class RevenueSplit:
    gross_cents: int
    creator_cents: int
    platform_cents: int

    def as_dict(self):
        return {
            'gross_cents': self.gross_cents,
            'creator_cents': self.creator_cents,
            'platform_cents': self.platform_cents,
        }


def split(gross_cents):
    """
    Split a gross amount in cents.

    platform_cents is floor(gross * 0.20); the creator gets the remainder, so
    creator_cents + platform_cents == gross_cents for every input.
    """
    if isinstance(gross_cents, bool) or not isinstance(gross_cents, int):
        raise ValueError(f"gross_cents must be an integer, got {gross_cents!r}")
    if gross_cents < 0:
        raise ValueError("gross_cents cannot be negative")

    platform_cents = gross_cents * PLATFORM_FEE_BASIS_POINTS // 10000
    return RevenueSplit(
        gross_cents=gross_cents,
        creator_cents=gross_cents - platform_cents,
        platform_cents=platform_cents,
    )
