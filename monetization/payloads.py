"""
Typed per-kind checkout payloads.

Each payload is stored on the charge (as a dict) and flattened into processor
metadata, which only accepts string values.
"""

from dataclasses import asdict, dataclass
from typing import Optional


@dataclass(frozen=True)
class TipPayload:
    creator_name: str
    message: str = ''

    kind = 'tip'

    @property
    def description(self):
        return f"Tip for {self.creator_name}"

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class SubscriptionPayload:
    creator_name: str
    tier_id: int
    tier_name: str
    interval: str = 'month'

    kind = 'subscription'

    @property
    def description(self):
        return f"{self.tier_name} subscription to {self.creator_name}"

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class SponsorshipPayload:
    creator_name: str
    package_id: int
    package_name: str
    car_placement: str = ''
    duration_races: Optional[int] = None

    kind = 'sponsorship'

    @property
    def description(self):
        return f"{self.package_name} sponsorship of {self.creator_name}"

    def to_dict(self):
        return asdict(self)


PAYLOAD_TYPES = {
    'tip': TipPayload,
    'subscription': SubscriptionPayload,
    'sponsorship': SponsorshipPayload,
}


def payload_from_dict(kind, data):
    """Rebuild the typed payload stored on a charge."""
    try:
        payload_class = PAYLOAD_TYPES[kind]
    except KeyError:
        raise ValueError(f"Unknown charge kind: {kind}")
    return payload_class(**data)


def to_metadata(payload, **extra):
    """
    Flatten a payload plus identifiers into processor metadata. None values
    are dropped and everything else is stringified.
    """
    metadata = {'kind': payload.kind}
    metadata.update(payload.to_dict())
    metadata.update(extra)
    return {key: str(value) for key, value in metadata.items() if value is not None}
