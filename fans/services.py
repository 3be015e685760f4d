"""
Fan status state machine.

Each (fan, creator) pair is in one of three states:

    visitor  --follow / first successful charge-->  fan
    fan      --cumulative spend >= threshold----->  superfan
    fan      --unfollow-------------------------->  visitor

Unfollowing clears the superfan flag but keeps the cumulative spend, so a
returning fan is re-evaluated against the threshold when they follow again.

Every mutation is followed by a fresh read of the creator's fan and superfan
counts. That refresh is secondary: if it fails the mutation still stands and
the failure is only logged.
"""

from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError, transaction
from django.db.models import Count, Q
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from users.models import CreatorProfile
from .context import invalidate_fan_context
from .models import FanRelationship
import logging

logger = logging.getLogger('grandstand')

DEFAULT_SUPERFAN_THRESHOLD_CENTS = 5000

LAST_KNOWN_STATS_KEY = 'fans:creator-stats:{creator_id}'


class InvalidRelationship(ValidationError):
    default_detail = 'Invalid fan relationship.'
    default_code = 'invalid_relationship'


@dataclass(frozen=True)
class FanStatus:
    fan_id: int
    creator_id: int
    is_following: bool = False
    is_superfan: bool = False
    cumulative_spend_cents: int = 0
    changed: bool = False
    # Confirmed counts read back after a mutation, None when not refreshed
    fan_count: Optional[int] = None
    superfan_count: Optional[int] = None

    @property
    def state(self):
        if not self.is_following:
            return 'visitor'
        return 'superfan' if self.is_superfan else 'fan'

    def as_dict(self):
        data = {
            'fan_id': self.fan_id,
            'creator_id': self.creator_id,
            'state': self.state,
            'is_following': self.is_following,
            'is_superfan': self.is_superfan,
            'cumulative_spend_cents': self.cumulative_spend_cents,
            'changed': self.changed,
        }
        if self.fan_count is not None:
            data['fan_count'] = self.fan_count
            data['superfan_count'] = self.superfan_count
        return data


def superfan_threshold_cents():
    return getattr(settings, 'SUPERFAN_THRESHOLD_CENTS', DEFAULT_SUPERFAN_THRESHOLD_CENTS)


def qualifies_as_superfan(relationship):
    """A following fan whose cumulative spend reached the threshold."""
    return (
        relationship.is_following
        and relationship.cumulative_spend_cents >= superfan_threshold_cents()
    )


def _status(relationship, changed=False, counts=None):
    counts = counts or {}
    return FanStatus(
        fan_id=relationship.fan_id,
        creator_id=relationship.creator_id,
        is_following=relationship.is_following,
        is_superfan=relationship.is_superfan,
        cumulative_spend_cents=relationship.cumulative_spend_cents,
        changed=changed,
        fan_count=counts.get('fan_count'),
        superfan_count=counts.get('superfan_count'),
    )


def _check_pair(fan_id, creator, check_role=True):
    if creator.pk == fan_id:
        raise InvalidRelationship("You cannot follow or support yourself.")
    if check_role and not creator.is_creator:
        raise InvalidRelationship("Only racers can be followed or supported.")


def get_status(fan_id, creator_id):
    """
    Read-only lookup of the relationship state. A missing row is a visitor.
    """
    relationship = FanRelationship.objects.filter(fan_id=fan_id, creator_id=creator_id).first()
    if relationship is None:
        return FanStatus(fan_id=fan_id, creator_id=creator_id)
    return _status(relationship)


def follow(fan_id, creator):
    """
    Make the fan follow the creator. Following twice is a no-op.
    """
    _check_pair(fan_id, creator)

    with transaction.atomic():
        relationship, created = FanRelationship.objects.select_for_update().get_or_create(
            fan_id=fan_id,
            creator_id=creator.pk,
        )
        changed = not relationship.is_following
        if changed:
            relationship.is_following = True
            relationship.is_superfan = qualifies_as_superfan(relationship)
            relationship.save(update_fields=['is_following', 'is_superfan', 'updated_at'])
            logger.info(f"User {fan_id} now follows creator {creator.pk} ({relationship.state})")

    invalidate_fan_context(fan_id)
    counts = refresh_creator_counts(creator.pk)
    return _status(relationship, changed=changed, counts=counts)


def unfollow(fan_id, creator):
    """
    Stop following the creator. Unfollowing a creator that is not followed
    is a no-op and never creates a row.
    """
    with transaction.atomic():
        relationship = (
            FanRelationship.objects.select_for_update()
            .filter(fan_id=fan_id, creator_id=creator.pk)
            .first()
        )
        changed = relationship is not None and relationship.is_following
        if changed:
            relationship.is_following = False
            relationship.is_superfan = False
            relationship.save(update_fields=['is_following', 'is_superfan', 'updated_at'])
            logger.info(f"User {fan_id} unfollowed creator {creator.pk}")

    if relationship is None:
        return FanStatus(fan_id=fan_id, creator_id=creator.pk)

    if changed:
        invalidate_fan_context(fan_id)
    counts = refresh_creator_counts(creator.pk)
    return _status(relationship, changed=changed, counts=counts)


def record_spend(fan_id, creator, amount_cents, check_role=True):
    """
    Add a successful charge to the fan's cumulative spend and re-evaluate
    the superfan predicate.

    A fan's first support (no spend recorded yet) auto-follows the creator,
    including a visitor who followed and unfollowed without ever paying. A
    fan who unfollowed after supporting keeps accruing spend but is not
    re-followed.

    Runs in its own atomic block, so when called inside an outer transaction
    (charge finalization) the spend commits or rolls back with it. Cache
    updates wait for the commit. Finalization passes check_role=False: the
    payee's role was checked when the charge was initiated and a paid charge
    is recorded even if it changed since.
    """
    if amount_cents < 0:
        raise ValueError("Spend amount cannot be negative")
    _check_pair(fan_id, creator, check_role=check_role)

    with transaction.atomic():
        relationship, created = FanRelationship.objects.select_for_update().get_or_create(
            fan_id=fan_id,
            creator_id=creator.pk,
        )
        was_following = relationship.is_following
        was_superfan = relationship.is_superfan
        first_support = relationship.cumulative_spend_cents == 0 and relationship.last_support_at is None

        if first_support and not was_following:
            relationship.is_following = True
        relationship.cumulative_spend_cents += amount_cents
        relationship.last_support_at = timezone.now()
        relationship.is_superfan = qualifies_as_superfan(relationship)
        relationship.save(update_fields=[
            'is_following', 'cumulative_spend_cents', 'last_support_at', 'is_superfan', 'updated_at',
        ])
        counts = refresh_creator_counts(creator.pk, remember=False)

        transaction.on_commit(lambda: invalidate_fan_context(fan_id))
        if counts is not None:
            transaction.on_commit(lambda: remember_creator_stats(creator.pk, counts))

    if relationship.is_following and not was_following:
        logger.info(f"User {fan_id} became a fan of creator {creator.pk} through first support")
    if relationship.is_superfan and not was_superfan:
        logger.info(
            f"User {fan_id} promoted to superfan of creator {creator.pk} "
            f"at {relationship.cumulative_spend_cents} cents"
        )

    changed = created or (relationship.is_superfan != was_superfan) or (relationship.is_following != was_following)
    return _status(relationship, changed=changed, counts=counts)


def refresh_creator_counts(creator_id, remember=True):
    """
    Re-read the creator's fan and superfan counts from the relationship table
    and store them on the creator profile.

    Returns the counts, or None when the refresh failed. Failures are logged
    and never propagate into the caller's mutation. With remember=False the
    caller caches the counts itself.
    """
    try:
        with transaction.atomic():
            counts = FanRelationship.objects.filter(creator_id=creator_id).aggregate(
                fan_count=Count('id', filter=Q(is_following=True)),
                superfan_count=Count('id', filter=Q(is_following=True, is_superfan=True)),
            )
            CreatorProfile.objects.update_or_create(
                user_id=creator_id,
                defaults={
                    'fan_count': counts['fan_count'],
                    'superfan_count': counts['superfan_count'],
                },
            )
    except DatabaseError as e:
        logger.warning(f"Could not refresh fan counts for creator {creator_id}: {str(e)}")
        return None

    if remember:
        remember_creator_stats(creator_id, counts)
    return counts


def remember_creator_stats(creator_id, stats):
    """Keep the last successfully read stats for degraded reads."""
    key = LAST_KNOWN_STATS_KEY.format(creator_id=creator_id)
    try:
        known = cache.get(key) or {}
        known.update(stats)
        cache.set(key, known, None)
    except Exception as e:
        logger.warning(f"Could not cache stats for creator {creator_id}: {str(e)}")


def get_creator_stats(creator_id):
    """
    Creator-facing aggregates for display. When the store cannot be read the
    last known values (or zeros) are returned with stale=True instead of
    failing the request.
    """
    empty = {
        'fan_count': 0,
        'superfan_count': 0,
        'total_earnings_cents': 0,
        'supporter_count': 0,
    }
    try:
        stats = (
            CreatorProfile.objects.filter(user_id=creator_id)
            .values(*empty.keys())
            .first()
        )
    except DatabaseError as e:
        logger.warning(f"Creator stats unavailable for {creator_id}, serving last known values: {str(e)}")
        try:
            known = cache.get(LAST_KNOWN_STATS_KEY.format(creator_id=creator_id)) or {}
        except Exception as cache_error:
            logger.warning(f"Last known stats unavailable for {creator_id}: {str(cache_error)}")
            known = {}
        return {**empty, **known, 'stale': True}

    stats = {**empty, **(stats or {})}
    remember_creator_stats(creator_id, stats)
    return {**stats, 'stale': False}
