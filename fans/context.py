"""
Per-user application state for fan/creator data.

The context is hydrated from the relationship table on first use, kept in
the cache, and dropped whenever the user's relationships change or the user
signs out. Views pass it to the components that need it instead of reading
shared module state.
"""

from django.conf import settings
from django.core.cache import cache
from django.utils import timezone
import logging

logger = logging.getLogger('grandstand')

FAN_CONTEXT_KEY = 'fans:context:{user_id}'


def _key(user_id):
    return FAN_CONTEXT_KEY.format(user_id=user_id)


def hydrate_fan_context(user_id):
    from .models import FanRelationship

    rows = FanRelationship.objects.filter(fan_id=user_id).values_list(
        'creator_id', 'is_following', 'is_superfan', 'cumulative_spend_cents'
    )
    following = []
    superfan_of = []
    spend_by_creator = {}
    for creator_id, is_following, is_superfan, spend in rows:
        if is_following:
            following.append(creator_id)
        if is_following and is_superfan:
            superfan_of.append(creator_id)
        if spend:
            spend_by_creator[str(creator_id)] = spend

    return {
        'user_id': user_id,
        'following': sorted(following),
        'superfan_of': sorted(superfan_of),
        'spend_by_creator': spend_by_creator,
        'hydrated_at': timezone.now().isoformat(),
    }


def get_fan_context(user_id):
    """
    Return the cached context for a user, hydrating it when missing.
    """
    key = _key(user_id)
    try:
        context = cache.get(key)
    except Exception as e:
        logger.warning(f"Fan context cache read failed for user {user_id}: {str(e)}")
        context = None

    if context is not None:
        return context

    context = hydrate_fan_context(user_id)
    try:
        cache.set(key, context, getattr(settings, 'FAN_CONTEXT_CACHE_TIMEOUT', 60 * 30))
    except Exception as e:
        logger.warning(f"Fan context cache write failed for user {user_id}: {str(e)}")
    return context


def invalidate_fan_context(user_id):
    try:
        cache.delete(_key(user_id))
    except Exception as e:
        logger.warning(f"Fan context invalidation failed for user {user_id}: {str(e)}")
