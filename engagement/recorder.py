"""
Profile view recording, at most once per viewer per profile per day.

The primary path inserts a ProfileViewEvent and treats a duplicate key as
success. When that store errors the view is counted on the per-profile
aggregate instead: a plain read, increment and write with no lock and no
deduplication. Recording never raises; every outcome is returned and
failures are logged.
"""

from dataclasses import dataclass

from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone
import logging

from .models import ProfileViewAggregate, ProfileViewEvent

logger = logging.getLogger('grandstand')

RECORDED = 'recorded'
DUPLICATE = 'duplicate'
FALLBACK = 'fallback'
SKIPPED = 'skipped'
FAILED = 'failed'


@dataclass(frozen=True)
class ViewTotal:
    profile_id: int
    total: int
    source: str

    def as_dict(self):
        return {
            'profile_id': self.profile_id,
            'total': self.total,
            'source': self.source,
        }


def record_view(profile_id, viewer_id, user_agent=''):
    """
    Record that viewer_id looked at profile_id today. Returns one of
    recorded, duplicate, fallback, skipped or failed.
    """
    if not viewer_id or not profile_id:
        return SKIPPED
    if profile_id == viewer_id:
        return SKIPPED

    day_date = timezone.localdate()
    try:
        with transaction.atomic():
            event, created = ProfileViewEvent.objects.get_or_create(
                profile_id=profile_id,
                viewer_id=viewer_id,
                day_date=day_date,
                defaults={'user_agent': (user_agent or '')[:255]},
            )
    except IntegrityError as e:
        return _resolve_integrity_error(profile_id, viewer_id, day_date, e)
    except DatabaseError as e:
        logger.warning(
            f"View events unavailable, counting view of {profile_id} on the aggregate: {str(e)}"
        )
        return _record_on_aggregate(profile_id)
    except Exception as e:
        logger.error(f"Unexpected error recording view of {profile_id} by {viewer_id}: {str(e)}")
        return FAILED

    if created:
        logger.debug(f"Recorded view of {profile_id} by {viewer_id}")
        return RECORDED
    return DUPLICATE


def _resolve_integrity_error(profile_id, viewer_id, day_date, error):
    """
    A concurrent insert of the same view is a duplicate. Any other integrity
    failure (a missing profile or viewer) is a failure.
    """
    try:
        exists = ProfileViewEvent.objects.filter(
            profile_id=profile_id,
            viewer_id=viewer_id,
            day_date=day_date,
        ).exists()
    except DatabaseError as e:
        logger.error(f"Could not check view of {profile_id} by {viewer_id} after integrity error: {str(e)}")
        return FAILED

    if exists:
        return DUPLICATE
    logger.error(f"Could not record view of {profile_id} by {viewer_id}: {str(error)}")
    return FAILED


def _record_on_aggregate(profile_id):
    try:
        aggregate = ProfileViewAggregate.objects.filter(profile_id=profile_id).first()
        if aggregate is None:
            ProfileViewAggregate.objects.create(profile_id=profile_id, view_count=1)
        else:
            aggregate.view_count += 1
            aggregate.save(update_fields=['view_count', 'updated_at'])
    except Exception as e:
        logger.error(f"Fallback view counter failed for {profile_id}: {str(e)}")
        return FAILED
    return FALLBACK


def get_view_total(profile_id):
    """
    Deduplicated view count for a profile. Falls back to the legacy
    aggregate, then to zero, so reading never fails.
    """
    try:
        total = ProfileViewEvent.objects.filter(profile_id=profile_id).count()
        return ViewTotal(profile_id=profile_id, total=total, source='events')
    except DatabaseError as e:
        logger.warning(f"Could not count view events for {profile_id}, trying aggregate: {str(e)}")

    try:
        view_count = (
            ProfileViewAggregate.objects.filter(profile_id=profile_id)
            .values_list('view_count', flat=True)
            .first()
        )
        return ViewTotal(profile_id=profile_id, total=view_count or 0, source='aggregate')
    except DatabaseError as e:
        logger.warning(f"View aggregate unavailable for {profile_id}, reporting zero: {str(e)}")

    return ViewTotal(profile_id=profile_id, total=0, source='none')
