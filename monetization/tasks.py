from celery import shared_task
from django.db import DatabaseError
from django.db.models import Count, Sum
from django.utils import timezone
import logging

from fans.services import remember_creator_stats
from users.models import CreatorProfile
from .models import MonetizableCharge

logger = logging.getLogger('grandstand')


@shared_task(bind=True, max_retries=3, default_retry_delay=30)
def refresh_creator_earnings(self, creator_id):
    """
    Recompute a creator's earnings and supporter count from succeeded charges
    """
    try:
        totals = MonetizableCharge.objects.filter(payee_id=creator_id, status='succeeded').aggregate(
            total_earnings_cents=Sum('creator_cents'),
            supporter_count=Count('payer', distinct=True),
        )
        stats = {
            'total_earnings_cents': totals['total_earnings_cents'] or 0,
            'supporter_count': totals['supporter_count'] or 0,
        }
        CreatorProfile.objects.update_or_create(
            user_id=creator_id,
            defaults={**stats, 'stats_refreshed_at': timezone.now()},
        )
    except DatabaseError as e:
        logger.warning(f"Earnings refresh failed for creator {creator_id}: {str(e)}")
        raise self.retry(exc=e)

    remember_creator_stats(creator_id, stats)
    logger.info(
        f"Refreshed earnings for creator {creator_id}: {stats['total_earnings_cents']} cents "
        f"from {stats['supporter_count']} supporters"
    )
    return stats
