from django.db import models
from django.conf import settings


class ProfileViewEvent(models.Model):
    """
    One view of a profile by a viewer on a given day. Write-once; the unique
    constraint is what deduplicates views.
    """
    profile = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='profile_view_events'
    )
    viewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='profile_views_made'
    )
    day_date = models.DateField()
    user_agent = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['profile', 'viewer', 'day_date'],
                name='unique_profile_view_per_day'
            ),
        ]
        indexes = [
            models.Index(fields=['profile', 'day_date'], name='view_profile_day_idx'),
        ]

    def __str__(self):
        return f"{self.viewer_id} viewed {self.profile_id} on {self.day_date}"


class ProfileViewAggregate(models.Model):
    """
    Legacy per-profile counter used when view events cannot be written.
    Not deduplicated.
    """
    profile = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='view_aggregate'
    )
    view_count = models.PositiveBigIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.profile_id}: {self.view_count} views"
