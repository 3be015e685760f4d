from django.db import models
from django.conf import settings

class FanRelationship(models.Model):
    """
    Relationship between a fan and a creator (racer).

    A row exists once the fan has followed or supported the creator. The
    visitor / fan / superfan state is derived from the two flags.
    """
    fan = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='fan_relationships'
    )
    creator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='fan_base'
    )
    since = models.DateTimeField(auto_now_add=True)
    is_following = models.BooleanField(default=False)
    is_superfan = models.BooleanField(default=False)
    cumulative_spend_cents = models.PositiveBigIntegerField(default=0)
    last_support_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ('fan', 'creator')
        indexes = [
            models.Index(fields=['creator', 'is_following'], name='fans_creator_following_idx'),
            models.Index(fields=['creator', 'is_superfan'], name='fans_creator_superfan_idx'),
        ]

    def __str__(self):
        return f"{self.fan.username} -> {self.creator.username} ({self.state})"

    @property
    def state(self):
        if not self.is_following:
            return 'visitor'
        return 'superfan' if self.is_superfan else 'fan'
