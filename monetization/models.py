from django.db import models
from django.conf import settings
from django.core.validators import MinValueValidator
from grandstand.models import TimeStampedModel, UUIDModel
from grandstand.validators import StringListValidator
import uuid


class SubscriptionTier(TimeStampedModel):
    """
    Recurring support level offered by a racer
    """
    creator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='subscription_tiers'
    )
    name = models.CharField(max_length=100)
    price_cents = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    benefits = models.JSONField(default=list, blank=True, validators=[StringListValidator(max_items=20)])
    external_price_ref = models.CharField(max_length=100, blank=True, help_text="Processor price id")
    active = models.BooleanField(default=True)

    class Meta:
        ordering = ['price_cents', 'name']
        unique_together = ('creator', 'name')

    def __str__(self):
        return f"{self.name} ({self.creator.username}): {self.price_cents} cents/month"


class SponsorshipPackage(TimeStampedModel):
    """
    One-time sponsorship offer from a racer, e.g. a decal placement for a
    number of races
    """
    creator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='sponsorship_packages'
    )
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    price_cents = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    benefits = models.JSONField(default=list, blank=True, validators=[StringListValidator(max_items=20)])
    car_placement = models.CharField(max_length=100, blank=True)
    duration_races = models.PositiveIntegerField(null=True, blank=True)
    external_price_ref = models.CharField(max_length=100, blank=True, help_text="Processor price id")
    active = models.BooleanField(default=True)

    class Meta:
        ordering = ['price_cents', 'name']

    def __str__(self):
        return f"{self.name} ({self.creator.username}): {self.price_cents} cents"


class MonetizableCharge(UUIDModel):
    """
    A single tip, subscription payment or sponsorship payment from a payer to
    a payee. Created once the processor accepted the checkout request; its
    status follows the processor's confirmation.
    """
    KINDS = (
        ('tip', 'Tip'),
        ('subscription', 'Subscription'),
        ('sponsorship', 'Sponsorship'),
    )

    STATUSES = (
        ('pending', 'Pending'),
        ('succeeded', 'Succeeded'),
        ('failed', 'Failed'),
        ('canceled', 'Canceled'),
    )

    TERMINAL_STATUSES = ('succeeded', 'failed', 'canceled')

    payer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='charges_made'
    )
    payee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='charges_received'
    )
    amount_cents = models.PositiveIntegerField()
    kind = models.CharField(max_length=20, choices=KINDS)
    status = models.CharField(max_length=20, choices=STATUSES, default='pending')

    correlation_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    external_reference = models.CharField(max_length=255, unique=True, null=True, blank=True)
    payload = models.JSONField(default=dict, blank=True, help_text="Kind-specific checkout payload")

    tier = models.ForeignKey(
        SubscriptionTier,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='charges'
    )
    package = models.ForeignKey(
        SponsorshipPackage,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='charges'
    )

    # Settlement bookkeeping, written when the charge succeeds
    creator_cents = models.PositiveIntegerField(null=True, blank=True)
    platform_cents = models.PositiveIntegerField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    finalized_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['payee', 'status'], name='charge_payee_status_idx'),
            models.Index(fields=['payer', 'status'], name='charge_payer_status_idx'),
        ]

    def __str__(self):
        return f"{self.kind} - {self.payer} -> {self.payee}: {self.amount_cents} cents ({self.status})"

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES
