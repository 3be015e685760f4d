from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils import timezone
from grandstand.models import TimeStampedModel, ValidationModelMixin
from grandstand.validators import username_validator
import logging

logger = logging.getLogger('grandstand')

class User(AbstractUser, ValidationModelMixin):
    """
    Custom User model that extends Django's AbstractUser with the account
    role (fan or racer) and the payment processor customer reference.
    """
    USER_TYPES = (
        ('fan', 'Fan'),
        ('racer', 'Racer'),
    )

    username = models.CharField(
        max_length=150,
        unique=True,
        validators=[username_validator],
        error_messages={
            'unique': "A user with that username already exists.",
        },
    )

    # Email is unique and case-insensitive
    email = models.EmailField(
        unique=True,
        error_messages={
            'unique': "A user with that email already exists.",
        },
    )

    user_type = models.CharField(max_length=10, choices=USER_TYPES, default='fan')
    bio = models.TextField(blank=True, null=True)
    last_active = models.DateTimeField(auto_now=True)

    # Processor customer record, created on first inline subscription
    stripe_customer_id = models.CharField(max_length=100, blank=True, null=True)

    class Meta:
        verbose_name = 'User'
        verbose_name_plural = 'Users'
        indexes = [
            models.Index(fields=['username'], name='users_username_idx'),
            models.Index(fields=['email'], name='users_email_idx'),
            models.Index(fields=['user_type'], name='users_user_type_idx'),
        ]

    def __str__(self):
        return self.username

    def save(self, *args, **kwargs):
        """Override save to normalize email"""
        if self.email:
            self.email = self.email.lower()

        super().save(*args, **kwargs)

    @property
    def is_creator(self):
        return self.user_type == 'racer'

    def update_last_active(self):
        """Update last active timestamp"""
        self.last_active = timezone.now()
        self.save(update_fields=['last_active'])

    @property
    def full_name(self):
        """Get the user's full name or username if not available"""
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        elif self.first_name:
            return self.first_name
        return self.username


class CreatorProfile(TimeStampedModel):
    """
    Creator-facing aggregates for a racer account. Counts are derived from
    fan relationships and succeeded charges and are rewritten from a fresh
    read after every mutation that affects them, never incremented in place.
    """
    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name='creator_profile'
    )
    display_name = models.CharField(max_length=150, blank=True)

    fan_count = models.PositiveIntegerField(default=0)
    superfan_count = models.PositiveIntegerField(default=0)

    total_earnings_cents = models.PositiveBigIntegerField(default=0)
    supporter_count = models.PositiveIntegerField(default=0)
    stats_refreshed_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"Creator: {self.display_name or self.user.username}"

    @classmethod
    def for_user(cls, user):
        profile, created = cls.objects.get_or_create(
            user=user,
            defaults={'display_name': user.full_name}
        )
        if created:
            logger.info(f"Created creator profile for {user.username}")
        return profile
