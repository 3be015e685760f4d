import django.core.validators
import django.db.models.deletion
import grandstand.validators
import uuid
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='SubscriptionTier',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('name', models.CharField(max_length=100)),
                ('price_cents', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('benefits', models.JSONField(blank=True, default=list, validators=[grandstand.validators.StringListValidator(max_items=20)])),
                ('external_price_ref', models.CharField(blank=True, help_text='Processor price id', max_length=100)),
                ('active', models.BooleanField(default=True)),
                ('creator', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='subscription_tiers', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['price_cents', 'name'],
                'unique_together': {('creator', 'name')},
            },
        ),
        migrations.CreateModel(
            name='SponsorshipPackage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('name', models.CharField(max_length=100)),
                ('description', models.TextField(blank=True)),
                ('price_cents', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('benefits', models.JSONField(blank=True, default=list, validators=[grandstand.validators.StringListValidator(max_items=20)])),
                ('car_placement', models.CharField(blank=True, max_length=100)),
                ('duration_races', models.PositiveIntegerField(blank=True, null=True)),
                ('external_price_ref', models.CharField(blank=True, help_text='Processor price id', max_length=100)),
                ('active', models.BooleanField(default=True)),
                ('creator', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sponsorship_packages', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['price_cents', 'name'],
            },
        ),
        migrations.CreateModel(
            name='MonetizableCharge',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('amount_cents', models.PositiveIntegerField()),
                ('kind', models.CharField(choices=[('tip', 'Tip'), ('subscription', 'Subscription'), ('sponsorship', 'Sponsorship')], max_length=20)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('succeeded', 'Succeeded'), ('failed', 'Failed'), ('canceled', 'Canceled')], default='pending', max_length=20)),
                ('correlation_id', models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ('external_reference', models.CharField(blank=True, max_length=255, null=True, unique=True)),
                ('payload', models.JSONField(blank=True, default=dict, help_text='Kind-specific checkout payload')),
                ('creator_cents', models.PositiveIntegerField(blank=True, null=True)),
                ('platform_cents', models.PositiveIntegerField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('finalized_at', models.DateTimeField(blank=True, null=True)),
                ('payee', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='charges_received', to=settings.AUTH_USER_MODEL)),
                ('payer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='charges_made', to=settings.AUTH_USER_MODEL)),
                ('package', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='charges', to='monetization.sponsorshippackage')),
                ('tier', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='charges', to='monetization.subscriptiontier')),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['payee', 'status'], name='charge_payee_status_idx'),
                    models.Index(fields=['payer', 'status'], name='charge_payer_status_idx'),
                ],
            },
        ),
    ]
