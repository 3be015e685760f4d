from django.contrib import admin
from .admin import grandstand_admin_site
from users.models import User, CreatorProfile
from fans.models import FanRelationship
from monetization.models import MonetizableCharge, SubscriptionTier, SponsorshipPackage
from engagement.models import ProfileViewEvent, ProfileViewAggregate

# Register Users models
@admin.register(User, site=grandstand_admin_site)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'email', 'user_type', 'date_joined', 'is_staff')
    search_fields = ('username', 'email')
    list_filter = ('user_type', 'is_active', 'is_staff', 'date_joined')

@admin.register(CreatorProfile, site=grandstand_admin_site)
class CreatorProfileAdmin(admin.ModelAdmin):
    list_display = ('user', 'fan_count', 'superfan_count', 'total_earnings_cents', 'stats_refreshed_at')
    search_fields = ('user__username', 'display_name')
    readonly_fields = ('fan_count', 'superfan_count', 'total_earnings_cents', 'supporter_count', 'stats_refreshed_at')

# Register Fans models
@admin.register(FanRelationship, site=grandstand_admin_site)
class FanRelationshipAdmin(admin.ModelAdmin):
    list_display = ('fan', 'creator', 'is_following', 'is_superfan', 'cumulative_spend_cents', 'since')
    list_filter = ('is_following', 'is_superfan')
    search_fields = ('fan__username', 'creator__username')

# Register Monetization models
@admin.register(MonetizableCharge, site=grandstand_admin_site)
class MonetizableChargeAdmin(admin.ModelAdmin):
    list_display = ('id', 'kind', 'payer', 'payee', 'amount_cents', 'status', 'created_at')
    list_filter = ('kind', 'status', 'created_at')
    search_fields = ('external_reference', 'correlation_id', 'payer__username', 'payee__username')
    readonly_fields = (
        'correlation_id', 'external_reference', 'payload', 'creator_cents',
        'platform_cents', 'created_at', 'finalized_at',
    )

@admin.register(SubscriptionTier, site=grandstand_admin_site)
class SubscriptionTierAdmin(admin.ModelAdmin):
    list_display = ('name', 'creator', 'price_cents', 'active')
    list_filter = ('active',)
    search_fields = ('name', 'creator__username')

@admin.register(SponsorshipPackage, site=grandstand_admin_site)
class SponsorshipPackageAdmin(admin.ModelAdmin):
    list_display = ('name', 'creator', 'price_cents', 'duration_races', 'active')
    list_filter = ('active',)
    search_fields = ('name', 'creator__username')

# Register Engagement models
@admin.register(ProfileViewEvent, site=grandstand_admin_site)
class ProfileViewEventAdmin(admin.ModelAdmin):
    list_display = ('profile', 'viewer', 'day_date')
    list_filter = ('day_date',)

@admin.register(ProfileViewAggregate, site=grandstand_admin_site)
class ProfileViewAggregateAdmin(admin.ModelAdmin):
    list_display = ('profile', 'view_count', 'updated_at')
