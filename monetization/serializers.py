from rest_framework import serializers
from django.contrib.auth import get_user_model
from grandstand.serializers import BaseSerializer, LoggedSerializer, TimeStampedModelSerializer
from grandstand.utils import format_cents
from users.serializers import UserMiniSerializer
from .models import MonetizableCharge, SponsorshipPackage, SubscriptionTier

User = get_user_model()


class SubscriptionTierSerializer(TimeStampedModelSerializer):
    creator = UserMiniSerializer(read_only=True)
    price = serializers.SerializerMethodField()

    class Meta:
        model = SubscriptionTier
        fields = [
            'id', 'creator', 'name', 'price_cents', 'price', 'benefits',
            'active', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_price(self, obj):
        return format_cents(obj.price_cents)


class SponsorshipPackageSerializer(TimeStampedModelSerializer):
    creator = UserMiniSerializer(read_only=True)
    price = serializers.SerializerMethodField()

    class Meta:
        model = SponsorshipPackage
        fields = [
            'id', 'creator', 'name', 'description', 'price_cents', 'price',
            'benefits', 'car_placement', 'duration_races', 'active',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_price(self, obj):
        return format_cents(obj.price_cents)


class MonetizableChargeSerializer(BaseSerializer):
    """
    A charge as seen by its payer or payee
    """
    payer = UserMiniSerializer(read_only=True)
    payee = UserMiniSerializer(read_only=True)
    tier_name = serializers.CharField(source='tier.name', read_only=True, default=None)
    package_name = serializers.CharField(source='package.name', read_only=True, default=None)

    class Meta:
        model = MonetizableCharge
        fields = [
            'id', 'payer', 'payee', 'kind', 'status', 'amount_cents',
            'creator_cents', 'platform_cents', 'tier_name', 'package_name',
            'correlation_id', 'created_at', 'finalized_at',
        ]
        read_only_fields = fields


class PendingChargeSerializer(BaseSerializer):
    """
    Context for the payment outcome page, readable before finalize completes
    """
    creator = UserMiniSerializer(source='payee', read_only=True)
    amount = serializers.SerializerMethodField()
    tier_name = serializers.CharField(source='tier.name', read_only=True, default=None)
    package_name = serializers.CharField(source='package.name', read_only=True, default=None)

    class Meta:
        model = MonetizableCharge
        fields = [
            'correlation_id', 'kind', 'status', 'amount_cents', 'amount',
            'creator', 'tier_name', 'package_name', 'payload', 'created_at',
        ]
        read_only_fields = fields

    def get_amount(self, obj):
        return format_cents(obj.amount_cents)


class CheckoutRequestSerializer(LoggedSerializer):
    """
    Checkout request body. Resolves the creator, tier and package; the
    amount rules per kind are enforced by the checkout orchestrator.
    """
    kind = serializers.ChoiceField(choices=MonetizableCharge.KINDS)
    creator_id = serializers.IntegerField()
    amount_cents = serializers.IntegerField(required=False, min_value=1)
    tier_id = serializers.IntegerField(required=False)
    package_id = serializers.IntegerField(required=False)
    message = serializers.CharField(required=False, allow_blank=True, max_length=500, default='')

    def validate(self, attrs):
        try:
            attrs['creator'] = User.objects.get(pk=attrs.pop('creator_id'), is_active=True)
        except User.DoesNotExist:
            raise serializers.ValidationError({'creator_id': "Creator not found."})

        kind = attrs['kind']
        attrs['tier'] = None
        attrs['package'] = None
        tier_id = attrs.pop('tier_id', None)
        package_id = attrs.pop('package_id', None)

        if kind == 'tip' and 'amount_cents' not in attrs:
            raise serializers.ValidationError({'amount_cents': "An amount is required for tips."})

        if kind == 'subscription':
            if tier_id is None:
                raise serializers.ValidationError({'tier_id': "A subscription tier is required."})
            attrs['tier'] = SubscriptionTier.objects.filter(pk=tier_id).first()
            if attrs['tier'] is None:
                raise serializers.ValidationError({'tier_id': "Tier not found."})

        if kind == 'sponsorship':
            if package_id is None:
                raise serializers.ValidationError({'package_id': "A sponsorship package is required."})
            attrs['package'] = SponsorshipPackage.objects.filter(pk=package_id).first()
            if attrs['package'] is None:
                raise serializers.ValidationError({'package_id': "Package not found."})

        return attrs


class FinalizeRequestSerializer(LoggedSerializer):
    """
    The success page forwards either the hosted session id or the
    subscription reference it confirmed inline.
    """
    external_reference = serializers.CharField(required=False, allow_blank=True)
    session_id = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        reference = attrs.get('external_reference') or attrs.get('session_id')
        if not reference:
            raise serializers.ValidationError("external_reference or session_id is required.")
        return {'external_reference': reference}


class CancelRequestSerializer(LoggedSerializer):
    correlation_id = serializers.UUIDField()


class SplitQuerySerializer(LoggedSerializer):
    gross_cents = serializers.IntegerField(min_value=0)
