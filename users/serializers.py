from rest_framework import serializers
from django.contrib.auth import get_user_model
from grandstand.serializers import BaseSerializer
from .models import CreatorProfile
import logging

logger = logging.getLogger('grandstand')
User = get_user_model()

class UserMiniSerializer(serializers.ModelSerializer):
    """
    Compact user representation embedded in other payloads
    """
    class Meta:
        model = User
        fields = ['id', 'username', 'user_type']
        read_only_fields = fields


class CreatorProfileSerializer(BaseSerializer):
    """
    Serializer for the creator-facing aggregates
    """
    class Meta:
        model = CreatorProfile
        fields = [
            'display_name', 'fan_count', 'superfan_count',
            'total_earnings_cents', 'supporter_count', 'stats_refreshed_at',
        ]
        read_only_fields = fields


class UserSerializer(BaseSerializer):
    """
    Serializer for the User model
    """
    creator_profile = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id', 'username', 'email', 'first_name', 'last_name', 'bio',
            'user_type', 'last_active', 'creator_profile',
        ]
        read_only_fields = ['id', 'email', 'user_type', 'last_active']

    def get_creator_profile(self, obj):
        if not obj.is_creator:
            return None
        profile = CreatorProfile.objects.filter(user=obj).first()
        if profile is None:
            return None
        return CreatorProfileSerializer(profile).data
