from rest_framework import serializers
from .models import FanRelationship
from users.serializers import UserMiniSerializer
from grandstand.serializers import BaseSerializer

class FanRelationshipSerializer(BaseSerializer):
    """
    Serializer for a relationship seen from the fan's side
    """
    creator = UserMiniSerializer(read_only=True)
    state = serializers.CharField(read_only=True)

    class Meta:
        model = FanRelationship
        fields = [
            'id', 'creator', 'state', 'is_following', 'is_superfan',
            'cumulative_spend_cents', 'since', 'last_support_at',
        ]
        read_only_fields = fields


class SuperfanSerializer(BaseSerializer):
    """
    Serializer for a relationship seen from the creator's side
    """
    fan = UserMiniSerializer(read_only=True)

    class Meta:
        model = FanRelationship
        fields = ['fan', 'cumulative_spend_cents', 'since', 'last_support_at']
        read_only_fields = fields
