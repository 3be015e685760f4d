from django.contrib.auth import get_user_model
from rest_framework import permissions
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.response import Response
from .models import FanRelationship
from .serializers import FanRelationshipSerializer, SuperfanSerializer
from .context import get_fan_context
from . import services
from users.serializers import UserMiniSerializer
from grandstand.views import BaseReadOnlyViewSet
import logging

User = get_user_model()
logger = logging.getLogger('grandstand')


class CreatorFanViewSet(BaseReadOnlyViewSet):
    """
    Follow state, follow/unfollow and fan stats for racers.
    The pk in every route is the creator's user id.
    """
    queryset = User.objects.filter(user_type='racer', is_active=True)
    serializer_class = UserMiniSerializer
    permission_classes = [permissions.IsAuthenticated]

    @action(detail=True, methods=['GET'])
    def status(self, request, pk=None):
        """
        Current user's relationship with this creator
        """
        creator = self.get_object()
        fan_status = services.get_status(request.user.pk, creator.pk)
        return Response(fan_status.as_dict())

    @action(detail=True, methods=['POST'])
    def follow(self, request, pk=None):
        """
        Follow a creator. Following twice leaves the counts unchanged.
        """
        creator = self.get_object()
        fan_status = services.follow(request.user.pk, creator)
        return Response(fan_status.as_dict())

    @action(detail=True, methods=['POST'])
    def unfollow(self, request, pk=None):
        """
        Unfollow a creator. Unfollowing a creator you don't follow is a no-op.
        """
        creator = self.get_object()
        fan_status = services.unfollow(request.user.pk, creator)
        return Response(fan_status.as_dict())

    @action(detail=True, methods=['GET'])
    def stats(self, request, pk=None):
        """
        Creator-facing aggregates (fans, superfans, earnings)
        """
        creator = self.get_object()
        return Response(services.get_creator_stats(creator.pk))

    @action(detail=True, methods=['GET'])
    def superfans(self, request, pk=None):
        """
        Superfans of a creator, biggest supporters first
        """
        creator = self.get_object()
        queryset = (
            FanRelationship.objects
            .filter(creator=creator, is_following=True, is_superfan=True)
            .select_related('fan')
            .order_by('-cumulative_spend_cents', 'since')
        )
        serializer = SuperfanSerializer(queryset, many=True)
        return Response(serializer.data)


class FollowingViewSet(BaseReadOnlyViewSet):
    """
    Creators the current user follows
    """
    serializer_class = FanRelationshipSerializer
    permission_classes = [permissions.IsAuthenticated]
    queryset = FanRelationship.objects.all()

    def get_queryset(self):
        return (
            super().get_queryset()
            .filter(fan=self.request.user, is_following=True)
            .select_related('creator')
            .order_by('-since')
        )


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def fan_context_view(request):
    """
    Application state for the signed-in user: followed creators and
    superfan badges
    """
    return Response(get_fan_context(request.user.pk))
