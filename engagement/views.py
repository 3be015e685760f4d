from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from rest_framework import permissions, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from .gate import is_engaged
from .recorder import FALLBACK, RECORDED, get_view_total, record_view
from .serializers import EngagementSignalsSerializer
import logging

User = get_user_model()
logger = logging.getLogger('grandstand')


class ProfileViewViewSet(viewsets.ViewSet):
    """
    Profile view recording and totals. The pk is the profile owner's user id.
    """
    permission_classes = [permissions.AllowAny]

    def _get_profile(self, pk):
        return get_object_or_404(User, pk=pk, is_active=True)

    @action(detail=True, methods=['POST'], url_path='view')
    def record(self, request, pk=None):
        """
        Record a view once the engagement gate is met. Unmet preconditions
        and recording failures answer 200 with recorded false.
        """
        profile = self._get_profile(pk)

        if not request.user.is_authenticated:
            return Response({'recorded': False, 'outcome': 'unauthenticated'})

        serializer = EngagementSignalsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        if not is_engaged(serializer.to_signals()):
            return Response({'recorded': False, 'outcome': 'not_engaged'})

        outcome = record_view(
            profile.pk,
            request.user.pk,
            user_agent=request.META.get('HTTP_USER_AGENT', ''),
        )
        return Response({'recorded': outcome in (RECORDED, FALLBACK), 'outcome': outcome})

    @action(detail=True, methods=['GET'], url_path='views')
    def total(self, request, pk=None):
        """
        Deduplicated view total for the profile
        """
        profile = self._get_profile(pk)
        return Response(get_view_total(profile.pk).as_dict())
