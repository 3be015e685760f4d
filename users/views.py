from rest_framework import status
from rest_framework.response import Response
from rest_framework.decorators import api_view, permission_classes, action
from rest_framework.permissions import IsAuthenticated
from rest_framework_simplejwt.views import TokenObtainPairView
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.exceptions import TokenError
from django.contrib.auth import get_user_model
from .serializers import UserSerializer
from grandstand.views import BaseReadOnlyViewSet
from grandstand.utils import create_error_response
from fans.context import invalidate_fan_context
import logging

User = get_user_model()
logger = logging.getLogger('grandstand')

class UserViewSet(BaseReadOnlyViewSet):
    """
    Read-only API viewset for accounts. Profile editing lives outside this
    service.
    """
    queryset = User.objects.filter(is_active=True)
    serializer_class = UserSerializer

    @action(detail=False, methods=['get'])
    def me(self, request):
        """
        Get the current user's profile
        """
        serializer = self.get_serializer(request.user)
        return Response(serializer.data)

    @action(detail=False, methods=['get'])
    def creators(self, request):
        """
        List racer accounts that can receive support
        """
        queryset = self.get_queryset().filter(user_type='racer').order_by('username')
        page = self.paginate_queryset(queryset)
        if page is not None:
            serializer = self.get_serializer(page, many=True)
            return self.get_paginated_response(serializer.data)
        serializer = self.get_serializer(queryset, many=True)
        return Response(serializer.data)


class AuthTokenObtainPairView(TokenObtainPairView):
    """
    Token obtain pair view that also returns the signed-in user
    """
    def post(self, request, *args, **kwargs):
        response = super().post(request, *args, **kwargs)

        if response.status_code == 200:
            username = request.data.get('username')
            try:
                user = User.objects.get(username=username)
                response.data['user'] = UserSerializer(user).data
                user.update_last_active()
            except User.DoesNotExist:
                logger.error(f"User not found during token obtain: {username}")

        return response


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def logout_view(request):
    """
    Sign out: blacklist the refresh token and drop the cached fan context
    """
    refresh_token = request.data.get('refresh')
    if not refresh_token:
        return create_error_response("Refresh token is required", status.HTTP_400_BAD_REQUEST)

    try:
        token = RefreshToken(refresh_token)
        token.blacklist()
    except TokenError as e:
        logger.warning(f"Logout with invalid refresh token for {request.user}: {str(e)}")
        return create_error_response(str(e), status.HTTP_400_BAD_REQUEST)

    invalidate_fan_context(request.user.pk)

    return Response({
        'message': 'Logout successful'
    })
