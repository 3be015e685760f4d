from rest_framework import viewsets
from rest_framework.permissions import IsAuthenticated
import logging

logger = logging.getLogger('grandstand')


class BaseReadOnlyViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Base viewset for read-only operations.
    """
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = super().get_queryset()

        logger.debug(f"Fetching {queryset.model.__name__} objects for {self.request.user}")

        return queryset
