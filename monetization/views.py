from django.conf import settings
from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.response import Response
from grandstand.permissions import IsParticipant
from grandstand.views import BaseReadOnlyViewSet
from . import checkout, processor
from .models import MonetizableCharge, SponsorshipPackage, SubscriptionTier
from .revenue import PLATFORM_FEE_BASIS_POINTS, split
from .serializers import (
    CancelRequestSerializer,
    CheckoutRequestSerializer,
    FinalizeRequestSerializer,
    MonetizableChargeSerializer,
    PendingChargeSerializer,
    SplitQuerySerializer,
    SponsorshipPackageSerializer,
    SubscriptionTierSerializer,
)
import logging

logger = logging.getLogger('grandstand')


@api_view(['GET'])
@permission_classes([permissions.AllowAny])
def monetization_status_view(request):
    """
    Whether payments are available. Clients hide monetization affordances
    when enabled is false.
    """
    enabled = processor.is_configured()
    if not enabled:
        logger.warning("Monetization status requested while the processor is not configured")
    return Response({
        'enabled': enabled,
        'currency': settings.MONETIZATION.get('CURRENCY', 'usd'),
        'min_tip_cents': checkout.min_tip_cents(),
        'subscription_mode': checkout.subscription_mode(),
        'platform_fee_percent': PLATFORM_FEE_BASIS_POINTS // 100,
    })


@api_view(['GET'])
@permission_classes([permissions.AllowAny])
def split_estimate_view(request):
    """
    Earnings estimate for a gross amount, computed exactly as on finalize
    """
    serializer = SplitQuerySerializer(data=request.query_params)
    serializer.is_valid(raise_exception=True)
    return Response(split(serializer.validated_data['gross_cents']).as_dict())


class CheckoutViewSet(viewsets.ViewSet):
    """
    Checkout lifecycle: initiate, finalize, cancel and pending context
    """
    permission_classes = [permissions.IsAuthenticated]

    def create(self, request):
        serializer = CheckoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        handle = checkout.initiate_charge(
            data['kind'],
            request.user,
            data['creator'],
            amount_cents=data.get('amount_cents'),
            tier=data['tier'],
            package=data['package'],
            message=data.get('message', ''),
        )
        return Response(handle.as_dict(), status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['POST'])
    def finalize(self, request):
        """
        Called by the success page. Repeating the call is safe.
        """
        serializer = FinalizeRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reference = serializer.validated_data['external_reference']

        result = checkout.finalize_charge(reference, payer=request.user)
        return Response(result.as_dict())

    @action(detail=False, methods=['POST'])
    def cancel(self, request):
        """
        Called by the cancel page. Only pending charges change.
        """
        serializer = CancelRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        charge = get_object_or_404(
            MonetizableCharge,
            correlation_id=serializer.validated_data['correlation_id'],
            payer=request.user,
        )
        result = checkout.cancel_charge(charge.correlation_id)
        return Response(result.as_dict())

    @action(detail=False, methods=['GET'], url_path=r'pending/(?P<correlation_id>[0-9a-fA-F-]{32,36})')
    def pending(self, request, correlation_id=None):
        """
        Context for the outcome page, available as soon as checkout started
        """
        charge = get_object_or_404(
            MonetizableCharge.objects.select_related('payee', 'tier', 'package'),
            correlation_id=correlation_id,
            payer=request.user,
        )
        return Response(PendingChargeSerializer(charge).data)


class SubscriptionTierViewSet(BaseReadOnlyViewSet):
    """
    Active subscription tiers, filterable with ?creator=<id>
    """
    queryset = SubscriptionTier.objects.filter(active=True).select_related('creator')
    serializer_class = SubscriptionTierSerializer
    permission_classes = [permissions.AllowAny]

    def get_queryset(self):
        queryset = super().get_queryset()
        creator_id = self.request.query_params.get('creator')
        if creator_id and creator_id.isdigit():
            queryset = queryset.filter(creator_id=creator_id)
        return queryset


class SponsorshipPackageViewSet(BaseReadOnlyViewSet):
    """
    Active sponsorship packages, filterable with ?creator=<id>
    """
    queryset = SponsorshipPackage.objects.filter(active=True).select_related('creator')
    serializer_class = SponsorshipPackageSerializer
    permission_classes = [permissions.AllowAny]

    def get_queryset(self):
        queryset = super().get_queryset()
        creator_id = self.request.query_params.get('creator')
        if creator_id and creator_id.isdigit():
            queryset = queryset.filter(creator_id=creator_id)
        return queryset


class ChargeViewSet(BaseReadOnlyViewSet):
    """
    Charges the current user made or received. ?role=payer or ?role=payee
    narrows the list.
    """
    queryset = MonetizableCharge.objects.select_related('payer', 'payee', 'tier', 'package')
    serializer_class = MonetizableChargeSerializer
    permission_classes = [permissions.IsAuthenticated, IsParticipant]

    def get_queryset(self):
        queryset = super().get_queryset()
        user = self.request.user
        role = self.request.query_params.get('role')
        if role == 'payer':
            return queryset.filter(payer=user)
        if role == 'payee':
            return queryset.filter(payee=user)
        return queryset.filter(Q(payer=user) | Q(payee=user))
