from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import (
    ChargeViewSet,
    CheckoutViewSet,
    SponsorshipPackageViewSet,
    SubscriptionTierViewSet,
    monetization_status_view,
    split_estimate_view,
)

app_name = 'monetization'

router = DefaultRouter()
router.register(r'checkout', CheckoutViewSet, basename='checkout')
router.register(r'tiers', SubscriptionTierViewSet, basename='tiers')
router.register(r'packages', SponsorshipPackageViewSet, basename='packages')
router.register(r'charges', ChargeViewSet, basename='charges')

urlpatterns = [
    path('status/', monetization_status_view, name='status'),
    path('split/', split_estimate_view, name='split'),
    path('', include(router.urls)),
]
