from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import CreatorFanViewSet, FollowingViewSet, fan_context_view

app_name = 'fans'

router = DefaultRouter()
router.register(r'creators', CreatorFanViewSet, basename='creators')
router.register(r'following', FollowingViewSet, basename='following')

urlpatterns = [
    path('context/', fan_context_view, name='context'),
    path('', include(router.urls)),
]
