from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import ProfileViewViewSet

app_name = 'engagement'

router = DefaultRouter()
router.register(r'profiles', ProfileViewViewSet, basename='profiles')

urlpatterns = [
    path('', include(router.urls)),
]
