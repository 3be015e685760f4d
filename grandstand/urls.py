"""
URL configuration for the grandstand project.
"""
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView, SpectacularRedocView
from rest_framework_simplejwt.views import TokenVerifyView
from .admin import grandstand_admin_site

# Import admin registrations to ensure they're loaded
from . import admin_registrations

urlpatterns = [
    # Admin - with custom admin site
    path('admin/', grandstand_admin_site.urls),

    # API Documentation
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/schema/swagger-ui/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
    path('api/schema/redoc/', SpectacularRedocView.as_view(url_name='schema'), name='redoc'),

    # JWT Authentication endpoints
    path('api/token/verify/', TokenVerifyView.as_view(), name='token_verify'),

    # App URLs
    path('api/users/', include('users.urls')),
    path('api/fans/', include('fans.urls')),
    path('api/monetization/', include('monetization.urls')),
    path('api/engagement/', include('engagement.urls')),
]
