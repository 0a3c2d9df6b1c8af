# api/urls.py

from django.contrib import admin
from django.urls import path, include, re_path
from rest_framework import permissions
from drf_yasg.views import get_schema_view
from drf_yasg import openapi

# Swagger/OpenAPI Schema
schema_view = get_schema_view(
    openapi.Info(
        title="Hotel Guest Services API",
        default_version='v1',
        description="""
        Hotel guest-services backend that handles:
        - Rooms, Services and Food Menu catalog
        - Guest check-in and check-out
        - Guest orders and their status lifecycle
        - Invoice generation, payment status and downloads
        - Revenue analytics
        - Hotel settings and activity log
        """,
        contact=openapi.Contact(email="contact@nebosync.hotel"),
        license=openapi.License(name="BSD License"),
    ),
    public=True,
    permission_classes=(permissions.AllowAny,),
)

urlpatterns = [
    # Admin
    path('admin/', admin.site.urls),

    # API endpoints
    path('api/', include('Hotel.urls')),

    # API Documentation
    re_path(r'^swagger(?P<format>\.json|\.yaml)$',
            schema_view.without_ui(cache_timeout=0),
            name='schema-json'),
    path('swagger/',
        schema_view.with_ui('swagger', cache_timeout=0),
        name='schema-swagger-ui'),
    path('redoc/',
        schema_view.with_ui('redoc', cache_timeout=0),
        name='schema-redoc'),

    # DRF Browsable API auth
    path('api-auth/', include('rest_framework.urls')),
]
