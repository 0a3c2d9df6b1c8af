from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import (
    RoomViewSet, ServiceViewSet, FoodMenuViewSet, GuestViewSet,
    OrderViewSet, InvoiceViewSet, ActivityLogViewSet, AnalyticsViewSet,
    HotelSettingsView
)

# Create router
router = DefaultRouter()
router.register(r'rooms', RoomViewSet, basename='room')
router.register(r'services', ServiceViewSet, basename='service')
router.register(r'food-menu', FoodMenuViewSet, basename='food-menu')
router.register(r'guests', GuestViewSet, basename='guest')
router.register(r'orders', OrderViewSet, basename='order')
router.register(r'invoices', InvoiceViewSet, basename='invoice')
router.register(r'activity-logs', ActivityLogViewSet, basename='activity-log')
router.register(r'analytics', AnalyticsViewSet, basename='analytics')

urlpatterns = [
    path('settings/hotel/', HotelSettingsView.as_view(), name='hotel-settings'),
    path('', include(router.urls)),
]
