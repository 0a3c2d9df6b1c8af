from django.contrib import admin
from .models import (
    Room, Guest, Service, FoodMenu, Order, OrderItem,
    HotelSettings, Invoice, InvoiceItem, ActivityLog
)


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ['room_number', 'room_type', 'floor', 'status']
    list_filter = ['status', 'room_type', 'floor']
    ordering = ['room_number']
    list_editable = ['status']


@admin.register(Guest)
class GuestAdmin(admin.ModelAdmin):
    list_display = ['name', 'phone', 'room', 'check_in_date', 'check_out_date', 'is_active']
    list_filter = ['is_active', 'check_in_date']
    search_fields = ['name', 'phone', 'email']
    date_hierarchy = 'check_in_date'


@admin.register(Service, FoodMenu)
class CatalogItemAdmin(admin.ModelAdmin):
    list_display = ['name', 'category', 'price', 'is_available', 'created_at']
    list_filter = ['category', 'is_available', 'created_at']
    search_fields = ['name', 'description']
    ordering = ['category', 'name']
    list_editable = ['is_available', 'price']


class ReadOnlyLineInline(admin.TabularInline):
    """Line items are fixed once created; totals are derived from them."""
    extra = 0
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class OrderItemInline(ReadOnlyLineInline):
    model = OrderItem
    fields = ['item_name', 'service', 'food_menu', 'quantity', 'price', 'subtotal']
    readonly_fields = fields


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['id', 'guest', 'order_type', 'total_amount', 'status', 'created_at']
    list_filter = ['status', 'order_type', 'created_at']
    search_fields = ['guest__name', 'guest__phone', 'notes']
    date_hierarchy = 'created_at'
    inlines = [OrderItemInline]
    readonly_fields = ['total_amount', 'created_at', 'updated_at']

    def save_model(self, request, obj, form, change):
        super().save_model(request, obj, form, change)
        obj.calculate_total()


class InvoiceItemInline(ReadOnlyLineInline):
    model = InvoiceItem
    fields = ['order', 'description', 'quantity', 'unit_price', 'total']
    readonly_fields = fields


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ['invoice_number', 'guest', 'subtotal', 'tax', 'total', 'status', 'paid_at', 'created_at']
    list_filter = ['status', 'created_at', 'paid_at']
    search_fields = ['invoice_number', 'guest__name']
    date_hierarchy = 'created_at'
    inlines = [InvoiceItemInline]
    readonly_fields = ['invoice_number', 'subtotal', 'tax_rate', 'tax', 'total', 'created_at', 'updated_at']

    fieldsets = (
        ('Invoice', {
            'fields': ('invoice_number', 'guest', 'status', 'paid_at', 'notes')
        }),
        ('Amounts', {
            'fields': ('subtotal', 'tax_rate', 'tax', 'total')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(HotelSettings)
class HotelSettingsAdmin(admin.ModelAdmin):
    list_display = ['hotel_name', 'tax_label', 'tax_rate', 'invoice_prefix', 'updated_at']

    def has_add_permission(self, request):
        return not HotelSettings.objects.exists()


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ['created_at', 'user', 'action', 'entity', 'description']
    list_filter = ['action', 'entity', 'created_at']
    search_fields = ['description', 'entity_id']
    readonly_fields = ['created_at']


# Customize admin site
admin.site.site_header = "Hotel Guest Services"
admin.site.site_title = "Hotel Admin"
