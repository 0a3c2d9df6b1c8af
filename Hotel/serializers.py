from decimal import Decimal

from django.db import transaction
from rest_framework import serializers

from .models import (
    Room, Guest, Service, FoodMenu, Order, OrderItem,
    HotelSettings, Invoice, InvoiceItem, ActivityLog
)


class RoomSerializer(serializers.ModelSerializer):
    class Meta:
        model = Room
        fields = '__all__'
        read_only_fields = ['created_at']


class ServiceSerializer(serializers.ModelSerializer):
    class Meta:
        model = Service
        fields = '__all__'
        read_only_fields = ['created_at', 'updated_at']


class FoodMenuSerializer(serializers.ModelSerializer):
    class Meta:
        model = FoodMenu
        fields = '__all__'
        read_only_fields = ['created_at', 'updated_at']


class GuestSerializer(serializers.ModelSerializer):
    room_number = serializers.CharField(source='room.room_number', read_only=True, default=None)

    class Meta:
        model = Guest
        fields = ['id', 'name', 'phone', 'email', 'room', 'room_number',
                  'check_in_date', 'check_out_date', 'is_active', 'created_at']
        read_only_fields = ['room', 'check_in_date', 'is_active', 'created_at']


class GuestDetailSerializer(GuestSerializer):
    total_spent = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    pending_orders = serializers.IntegerField(read_only=True)
    unpaid_invoices = serializers.IntegerField(read_only=True)

    class Meta(GuestSerializer.Meta):
        fields = GuestSerializer.Meta.fields + ['total_spent', 'pending_orders', 'unpaid_invoices']


class CheckInSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    phone = serializers.CharField(max_length=20)
    email = serializers.EmailField(required=False, allow_blank=True, allow_null=True)
    room_id = serializers.UUIDField()
    check_out_date = serializers.DateTimeField(required=False, allow_null=True)


class GuestUpdateSerializer(serializers.Serializer):
    # Phone uniqueness is checked by the view so a clash answers 409
    name = serializers.CharField(max_length=200)
    phone = serializers.CharField(max_length=20)
    email = serializers.EmailField(required=False, allow_blank=True, allow_null=True)
    check_out_date = serializers.DateTimeField(required=False, allow_null=True)
    is_active = serializers.BooleanField(required=False)


class OrderItemSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(read_only=True)

    class Meta:
        model = OrderItem
        fields = ['id', 'service', 'food_menu', 'item_name', 'quantity', 'price', 'subtotal']
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    order_items = OrderItemSerializer(many=True, read_only=True)
    guest_name = serializers.CharField(source='guest.name', read_only=True)
    room_number = serializers.CharField(source='guest.room.room_number', read_only=True, default=None)

    class Meta:
        model = Order
        fields = ['id', 'guest', 'guest_name', 'room_number', 'order_type', 'status',
                  'total_amount', 'notes', 'created_at', 'updated_at', 'order_items']
        read_only_fields = fields


class OrderItemInputSerializer(serializers.Serializer):
    service_id = serializers.UUIDField(required=False, allow_null=True)
    food_menu_id = serializers.UUIDField(required=False, allow_null=True)
    quantity = serializers.IntegerField(min_value=1)

    def validate(self, data):
        service_id = data.get('service_id')
        food_menu_id = data.get('food_menu_id')
        if bool(service_id) == bool(food_menu_id):
            raise serializers.ValidationError(
                "Each item must reference exactly one of 'service_id' or 'food_menu_id'"
            )

        if service_id:
            catalog_item = Service.objects.filter(pk=service_id).first()
            label = 'Service'
        else:
            catalog_item = FoodMenu.objects.filter(pk=food_menu_id).first()
            label = 'Food item'

        if catalog_item is None:
            raise serializers.ValidationError(
                f"{label} with id {service_id or food_menu_id} does not exist"
            )
        if not catalog_item.is_available:
            raise serializers.ValidationError(f"{catalog_item.name} is currently unavailable")

        data['catalog_item'] = catalog_item
        return data


class OrderCreateSerializer(serializers.Serializer):
    items = OrderItemInputSerializer(many=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError("Order must contain at least one item")
        return value

    def create(self, validated_data):
        guest = self.context['guest']
        items_data = validated_data.pop('items')

        with transaction.atomic():
            order_items = []
            for item_data in items_data:
                catalog_item = item_data['catalog_item']
                # Unit price is snapshotted from the catalog, never from the client
                order_items.append(OrderItem(
                    service=catalog_item if isinstance(catalog_item, Service) else None,
                    food_menu=catalog_item if isinstance(catalog_item, FoodMenu) else None,
                    quantity=item_data['quantity'],
                    price=catalog_item.price,
                ))

            order = Order.objects.create(
                guest=guest,
                order_type=Order.derive_order_type(order_items),
                notes=validated_data.get('notes', ''),
                status='PENDING',
            )
            for order_item in order_items:
                order_item.order = order
                order_item.save()

            order.calculate_total()

        return order


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES)


class InvoiceItemSerializer(serializers.ModelSerializer):
    order_type = serializers.CharField(source='order.order_type', read_only=True, default=None)

    class Meta:
        model = InvoiceItem
        fields = ['id', 'order', 'order_type', 'description', 'quantity', 'unit_price', 'total']
        read_only_fields = fields


class InvoiceSerializer(serializers.ModelSerializer):
    invoice_items = InvoiceItemSerializer(many=True, read_only=True)
    guest_name = serializers.CharField(source='guest.name', read_only=True)
    room_number = serializers.CharField(source='guest.room.room_number', read_only=True, default=None)

    class Meta:
        model = Invoice
        fields = ['id', 'guest', 'guest_name', 'room_number', 'invoice_number', 'subtotal',
                  'tax_rate', 'tax', 'total', 'status', 'paid_at', 'notes',
                  'created_at', 'updated_at', 'invoice_items']
        read_only_fields = fields


class InvoiceStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Invoice.STATUS_CHOICES, required=False)
    paid_at = serializers.DateTimeField(required=False, allow_null=True)

    def validate(self, data):
        if not data.get('status') and not data.get('paid_at'):
            raise serializers.ValidationError("Provide 'status' and/or 'paid_at'")
        return data


class InvoiceGenerateSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()


class BulkInvoiceSerializer(serializers.Serializer):
    guest_id = serializers.UUIDField()
    order_ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)


class BulkInvoiceStatusSerializer(serializers.Serializer):
    ids = serializers.ListField(child=serializers.CharField(), allow_empty=False)
    action = serializers.ChoiceField(choices=['mark_paid', 'cancel'])


class HotelSettingsSerializer(serializers.ModelSerializer):
    tax_rate = serializers.DecimalField(
        max_digits=5, decimal_places=4,
        min_value=Decimal('0'), max_value=Decimal('1')
    )

    class Meta:
        model = HotelSettings
        exclude = ['singleton_key']
        read_only_fields = ['id', 'updated_at']


class ActivityLogSerializer(serializers.ModelSerializer):
    user_name = serializers.CharField(source='user.get_username', read_only=True, default=None)

    class Meta:
        model = ActivityLog
        fields = ['id', 'user', 'user_name', 'action', 'entity', 'entity_id',
                  'description', 'metadata', 'created_at']
        read_only_fields = fields


class RevenueAnalyticsQuerySerializer(serializers.Serializer):
    date_from = serializers.DateField(required=False, input_formats=['%Y-%m-%d'])
    date_to = serializers.DateField(required=False, input_formats=['%Y-%m-%d'])
    group_by = serializers.ChoiceField(choices=['day', 'week', 'month'], default='month')

    def validate(self, data):
        if data.get('date_from') and data.get('date_to') and data['date_from'] > data['date_to']:
            raise serializers.ValidationError("date_from must not be after date_to")
        return data
