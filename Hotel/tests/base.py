from datetime import datetime
from datetime import timezone as dt_timezone
from decimal import Decimal

from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase, APIClient

from Hotel.models import Room, Guest, Service, FoodMenu, Order, OrderItem, Invoice


def utc(year, month, day, hour=12, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=dt_timezone.utc)


class HotelAPITestCase(APITestCase):
    def setUp(self):
        self.client = APIClient()
        User = get_user_model()
        self.staff_user = User.objects.create_user('staff', password='staff-pass', is_staff=True)
        self.admin_user = User.objects.create_superuser('admin', 'admin@example.com', 'admin-pass')

        self.room = Room.objects.create(room_number='101', status='OCCUPIED')
        self.guest = self.create_guest('Asha Rao', '+919800000001', room=self.room)

        self.sandwich = FoodMenu.objects.create(
            name='Club Sandwich',
            category='Main Course',
            price=Decimal('100.00')
        )
        self.chai = FoodMenu.objects.create(
            name='Masala Chai',
            category='Beverages',
            price=Decimal('50.00')
        )
        self.laundry = Service.objects.create(
            name='Laundry',
            category='Housekeeping',
            price=Decimal('40.00')
        )

    def create_guest(self, name, phone, room=None):
        user = get_user_model().objects.create_user(f'guest-{phone}')
        return Guest.objects.create(user=user, name=name, phone=phone, room=room)

    def as_staff(self):
        self.client.force_authenticate(user=self.staff_user)

    def as_admin(self):
        self.client.force_authenticate(user=self.admin_user)

    def as_guest(self, guest=None):
        self.client.force_authenticate(user=(guest or self.guest).user)

    def create_order(self, items, guest=None, status='PENDING', created_at=None):
        """``items`` is a list of ``(catalog_item, quantity)`` pairs."""
        order = Order.objects.create(guest=guest or self.guest, status=status)
        line_items = []
        for catalog_item, quantity in items:
            line_items.append(OrderItem.objects.create(
                order=order,
                service=catalog_item if isinstance(catalog_item, Service) else None,
                food_menu=catalog_item if isinstance(catalog_item, FoodMenu) else None,
                quantity=quantity,
                price=catalog_item.price
            ))
        order.order_type = Order.derive_order_type(line_items)
        order.save()
        order.calculate_total()
        if created_at is not None:
            Order.objects.filter(pk=order.pk).update(created_at=created_at)
            order.refresh_from_db()
        return order

    def create_invoice(self, total, tax, status='PAID', paid_at=None, guest=None, number=None, created_at=None):
        invoice = Invoice.objects.create(
            guest=guest or self.guest,
            invoice_number=number or f'TEST-{Invoice.objects.count() + 1:04d}',
            subtotal=Decimal(total) - Decimal(tax),
            tax_rate=Decimal('0.18'),
            tax=Decimal(tax),
            total=Decimal(total),
            status=status,
            paid_at=paid_at,
        )
        if created_at is not None:
            Invoice.objects.filter(pk=invoice.pk).update(created_at=created_at)
            invoice.refresh_from_db()
        return invoice
