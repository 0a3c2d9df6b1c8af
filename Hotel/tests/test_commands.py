from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command

from Hotel.models import FoodMenu, HotelSettings, InvoiceItem, Room, Service
from .base import HotelAPITestCase


class ReconcileInvoicesCommandTests(HotelAPITestCase):
    def setUp(self):
        super().setUp()
        self.order = self.create_order([(self.sandwich, 1)], status='COMPLETED')
        self.create_order([(self.chai, 1)], status='IN_PROGRESS')

    def test_dry_run_changes_nothing(self):
        out = StringIO()
        call_command('reconcile_invoices', '--dry-run', stdout=out)

        self.assertIn(f'Order #{self.order.short_id}', out.getvalue())
        self.assertIn('1 completed orders without an invoice', out.getvalue())
        self.assertFalse(InvoiceItem.objects.exists())

    def test_generates_missing_invoices(self):
        out = StringIO()
        call_command('reconcile_invoices', stdout=out)

        self.assertIn('Generated 1 invoices', out.getvalue())
        item = InvoiceItem.objects.get()
        self.assertEqual(item.order, self.order)

        out = StringIO()
        call_command('reconcile_invoices', stdout=out)
        self.assertIn('Generated 0 invoices', out.getvalue())


class SeedCommandTests(HotelAPITestCase):
    def test_seed(self):
        call_command('seed', '--password', 'seed-pass', stdout=StringIO())

        # Rooms and items already in use are kept
        self.assertTrue(Room.objects.filter(room_number='101').exists())
        self.assertEqual(Room.objects.count(), 15)
        self.assertTrue(FoodMenu.objects.filter(name='Masala Omelette').exists())
        self.assertTrue(Service.objects.filter(category='Spa').exists())
        self.assertEqual(HotelSettings.objects.count(), 1)

        # Existing accounts are left alone
        staff = get_user_model().objects.get(username='staff')
        self.assertTrue(staff.check_password('staff-pass'))
