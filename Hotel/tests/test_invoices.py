import re
import uuid
from decimal import Decimal
from unittest import mock

from django.test import override_settings
from rest_framework import status

from Hotel.exceptions import Conflict
from Hotel.invoicing import (
    generate_invoice_for_order, invoice_day_prefix, reconcile_uninvoiced_orders
)
from Hotel.models import FoodMenu, HotelSettings, Invoice, InvoiceItem
from .base import HotelAPITestCase, utc


class InvoiceGenerationTests(HotelAPITestCase):
    def setUp(self):
        super().setUp()
        self.order = self.create_order([(self.sandwich, 2), (self.chai, 1)], status='COMPLETED')

    def test_invoice_number_format_and_sequence(self):
        first = generate_invoice_for_order(self.order)
        second = generate_invoice_for_order(self.create_order([(self.chai, 1)], status='COMPLETED'))

        prefix = invoice_day_prefix('INV')
        self.assertRegex(first.invoice_number, r'^INV-\d{8}-\d{4}$')
        self.assertEqual(first.invoice_number, f'{prefix}-0001')
        self.assertEqual(second.invoice_number, f'{prefix}-0002')

    def test_generation_is_idempotent(self):
        first = generate_invoice_for_order(self.order)
        second = generate_invoice_for_order(self.order)

        self.assertEqual(first.pk, second.pk)
        self.assertEqual(Invoice.objects.count(), 1)
        self.assertEqual(InvoiceItem.objects.filter(order=self.order).count(), 1)

    def test_tax_rate_is_captured_at_generation(self):
        hotel_settings = HotelSettings.load()
        hotel_settings.tax_rate = Decimal('0.05')
        hotel_settings.save()

        invoice = generate_invoice_for_order(self.order)

        hotel_settings.tax_rate = Decimal('0.20')
        hotel_settings.save()
        invoice.refresh_from_db()

        self.assertEqual(invoice.tax_rate, Decimal('0.0500'))
        self.assertEqual(invoice.tax, Decimal('12.50'))
        self.assertEqual(invoice.total, Decimal('262.50'))

    def test_tax_rounds_half_up_to_cents(self):
        odd = FoodMenu.objects.create(name='Tasting Plate', category='Main Course', price=Decimal('99.99'))
        invoice = generate_invoice_for_order(self.create_order([(odd, 1)], status='COMPLETED'))

        self.assertEqual(invoice.subtotal, Decimal('99.99'))
        self.assertEqual(invoice.tax, Decimal('18.00'))
        self.assertEqual(invoice.total, Decimal('117.99'))
        self.assertEqual(invoice.total, invoice.subtotal + invoice.tax)

    def test_custom_prefix(self):
        hotel_settings = HotelSettings.load()
        hotel_settings.invoice_prefix = 'NEBO'
        hotel_settings.save()

        invoice = generate_invoice_for_order(self.order)
        self.assertTrue(invoice.invoice_number.startswith('NEBO-'))

    def test_number_collision_is_retried(self):
        taken = self.create_invoice('10.00', '0.00', number='INV-20240105-0001')

        with mock.patch(
            'Hotel.invoicing.next_invoice_number',
            side_effect=[taken.invoice_number, 'INV-20240105-0002']
        ):
            with self.assertLogs('Hotel.invoicing', level='WARNING'):
                invoice = generate_invoice_for_order(self.order)

        self.assertEqual(invoice.invoice_number, 'INV-20240105-0002')
        self.assertEqual(Invoice.objects.count(), 2)

    @override_settings(HOTEL_INVOICE_NUMBER_RETRIES=2)
    def test_retries_exhausted_raises_conflict(self):
        taken = self.create_invoice('10.00', '0.00', number='INV-20240105-0001')

        with mock.patch('Hotel.invoicing.next_invoice_number', return_value=taken.invoice_number):
            with self.assertRaises(Conflict):
                generate_invoice_for_order(self.order)

        self.assertFalse(InvoiceItem.objects.filter(order=self.order).exists())

    def test_reconcile_only_touches_uninvoiced_orders(self):
        generate_invoice_for_order(self.order)
        missing = self.create_order([(self.laundry, 1)], status='COMPLETED')
        self.create_order([(self.chai, 1)], status='IN_PROGRESS')

        generated, failed = reconcile_uninvoiced_orders()

        self.assertEqual(failed, [])
        self.assertEqual(len(generated), 1)
        self.assertEqual(generated[0].invoice_items.get().order, missing)
        self.assertEqual(Invoice.objects.count(), 2)


class InvoiceGenerateEndpointTests(HotelAPITestCase):
    def test_generate_for_completed_order(self):
        order = self.create_order([(self.chai, 2)], status='COMPLETED')
        self.as_staff()

        response = self.client.post('/api/invoices/generate/', {'order_id': str(order.id)}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['subtotal'], Decimal('100.00'))
        self.assertEqual(response.data['tax'], Decimal('18.00'))
        self.assertEqual(response.data['total'], Decimal('118.00'))
        self.assertEqual(response.data['invoice_items'][0]['order'], order.id)

        # Second call returns the same invoice
        again = self.client.post('/api/invoices/generate/', {'order_id': str(order.id)}, format='json')
        self.assertEqual(again.data['id'], response.data['id'])
        self.assertEqual(Invoice.objects.count(), 1)

    def test_generate_rejects_incomplete_order(self):
        order = self.create_order([(self.chai, 2)], status='IN_PROGRESS')
        self.as_staff()

        response = self.client.post('/api/invoices/generate/', {'order_id': str(order.id)}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Invoice.objects.count(), 0)

    def test_generate_unknown_order(self):
        self.as_staff()
        response = self.client.post('/api/invoices/generate/', {'order_id': str(uuid.uuid4())}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertIn('error', response.data)

    def test_guest_cannot_generate(self):
        order = self.create_order([(self.chai, 2)], status='COMPLETED')
        self.as_guest()
        response = self.client.post('/api/invoices/generate/', {'order_id': str(order.id)}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class BulkInvoiceTests(HotelAPITestCase):
    def setUp(self):
        super().setUp()
        self.first = self.create_order([(self.sandwich, 1)], status='COMPLETED')
        self.second = self.create_order([(self.laundry, 1)], status='COMPLETED')
        self.pending = self.create_order([(self.chai, 1)])
        self.as_staff()

    def post_bulk(self, orders, guest=None):
        return self.client.post('/api/invoices/', {
            'guest_id': str((guest or self.guest).id),
            'order_ids': [str(order.id) for order in orders],
        }, format='json')

    def test_bundles_completed_orders(self):
        response = self.post_bulk([self.first, self.second, self.pending])
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        invoice = Invoice.objects.get()
        self.assertEqual(invoice.subtotal, Decimal('140.00'))
        self.assertEqual(invoice.tax, Decimal('25.20'))
        self.assertEqual(invoice.total, Decimal('165.20'))
        self.assertEqual(
            set(invoice.invoice_items.values_list('order_id', flat=True)),
            {self.first.id, self.second.id}
        )

    def test_already_invoiced_orders_are_excluded(self):
        generate_invoice_for_order(self.first)

        response = self.post_bulk([self.first, self.second])
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['subtotal'], Decimal('40.00'))
        self.assertEqual(InvoiceItem.objects.filter(order=self.first).count(), 1)

        response = self.post_bulk([self.first, self.second])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Invoice.objects.count(), 2)

    def test_other_guests_orders_are_ignored(self):
        other_guest = self.create_guest('Ravi Kumar', '+919800000002')
        response = self.post_bulk([self.first], guest=other_guest)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Invoice.objects.count(), 0)

    def test_empty_order_list(self):
        response = self.client.post('/api/invoices/', {
            'guest_id': str(self.guest.id),
            'order_ids': [],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class InvoiceStatusTests(HotelAPITestCase):
    def setUp(self):
        super().setUp()
        self.invoice = self.create_invoice('118.00', '18.00', status='PENDING')

    def test_mark_paid_stamps_paid_at(self):
        self.as_staff()
        response = self.client.patch(f'/api/invoices/{self.invoice.id}/', {'status': 'PAID'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, 'PAID')
        self.assertIsNotNone(self.invoice.paid_at)

    def test_explicit_paid_at_is_kept(self):
        self.as_staff()
        response = self.client.patch(
            f'/api/invoices/{self.invoice.id}/',
            {'status': 'PAID', 'paid_at': '2024-01-05T10:00:00Z'},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.paid_at.isoformat(), '2024-01-05T10:00:00+00:00')

    def test_remarking_paid_keeps_paid_at(self):
        paid = self.create_invoice('59.00', '9.00', status='PAID', paid_at=utc(2024, 1, 5))
        self.as_staff()
        response = self.client.patch(f'/api/invoices/{paid.id}/', {'status': 'PAID'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        paid.refresh_from_db()
        self.assertEqual(paid.paid_at, utc(2024, 1, 5))

    def test_status_update_requires_a_change(self):
        self.as_staff()
        response = self.client.patch(f'/api/invoices/{self.invoice.id}/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.patch(f'/api/invoices/{self.invoice.id}/', {'status': 'REFUNDED'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_guest_cannot_update_status(self):
        self.as_guest()
        response = self.client.patch(f'/api/invoices/{self.invoice.id}/', {'status': 'PAID'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, 'PENDING')

    def test_bulk_status_reports_each_outcome(self):
        draft = self.create_invoice('59.00', '9.00', status='DRAFT')
        paid = self.create_invoice('59.00', '9.00', status='PAID')
        missing = str(uuid.uuid4())
        self.as_staff()

        response = self.client.post('/api/invoices/bulk_status/', {
            'ids': [str(self.invoice.id), str(draft.id), str(paid.id), missing, 'not-a-uuid'],
            'action': 'mark_paid',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['succeeded'], 2)
        self.assertEqual(response.data['failed'], 3)

        outcomes = {result['id']: result for result in response.data['results']}
        self.assertTrue(outcomes[str(self.invoice.id)]['success'])
        self.assertFalse(outcomes[str(paid.id)]['success'])
        self.assertEqual(outcomes[missing]['error'], 'Invoice not found')
        self.assertEqual(outcomes['not-a-uuid']['error'], 'Invoice not found')

        draft.refresh_from_db()
        self.assertEqual(draft.status, 'PAID')
        self.assertIsNotNone(draft.paid_at)

    def test_bulk_cancel(self):
        self.as_staff()
        response = self.client.post('/api/invoices/bulk_status/', {
            'ids': [str(self.invoice.id)],
            'action': 'cancel',
        }, format='json')
        self.assertEqual(response.data['succeeded'], 1)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, 'CANCELLED')
        self.assertIsNone(self.invoice.paid_at)

    def test_bulk_status_rejects_unknown_action(self):
        self.as_staff()
        response = self.client.post('/api/invoices/bulk_status/', {
            'ids': [str(self.invoice.id)],
            'action': 'refund',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class InvoiceAccessTests(HotelAPITestCase):
    def setUp(self):
        super().setUp()
        self.other_guest = self.create_guest('Ravi Kumar', '+919800000002')
        self.own_invoice = generate_invoice_for_order(
            self.create_order([(self.sandwich, 1)], status='COMPLETED')
        )
        self.other_invoice = self.create_invoice('59.00', '9.00', guest=self.other_guest)

    def test_guest_lists_own_invoices(self):
        self.as_guest()
        response = self.client.get('/api/invoices/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([inv['id'] for inv in response.data['results']], [str(self.own_invoice.id)])

    def test_guest_cannot_read_other_invoice(self):
        self.as_guest()
        response = self.client.get(f'/api/invoices/{self.other_invoice.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        response = self.client.get(f'/api/invoices/{self.other_invoice.id}/download/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_staff_filters_by_status(self):
        self.as_staff()
        response = self.client.get('/api/invoices/?status=paid')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['id'], str(self.other_invoice.id))

    def test_download_as_attachment(self):
        self.as_guest()
        response = self.client.get(f'/api/invoices/{self.own_invoice.id}/download/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'application/pdf')
        self.assertEqual(
            response['Content-Disposition'],
            f'attachment; filename="invoice-{self.own_invoice.invoice_number}.pdf"'
        )
        self.assertTrue(response.content.startswith(b'%PDF'))

    @override_settings(HOTEL_INVOICE_RENDERER='Hotel.rendering.render_text_invoice')
    def test_download_as_text(self):
        self.as_guest()
        response = self.client.get(f'/api/invoices/{self.own_invoice.id}/download/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response['Content-Type'].startswith('text/plain'))
        self.assertTrue(response['Content-Disposition'].endswith('.txt"'))

        body = response.content.decode('utf-8')
        self.assertIn(self.own_invoice.invoice_number, body)
        self.assertIn('Asha Rao', body)
        self.assertIn('Club Sandwich (Qty: 1)', body)
        self.assertIn('GST (18%)', body)
        self.assertIn('Payment Pending', body)

    def test_download_preview_is_inline(self):
        self.as_staff()
        response = self.client.get(f'/api/invoices/{self.own_invoice.id}/download/?preview=true')
        self.assertTrue(re.match(r'^inline; filename="invoice-.+\.pdf"$', response['Content-Disposition']))

    def test_reconcile_endpoint(self):
        order = self.create_order([(self.chai, 1)], status='COMPLETED')
        self.as_staff()

        response = self.client.post('/api/invoices/reconcile/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['generated'], 1)
        self.assertEqual(response.data['failed'], 0)
        self.assertTrue(InvoiceItem.objects.filter(order=order).exists())

        response = self.client.post('/api/invoices/reconcile/')
        self.assertEqual(response.data['generated'], 0)
