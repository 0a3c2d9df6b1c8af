"""
Invoice generation and the invoice payment lifecycle.

Invoices are always computed from the stored order amounts and the tax rate
read from :class:`HotelSettings` at generation time. The rate is copied onto
the invoice so later settings changes never touch historical invoices.
"""
import logging
from datetime import timezone as dt_timezone
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from .exceptions import Conflict, ValidationFailed
from .models import HotelSettings, Invoice, InvoiceItem, Order

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


def quantize_money(value):
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_tax(subtotal, tax_rate):
    """Return ``(tax, total)`` for a subtotal, both rounded to cents."""
    subtotal = quantize_money(subtotal)
    tax = quantize_money(subtotal * Decimal(tax_rate))
    return tax, subtotal + tax


def invoice_day_prefix(prefix, now=None):
    now = now or timezone.now()
    return f"{prefix}-{now.astimezone(dt_timezone.utc).strftime('%Y%m%d')}"


def next_invoice_number(day_prefix):
    """Next number in the per-day sequence, e.g. ``INV-20240105-0003``."""
    numbers = Invoice.objects.filter(
        invoice_number__startswith=f"{day_prefix}-"
    ).values_list('invoice_number', flat=True)

    last = 0
    for number in numbers:
        suffix = number.rsplit('-', 1)[-1]
        if suffix.isdigit():
            last = max(last, int(suffix))
    return f"{day_prefix}-{last + 1:04d}"


def existing_invoice_for_order(order):
    item = InvoiceItem.objects.select_related('invoice').filter(order=order).first()
    return item.invoice if item else None


def _create_invoice(guest, orders, hotel_settings, notes=''):
    subtotal = sum((order.total_amount for order in orders), Decimal('0.00'))
    tax, total = compute_tax(subtotal, hotel_settings.tax_rate)
    day_prefix = invoice_day_prefix(hotel_settings.invoice_prefix)

    attempts = max(1, settings.HOTEL_INVOICE_NUMBER_RETRIES)
    for attempt in range(1, attempts + 1):
        invoice_number = next_invoice_number(day_prefix)
        try:
            with transaction.atomic():
                invoice = Invoice.objects.create(
                    guest=guest,
                    invoice_number=invoice_number,
                    subtotal=quantize_money(subtotal),
                    tax_rate=hotel_settings.tax_rate,
                    tax=tax,
                    total=total,
                    status='PENDING',
                    notes=notes,
                )
                for order in orders:
                    InvoiceItem.objects.create(
                        invoice=invoice,
                        order=order,
                        description=f"Order #{order.short_id}",
                        quantity=1,
                        unit_price=order.total_amount,
                    )
        except IntegrityError:
            logger.warning(
                'Invoice number %s already taken (attempt %d/%d)',
                invoice_number, attempt, attempts
            )
            continue

        logger.info(
            'Generated invoice %s for guest %s: subtotal=%s tax=%s total=%s',
            invoice.invoice_number, guest.pk, invoice.subtotal, invoice.tax, invoice.total
        )
        return invoice

    raise Conflict('Could not allocate a unique invoice number')


def generate_invoice_for_order(order):
    """
    Create the invoice for a single completed order.

    Idempotent: when an invoice item already points at the order, that
    invoice is returned instead of billing the order a second time.
    """
    with transaction.atomic():
        order = Order.objects.select_for_update().select_related('guest').get(pk=order.pk)

        existing = existing_invoice_for_order(order)
        if existing is not None:
            logger.info('Order %s already invoiced as %s', order.pk, existing.invoice_number)
            return existing

        hotel_settings = HotelSettings.load()
        return _create_invoice(
            order.guest,
            [order],
            hotel_settings,
            notes=f"Invoice for Order #{order.short_id}",
        )


def generate_invoice_for_orders(guest, order_ids):
    """
    Bundle several completed orders of one guest into a single invoice.

    Orders that are not COMPLETED, belong to another guest, or already appear
    on an invoice are left out.
    """
    with transaction.atomic():
        orders = list(
            Order.objects.select_for_update()
            .filter(pk__in=order_ids, guest=guest, status='COMPLETED')
            .exclude(invoice_items__isnull=False)
            .order_by('created_at', 'id')
        )
        if not orders:
            raise ValidationFailed('No completed, uninvoiced orders found')

        skipped = len(set(str(pk) for pk in order_ids)) - len(orders)
        if skipped:
            logger.info('Bulk invoice for guest %s skipped %d ineligible orders', guest.pk, skipped)

        hotel_settings = HotelSettings.load()
        return _create_invoice(guest, orders, hotel_settings)


def uninvoiced_completed_orders():
    return Order.objects.filter(status='COMPLETED', invoice_items__isnull=True).order_by('created_at')


def reconcile_uninvoiced_orders():
    """Generate invoices for every completed order that is still missing one."""
    generated = []
    failed = []
    for order in uninvoiced_completed_orders():
        try:
            generated.append(generate_invoice_for_order(order))
        except Exception:
            logger.exception('Reconciliation failed for order %s', order.pk)
            failed.append(order.pk)

    logger.info('Reconciliation generated %d invoices, %d failures', len(generated), len(failed))
    return generated, failed


def apply_invoice_status(invoice, new_status, paid_at=None):
    """
    Set an invoice's status; PAID stamps ``paid_at`` (given value or now).

    Re-marking a PAID invoice as PAID keeps its original ``paid_at`` unless a
    new one is supplied.
    """
    already_paid = invoice.status == 'PAID' and invoice.paid_at is not None
    if new_status is not None:
        if new_status not in dict(Invoice.STATUS_CHOICES):
            raise ValidationFailed(f"Invalid status: {new_status}")
        invoice.status = new_status

    if paid_at is not None:
        invoice.paid_at = paid_at
    elif new_status == 'PAID' and not already_paid:
        invoice.paid_at = timezone.now()

    invoice.save()
    return invoice


BULK_ACTIONS = {
    'mark_paid': 'PAID',
    'cancel': 'CANCELLED',
}


def bulk_update_invoice_status(invoice_ids, action):
    """
    Apply ``action`` to each invoice independently.

    Only DRAFT and PENDING invoices move; every id gets its own result entry
    so partial failure is visible to the caller.
    """
    if action not in BULK_ACTIONS:
        raise ValidationFailed(f"Invalid action: {action}")
    target = BULK_ACTIONS[action]

    results = []
    for invoice_id in invoice_ids:
        try:
            with transaction.atomic():
                invoice = Invoice.objects.select_for_update().filter(pk=invoice_id).first()
                if invoice is None:
                    raise ValidationFailed('Invoice not found')
                if invoice.status not in Invoice.OPEN_STATUSES:
                    raise ValidationFailed(f"Invoice is {invoice.status}")
                apply_invoice_status(invoice, target)
            results.append({'id': str(invoice_id), 'success': True})
        except ValidationFailed as exc:
            results.append({'id': str(invoice_id), 'success': False, 'error': str(exc.detail)})
        except DjangoValidationError:
            results.append({'id': str(invoice_id), 'success': False, 'error': 'Invoice not found'})
        except Exception:
            logger.exception('Bulk %s failed for invoice %s', action, invoice_id)
            results.append({'id': str(invoice_id), 'success': False, 'error': 'Update failed'})

    succeeded = sum(1 for r in results if r['success'])
    failed = len(results) - succeeded
    logger.info('Bulk %s: %d succeeded, %d failed', action, succeeded, failed)
    return {'succeeded': succeeded, 'failed': failed, 'results': results}
