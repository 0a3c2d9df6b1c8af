import io

from django.conf import settings
from django.utils.module_loading import import_string
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

RULE = '=' * 51
THIN_RULE = '-' * 51


class RenderedInvoice:
    def __init__(self, content, content_type, extension):
        self.content = content
        self.content_type = content_type
        self.extension = extension


def get_invoice_renderer():
    """Load the renderer named by ``HOTEL_INVOICE_RENDERER``."""
    return import_string(settings.HOTEL_INVOICE_RENDERER)


def _money(value):
    return f"{value:,.2f}"


def invoice_lines(invoice, hotel_settings):
    """The invoice laid out as fixed-width text lines."""
    guest = invoice.guest
    lines = [
        RULE,
        f"{hotel_settings.hotel_name.upper()} INVOICE".center(51),
        RULE,
        '',
        f"Invoice Number: {invoice.invoice_number}",
        f"Created Date: {invoice.created_at:%Y-%m-%d}",
        f"Status: {invoice.status}",
        '',
        THIN_RULE,
        'GUEST INFORMATION',
        THIN_RULE,
        f"Name: {guest.name}",
        f"Phone: {guest.phone}",
    ]
    if guest.email:
        lines.append(f"Email: {guest.email}")
    if guest.room:
        lines.append(f"Room: {guest.room.room_number}")

    lines += ['', THIN_RULE, 'INVOICE ITEMS', THIN_RULE]
    for item in invoice.invoice_items.select_related('order').all():
        lines += [
            f"  * {item.description}",
            f"    Quantity: {item.quantity}",
            f"    Unit Price: {_money(item.unit_price)}",
            f"    Total: {_money(item.total)}",
        ]
        if item.order is not None:
            lines.append('    Order Items:')
            for order_item in item.order.order_items.select_related('service', 'food_menu'):
                lines.append(
                    f"      - {order_item.item_name} (Qty: {order_item.quantity}) - {_money(order_item.subtotal)}"
                )
        lines.append('')

    rate = (invoice.tax_rate * 100).normalize()
    lines += [
        THIN_RULE,
        'PAYMENT SUMMARY',
        THIN_RULE,
        f"Subtotal:        {_money(invoice.subtotal)}",
        f"{hotel_settings.tax_label} ({rate:f}%):{' ' * 4}{_money(invoice.tax)}",
        RULE,
        f"Total Amount:    {_money(invoice.total)}",
        RULE,
        '',
        f"Paid on: {invoice.paid_at:%Y-%m-%d}" if invoice.paid_at else 'Payment Pending',
    ]
    if hotel_settings.bank_name or hotel_settings.account_number:
        lines += [
            '',
            'BANK DETAILS',
            f"Bank: {hotel_settings.bank_name}",
            f"Account Name: {hotel_settings.account_name}",
            f"Account Number: {hotel_settings.account_number}",
            f"IFSC: {hotel_settings.ifsc_code}",
        ]
    if hotel_settings.invoice_footer:
        lines += ['', hotel_settings.invoice_footer]
    lines.append(RULE)
    return lines


def render_text_invoice(invoice, hotel_settings):
    content = '\n'.join(invoice_lines(invoice, hotel_settings))
    return RenderedInvoice(content.encode('utf-8'), 'text/plain; charset=utf-8', 'txt')


def render_pdf_invoice(invoice, hotel_settings):
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setTitle(f"Invoice {invoice.invoice_number}")
    width, height = A4

    x = 48
    top = height - 48
    lh = 12

    y = top
    for line in invoice_lines(invoice, hotel_settings):
        if y < 48:
            c.showPage()
            y = top
        c.setFont('Courier', 9)
        c.drawString(x, y, line)
        y -= lh

    c.showPage()
    c.save()
    return RenderedInvoice(buf.getvalue(), 'application/pdf', 'pdf')
