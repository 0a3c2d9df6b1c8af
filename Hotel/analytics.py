"""
Revenue analytics and the staff dashboard, computed on demand from orders and invoices.

Sums are accumulated as ``Decimal`` and only rounded when the report is
assembled, so intermediate aggregation never compounds rounding error.
"""
from collections import defaultdict
from datetime import datetime, time, timedelta
from datetime import timezone as dt_timezone
from decimal import Decimal, ROUND_HALF_UP

from django.db.models import Count, Q, Sum
from django.utils import timezone

from .invoicing import quantize_money
from .models import FoodMenu, Guest, Invoice, InvoiceItem, Order, OrderItem, Room, Service

GROUP_BY_CHOICES = ('day', 'week', 'month')
TOP_LIMIT = 10
POPULAR_LIMIT = 5
ZERO = Decimal('0')


def percent(numerator, denominator):
    """Whole-number percentage, half rounded up; 0 when the denominator is 0."""
    if not denominator:
        return 0
    value = Decimal(numerator) * 100 / Decimal(denominator)
    return int(value.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def percent_change(current, previous):
    if not previous:
        return None
    return percent(Decimal(current) - Decimal(previous), previous)


def _as_date(value):
    if isinstance(value, str):
        return datetime.strptime(value, '%Y-%m-%d').date()
    return value


def parse_date_range(date_from=None, date_to=None):
    """
    Turn dates (or ``YYYY-MM-DD`` strings) into an inclusive UTC datetime window.

    ``date_to`` covers the whole day. Raises ``ValueError`` on bad input.
    """
    start = end = None
    if date_from:
        start = datetime.combine(_as_date(date_from), time.min, tzinfo=dt_timezone.utc)
    if date_to:
        end = datetime.combine(_as_date(date_to), time.max, tzinfo=dt_timezone.utc)
    if start and end and start > end:
        raise ValueError('date_from must not be after date_to')
    return start, end


def _range_filter(field, start, end):
    conditions = {}
    if start is not None:
        conditions[f"{field}__gte"] = start
    if end is not None:
        conditions[f"{field}__lte"] = end
    return Q(**conditions)


def bucket_key(moment, group_by):
    moment = moment.astimezone(dt_timezone.utc)
    if group_by == 'day':
        return moment.date().isoformat()
    if group_by == 'week':
        monday = moment.date() - timedelta(days=moment.weekday())
        return monday.isoformat()
    return f"{moment.year:04d}-{moment.month:02d}"


def build_time_series(invoices, group_by):
    buckets = defaultdict(lambda: {'revenue': ZERO, 'invoice_count': 0, 'tax_collected': ZERO})
    for invoice in invoices:
        if invoice.paid_at is None:
            continue
        bucket = buckets[bucket_key(invoice.paid_at, group_by)]
        bucket['revenue'] += invoice.total
        bucket['invoice_count'] += 1
        bucket['tax_collected'] += invoice.tax

    return [
        {
            'period': period,
            'revenue': quantize_money(data['revenue']),
            'invoice_count': data['invoice_count'],
            'tax_collected': quantize_money(data['tax_collected']),
        }
        for period, data in sorted(buckets.items())
    ]


def revenue_by_type(paid_invoices):
    items = InvoiceItem.objects.filter(invoice__in=paid_invoices).select_related('order')
    totals = defaultdict(lambda: {'revenue': ZERO, 'count': 0})
    for item in items:
        order_type = item.order.order_type if item.order else 'UNKNOWN'
        totals[order_type]['revenue'] += item.total
        totals[order_type]['count'] += 1

    grand_total = sum((data['revenue'] for data in totals.values()), ZERO)
    return [
        {
            'type': order_type,
            'revenue': quantize_money(data['revenue']),
            'count': data['count'],
            'percentage': percent(data['revenue'], grand_total),
        }
        for order_type, data in sorted(totals.items(), key=lambda kv: (-kv[1]['revenue'], kv[0]))
    ]


def revenue_by_category(completed_items):
    totals = defaultdict(lambda: {'revenue': ZERO, 'count': 0})
    for item in completed_items.select_related('food_menu', 'service'):
        category = None
        if item.food_menu is not None:
            category = item.food_menu.category
        elif item.service is not None:
            category = item.service.category
        category = category or 'Uncategorized'
        totals[category]['revenue'] += item.subtotal
        totals[category]['count'] += item.quantity

    ranked = sorted(totals.items(), key=lambda kv: (-kv[1]['revenue'], kv[0]))
    return [
        {
            'category': category,
            'revenue': quantize_money(data['revenue']),
            'count': data['count'],
        }
        for category, data in ranked[:TOP_LIMIT]
    ]


def _rank_items(grouped, metric, limit):
    """Sort (food_menu_id, service_id) rows by ``metric``; ties go food before service, then by id."""
    def sort_key(row):
        if row['food_menu_id'] is not None:
            kind, item_id = 0, row['food_menu_id']
        else:
            kind, item_id = 1, row['service_id']
        return (-(row[metric] or 0), kind, str(item_id))

    return sorted(grouped, key=sort_key)[:limit]


def _item_labels(rows):
    """Yield ``(row, name, type)`` with catalog names resolved in two queries."""
    food_names = dict(FoodMenu.objects.filter(
        pk__in=[r['food_menu_id'] for r in rows if r['food_menu_id']]
    ).values_list('id', 'name'))
    service_names = dict(Service.objects.filter(
        pk__in=[r['service_id'] for r in rows if r['service_id']]
    ).values_list('id', 'name'))

    for row in rows:
        if row['food_menu_id'] is not None:
            yield row, food_names.get(row['food_menu_id'], 'Unknown'), 'Food'
        else:
            yield row, service_names.get(row['service_id'], 'Unknown'), 'Service'


def top_items(completed_items):
    """Best sellers by revenue."""
    grouped = completed_items.values('food_menu_id', 'service_id').annotate(
        quantity=Sum('quantity'),
        revenue=Sum('subtotal'),
    )
    ranked = _rank_items(grouped, 'revenue', TOP_LIMIT)

    return [
        {
            'rank': rank,
            'name': name,
            'type': item_type,
            'quantity': row['quantity'] or 0,
            'revenue': quantize_money(row['revenue'] or ZERO),
        }
        for rank, (row, name, item_type) in enumerate(_item_labels(ranked), start=1)
    ]


def popular_items(limit=POPULAR_LIMIT):
    """Most ordered catalog entries by quantity, across every order."""
    grouped = OrderItem.objects.values('food_menu_id', 'service_id').annotate(
        quantity=Sum('quantity'),
    ).order_by()
    ranked = _rank_items(grouped, 'quantity', limit)

    return [
        {'name': name, 'type': item_type, 'count': row['quantity'] or 0}
        for row, name, item_type in _item_labels(ranked)
    ]


def top_guests(paid_invoices):
    grouped = paid_invoices.values('guest_id').annotate(
        total_spend=Sum('total'),
        invoice_count=Count('id'),
    )
    ranked = sorted(grouped, key=lambda row: (-(row['total_spend'] or ZERO), str(row['guest_id'])))[:TOP_LIMIT]

    guests = Guest.objects.select_related('room').in_bulk([row['guest_id'] for row in ranked])
    result = []
    for row in ranked:
        guest = guests.get(row['guest_id'])
        result.append({
            'guest_id': str(row['guest_id']),
            'name': guest.name if guest else 'Unknown',
            'room': guest.room.room_number if guest and guest.room else 'N/A',
            'order_count': row['invoice_count'],
            'total_spend': quantize_money(row['total_spend'] or ZERO),
        })
    return result


def invoice_breakdown(start, end):
    rows = (
        Invoice.objects.filter(_range_filter('created_at', start, end))
        .values('status')
        .annotate(count=Count('id'), total=Sum('total'))
        .order_by('status')
    )
    return [
        {'status': row['status'], 'count': row['count'], 'total': quantize_money(row['total'] or ZERO)}
        for row in rows
    ]


def occupancy():
    total_rooms = Room.objects.count()
    occupied_rooms = Room.objects.filter(status='OCCUPIED').count()
    return {
        'total_rooms': total_rooms,
        'occupied_rooms': occupied_rooms,
        'rate': percent(occupied_rooms, total_rooms),
    }


def dashboard_summary(now=None):
    """Current operational snapshot; "today" starts at midnight UTC."""
    now = now or timezone.now()
    start_of_day = datetime.combine(now.astimezone(dt_timezone.utc).date(), time.min, tzinfo=dt_timezone.utc)

    status_counts = dict(
        Order.objects.order_by().values('status').annotate(count=Count('id')).values_list('status', 'count')
    )
    paid = Invoice.objects.filter(status='PAID')
    total_revenue = paid.aggregate(total=Sum('total'))['total'] or ZERO
    today_revenue = paid.filter(paid_at__gte=start_of_day).aggregate(total=Sum('total'))['total'] or ZERO

    return {
        'orders': {
            'total': sum(status_counts.values()),
            'today': Order.objects.filter(created_at__gte=start_of_day).count(),
            'pending': status_counts.get('PENDING', 0),
            'accepted': status_counts.get('ACCEPTED', 0),
            'in_progress': status_counts.get('IN_PROGRESS', 0),
            'completed': status_counts.get('COMPLETED', 0),
            'cancelled': status_counts.get('CANCELLED', 0),
        },
        'revenue': {
            'total': quantize_money(total_revenue),
            'today': quantize_money(today_revenue),
        },
        'guests': {
            'active': Guest.objects.filter(is_active=True).count(),
            'total': Guest.objects.count(),
        },
        'rooms': occupancy(),
        'popular_items': popular_items(),
    }


def revenue_report(start=None, end=None, group_by='month'):
    """
    Build the full revenue analytics payload for an optional window.

    ``start``/``end`` are aware datetimes (inclusive); either may be None.
    """
    if group_by not in GROUP_BY_CHOICES:
        raise ValueError(f"group_by must be one of {', '.join(GROUP_BY_CHOICES)}")

    paid_invoices = Invoice.objects.filter(Q(status='PAID') & _range_filter('paid_at', start, end))
    orders_in_range = Order.objects.filter(_range_filter('created_at', start, end))

    paid_totals = paid_invoices.aggregate(revenue=Sum('total'), tax=Sum('tax'))
    revenue = paid_totals['revenue'] or ZERO
    tax_collected = paid_totals['tax'] or ZERO

    order_count = orders_in_range.count()
    completed_count = orders_in_range.filter(status='COMPLETED').count()

    pending_amount = Invoice.objects.filter(
        Q(status='PENDING') & _range_filter('created_at', start, end)
    ).aggregate(total=Sum('total'))['total'] or ZERO

    avg_order_value = revenue / order_count if order_count else ZERO

    comparison = None
    if start is not None and end is not None:
        span = end - start
        prev_start = start - span
        prev_end = start - timedelta(microseconds=1)
        prev_revenue = Invoice.objects.filter(
            status='PAID', paid_at__gte=prev_start, paid_at__lte=prev_end
        ).aggregate(total=Sum('total'))['total'] or ZERO
        prev_orders = Order.objects.filter(created_at__gte=prev_start, created_at__lte=prev_end).count()
        comparison = {
            'previous_from': prev_start,
            'previous_to': prev_end,
            'previous_revenue': quantize_money(prev_revenue),
            'previous_orders': prev_orders,
            'revenue_delta': percent_change(revenue, prev_revenue),
            'orders_delta': percent_change(order_count, prev_orders),
        }

    completed_items = OrderItem.objects.filter(
        Q(order__status='COMPLETED') & _range_filter('order__created_at', start, end)
    )

    return {
        'kpis': {
            'revenue': quantize_money(revenue),
            'orders': order_count,
            'avg_order_value': quantize_money(avg_order_value),
            'tax_collected': quantize_money(tax_collected),
            'pending_amount': quantize_money(pending_amount),
            'completion_rate': percent(completed_count, order_count),
        },
        'comparison': comparison,
        'time_series': build_time_series(paid_invoices.order_by('paid_at'), group_by),
        'revenue_by_type': revenue_by_type(paid_invoices),
        'revenue_by_category': revenue_by_category(completed_items),
        'invoice_breakdown': invoice_breakdown(start, end),
        'top_items': top_items(completed_items),
        'top_guests': top_guests(paid_invoices),
        'occupancy': occupancy(),
    }
