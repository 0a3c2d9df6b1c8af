import logging
import math
import uuid
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Q, Sum
from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import mixins, viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from . import analytics
from .activity import log_activity
from .exceptions import Conflict, ValidationFailed
from .invoicing import (
    apply_invoice_status, bulk_update_invoice_status, generate_invoice_for_order,
    generate_invoice_for_orders, reconcile_uninvoiced_orders
)
from .models import (
    Room, Guest, Service, FoodMenu, Order, HotelSettings, Invoice, ActivityLog
)
from .permissions import (
    GUEST, IsAdmin, IsGuest, IsOwnerOrStaff, IsStaff, IsStaffOrReadOnly,
    get_guest, get_role, is_staff_role
)
from .rendering import get_invoice_renderer
from .serializers import (
    RoomSerializer, ServiceSerializer, FoodMenuSerializer,
    GuestSerializer, GuestDetailSerializer, GuestUpdateSerializer, CheckInSerializer,
    OrderSerializer, OrderCreateSerializer, OrderStatusSerializer,
    InvoiceSerializer, InvoiceStatusSerializer, InvoiceGenerateSerializer,
    BulkInvoiceSerializer, BulkInvoiceStatusSerializer,
    HotelSettingsSerializer, ActivityLogSerializer, RevenueAnalyticsQuerySerializer
)

logger = logging.getLogger(__name__)

TRUTHY = ('1', 'true', 'yes', 'on')


class RoomViewSet(viewsets.ModelViewSet):
    queryset = Room.objects.all()
    serializer_class = RoomSerializer
    permission_classes = [IsStaffOrReadOnly]

    def get_queryset(self):
        queryset = super().get_queryset()

        room_status = self.request.query_params.get('status', None)
        if room_status:
            queryset = queryset.filter(status=room_status.upper())

        return queryset

    @action(detail=False, methods=['get'])
    def available(self, request):
        """Get all available rooms"""
        rooms = Room.objects.filter(status='AVAILABLE')
        serializer = self.get_serializer(rooms, many=True)
        return Response(serializer.data)


class CatalogViewSetMixin:
    permission_classes = [IsStaffOrReadOnly]

    def get_queryset(self):
        queryset = super().get_queryset()

        # Guests only ever see what they can order
        if not is_staff_role(self.request.user):
            queryset = queryset.filter(is_available=True)

        category = self.request.query_params.get('category', None)
        if category:
            queryset = queryset.filter(category=category)

        available = self.request.query_params.get('available', None)
        if available is not None:
            queryset = queryset.filter(is_available=available.lower() == 'true')

        return queryset

    @action(detail=False, methods=['get'])
    def categories(self, request):
        """Get list of all categories"""
        categories = self.get_queryset().order_by('category').values_list('category', flat=True).distinct()
        return Response(list(categories))


class ServiceViewSet(CatalogViewSetMixin, viewsets.ModelViewSet):
    queryset = Service.objects.all()
    serializer_class = ServiceSerializer


class FoodMenuViewSet(CatalogViewSetMixin, viewsets.ModelViewSet):
    queryset = FoodMenu.objects.all()
    serializer_class = FoodMenuSerializer


class GuestViewSet(mixins.ListModelMixin,
                   mixins.RetrieveModelMixin,
                   mixins.DestroyModelMixin,
                   viewsets.GenericViewSet):
    queryset = Guest.objects.select_related('room')
    serializer_class = GuestSerializer

    def get_permissions(self):
        if self.action == 'me':
            return [IsGuest()]
        if self.action == 'destroy':
            return [IsAdmin()]
        return [IsStaff()]

    def get_queryset(self):
        queryset = super().get_queryset()

        is_active = self.request.query_params.get('is_active', None)
        if is_active is not None:
            queryset = queryset.filter(is_active=is_active.lower() == 'true')

        search = self.request.query_params.get('q', None)
        if search:
            queryset = queryset.filter(Q(name__icontains=search) | Q(phone__icontains=search))

        return queryset

    def retrieve(self, request, pk=None):
        guest = self.get_object()
        guest.total_spent = guest.orders.filter(status='COMPLETED').aggregate(
            total=Sum('total_amount')
        )['total'] or Decimal('0.00')
        guest.pending_orders = guest.orders.filter(status__in=Order.ACTIVE_STATUSES).count()
        guest.unpaid_invoices = guest.invoices.filter(status__in=Invoice.OPEN_STATUSES).count()
        return Response(GuestDetailSerializer(guest).data)

    def create(self, request):
        """Check a guest in and occupy their room"""
        serializer = CheckInSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if Guest.objects.filter(phone=data['phone']).exists():
            raise Conflict('A guest with this phone number already exists')

        with transaction.atomic():
            room = Room.objects.select_for_update().filter(pk=data['room_id']).first()
            if room is None:
                raise ValidationFailed('Room not found')
            if room.status != 'AVAILABLE':
                raise ValidationFailed(f"Room {room.room_number} is not available")

            guest_id = uuid.uuid4()
            user = get_user_model().objects.create_user(username=f"guest-{guest_id}")
            guest = Guest.objects.create(
                id=guest_id,
                user=user,
                name=data['name'],
                phone=data['phone'],
                email=data.get('email') or None,
                room=room,
                check_out_date=data.get('check_out_date'),
            )
            room.status = 'OCCUPIED'
            room.save(update_fields=['status'])

        logger.info('Checked in guest %s to room %s', guest.pk, room.room_number)
        log_activity(
            request.user, 'CREATE', 'guest',
            f"Checked in {guest.name} to Room {room.room_number}",
            entity_id=guest.pk
        )
        return Response(GuestSerializer(guest).data, status=status.HTTP_201_CREATED)

    def update(self, request, pk=None, partial=False):
        """Edit a guest's contact details, planned checkout or active flag"""
        guest = self.get_object()
        serializer = GuestUpdateSerializer(data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        phone = data.get('phone')
        if phone and phone != guest.phone and Guest.objects.filter(phone=phone).exists():
            raise Conflict('A guest with this phone number already exists')

        for field, value in data.items():
            if field == 'email':
                value = value or None
            setattr(guest, field, value)
        guest.save()

        log_activity(
            request.user, 'UPDATE', 'guest',
            f"Updated guest {guest.name}",
            entity_id=guest.pk,
            metadata={'fields': sorted(data)}
        )
        return Response(GuestSerializer(guest).data)

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk, partial=True)

    @action(detail=True, methods=['post'])
    def checkout(self, request, pk=None):
        """Check a guest out and release their room for cleaning"""
        guest = self.get_object()
        if not guest.is_active:
            raise ValidationFailed('Guest is already checked out')

        total_spent = guest.orders.aggregate(total=Sum('total_amount'))['total'] or Decimal('0.00')
        total_orders = guest.orders.count()
        room = guest.room
        now = timezone.now()

        with transaction.atomic():
            guest.is_active = False
            guest.check_out_date = now
            guest.room = None
            guest.save()

            if room is not None:
                room.status = 'CLEANING'
                room.save(update_fields=['status'])

        stay_days = max(1, math.ceil((now - guest.check_in_date).total_seconds() / 86400))
        room_number = room.room_number if room else 'N/A'
        logger.info('Checked out guest %s from room %s', guest.pk, room_number)
        log_activity(
            request.user, 'UPDATE', 'guest',
            f"Checked out {guest.name} from Room {room_number}",
            entity_id=guest.pk
        )

        data = GuestSerializer(guest).data
        data['summary'] = {
            'stay_duration': stay_days,
            'total_orders': total_orders,
            'total_spent': total_spent,
        }
        return Response(data)

    def destroy(self, request, pk=None):
        guest = self.get_object()
        user = guest.user

        with transaction.atomic():
            if guest.room_id:
                Room.objects.filter(pk=guest.room_id).update(status='CLEANING')
            # Orders and invoices go with the guest
            guest.delete()
            if user is not None:
                user.delete()

        log_activity(request.user, 'DELETE', 'guest', f"Deleted guest {guest.name}", entity_id=pk)
        return Response({'message': 'Guest deleted successfully'})

    @action(detail=False, methods=['get'])
    def me(self, request):
        """Get the signed-in guest's own profile"""
        return Response(GuestSerializer(get_guest(request.user)).data)


class OrderViewSet(mixins.ListModelMixin,
                   mixins.RetrieveModelMixin,
                   viewsets.GenericViewSet):
    queryset = Order.objects.select_related('guest', 'guest__room').prefetch_related(
        'order_items__service', 'order_items__food_menu'
    )
    serializer_class = OrderSerializer
    permission_classes = [IsOwnerOrStaff]

    def get_permissions(self):
        if self.action == 'create':
            return [IsGuest()]
        if self.action in ('update_status', 'active'):
            return [IsStaff()]
        return super().get_permissions()

    def get_queryset(self):
        queryset = super().get_queryset()

        # Guests only list their own orders
        if self.action == 'list' and get_role(self.request.user) == GUEST:
            queryset = queryset.filter(guest=get_guest(self.request.user))

        order_status = self.request.query_params.get('status', None)
        if order_status:
            queryset = queryset.filter(status=order_status.upper())

        order_type = self.request.query_params.get('order_type', None)
        if order_type:
            queryset = queryset.filter(order_type=order_type.upper())

        guest = self.request.query_params.get('guest', None)
        if guest and is_staff_role(self.request.user):
            queryset = queryset.filter(guest_id=guest)

        return queryset

    def create(self, request):
        guest = get_guest(request.user)
        serializer = OrderCreateSerializer(data=request.data, context={'guest': guest})
        serializer.is_valid(raise_exception=True)
        order = serializer.save()

        logger.info('Guest %s placed order %s (%s, total=%s)', guest.pk, order.pk, order.order_type, order.total_amount)
        log_activity(
            request.user, 'CREATE', 'order',
            f"{guest.name} placed a {order.order_type.lower()} order",
            entity_id=order.pk,
            metadata={'total_amount': str(order.total_amount)}
        )
        order = self.get_queryset().get(pk=order.pk)
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['patch'])
    def update_status(self, request, pk=None):
        """Advance an order through its lifecycle"""
        serializer = OrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data['status']

        order = self.get_object()
        with transaction.atomic():
            order = Order.objects.select_for_update().get(pk=order.pk)
            if order.is_terminal:
                raise ValidationFailed(f"Order is already {order.status}")
            if not order.can_transition_to(new_status):
                raise ValidationFailed(f"Cannot change order status from {order.status} to {new_status}")
            previous_status = order.status
            order.status = new_status
            order.save(update_fields=['status', 'updated_at'])

        logger.info('Order %s moved %s -> %s', order.pk, previous_status, new_status)
        log_activity(
            request.user, 'STATUS_CHANGE', 'order',
            f"Order #{order.short_id} changed from {previous_status} to {new_status}",
            entity_id=order.pk,
            metadata={'from': previous_status, 'to': new_status}
        )

        if new_status == 'COMPLETED':
            self._invoice_completed_order(order, request.user)

        order = self.get_queryset().get(pk=order.pk)
        return Response(OrderSerializer(order).data)

    def _invoice_completed_order(self, order, user):
        # The status change is already committed; a failure here leaves the
        # order for reconcile_invoices to pick up.
        try:
            invoice = generate_invoice_for_order(order)
        except Exception:
            logger.exception('Automatic invoice generation failed for order %s', order.pk)
            return None

        log_activity(
            user, 'CREATE', 'invoice',
            f"Invoice {invoice.invoice_number} generated for Order #{order.short_id}",
            entity_id=invoice.pk
        )
        return invoice

    def _cancel(self, request, order):
        with transaction.atomic():
            order = Order.objects.select_for_update().get(pk=order.pk)
            if get_role(request.user) == GUEST and order.status != 'PENDING':
                raise ValidationFailed('Cannot cancel order that is already in progress')
            if not order.can_transition_to('CANCELLED'):
                raise ValidationFailed(f"Cannot cancel an order that is {order.status}")
            previous_status = order.status
            order.status = 'CANCELLED'
            order.save(update_fields=['status', 'updated_at'])

        logger.info('Order %s cancelled (was %s)', order.pk, previous_status)
        log_activity(
            request.user, 'STATUS_CHANGE', 'order',
            f"Order #{order.short_id} cancelled",
            entity_id=order.pk,
            metadata={'from': previous_status, 'to': 'CANCELLED'}
        )
        return order

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        """Cancel an order"""
        order = self._cancel(request, self.get_object())
        order = self.get_queryset().get(pk=order.pk)
        return Response(OrderSerializer(order).data)

    def destroy(self, request, pk=None):
        self._cancel(request, self.get_object())
        return Response({'message': 'Order cancelled successfully'})

    @action(detail=False, methods=['get'])
    def active(self, request):
        """Get all active orders (pending, accepted or in progress)"""
        orders = self.get_queryset().filter(status__in=Order.ACTIVE_STATUSES)
        serializer = self.get_serializer(orders, many=True)
        return Response(serializer.data)


class InvoiceViewSet(mixins.ListModelMixin,
                     mixins.RetrieveModelMixin,
                     viewsets.GenericViewSet):
    queryset = Invoice.objects.select_related('guest', 'guest__room').prefetch_related(
        'invoice_items__order'
    )
    serializer_class = InvoiceSerializer
    permission_classes = [IsOwnerOrStaff]

    def get_permissions(self):
        if self.action in ('create', 'update', 'partial_update', 'generate', 'bulk_status', 'reconcile'):
            return [IsStaff()]
        return super().get_permissions()

    def get_queryset(self):
        queryset = super().get_queryset()

        if self.action == 'list' and get_role(self.request.user) == GUEST:
            queryset = queryset.filter(guest=get_guest(self.request.user))

        guest = self.request.query_params.get('guest', None)
        if guest and is_staff_role(self.request.user):
            queryset = queryset.filter(guest_id=guest)

        invoice_status = self.request.query_params.get('status', None)
        if invoice_status:
            queryset = queryset.filter(status=invoice_status.upper())

        return queryset

    def create(self, request):
        """Bundle several completed orders of a guest into one invoice"""
        serializer = BulkInvoiceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        guest = get_object_or_404(Guest, pk=serializer.validated_data['guest_id'])

        invoice = generate_invoice_for_orders(guest, serializer.validated_data['order_ids'])

        log_activity(
            request.user, 'CREATE', 'invoice',
            f"Invoice {invoice.invoice_number} generated for {guest.name}",
            entity_id=invoice.pk,
            metadata={'orders': [str(pk) for pk in serializer.validated_data['order_ids']]}
        )
        invoice = self.get_queryset().get(pk=invoice.pk)
        return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)

    def update(self, request, pk=None, partial=False):
        invoice = self.get_object()
        serializer = InvoiceStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        previous_status = invoice.status
        invoice = apply_invoice_status(
            invoice,
            serializer.validated_data.get('status'),
            paid_at=serializer.validated_data.get('paid_at'),
        )

        logger.info('Invoice %s status %s -> %s', invoice.invoice_number, previous_status, invoice.status)
        log_activity(
            request.user, 'STATUS_CHANGE', 'invoice',
            f"Invoice {invoice.invoice_number} changed from {previous_status} to {invoice.status}",
            entity_id=invoice.pk,
            metadata={'from': previous_status, 'to': invoice.status}
        )
        invoice = self.get_queryset().get(pk=invoice.pk)
        return Response(InvoiceSerializer(invoice).data)

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk, partial=True)

    @action(detail=False, methods=['post'])
    def generate(self, request):
        """Generate (or fetch) the invoice for one completed order"""
        serializer = InvoiceGenerateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = get_object_or_404(Order, pk=serializer.validated_data['order_id'])

        if order.status != 'COMPLETED':
            raise ValidationFailed('Only completed orders can be invoiced')

        invoice = generate_invoice_for_order(order)
        log_activity(
            request.user, 'CREATE', 'invoice',
            f"Invoice {invoice.invoice_number} generated for Order #{order.short_id}",
            entity_id=invoice.pk
        )
        invoice = self.get_queryset().get(pk=invoice.pk)
        return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'])
    def bulk_status(self, request):
        """Mark several invoices paid or cancelled, reporting each outcome"""
        serializer = BulkInvoiceStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = bulk_update_invoice_status(
            serializer.validated_data['ids'],
            serializer.validated_data['action']
        )

        log_activity(
            request.user, 'STATUS_CHANGE', 'invoice',
            f"Bulk {serializer.validated_data['action']}: {result['succeeded']} succeeded, {result['failed']} failed",
            metadata={'succeeded': result['succeeded'], 'failed': result['failed']}
        )
        return Response(result)

    @action(detail=False, methods=['post'])
    def reconcile(self, request):
        """Invoice every completed order that is still missing one"""
        generated, failed = reconcile_uninvoiced_orders()
        return Response({
            'generated': len(generated),
            'failed': len(failed),
            'invoice_numbers': [invoice.invoice_number for invoice in generated],
        })

    @action(detail=True, methods=['get'])
    def download(self, request, pk=None):
        """Download the rendered invoice"""
        invoice = self.get_object()
        rendered = get_invoice_renderer()(invoice, HotelSettings.load())

        preview = request.query_params.get('preview', '').lower() in TRUTHY
        disposition = 'inline' if preview else 'attachment'

        response = HttpResponse(rendered.content, content_type=rendered.content_type)
        response['Content-Disposition'] = (
            f'{disposition}; filename="invoice-{invoice.invoice_number}.{rendered.extension}"'
        )
        return response


class HotelSettingsView(APIView):

    def get_permissions(self):
        if self.request.method in ('PUT', 'PATCH'):
            return [IsAdmin()]
        return [IsStaff()]

    def get(self, request):
        return Response(HotelSettingsSerializer(HotelSettings.load()).data)

    def put(self, request):
        hotel_settings = HotelSettings.load()
        serializer = HotelSettingsSerializer(hotel_settings, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()

        logger.info('Hotel settings updated: %s', ', '.join(sorted(serializer.validated_data)))
        log_activity(
            request.user, 'UPDATE', 'settings',
            'Updated hotel settings',
            entity_id=hotel_settings.pk,
            metadata={'fields': sorted(serializer.validated_data)}
        )
        return Response(serializer.data)

    def patch(self, request):
        return self.put(request)


class ActivityLogViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = ActivityLog.objects.select_related('user')
    serializer_class = ActivityLogSerializer
    permission_classes = [IsStaff]

    def get_queryset(self):
        queryset = super().get_queryset()

        entity = self.request.query_params.get('entity', None)
        if entity:
            queryset = queryset.filter(entity=entity)

        log_action = self.request.query_params.get('action', None)
        if log_action:
            queryset = queryset.filter(action=log_action.upper())

        try:
            start, end = analytics.parse_date_range(
                self.request.query_params.get('date_from'),
                self.request.query_params.get('date_to'),
            )
        except ValueError as exc:
            raise ValidationFailed(str(exc))
        if start is not None:
            queryset = queryset.filter(created_at__gte=start)
        if end is not None:
            queryset = queryset.filter(created_at__lte=end)

        return queryset


class AnalyticsViewSet(viewsets.ViewSet):
    permission_classes = [IsStaff]

    @action(detail=False, methods=['get'])
    def revenue(self, request):
        """Revenue KPIs, comparison, time series and breakdowns"""
        query = RevenueAnalyticsQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        start, end = analytics.parse_date_range(
            query.validated_data.get('date_from'),
            query.validated_data.get('date_to'),
        )
        report = analytics.revenue_report(start, end, query.validated_data['group_by'])
        return Response(report)

    @action(detail=False, methods=['get'])
    def dashboard(self, request):
        """Order, revenue, guest and room snapshot for the staff home screen"""
        summary = analytics.dashboard_summary()
        recent_orders = Order.objects.select_related('guest', 'guest__room').prefetch_related(
            'order_items__service', 'order_items__food_menu'
        )[:10]
        summary['recent_orders'] = OrderSerializer(recent_orders, many=True).data
        return Response(summary)
