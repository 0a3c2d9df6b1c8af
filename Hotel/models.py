import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models


class Room(models.Model):
    STATUS_CHOICES = [
        ('AVAILABLE', 'Available'),
        ('OCCUPIED', 'Occupied'),
        ('CLEANING', 'Cleaning'),
        ('MAINTENANCE', 'Maintenance'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    room_number = models.CharField(max_length=20, unique=True)
    room_type = models.CharField(max_length=50, default='STANDARD')
    floor = models.IntegerField(default=1)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='AVAILABLE')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['room_number']

    def __str__(self):
        return f"Room {self.room_number} ({self.status})"


class Guest(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='guest_profile'
    )
    name = models.CharField(max_length=200)
    phone = models.CharField(max_length=20, unique=True)
    email = models.EmailField(blank=True, null=True)
    room = models.ForeignKey(Room, on_delete=models.SET_NULL, null=True, blank=True, related_name='guests')
    check_in_date = models.DateTimeField(auto_now_add=True)
    check_out_date = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-check_in_date']

    def __str__(self):
        return f"{self.name} ({self.phone})"


class CatalogItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=100)
    price = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal('0.01'))])
    is_available = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ['category', 'name']

    def __str__(self):
        return f"{self.name} - {self.price}"


class Service(CatalogItem):
    class Meta(CatalogItem.Meta):
        pass


class FoodMenu(CatalogItem):
    class Meta(CatalogItem.Meta):
        verbose_name = 'Food menu item'


class Order(models.Model):
    TYPE_CHOICES = [
        ('FOOD', 'Food'),
        ('SERVICE', 'Service'),
    ]

    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('ACCEPTED', 'Accepted'),
        ('IN_PROGRESS', 'In Progress'),
        ('COMPLETED', 'Completed'),
        ('CANCELLED', 'Cancelled'),
    ]

    ACTIVE_STATUSES = ['PENDING', 'ACCEPTED', 'IN_PROGRESS']
    TERMINAL_STATUSES = ['COMPLETED', 'CANCELLED']

    # Forward moves staff may make; anything else is rejected
    TRANSITIONS = {
        'PENDING': {'ACCEPTED', 'CANCELLED'},
        'ACCEPTED': {'IN_PROGRESS', 'CANCELLED'},
        'IN_PROGRESS': {'COMPLETED', 'CANCELLED'},
        'COMPLETED': set(),
        'CANCELLED': set(),
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    guest = models.ForeignKey(Guest, on_delete=models.CASCADE, related_name='orders')
    order_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='FOOD')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='PENDING')
    total_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Order #{self.short_id} - {self.guest.name}"

    @property
    def short_id(self):
        return str(self.id)[:8]

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def can_transition_to(self, new_status):
        return new_status in self.TRANSITIONS.get(self.status, set())

    @staticmethod
    def derive_order_type(items):
        """All-service orders are SERVICE; food-only and mixed orders are FOOD."""
        if items and all(item.service_id for item in items):
            return 'SERVICE'
        return 'FOOD'

    def calculate_total(self):
        total = sum((item.subtotal for item in self.order_items.all()), Decimal('0.00'))
        self.total_amount = total
        self.save(update_fields=['total_amount', 'updated_at'])
        return total


class OrderItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='order_items')
    service = models.ForeignKey(Service, on_delete=models.PROTECT, null=True, blank=True, related_name='order_items')
    food_menu = models.ForeignKey(FoodMenu, on_delete=models.PROTECT, null=True, blank=True, related_name='order_items')
    quantity = models.IntegerField(validators=[MinValueValidator(1)])
    price = models.DecimalField(max_digits=10, decimal_places=2)
    subtotal = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(service__isnull=False, food_menu__isnull=True)
                    | models.Q(service__isnull=True, food_menu__isnull=False)
                ),
                name='order_item_exactly_one_catalog_ref',
            ),
        ]

    def __str__(self):
        return f"{self.quantity}x {self.item_name}"

    @property
    def catalog_item(self):
        return self.service or self.food_menu

    @property
    def item_name(self):
        item = self.catalog_item
        return item.name if item else 'Item'

    def save(self, *args, **kwargs):
        if not self.price:
            self.price = self.catalog_item.price
        self.subtotal = self.price * self.quantity
        super().save(*args, **kwargs)


class HotelSettings(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    singleton_key = models.PositiveSmallIntegerField(default=1, unique=True, editable=False)
    hotel_name = models.CharField(max_length=200, default='NeboSync Hotel')
    address = models.TextField(blank=True)
    phone = models.CharField(max_length=30, blank=True)
    email = models.EmailField(blank=True)
    website = models.CharField(max_length=200, blank=True)
    tax_rate = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        default=Decimal('0.18'),
        validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('1'))]
    )
    tax_label = models.CharField(max_length=30, default='GST')
    tax_registration = models.CharField(max_length=100, blank=True)
    invoice_prefix = models.CharField(max_length=20, default='INV')
    invoice_footer = models.TextField(blank=True)
    bank_name = models.CharField(max_length=200, blank=True)
    account_number = models.CharField(max_length=50, blank=True)
    ifsc_code = models.CharField(max_length=20, blank=True)
    account_name = models.CharField(max_length=200, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = 'Hotel settings'

    def __str__(self):
        return f"{self.hotel_name} ({self.tax_label} {self.tax_rate})"

    @classmethod
    def load(cls):
        """Return the settings row, creating it from the configured defaults on first use."""
        settings_row, _ = cls.objects.get_or_create(
            singleton_key=1,
            defaults=dict(settings.HOTEL_SETTINGS_DEFAULTS)
        )
        return settings_row


class Invoice(models.Model):
    STATUS_CHOICES = [
        ('DRAFT', 'Draft'),
        ('PENDING', 'Pending'),
        ('PAID', 'Paid'),
        ('CANCELLED', 'Cancelled'),
    ]

    OPEN_STATUSES = ['DRAFT', 'PENDING']

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    guest = models.ForeignKey(Guest, on_delete=models.CASCADE, related_name='invoices')
    invoice_number = models.CharField(max_length=50, unique=True)
    subtotal = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    tax_rate = models.DecimalField(max_digits=5, decimal_places=4, default=0)
    tax = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='PENDING')
    paid_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Invoice {self.invoice_number} - {self.total}"


class InvoiceItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='invoice_items')
    order = models.ForeignKey(Order, on_delete=models.SET_NULL, null=True, blank=True, related_name='invoice_items')
    description = models.CharField(max_length=255)
    quantity = models.IntegerField(default=1, validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    total = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    def __str__(self):
        return f"{self.description} x{self.quantity}"

    def save(self, *args, **kwargs):
        self.total = self.unit_price * self.quantity
        super().save(*args, **kwargs)


class ActivityLog(models.Model):
    ACTION_CHOICES = [
        ('CREATE', 'Create'),
        ('UPDATE', 'Update'),
        ('DELETE', 'Delete'),
        ('STATUS_CHANGE', 'Status Change'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='activity_logs'
    )
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)
    entity = models.CharField(max_length=50)
    entity_id = models.CharField(max_length=64, blank=True)
    description = models.TextField()
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.action} {self.entity} - {self.description}"
