# hotel/management/commands/seed.py

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from Hotel.models import Room, Service, FoodMenu, HotelSettings
from decimal import Decimal


class Command(BaseCommand):
    help = 'Seed the database with initial data'

    def add_arguments(self, parser):
        parser.add_argument('--password', default='changeme123', help='Password for the seeded staff and admin users')

    def handle(self, *args, **options):
        self.stdout.write('Seeding database...')

        # Clear existing catalog data; rooms and items still referenced by orders stay
        self.stdout.write('Clearing existing data...')
        FoodMenu.objects.filter(order_items__isnull=True).delete()
        Service.objects.filter(order_items__isnull=True).delete()
        Room.objects.filter(guests__isnull=True).delete()

        # Create Food Menu
        self.stdout.write('Creating food menu...')

        food_items = [
            # Breakfast
            {'name': 'Masala Omelette', 'category': 'Breakfast', 'price': Decimal('180.00'),
            'description': 'Three-egg omelette with onions, chillies and coriander'},
            {'name': 'Aloo Paratha', 'category': 'Breakfast', 'price': Decimal('150.00'),
            'description': 'Stuffed flatbread with curd and pickle'},
            {'name': 'Continental Breakfast', 'category': 'Breakfast', 'price': Decimal('450.00'),
            'description': 'Toast, eggs, sausages, juice and coffee'},

            # Main Course
            {'name': 'Paneer Butter Masala', 'category': 'Main Course', 'price': Decimal('320.00'),
            'description': 'Cottage cheese in a rich tomato gravy'},
            {'name': 'Chicken Biryani', 'category': 'Main Course', 'price': Decimal('380.00'),
            'description': 'Fragrant basmati rice layered with spiced chicken'},
            {'name': 'Dal Makhani', 'category': 'Main Course', 'price': Decimal('260.00'),
            'description': 'Slow-cooked black lentils with butter and cream'},
            {'name': 'Club Sandwich', 'category': 'Main Course', 'price': Decimal('280.00'),
            'description': 'Triple-decker sandwich with fries'},

            # Desserts
            {'name': 'Gulab Jamun', 'category': 'Desserts', 'price': Decimal('120.00'),
            'description': 'Milk dumplings in rose syrup'},
            {'name': 'Chocolate Brownie', 'category': 'Desserts', 'price': Decimal('180.00'),
            'description': 'Warm brownie with vanilla ice cream'},

            # Beverages
            {'name': 'Masala Chai', 'category': 'Beverages', 'price': Decimal('60.00'),
            'description': 'Spiced Indian tea'},
            {'name': 'Fresh Lime Soda', 'category': 'Beverages', 'price': Decimal('90.00'),
            'description': 'Sweet or salted'},
            {'name': 'Cold Coffee', 'category': 'Beverages', 'price': Decimal('150.00'),
            'description': 'Blended iced coffee'},
        ]

        for item_data in food_items:
            FoodMenu.objects.create(**item_data)

        self.stdout.write(self.style.SUCCESS(f'Created {len(food_items)} food items'))

        # Create Services
        self.stdout.write('Creating services...')

        services = [
            {'name': 'Laundry (per item)', 'category': 'Housekeeping', 'price': Decimal('50.00'),
            'description': 'Wash and iron, returned within 24 hours'},
            {'name': 'Extra Room Cleaning', 'category': 'Housekeeping', 'price': Decimal('200.00'),
            'description': 'Additional full room clean'},
            {'name': 'Swedish Massage', 'category': 'Spa', 'price': Decimal('2500.00'),
            'description': '60 minute full body massage'},
            {'name': 'Airport Drop', 'category': 'Transport', 'price': Decimal('1200.00'),
            'description': 'Sedan transfer to the airport'},
            {'name': 'City Tour', 'category': 'Transport', 'price': Decimal('3000.00'),
            'description': 'Half-day guided city tour'},
        ]

        for service_data in services:
            Service.objects.create(**service_data)

        self.stdout.write(self.style.SUCCESS(f'Created {len(services)} services'))

        # Create Rooms
        self.stdout.write('Creating rooms...')

        rooms_created = 0
        for floor in (1, 2, 3):
            for number in range(1, 6):
                room_type = 'SUITE' if number == 5 else 'DELUXE' if number >= 3 else 'STANDARD'
                _, created = Room.objects.get_or_create(
                    room_number=f'{floor}0{number}',
                    defaults={'floor': floor, 'room_type': room_type}
                )
                rooms_created += int(created)

        self.stdout.write(self.style.SUCCESS(f'Created {rooms_created} rooms'))

        # Settings and users
        HotelSettings.load()

        User = get_user_model()
        if not User.objects.filter(username='admin').exists():
            User.objects.create_superuser('admin', 'admin@nebosync.hotel', options['password'])
            self.stdout.write(self.style.SUCCESS('Created admin user'))
        if not User.objects.filter(username='staff').exists():
            User.objects.create_user('staff', 'staff@nebosync.hotel', options['password'], is_staff=True)
            self.stdout.write(self.style.SUCCESS('Created staff user'))

        self.stdout.write(self.style.SUCCESS('Database seeded successfully!'))
