from datetime import timedelta
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.utils import timezone
from resort_management.models import Resort, RoomType, Room, RoomDetail, User, Discount


class Command(BaseCommand):
    help = 'Populate database with sample resort data'

    def handle(self, *args, **options):
        users_data = [
            {'username': 'admin', 'email': 'admin@example.com', 'full_name': 'Resort Admin', 'role': User.Role.ADMIN},
            {'username': 'frontdesk', 'email': 'frontdesk@example.com', 'full_name': 'Front Desk', 'role': User.Role.STAFF},
            {'username': 'guest', 'email': 'guest@example.com', 'full_name': 'Demo Guest', 'role': User.Role.GUEST},
        ]
        for user_data in users_data:
            user, created = User.objects.get_or_create(username=user_data['username'], defaults=user_data)
            if created:
                user.set_password('changeme123')
                user.save(update_fields=['password_hash'])
            self.stdout.write(f"{'Created' if created else 'Found'} user: {user.username} ({user.role})")

        room_types = {}
        for name, price in [('Standard', '80.00'), ('Deluxe', '120.00'), ('Family Suite', '180.00'), ('Villa', '350.00')]:
            room_types[name], _ = RoomType.objects.get_or_create(name=name, defaults={'price_per_night': Decimal(price)})

        rooms_data = [
            {
                'resort': 'Sunset Bay Resort',
                'room_type': 'Standard',
                'location': 'Building A - 101',
                'address': '12 Beach Road',
                'description': 'Comfortable standard room with garden view',
                'num_bed': '1 queen',
            },
            {
                'resort': 'Sunset Bay Resort',
                'room_type': 'Deluxe',
                'location': 'Building A - 201',
                'address': '12 Beach Road',
                'description': 'Spacious deluxe room with ocean view',
                'num_bed': '1 king',
                'price_per_night': '135.00',
            },
            {
                'resort': 'Sunset Bay Resort',
                'room_type': 'Family Suite',
                'location': 'Building B - 301',
                'address': '12 Beach Road',
                'description': 'Large family suite with kitchenette',
                'num_bed': '2 queen',
            },
            {
                'resort': 'Pine Hill Retreat',
                'room_type': 'Villa',
                'location': 'Villa 7',
                'address': '4 Ridge Lane',
                'description': 'Private villa with pool and mountain views',
                'num_bed': '2 king',
            },
        ]

        for room_data in rooms_data:
            resort, _ = Resort.objects.get_or_create(name=room_data['resort'])
            room, created = Room.objects.get_or_create(
                resort=resort,
                location=room_data['location'],
                defaults={
                    'room_type': room_types[room_data['room_type']],
                    'address': room_data['address'],
                }
            )
            if created:
                RoomDetail.objects.create(
                    room=room,
                    description=room_data['description'],
                    num_bed=room_data['num_bed'],
                    price_per_night=Decimal(room_data['price_per_night']) if 'price_per_night' in room_data else None,
                )
                self.stdout.write(f'Created room: {resort.name} / {room.location}')
            else:
                self.stdout.write(f'Room {resort.name} / {room.location} already exists')

        now = timezone.now()
        discounts_data = [
            {'code': 'WELCOME10', 'name': 'Welcome 10%', 'discount_type': Discount.Type.PERCENT,
             'value': Decimal('10'), 'usage_limit': 100},
            {'code': 'SAVE50', 'name': '50 off any stay', 'discount_type': Discount.Type.FIXED,
             'value': Decimal('50'), 'usage_limit': 20},
        ]
        for discount_data in discounts_data:
            _, created = Discount.objects.get_or_create(
                code=discount_data['code'],
                defaults=dict(discount_data, valid_from=now, valid_until=now + timedelta(days=90)),
            )
            if created:
                self.stdout.write(f"Created discount: {discount_data['code']}")

        self.stdout.write(
            self.style.SUCCESS('Successfully populated database with sample data')
        )
