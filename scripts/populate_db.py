import os
import sys
import django
import random
from decimal import Decimal
from datetime import timedelta
from django.utils import timezone
from faker import Faker

# Add project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set up Django environment
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'parkshare.settings')
django.setup()

from marketplace import availability, bookings, payments  # noqa: E402
from marketplace.exceptions import MarketplaceError  # noqa: E402
from marketplace.models import Booking, ParkingSpot, Review, User  # noqa: E402
from marketplace.validators import AMENITY_CHOICES  # noqa: E402

fake = Faker()

SUB_CITIES = ['Bole', 'Kirkos', 'Yeka', 'Arada', 'Lideta', 'Nifas Silk', 'Kolfe Keranio']


def ethiopian_phone():
    return f"+2519{random.randint(10000000, 99999999)}"


def create_users(num_drivers=10, num_homeowners=5):
    print(f"Creating {num_drivers} drivers and {num_homeowners} homeowners...")

    drivers = []
    homeowners = []

    for user_type, count, bucket in (('driver', num_drivers, drivers), ('homeowner', num_homeowners, homeowners)):
        for _ in range(count):
            email = fake.unique.email()
            user = User.objects.create_user(
                username=email.split('@')[0],
                email=email,
                password='password123',
                first_name=fake.first_name(),
                last_name=fake.last_name(),
                phone_number=ethiopian_phone(),
                user_type=user_type,
            )
            bucket.append(user)

    print(f"Created {len(drivers)} drivers and {len(homeowners)} homeowners.")
    return drivers, homeowners


def create_spots(homeowners):
    print("Creating parking spots...")
    spots = []

    spot_types = [code for code, _ in ParkingSpot.SPOT_TYPE_CHOICES]
    sizes = [code for code, _ in ParkingSpot.VEHICLE_SIZE_CHOICES]

    for homeowner in homeowners:
        # Each homeowner lists 1-3 spots
        for _ in range(random.randint(1, 3)):
            sub_city = random.choice(SUB_CITIES)
            spot = ParkingSpot.objects.create(
                homeowner=homeowner,
                spot_name=f"{sub_city} {fake.street_suffix()} Parking",
                description=fake.paragraph(),
                address_line_1=fake.street_address(),
                city='Addis Ababa',
                sub_city=sub_city,
                latitude=Decimal(random.uniform(8.95, 9.07)).quantize(Decimal('0.000001')),
                longitude=Decimal(random.uniform(38.70, 38.85)).quantize(Decimal('0.000001')),
                price_per_hour=Decimal(random.uniform(10.0, 60.0)).quantize(Decimal('0.01')),
                spot_type=random.choice(spot_types),
                vehicle_size_accommodated=random.choice(sizes),
                amenities=random.sample(AMENITY_CHOICES, random.randint(0, 3)),
                # Most listings are verified; the rest wait for an administrator
                status=random.choice([ParkingSpot.STATUS_ACTIVE] * 4 + [ParkingSpot.STATUS_PENDING_VERIFICATION]),
            )
            spots.append(spot)

    print(f"Created {len(spots)} parking spots.")
    return spots


def create_availability(spots, days=7):
    print("Declaring availability windows...")
    count = 0
    today = timezone.now().replace(hour=0, minute=0, second=0, microsecond=0)

    for spot in spots:
        for day in range(1, days + 1):
            opens = today + timedelta(days=day, hours=random.randint(6, 9))
            closes = opens + timedelta(hours=random.randint(8, 12))
            availability.declare(spot.pk, spot.homeowner, opens, closes)
            count += 1

    print(f"Declared {count} availability windows.")


def create_bookings(drivers, spots):
    print("Creating bookings...")
    created = []
    conflicts = 0

    active_spots = [s for s in spots if s.accepts_bookings()]

    for driver in drivers:
        # Each driver attempts 0-3 bookings
        for _ in range(random.randint(0, 3)):
            spot = random.choice(active_spots)
            slot = spot.availability_slots.filter(is_booked=False).order_by('?').first()
            if slot is None:
                continue

            hours = random.randint(1, 4)
            start = slot.start_time + timedelta(hours=random.randint(0, 3))
            end = start + timedelta(hours=hours)
            try:
                booking = bookings.create_booking(
                    spot.pk, driver, start, end, spot.price_per_hour * hours
                )
            except MarketplaceError:
                conflicts += 1
                continue
            created.append(booking)

    print(f"Created {len(created)} bookings ({conflicts} attempts refused).")
    return created


def advance_bookings(created):
    print("Advancing booking lifecycles...")

    for booking in created:
        outcome = random.choice(['pending', 'confirmed', 'completed', 'rejected', 'cancelled'])

        if outcome == 'rejected':
            bookings.transition_booking(booking.pk, booking.homeowner, Booking.STATUS_REJECTED)
            continue
        if outcome == 'cancelled':
            bookings.transition_booking(booking.pk, booking.driver, Booking.STATUS_CANCELLED_BY_DRIVER)
            continue
        if outcome == 'pending':
            continue

        bookings.transition_booking(booking.pk, booking.homeowner, Booking.STATUS_CONFIRMED)
        if random.random() < 0.7:
            intent = payments.create_payment_intent(booking.pk, booking.driver)
            payments.confirm_payment(booking.pk, booking.driver, intent.reference)

        if outcome == 'completed':
            bookings.transition_booking(booking.pk, booking.driver, Booking.STATUS_CHECKED_IN)
            bookings.transition_booking(booking.pk, booking.driver, Booking.STATUS_CHECKED_OUT)
            bookings.transition_booking(booking.pk, booking.homeowner, Booking.STATUS_COMPLETED)


def create_reviews():
    print("Creating reviews...")
    reviews = []

    completed = Booking.objects.filter(booking_status=Booking.STATUS_COMPLETED).select_related('spot')

    for booking in completed:
        # 70% chance of leaving a review
        if random.random() < 0.7:
            review = Review.objects.create(
                booking=booking,
                reviewer=booking.driver,
                spot=booking.spot,
                rating=random.randint(3, 5),
                comment=fake.sentence(),
            )
            reviews.append(review)

    print(f"Created {len(reviews)} reviews.")
    return reviews


def main():
    print("Starting database population...")

    drivers, homeowners = create_users(num_drivers=20, num_homeowners=8)

    spots = create_spots(homeowners)

    create_availability(spots)

    created = create_bookings(drivers, spots)

    advance_bookings(created)

    create_reviews()

    print("Database population completed successfully!")


if __name__ == '__main__':
    main()
