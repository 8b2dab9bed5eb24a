# Recalculate Ratings Management Command
from decimal import Decimal

from django.core.management.base import BaseCommand, CommandError
from django.db.models import Avg, Count

from marketplace.models import ParkingSpot, Review


class Command(BaseCommand):
    help = 'Recalculates parking spot ratings from their reviews to ensure data consistency.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Run the command without saving changes to the database.',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=1000,
            help='Batch size for bulk processing.',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        batch_size = options['batch_size']

        if batch_size < 1:
            raise CommandError('--batch-size must be a positive integer.')

        self.recalculate_spots(dry_run, batch_size)

        if dry_run:
            self.stdout.write(self.style.SUCCESS('Dry run completed. No changes saved.'))
        else:
            self.stdout.write(self.style.SUCCESS('Recalculation completed successfully.'))

    def recalculate_spots(self, dry_run, batch_size):
        self.stdout.write('Recalculating spot ratings...')
        spots = ParkingSpot.objects.all().order_by('pk').iterator(chunk_size=batch_size)
        updates = []
        count = 0

        for spot in spots:
            stats = Review.objects.filter(spot=spot).aggregate(
                avg_rating=Avg('rating'),
                total=Count('id')
            )

            raw_avg = stats['avg_rating']
            if raw_avg is None:
                new_avg = Decimal('0.00')
            else:
                new_avg = Decimal(str(raw_avg)).quantize(Decimal('0.01'))

            new_total = stats['total'] or 0

            if abs(spot.rating_average - new_avg) > Decimal('0.001') or spot.total_reviews != new_total:
                if dry_run:
                    self.stdout.write(
                        f'  [DRY-RUN] Spot {spot.id} ({spot.spot_name}): '
                        f'Rating {spot.rating_average} -> {new_avg}, '
                        f'Count {spot.total_reviews} -> {new_total}'
                    )
                spot.rating_average = new_avg
                spot.total_reviews = new_total
                updates.append(spot)

            if len(updates) >= batch_size:
                if not dry_run:
                    ParkingSpot.objects.bulk_update(updates, ['rating_average', 'total_reviews'])
                updates = []

            count += 1
            if count % 100 == 0:
                self.stdout.write(f'Processed {count} spots...')

        if updates and not dry_run:
            ParkingSpot.objects.bulk_update(updates, ['rating_average', 'total_reviews'])

        self.stdout.write(f'Processed {count} spots total.')
