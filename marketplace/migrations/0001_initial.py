import decimal

import django.contrib.auth.models
import django.contrib.auth.validators
import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import marketplace.models
import marketplace.validators


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('username', models.CharField(error_messages={'unique': 'A user with that username already exists.'}, help_text='Required. 150 characters or fewer. Letters, digits and @/./+/-/_ only.', max_length=150, unique=True, validators=[django.contrib.auth.validators.UnicodeUsernameValidator()], verbose_name='username')),
                ('first_name', models.CharField(blank=True, max_length=150, verbose_name='first name')),
                ('last_name', models.CharField(blank=True, max_length=150, verbose_name='last name')),
                ('is_staff', models.BooleanField(default=False, help_text='Designates whether the user can log into this admin site.', verbose_name='staff status')),
                ('is_active', models.BooleanField(default=True, help_text='Designates whether this user should be treated as active. Unselect this instead of deleting accounts.', verbose_name='active')),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('email', models.EmailField(error_messages={'unique': 'A user with that email already exists.'}, help_text='Required. Enter a valid email address.', max_length=254, unique=True, verbose_name='email address')),
                ('phone_number', models.CharField(blank=True, error_messages={'unique': 'A user with that phone number already exists.'}, help_text='Phone number in international format.', max_length=20, null=True, unique=True, validators=[marketplace.validators.validate_phone_number], verbose_name='phone number')),
                ('user_type', models.CharField(choices=[('driver', 'Driver'), ('homeowner', 'Homeowner'), ('admin', 'Administrator')], help_text='Required. Driver, homeowner or administrator.', max_length=10, verbose_name='user type')),
                ('identification_verified', models.BooleanField(default=False, help_text='Indicates whether identity documents have been verified.', verbose_name='identification verified')),
                ('payout_details', models.JSONField(blank=True, default=dict, help_text='Where homeowner earnings are paid out.', validators=[marketplace.validators.validate_payout_details], verbose_name='payout details')),
                ('profile_image', models.ImageField(blank=True, help_text='Optional. Upload a profile picture (max 5MB, formats: jpg, png, webp).', null=True, upload_to=marketplace.models.user_profile_image_upload_path, validators=[marketplace.validators.validate_profile_image], verbose_name='profile image')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'verbose_name': 'user',
                'verbose_name_plural': 'users',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['user_type'], name='user_type_idx')],
            },
            managers=[
                ('objects', django.contrib.auth.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='ParkingSpot',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('spot_name', models.CharField(max_length=200, verbose_name='spot name')),
                ('description', models.TextField(blank=True, default='', verbose_name='description')),
                ('address_line_1', models.CharField(max_length=255, verbose_name='address line 1')),
                ('address_line_2', models.CharField(blank=True, default='', max_length=255, verbose_name='address line 2')),
                ('city', models.CharField(max_length=100, verbose_name='city')),
                ('sub_city', models.CharField(blank=True, default='', max_length=100, verbose_name='sub city')),
                ('woreda', models.CharField(blank=True, default='', max_length=100, verbose_name='woreda')),
                ('latitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True, validators=[marketplace.validators.validate_latitude], verbose_name='latitude')),
                ('longitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True, validators=[marketplace.validators.validate_longitude], verbose_name='longitude')),
                ('price_per_hour', models.DecimalField(decimal_places=2, help_text='Hourly price in the platform currency', max_digits=10, verbose_name='price per hour')),
                ('spot_type', models.CharField(choices=[('private_driveway', 'Private driveway'), ('garage', 'Garage'), ('parking_lot', 'Parking lot'), ('street_parking', 'Street parking'), ('other', 'Other')], default='private_driveway', max_length=20, verbose_name='spot type')),
                ('vehicle_size_accommodated', models.CharField(choices=[('small', 'Small'), ('medium', 'Medium'), ('large', 'Large'), ('oversized', 'Oversized')], default='medium', max_length=20, verbose_name='vehicle size accommodated')),
                ('amenities', models.JSONField(blank=True, default=list, help_text='List of amenity codes, e.g. ["covered", "cctv"]', validators=[marketplace.validators.validate_amenities], verbose_name='amenities')),
                ('is_available', models.BooleanField(default=True, help_text='Homeowner toggle to pause new bookings', verbose_name='is available')),
                ('status', models.CharField(choices=[('pending_verification', 'Pending verification'), ('active', 'Active'), ('inactive', 'Inactive'), ('rejected', 'Rejected')], default='pending_verification', max_length=20, verbose_name='status')),
                ('rating_average', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), help_text='Average rating from 0.00 to 5.00', max_digits=3, validators=[django.core.validators.MinValueValidator(decimal.Decimal('0.00')), django.core.validators.MaxValueValidator(decimal.Decimal('5.00'))], verbose_name='rating average')),
                ('total_reviews', models.PositiveIntegerField(default=0, verbose_name='total reviews')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('homeowner', models.ForeignKey(help_text='Homeowner offering this spot', on_delete=django.db.models.deletion.CASCADE, related_name='spots', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'parking spot',
                'verbose_name_plural': 'parking spots',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['homeowner'], name='spot_homeowner_idx'),
                    models.Index(fields=['status', 'is_available'], name='spot_status_available_idx'),
                    models.Index(fields=['city'], name='spot_city_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SpotImage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('image', models.ImageField(help_text='Spot photo (max 8MB, formats: jpg, png, webp).', upload_to=marketplace.models.spot_image_upload_path, validators=[marketplace.validators.validate_spot_image], verbose_name='image')),
                ('is_primary', models.BooleanField(default=False, verbose_name='is primary')),
                ('uploaded_at', models.DateTimeField(auto_now_add=True, verbose_name='uploaded at')),
                ('spot', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='images', to='marketplace.parkingspot')),
            ],
            options={
                'verbose_name': 'spot image',
                'verbose_name_plural': 'spot images',
                'ordering': ['-is_primary', 'uploaded_at'],
            },
        ),
        migrations.CreateModel(
            name='AvailabilitySlot',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('start_time', models.DateTimeField(verbose_name='start time')),
                ('end_time', models.DateTimeField(verbose_name='end time')),
                ('is_booked', models.BooleanField(default=False, verbose_name='is booked')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('spot', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='availability_slots', to='marketplace.parkingspot')),
            ],
            options={
                'verbose_name': 'availability slot',
                'verbose_name_plural': 'availability slots',
                'ordering': ['start_time'],
                'indexes': [
                    models.Index(fields=['spot', 'start_time', 'end_time'], name='slot_spot_range_idx'),
                    models.Index(fields=['spot', 'is_booked'], name='slot_spot_booked_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(end_time__gt=models.F('start_time')), name='availability_slot_end_after_start'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Booking',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('start_time', models.DateTimeField(verbose_name='start time')),
                ('end_time', models.DateTimeField(verbose_name='end time')),
                ('total_price', models.DecimalField(decimal_places=2, max_digits=10, verbose_name='total price')),
                ('booking_status', models.CharField(choices=[('pending', 'Pending'), ('confirmed', 'Confirmed'), ('checked_in', 'Checked in'), ('checked_out', 'Checked out'), ('completed', 'Completed'), ('rejected', 'Rejected'), ('cancelled_by_driver', 'Cancelled by driver'), ('cancelled_by_homeowner', 'Cancelled by homeowner')], default='pending', max_length=25, verbose_name='booking status')),
                ('payment_status', models.CharField(choices=[('pending', 'Pending'), ('paid', 'Paid'), ('refunded', 'Refunded'), ('failed', 'Failed')], default='pending', max_length=10, verbose_name='payment status')),
                ('payment_reference', models.CharField(blank=True, default='', help_text='Gateway reference of the last applied payment outcome', max_length=255, verbose_name='payment reference')),
                ('driver_check_in_time', models.DateTimeField(blank=True, null=True)),
                ('driver_check_out_time', models.DateTimeField(blank=True, null=True)),
                ('homeowner_confirm_time', models.DateTimeField(blank=True, null=True)),
                ('homeowner_reject_time', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('spot', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='bookings', to='marketplace.parkingspot')),
                ('driver', models.ForeignKey(help_text='Driver who made the booking', on_delete=django.db.models.deletion.PROTECT, related_name='driver_bookings', to=settings.AUTH_USER_MODEL)),
                ('homeowner', models.ForeignKey(help_text='Owner of the spot when the booking was made', on_delete=django.db.models.deletion.PROTECT, related_name='homeowner_bookings', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'booking',
                'verbose_name_plural': 'bookings',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['spot', 'start_time', 'end_time'], name='booking_spot_range_idx'),
                    models.Index(fields=['driver'], name='booking_driver_idx'),
                    models.Index(fields=['homeowner'], name='booking_homeowner_idx'),
                    models.Index(fields=['booking_status'], name='booking_status_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(end_time__gt=models.F('start_time')), name='booking_end_after_start'),
                    models.CheckConstraint(condition=models.Q(total_price__gt=0), name='booking_total_price_positive'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Transaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=10, verbose_name='amount')),
                ('currency', models.CharField(choices=[('ETB', 'Ethiopian birr'), ('USD', 'US dollar')], default='ETB', max_length=3, verbose_name='currency')),
                ('transaction_type', models.CharField(choices=[('booking_payment', 'Booking payment'), ('payout', 'Payout'), ('refund', 'Refund'), ('platform_fee', 'Platform fee')], max_length=20, verbose_name='transaction type')),
                ('gateway', models.CharField(blank=True, default='', max_length=50, verbose_name='gateway')),
                ('gateway_reference_id', models.CharField(blank=True, default='', max_length=255, verbose_name='gateway reference id')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('completed', 'Completed'), ('failed', 'Failed'), ('refunded', 'Refunded')], default='pending', max_length=10, verbose_name='status')),
                ('description', models.TextField(blank=True, default='', verbose_name='description')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('booking', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='transactions', to='marketplace.booking')),
                ('payer', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='payments_made', to=settings.AUTH_USER_MODEL)),
                ('receiver', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='payments_received', to=settings.AUTH_USER_MODEL)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='transactions_created', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'transaction',
                'verbose_name_plural': 'transactions',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['booking', 'transaction_type'], name='txn_booking_type_idx'),
                    models.Index(fields=['gateway_reference_id'], name='txn_gateway_ref_idx'),
                    models.Index(fields=['status'], name='txn_status_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Review',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('rating', models.PositiveSmallIntegerField(help_text='Rating from 1 to 5 stars', validators=[django.core.validators.MinValueValidator(1, message='Rating must be at least 1.'), django.core.validators.MaxValueValidator(5, message='Rating must be at most 5.')], verbose_name='rating')),
                ('comment', models.TextField(blank=True, default='', validators=[django.core.validators.MaxLengthValidator(1000)], verbose_name='comment')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('booking', models.OneToOneField(help_text='Booking being reviewed (one review per booking)', on_delete=django.db.models.deletion.CASCADE, related_name='review', to='marketplace.booking')),
                ('reviewer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='reviews_given', to=settings.AUTH_USER_MODEL)),
                ('spot', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='reviews', to='marketplace.parkingspot')),
            ],
            options={
                'verbose_name': 'review',
                'verbose_name_plural': 'reviews',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['spot', 'created_at'], name='review_spot_created_idx'),
                    models.Index(fields=['reviewer'], name='review_reviewer_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Notification',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('related_entity_type', models.CharField(choices=[('booking', 'Booking'), ('spot', 'Spot'), ('review', 'Review'), ('transaction', 'Transaction'), ('user', 'User'), ('system', 'System')], default='system', max_length=20, verbose_name='related entity type')),
                ('related_entity_id', models.PositiveBigIntegerField(blank=True, null=True, verbose_name='related entity id')),
                ('message', models.TextField(verbose_name='message')),
                ('is_read', models.BooleanField(default=False, verbose_name='is read')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('recipient', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'notification',
                'verbose_name_plural': 'notifications',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['recipient', 'is_read'], name='notification_unread_idx'),
                ],
            },
        ),
    ]
