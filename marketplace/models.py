"""
Data model for the parking spot marketplace.
"""

from decimal import Decimal

from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator, MaxLengthValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

from .validators import (
    normalize_phone,
    validate_amenities,
    validate_latitude,
    validate_longitude,
    validate_payout_details,
    validate_phone_number,
    validate_profile_image,
    validate_spot_image,
)


def user_profile_image_upload_path(instance, filename):
    """
    Generate upload path for user profile images.

    Path format: profile_images/{user_id}/{filename}
    If user_id is not yet available (user not saved), uses 'temp' as placeholder.
    """
    user_id = instance.id if instance.id else 'temp'
    return f'profile_images/{user_id}/{filename}'


class User(AbstractUser):
    """
    Marketplace account.

    Additional fields:
    - email: Required, unique email address
    - phone_number: Unique phone number, usable as a login identifier
    - user_type: 'driver', 'homeowner' or 'admin' (fixed at registration)
    - identification_verified: Whether identity documents were checked
    - payout_details: Structured payout destination for homeowners
    - profile_image: Optional profile picture
    """

    DRIVER = 'driver'
    HOMEOWNER = 'homeowner'
    ADMIN = 'admin'

    USER_TYPE_CHOICES = [
        (DRIVER, 'Driver'),
        (HOMEOWNER, 'Homeowner'),
        (ADMIN, 'Administrator'),
    ]

    email = models.EmailField(
        _('email address'),
        unique=True,
        blank=False,
        null=False,
        error_messages={
            'unique': _('A user with that email already exists.'),
        },
        help_text=_('Required. Enter a valid email address.')
    )

    phone_number = models.CharField(
        _('phone number'),
        max_length=20,
        unique=True,
        blank=True,
        null=True,
        validators=[validate_phone_number],
        error_messages={
            'unique': _('A user with that phone number already exists.'),
        },
        help_text=_('Phone number in international format.')
    )

    user_type = models.CharField(
        _('user type'),
        max_length=10,
        choices=USER_TYPE_CHOICES,
        blank=False,
        null=False,
        help_text=_('Required. Driver, homeowner or administrator.')
    )

    identification_verified = models.BooleanField(
        _('identification verified'),
        default=False,
        help_text=_('Indicates whether identity documents have been verified.')
    )

    payout_details = models.JSONField(
        _('payout details'),
        default=dict,
        blank=True,
        validators=[validate_payout_details],
        help_text=_('Where homeowner earnings are paid out.')
    )

    profile_image = models.ImageField(
        _('profile image'),
        upload_to=user_profile_image_upload_path,
        blank=True,
        null=True,
        validators=[validate_profile_image],
        help_text=_('Optional. Upload a profile picture (max 5MB, formats: jpg, png, webp).')
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    REQUIRED_FIELDS = ['email', 'user_type']

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user_type'], name='user_type_idx'),
        ]

    def __str__(self):
        return self.email or self.username

    def is_driver(self):
        return self.user_type == self.DRIVER

    def is_homeowner(self):
        return self.user_type == self.HOMEOWNER

    def is_platform_admin(self):
        """Administrators by account type, plus Django superusers."""
        return self.user_type == self.ADMIN or self.is_superuser

    def clean(self):
        """
        Validate model fields.

        Ensures:
        - Email is provided and lowercase
        - Phone number is stored without separators
        - User type is provided and never changes after creation

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self.email:
            self.email = self.email.lower()

        if not self.email:
            raise ValidationError({
                'email': _('Email address is required.')
            })

        if not self.user_type:
            raise ValidationError({
                'user_type': _('User type is required.')
            })

        if self.pk is not None:
            original_type = (
                User.objects.filter(pk=self.pk)
                .values_list('user_type', flat=True)
                .first()
            )
            if original_type and original_type != self.user_type:
                raise ValidationError({
                    'user_type': _('User type cannot be changed after registration.')
                })

    def save(self, *args, **kwargs):
        """
        Normalize identifiers, validate updates and store the profile image
        under the user's id.
        """
        if self.email:
            self.email = self.email.lower()

        # Empty phone numbers are stored as NULL so the unique index allows many
        self.phone_number = normalize_phone(self.phone_number) or None

        # Creation skips full_clean so duplicate emails surface as IntegrityError
        if self.pk is not None:
            self.full_clean(exclude=['password'])

        if self.profile_image and not self.pk:
            profile_image_temp = self.profile_image
            self.profile_image = None
            super().save(*args, **kwargs)
            self.profile_image = profile_image_temp
            super().save(update_fields=['profile_image'])
        else:
            super().save(*args, **kwargs)


class ParkingSpot(models.Model):
    """
    A parking spot listed by a homeowner.

    A spot accepts bookings only while ``status`` is 'active' and
    ``is_available`` is True. New listings start as 'pending_verification'
    until an administrator reviews them.
    """

    STATUS_PENDING_VERIFICATION = 'pending_verification'
    STATUS_ACTIVE = 'active'
    STATUS_INACTIVE = 'inactive'
    STATUS_REJECTED = 'rejected'

    STATUS_CHOICES = [
        (STATUS_PENDING_VERIFICATION, 'Pending verification'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_INACTIVE, 'Inactive'),
        (STATUS_REJECTED, 'Rejected'),
    ]

    SPOT_TYPE_CHOICES = [
        ('private_driveway', 'Private driveway'),
        ('garage', 'Garage'),
        ('parking_lot', 'Parking lot'),
        ('street_parking', 'Street parking'),
        ('other', 'Other'),
    ]

    VEHICLE_SIZE_CHOICES = [
        ('small', 'Small'),
        ('medium', 'Medium'),
        ('large', 'Large'),
        ('oversized', 'Oversized'),
    ]

    homeowner = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='spots',
        help_text=_('Homeowner offering this spot')
    )

    spot_name = models.CharField(_('spot name'), max_length=200)

    description = models.TextField(_('description'), blank=True, default='')

    address_line_1 = models.CharField(_('address line 1'), max_length=255)

    address_line_2 = models.CharField(_('address line 2'), max_length=255, blank=True, default='')

    city = models.CharField(_('city'), max_length=100)

    sub_city = models.CharField(_('sub city'), max_length=100, blank=True, default='')

    woreda = models.CharField(_('woreda'), max_length=100, blank=True, default='')

    latitude = models.DecimalField(
        _('latitude'),
        max_digits=9,
        decimal_places=6,
        null=True,
        blank=True,
        validators=[validate_latitude]
    )

    longitude = models.DecimalField(
        _('longitude'),
        max_digits=9,
        decimal_places=6,
        null=True,
        blank=True,
        validators=[validate_longitude]
    )

    price_per_hour = models.DecimalField(
        _('price per hour'),
        max_digits=10,
        decimal_places=2,
        help_text=_('Hourly price in the platform currency')
    )

    spot_type = models.CharField(
        _('spot type'),
        max_length=20,
        choices=SPOT_TYPE_CHOICES,
        default='private_driveway'
    )

    vehicle_size_accommodated = models.CharField(
        _('vehicle size accommodated'),
        max_length=20,
        choices=VEHICLE_SIZE_CHOICES,
        default='medium'
    )

    amenities = models.JSONField(
        _('amenities'),
        default=list,
        blank=True,
        validators=[validate_amenities],
        help_text=_('List of amenity codes, e.g. ["covered", "cctv"]')
    )

    is_available = models.BooleanField(
        _('is available'),
        default=True,
        help_text=_('Homeowner toggle to pause new bookings')
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING_VERIFICATION
    )

    rating_average = models.DecimalField(
        _('rating average'),
        max_digits=3,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[
            MinValueValidator(Decimal('0.00')),
            MaxValueValidator(Decimal('5.00')),
        ],
        help_text=_('Average rating from 0.00 to 5.00')
    )

    total_reviews = models.PositiveIntegerField(_('total reviews'), default=0)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('parking spot')
        verbose_name_plural = _('parking spots')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['homeowner'], name='spot_homeowner_idx'),
            models.Index(fields=['status', 'is_available'], name='spot_status_available_idx'),
            models.Index(fields=['city'], name='spot_city_idx'),
        ]

    def __str__(self):
        return self.spot_name

    def accepts_bookings(self):
        return self.status == self.STATUS_ACTIVE and self.is_available

    def clean(self):
        """
        Validate model fields.

        Ensures:
        - Homeowner is a user with user_type='homeowner'
        - Spot name and first address line are not blank
        - Price per hour is greater than 0

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self.homeowner_id and not self.homeowner.is_homeowner():
            raise ValidationError({
                'homeowner': _('Only users with user_type="homeowner" can list parking spots.')
            })

        if not self.spot_name or not self.spot_name.strip():
            raise ValidationError({
                'spot_name': _('Spot name cannot be empty.')
            })

        if not self.address_line_1 or not self.address_line_1.strip():
            raise ValidationError({
                'address_line_1': _('Address cannot be empty.')
            })

        if self.price_per_hour is not None and self.price_per_hour <= 0:
            raise ValidationError({
                'price_per_hour': _('Price per hour must be greater than 0.')
            })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)


def spot_image_upload_path(instance, filename):
    """Path format: spot_images/{spot_id}/{filename}"""
    return f'spot_images/{instance.spot_id}/{filename}'


class SpotImage(models.Model):
    """Photo of a parking spot. At most one image per spot is primary."""

    spot = models.ForeignKey(
        ParkingSpot,
        on_delete=models.CASCADE,
        related_name='images'
    )

    image = models.ImageField(
        _('image'),
        upload_to=spot_image_upload_path,
        validators=[validate_spot_image],
        help_text=_('Spot photo (max 8MB, formats: jpg, png, webp).')
    )

    is_primary = models.BooleanField(_('is primary'), default=False)

    uploaded_at = models.DateTimeField(_('uploaded at'), auto_now_add=True)

    class Meta:
        verbose_name = _('spot image')
        verbose_name_plural = _('spot images')
        ordering = ['-is_primary', 'uploaded_at']

    def __str__(self):
        return f"Image {self.pk} for {self.spot}"

    def save(self, *args, **kwargs):
        self.full_clean()
        if self.is_primary:
            SpotImage.objects.filter(spot_id=self.spot_id, is_primary=True).exclude(
                pk=self.pk
            ).update(is_primary=False)
        super().save(*args, **kwargs)


class AvailabilitySlot(models.Model):
    """
    A window in which a spot can be booked.

    Unbooked slots of one spot never overlap. When a booking is made the
    covering slot is split so that a booked slot matches the booking range
    exactly. Slots are written only through ``marketplace.availability``.
    """

    spot = models.ForeignKey(
        ParkingSpot,
        on_delete=models.CASCADE,
        related_name='availability_slots'
    )

    start_time = models.DateTimeField(_('start time'))

    end_time = models.DateTimeField(_('end time'))

    is_booked = models.BooleanField(_('is booked'), default=False)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('availability slot')
        verbose_name_plural = _('availability slots')
        ordering = ['start_time']
        indexes = [
            models.Index(fields=['spot', 'start_time', 'end_time'], name='slot_spot_range_idx'),
            models.Index(fields=['spot', 'is_booked'], name='slot_spot_booked_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_time__gt=models.F('start_time')),
                name='availability_slot_end_after_start',
            ),
        ]

    def __str__(self):
        state = 'booked' if self.is_booked else 'open'
        return f"{self.spot_id}: {self.start_time:%Y-%m-%d %H:%M} - {self.end_time:%H:%M} ({state})"

    def clean(self):
        super().clean()
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValidationError({
                'end_time': _('End time must be after start time.')
            })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)


class Booking(models.Model):
    """
    A driver's reservation of a spot for a time range.

    ``booking_status`` moves only through ``marketplace.state_machine``;
    ``payment_status`` moves only through ``marketplace.payments``. The two
    are independent. Bookings are never deleted.
    """

    STATUS_PENDING = 'pending'
    STATUS_CONFIRMED = 'confirmed'
    STATUS_CHECKED_IN = 'checked_in'
    STATUS_CHECKED_OUT = 'checked_out'
    STATUS_COMPLETED = 'completed'
    STATUS_REJECTED = 'rejected'
    STATUS_CANCELLED_BY_DRIVER = 'cancelled_by_driver'
    STATUS_CANCELLED_BY_HOMEOWNER = 'cancelled_by_homeowner'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_CHECKED_IN, 'Checked in'),
        (STATUS_CHECKED_OUT, 'Checked out'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_CANCELLED_BY_DRIVER, 'Cancelled by driver'),
        (STATUS_CANCELLED_BY_HOMEOWNER, 'Cancelled by homeowner'),
    ]

    PAYMENT_PENDING = 'pending'
    PAYMENT_PAID = 'paid'
    PAYMENT_REFUNDED = 'refunded'
    PAYMENT_FAILED = 'failed'

    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_PENDING, 'Pending'),
        (PAYMENT_PAID, 'Paid'),
        (PAYMENT_REFUNDED, 'Refunded'),
        (PAYMENT_FAILED, 'Failed'),
    ]

    spot = models.ForeignKey(
        ParkingSpot,
        on_delete=models.PROTECT,
        related_name='bookings'
    )

    driver = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='driver_bookings',
        help_text=_('Driver who made the booking')
    )

    homeowner = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='homeowner_bookings',
        help_text=_('Owner of the spot when the booking was made')
    )

    start_time = models.DateTimeField(_('start time'))

    end_time = models.DateTimeField(_('end time'))

    total_price = models.DecimalField(
        _('total price'),
        max_digits=10,
        decimal_places=2
    )

    booking_status = models.CharField(
        _('booking status'),
        max_length=25,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING
    )

    payment_status = models.CharField(
        _('payment status'),
        max_length=10,
        choices=PAYMENT_STATUS_CHOICES,
        default=PAYMENT_PENDING
    )

    payment_reference = models.CharField(
        _('payment reference'),
        max_length=255,
        blank=True,
        default='',
        help_text=_('Gateway reference of the last applied payment outcome')
    )

    driver_check_in_time = models.DateTimeField(null=True, blank=True)
    driver_check_out_time = models.DateTimeField(null=True, blank=True)
    homeowner_confirm_time = models.DateTimeField(null=True, blank=True)
    homeowner_reject_time = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('booking')
        verbose_name_plural = _('bookings')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['spot', 'start_time', 'end_time'], name='booking_spot_range_idx'),
            models.Index(fields=['driver'], name='booking_driver_idx'),
            models.Index(fields=['homeowner'], name='booking_homeowner_idx'),
            models.Index(fields=['booking_status'], name='booking_status_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_time__gt=models.F('start_time')),
                name='booking_end_after_start',
            ),
            models.CheckConstraint(
                condition=models.Q(total_price__gt=0),
                name='booking_total_price_positive',
            ),
        ]

    def __str__(self):
        return f"Booking {self.pk} of spot {self.spot_id} by driver {self.driver_id}"

    def clean(self):
        """
        Validate model fields.

        Ensures:
        - Driver is a user with user_type='driver'
        - End time is after start time
        - Total price is greater than 0

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self.driver_id and not self.driver.is_driver():
            raise ValidationError({
                'driver': _('Only users with user_type="driver" can make bookings.')
            })

        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValidationError({
                'end_time': _('End time must be after start time.')
            })

        if self.total_price is not None and self.total_price <= 0:
            raise ValidationError({
                'total_price': _('Total price must be greater than 0.')
            })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)


class Transaction(models.Model):
    """
    Money movement related to the marketplace.

    Status transitions:
    - pending -> completed | failed
    - completed -> refunded
    """

    TYPE_BOOKING_PAYMENT = 'booking_payment'
    TYPE_PAYOUT = 'payout'
    TYPE_REFUND = 'refund'
    TYPE_PLATFORM_FEE = 'platform_fee'

    TYPE_CHOICES = [
        (TYPE_BOOKING_PAYMENT, 'Booking payment'),
        (TYPE_PAYOUT, 'Payout'),
        (TYPE_REFUND, 'Refund'),
        (TYPE_PLATFORM_FEE, 'Platform fee'),
    ]

    STATUS_PENDING = 'pending'
    STATUS_COMPLETED = 'completed'
    STATUS_FAILED = 'failed'
    STATUS_REFUNDED = 'refunded'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_REFUNDED, 'Refunded'),
    ]

    VALID_TRANSITIONS = {
        STATUS_PENDING: [STATUS_COMPLETED, STATUS_FAILED],
        STATUS_COMPLETED: [STATUS_REFUNDED],
        STATUS_FAILED: [],
        STATUS_REFUNDED: [],
    }

    CURRENCY_CHOICES = [
        ('ETB', 'Ethiopian birr'),
        ('USD', 'US dollar'),
    ]

    booking = models.ForeignKey(
        Booking,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='transactions'
    )

    payer = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='payments_made'
    )

    receiver = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='payments_received'
    )

    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='transactions_created'
    )

    amount = models.DecimalField(_('amount'), max_digits=10, decimal_places=2)

    currency = models.CharField(
        _('currency'),
        max_length=3,
        choices=CURRENCY_CHOICES,
        default='ETB'
    )

    transaction_type = models.CharField(
        _('transaction type'),
        max_length=20,
        choices=TYPE_CHOICES
    )

    gateway = models.CharField(_('gateway'), max_length=50, blank=True, default='')

    gateway_reference_id = models.CharField(
        _('gateway reference id'),
        max_length=255,
        blank=True,
        default=''
    )

    status = models.CharField(
        _('status'),
        max_length=10,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING
    )

    description = models.TextField(_('description'), blank=True, default='')

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('transaction')
        verbose_name_plural = _('transactions')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['booking', 'transaction_type'], name='txn_booking_type_idx'),
            models.Index(fields=['gateway_reference_id'], name='txn_gateway_ref_idx'),
            models.Index(fields=['status'], name='txn_status_idx'),
        ]

    def __str__(self):
        return f"{self.get_transaction_type_display()} {self.amount} {self.currency} ({self.status})"

    def can_transition_to(self, new_status):
        """
        Check if transition to new status is valid.

        Returns:
            bool: True if transition is valid or the status is unchanged
        """
        return new_status == self.status or new_status in self.VALID_TRANSITIONS.get(self.status, [])

    def clean(self):
        """
        Validate amount and status transitions.

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self.amount is not None and self.amount <= 0:
            raise ValidationError({
                'amount': _('Amount must be greater than 0.')
            })

        if self.pk is not None:
            old_status = (
                Transaction.objects.filter(pk=self.pk)
                .values_list('status', flat=True)
                .first()
            )
            if old_status and old_status != self.status:
                if self.status not in self.VALID_TRANSITIONS.get(old_status, []):
                    raise ValidationError({
                        'status': _(
                            f'Invalid transaction status transition from {old_status} to {self.status}.'
                        )
                    })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)


class Review(models.Model):
    """
    A driver's review of a completed booking.

    One review per booking. Reviews cannot be edited once submitted.
    """

    booking = models.OneToOneField(
        Booking,
        on_delete=models.CASCADE,
        related_name='review',
        help_text=_('Booking being reviewed (one review per booking)')
    )

    reviewer = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='reviews_given'
    )

    spot = models.ForeignKey(
        ParkingSpot,
        on_delete=models.CASCADE,
        related_name='reviews'
    )

    rating = models.PositiveSmallIntegerField(
        _('rating'),
        validators=[
            MinValueValidator(1, message=_('Rating must be at least 1.')),
            MaxValueValidator(5, message=_('Rating must be at most 5.'))
        ],
        help_text=_('Rating from 1 to 5 stars')
    )

    comment = models.TextField(
        _('comment'),
        blank=True,
        default='',
        validators=[MaxLengthValidator(1000)]
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('review')
        verbose_name_plural = _('reviews')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['spot', 'created_at'], name='review_spot_created_idx'),
            models.Index(fields=['reviewer'], name='review_reviewer_idx'),
        ]

    def __str__(self):
        return f"Review of spot {self.spot_id} by {self.reviewer_id} - {self.rating}★"

    def clean(self):
        """
        Validate model fields.

        Ensures:
        - Booking is completed
        - Reviewer is the booking's driver
        - Spot matches the booking's spot

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self.booking_id:
            booking = self.booking
            if booking.booking_status != Booking.STATUS_COMPLETED:
                raise ValidationError({
                    'booking': _('Only completed bookings can be reviewed.')
                })

            if self.reviewer_id and self.reviewer_id != booking.driver_id:
                raise ValidationError({
                    'reviewer': _('Only the driver of the booking can review it.')
                })

            if self.spot_id and self.spot_id != booking.spot_id:
                raise ValidationError({
                    'spot': _('Review spot must match the booking spot.')
                })

    def save(self, *args, **kwargs):
        """
        Validate and create the review.

        Uniqueness is left to the database so duplicate submissions raise
        IntegrityError.

        Raises:
            ValidationError: If the review already exists or fails validation
        """
        if not self._state.adding:
            raise ValidationError(_('Reviews cannot be modified once submitted.'))

        self.full_clean(validate_unique=False)
        super().save(*args, **kwargs)


class Notification(models.Model):
    """In-app message for a user about an event on one of their entities."""

    ENTITY_CHOICES = [
        ('booking', 'Booking'),
        ('spot', 'Spot'),
        ('review', 'Review'),
        ('transaction', 'Transaction'),
        ('user', 'User'),
        ('system', 'System'),
    ]

    recipient = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='notifications'
    )

    related_entity_type = models.CharField(
        _('related entity type'),
        max_length=20,
        choices=ENTITY_CHOICES,
        default='system'
    )

    related_entity_id = models.PositiveBigIntegerField(
        _('related entity id'),
        null=True,
        blank=True
    )

    message = models.TextField(_('message'))

    is_read = models.BooleanField(_('is read'), default=False)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('notification')
        verbose_name_plural = _('notifications')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['recipient', 'is_read'], name='notification_unread_idx'),
        ]

    def __str__(self):
        return f"To {self.recipient_id}: {self.message[:40]}"
