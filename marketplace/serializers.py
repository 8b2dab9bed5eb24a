"""
Serializers for the parking marketplace API.

Request serializers validate shape and field-level rules; the booking,
availability and payment services enforce cross-record rules.
"""

import re

from django.contrib.auth import get_user_model
from django.contrib.auth.hashers import make_password
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from rest_framework import serializers

from .availability import SlotUpdate
from .models import (
    AvailabilitySlot,
    Booking,
    Notification,
    ParkingSpot,
    Review,
    SpotImage,
    Transaction,
)
from .validators import normalize_phone, validate_payout_details

User = get_user_model()


def _image_url(serializer, field_file):
    if not field_file:
        return None
    request = serializer.context.get('request')
    if request is not None:
        return request.build_absolute_uri(field_file.url)
    return field_file.url


# ============================================================================
# Users
# ============================================================================

class UserRegistrationSerializer(serializers.ModelSerializer):
    """
    Serializer for user registration with comprehensive validation.

    Fields:
    - email: Required, unique, valid email format
    - phone_number: Required, unique, 10-15 digits
    - password / confirm_password: Required, must match and pass Django's validators
    - first_name / last_name: Required
    - user_type: 'driver' or 'homeowner' (administrators are not self-registered)
    """

    password = serializers.CharField(
        write_only=True,
        required=True,
        style={'input_type': 'password'}
    )
    confirm_password = serializers.CharField(
        write_only=True,
        required=True,
        style={'input_type': 'password'}
    )

    class Meta:
        model = User
        fields = ['id', 'email', 'phone_number', 'password', 'confirm_password',
                  'first_name', 'last_name', 'user_type', 'identification_verified',
                  'created_at']
        read_only_fields = ['id', 'identification_verified', 'created_at']
        extra_kwargs = {
            'email': {'required': True},
            'phone_number': {'required': True, 'allow_null': False, 'allow_blank': False},
            'first_name': {'required': True, 'allow_blank': False},
            'last_name': {'required': True, 'allow_blank': False},
            'user_type': {'required': True},
        }

    def validate_email(self, value):
        value = value.strip().lower()

        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError(
                "A user with that email already exists."
            )

        return value

    def validate_phone_number(self, value):
        cleaned = normalize_phone(value)

        if not re.match(r'^\+?\d{10,15}$', cleaned):
            raise serializers.ValidationError(
                "Phone number must be between 10-15 digits and may start with '+'."
            )

        if User.objects.filter(phone_number=cleaned).exists():
            raise serializers.ValidationError(
                "A user with that phone number already exists."
            )

        return cleaned

    def validate_password(self, value):
        try:
            validate_password(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(list(e.messages))

        return value

    def validate_user_type(self, value):
        valid_types = [User.DRIVER, User.HOMEOWNER]

        if value not in valid_types:
            raise serializers.ValidationError(
                f"User type must be one of: {', '.join(valid_types)}."
            )

        return value

    def validate(self, attrs):
        if attrs.get('password') != attrs.get('confirm_password'):
            raise serializers.ValidationError({
                'confirm_password': 'Password confirmation does not match.'
            })

        return attrs

    def create(self, validated_data):
        """
        Create user with hashed password.

        The username is derived from the email because AbstractUser requires
        one while login uses email or phone.
        """
        validated_data.pop('confirm_password', None)
        validated_data['password'] = make_password(validated_data.pop('password'))
        validated_data['identification_verified'] = False

        email = validated_data['email']
        base = email.split('@')[0][:140]
        username = base
        suffix = 1
        while User.objects.filter(username=username).exists():
            suffix += 1
            username = f'{base}{suffix}'
        validated_data['username'] = username

        with transaction.atomic():
            user = User.objects.create(**validated_data)

        return user


class LoginSerializer(serializers.Serializer):
    """
    Login with email or phone number and password.

    Minimal validation to prevent user enumeration attacks.
    Actual authentication happens in the view.
    """
    identifier = serializers.CharField(
        required=True,
        help_text='Email address or phone number'
    )
    password = serializers.CharField(
        required=True,
        write_only=True,
        style={'input_type': 'password'}
    )


class TokenRefreshSerializer(serializers.Serializer):
    """
    Refresh token exchange.

    The actual validation is performed by djangorestframework-simplejwt.
    """
    refresh = serializers.CharField(
        required=True,
        help_text='Valid refresh token to exchange for new access token'
    )


class LogoutSerializer(serializers.Serializer):
    refresh = serializers.CharField(required=True)


class UserProfileSerializer(serializers.ModelSerializer):
    """Read-only profile of the authenticated user."""

    profile_image_url = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id',
            'email',
            'phone_number',
            'first_name',
            'last_name',
            'user_type',
            'identification_verified',
            'payout_details',
            'profile_image_url',
            'created_at',
        ]
        read_only_fields = fields

    def get_profile_image_url(self, obj):
        return _image_url(self, obj.profile_image)


class UserProfileUpdateSerializer(serializers.ModelSerializer):
    """
    Profile updates.

    Only names, phone number, payout details and profile image can change.
    Email, user type and verification flags are never writable here.
    """

    class Meta:
        model = User
        fields = ['first_name', 'last_name', 'phone_number', 'payout_details', 'profile_image']
        extra_kwargs = {field: {'required': False} for field in fields}

    def validate_phone_number(self, value):
        if not value:
            return None

        cleaned = normalize_phone(value)
        if not re.match(r'^\+?\d{10,15}$', cleaned):
            raise serializers.ValidationError(
                "Phone number must be between 10-15 digits and may start with '+'."
            )

        taken = User.objects.filter(phone_number=cleaned)
        if self.instance is not None:
            taken = taken.exclude(pk=self.instance.pk)
        if taken.exists():
            raise serializers.ValidationError("A user with that phone number already exists.")

        return cleaned

    def validate_payout_details(self, value):
        try:
            validate_payout_details(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(list(e.messages))
        return value

    def validate(self, attrs):
        if 'payout_details' in attrs and attrs['payout_details'] and self.instance is not None:
            if not self.instance.is_homeowner():
                raise serializers.ValidationError({
                    'payout_details': 'Only homeowners can set payout details.'
                })
        return attrs


class UserSummarySerializer(serializers.ModelSerializer):
    """Public view of a user, nested in other responses."""

    class Meta:
        model = User
        fields = ['id', 'first_name', 'last_name', 'user_type']
        read_only_fields = fields


# ============================================================================
# Parking spots
# ============================================================================

class SpotImageSerializer(serializers.ModelSerializer):
    image_url = serializers.SerializerMethodField()

    class Meta:
        model = SpotImage
        fields = ['id', 'image', 'image_url', 'is_primary', 'uploaded_at']
        read_only_fields = ['id', 'image_url', 'uploaded_at']
        extra_kwargs = {'image': {'write_only': True}}

    def get_image_url(self, obj):
        return _image_url(self, obj.image)


class ParkingSpotSerializer(serializers.ModelSerializer):
    """Full spot representation used for list, detail and write responses."""

    homeowner = UserSummarySerializer(read_only=True)
    images = SpotImageSerializer(many=True, read_only=True)

    class Meta:
        model = ParkingSpot
        fields = [
            'id', 'homeowner', 'spot_name', 'description',
            'address_line_1', 'address_line_2', 'city', 'sub_city', 'woreda',
            'latitude', 'longitude', 'price_per_hour', 'spot_type',
            'vehicle_size_accommodated', 'amenities', 'is_available', 'status',
            'rating_average', 'total_reviews', 'images', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class ParkingSpotWriteSerializer(serializers.ModelSerializer):
    """
    Create and update a spot.

    New spots always start as 'pending_verification'; ``status`` is changed
    only through the admin verification endpoint.
    """

    class Meta:
        model = ParkingSpot
        fields = [
            'spot_name', 'description',
            'address_line_1', 'address_line_2', 'city', 'sub_city', 'woreda',
            'latitude', 'longitude', 'price_per_hour', 'spot_type',
            'vehicle_size_accommodated', 'amenities', 'is_available',
        ]

    def validate_spot_name(self, value):
        if not value or not value.strip():
            raise serializers.ValidationError("Spot name cannot be empty.")
        return value.strip()

    def validate_price_per_hour(self, value):
        if value <= 0:
            raise serializers.ValidationError("Price per hour must be greater than 0.")
        return value

    def create(self, validated_data):
        request = self.context['request']
        validated_data['homeowner'] = request.user
        validated_data['status'] = ParkingSpot.STATUS_PENDING_VERIFICATION
        return ParkingSpot.objects.create(**validated_data)


class SpotVerificationSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=ParkingSpot.STATUS_CHOICES)


# ============================================================================
# Availability
# ============================================================================

class AvailabilitySlotSerializer(serializers.ModelSerializer):
    class Meta:
        model = AvailabilitySlot
        fields = ['id', 'spot', 'start_time', 'end_time', 'is_booked', 'created_at', 'updated_at']
        read_only_fields = fields


class AvailabilityDeclareSerializer(serializers.Serializer):
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()


class AvailabilityQuerySerializer(serializers.Serializer):
    start = serializers.DateTimeField(required=False)
    end = serializers.DateTimeField(required=False)


class AvailabilityUpdateSerializer(serializers.Serializer):
    """Partial update of a slot, converted to a :class:`SlotUpdate`."""

    start_time = serializers.DateTimeField(required=False)
    end_time = serializers.DateTimeField(required=False)
    is_booked = serializers.BooleanField(required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError(
                "Provide at least one of start_time, end_time or is_booked."
            )
        return attrs

    def to_update(self):
        return SlotUpdate(**self.validated_data)


# ============================================================================
# Bookings
# ============================================================================

class BookingSerializer(serializers.ModelSerializer):
    """Booking as seen by its driver, its homeowner or an administrator."""

    spot_name = serializers.CharField(source='spot.spot_name', read_only=True)
    driver = UserSummarySerializer(read_only=True)
    homeowner = UserSummarySerializer(read_only=True)
    has_review = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            'id', 'spot', 'spot_name', 'driver', 'homeowner',
            'start_time', 'end_time', 'total_price',
            'booking_status', 'payment_status', 'payment_reference',
            'driver_check_in_time', 'driver_check_out_time',
            'homeowner_confirm_time', 'homeowner_reject_time',
            'has_review', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_has_review(self, obj):
        return hasattr(obj, 'review')


class BookingCreateSerializer(serializers.Serializer):
    """
    Booking request from a driver.

    Fields:
    - spot: Required, spot ID
    - start_time / end_time: Required, timezone-aware
    - total_price: Required, > 0
    """
    spot = serializers.IntegerField(min_value=1)
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    total_price = serializers.DecimalField(max_digits=10, decimal_places=2)

    def validate(self, attrs):
        if attrs['end_time'] <= attrs['start_time']:
            raise serializers.ValidationError({
                'end_time': 'End time must be after start time.'
            })
        if attrs['total_price'] <= 0:
            raise serializers.ValidationError({
                'total_price': 'Total price must be greater than 0.'
            })
        return attrs


class BookingStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Booking.STATUS_CHOICES)


class PaymentStatusUpdateSerializer(serializers.Serializer):
    payment_status = serializers.ChoiceField(choices=Booking.PAYMENT_STATUS_CHOICES)
    payment_reference = serializers.CharField(
        max_length=255, required=False, allow_blank=True, default=''
    )


class BookingOccupancySerializer(serializers.ModelSerializer):
    """Times and status only; no party details."""

    class Meta:
        model = Booking
        fields = ['id', 'start_time', 'end_time', 'booking_status']
        read_only_fields = fields


# ============================================================================
# Payments
# ============================================================================

class PaymentIntentRequestSerializer(serializers.Serializer):
    booking_id = serializers.IntegerField(min_value=1)


class PaymentConfirmSerializer(serializers.Serializer):
    booking_id = serializers.IntegerField(min_value=1)
    reference = serializers.CharField(max_length=255)


class PaymentWebhookSerializer(serializers.Serializer):
    booking_id = serializers.IntegerField(min_value=1)
    reference = serializers.CharField(max_length=255)
    outcome = serializers.ChoiceField(choices=['succeeded', 'failed'])


# ============================================================================
# Reviews
# ============================================================================

class ReviewSerializer(serializers.ModelSerializer):
    reviewer = UserSummarySerializer(read_only=True)

    class Meta:
        model = Review
        fields = ['id', 'booking', 'spot', 'reviewer', 'rating', 'comment', 'created_at']
        read_only_fields = fields


class ReviewCreateSerializer(serializers.Serializer):
    """
    Review submission for a completed booking.

    Fields:
    - booking_id: Required, ID of the completed booking
    - rating: Required, integer from 1-5
    - comment: Optional, up to 1000 characters
    """
    booking_id = serializers.IntegerField(min_value=1)
    rating = serializers.IntegerField(min_value=1, max_value=5)
    comment = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')


# ============================================================================
# Notifications
# ============================================================================

class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ['id', 'related_entity_type', 'related_entity_id', 'message', 'is_read', 'created_at']
        read_only_fields = fields


# ============================================================================
# Transactions
# ============================================================================

class TransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Transaction
        fields = [
            'id', 'booking', 'payer', 'receiver', 'created_by', 'amount', 'currency',
            'transaction_type', 'gateway', 'gateway_reference_id', 'status',
            'description', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class TransactionCreateSerializer(serializers.ModelSerializer):
    """Administrator-entered transaction."""

    class Meta:
        model = Transaction
        fields = [
            'booking', 'payer', 'receiver', 'amount', 'currency',
            'transaction_type', 'gateway', 'gateway_reference_id', 'status', 'description',
        ]
        extra_kwargs = {
            'booking': {'required': False, 'allow_null': True},
            'payer': {'required': False, 'allow_null': True},
            'receiver': {'required': False, 'allow_null': True},
        }

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Amount must be greater than 0.")
        return value

    def validate(self, attrs):
        if attrs.get('status') == Transaction.STATUS_REFUNDED:
            raise serializers.ValidationError({
                'status': 'A transaction cannot be created as refunded.'
            })
        return attrs


class TransactionStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Transaction.STATUS_CHOICES)
