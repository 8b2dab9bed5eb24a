"""
API views for the parking marketplace.

Views parse and validate requests, then hand off to the service modules
(``availability``, ``bookings``, ``payments``). Domain errors raised by the
services propagate and are rendered by ``marketplace.exceptions``.
"""

import json
import logging
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.contrib.auth import authenticate, get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Avg, Count, Q
from django.utils import timezone
from rest_framework import generics, status
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken

from . import availability, bookings, payments
from .exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from .models import Booking, Notification, ParkingSpot, Review, Transaction
from .notifications import mark_read
from .permissions import IsDriver, IsHomeowner, IsPlatformAdmin, IsSpotOwnerOrAdmin
from .serializers import (
    AvailabilityDeclareSerializer,
    AvailabilityQuerySerializer,
    AvailabilitySlotSerializer,
    AvailabilityUpdateSerializer,
    BookingCreateSerializer,
    BookingOccupancySerializer,
    BookingSerializer,
    BookingStatusUpdateSerializer,
    LoginSerializer,
    LogoutSerializer,
    NotificationSerializer,
    ParkingSpotSerializer,
    ParkingSpotWriteSerializer,
    PaymentConfirmSerializer,
    PaymentIntentRequestSerializer,
    PaymentStatusUpdateSerializer,
    PaymentWebhookSerializer,
    ReviewCreateSerializer,
    ReviewSerializer,
    SpotImageSerializer,
    SpotVerificationSerializer,
    TokenRefreshSerializer,
    TransactionCreateSerializer,
    TransactionSerializer,
    TransactionStatusSerializer,
    UserProfileSerializer,
    UserProfileUpdateSerializer,
    UserRegistrationSerializer,
)
from .state_machine import BLOCKING_STATUSES

User = get_user_model()
logger = logging.getLogger(__name__)


def get_client_ip(request):
    """
    Get client IP address from request.
    Handles proxy headers for accurate IP detection.
    """
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0]
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip


def _get_spot(spot_id):
    try:
        return ParkingSpot.objects.select_related('homeowner').get(pk=spot_id)
    except ParkingSpot.DoesNotExist:
        raise NotFoundError(f'Parking spot with ID {spot_id} does not exist.')


# ============================================================================
# Authentication
# ============================================================================

class UserRegistrationView(generics.CreateAPIView):
    """
    API endpoint for user registration.

    Accepts POST requests with user registration data.
    Returns created user data (excluding password) on success.
    Handles concurrent registration attempts with database-level uniqueness.
    """
    serializer_class = UserRegistrationSerializer
    permission_classes = [AllowAny]

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            self.perform_create(serializer)
        except IntegrityError as e:
            # Concurrent registration with the same email or phone number
            if 'phone' in str(e).lower():
                return Response(
                    {'phone_number': ['A user with that phone number already exists.']},
                    status=status.HTTP_400_BAD_REQUEST
                )
            if 'email' in str(e).lower() or 'unique' in str(e).lower():
                return Response(
                    {'email': ['A user with that email already exists.']},
                    status=status.HTTP_400_BAD_REQUEST
                )
            raise

        logger.info(
            f"User registered. User ID: {serializer.instance.pk}, "
            f"Type: {serializer.instance.user_type}, IP: {get_client_ip(request)}"
        )
        headers = self.get_success_headers(serializer.data)
        return Response(serializer.data, status=status.HTTP_201_CREATED, headers=headers)


class LoginView(APIView):
    """
    API endpoint for user login with JWT token generation.

    Security features:
    - Rate limiting via the 'login' throttle scope
    - Generic error messages to prevent user enumeration
    - Failed login attempt logging for security monitoring

    POST /api/auth/login/
    Request body: {"identifier": "user@example.com", "password": "password123"}
    The identifier may also be a phone number.

    Success response (200):
    {
        "access": "<jwt_access_token>",
        "refresh": "<jwt_refresh_token>",
        "user": {
            "id": 1,
            "email": "user@example.com",
            "user_type": "driver",
            "identification_verified": false
        }
    }

    Error response (401): {"detail": "Invalid credentials"}
    """
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'login'

    def post(self, request, *args, **kwargs):
        serializer = LoginSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        identifier = serializer.validated_data['identifier'].strip()
        password = serializer.validated_data['password']
        client_ip = get_client_ip(request)

        user = authenticate(request, username=identifier, password=password)
        if user is None:
            logger.warning(
                f"Failed login attempt. Identifier: {identifier}, IP: {client_ip}"
            )
            return Response(
                {'detail': 'Invalid credentials'},
                status=status.HTTP_401_UNAUTHORIZED
            )

        refresh = RefreshToken.for_user(user)

        logger.info(f"Successful login. User ID: {user.pk}, IP: {client_ip}")

        return Response({
            'access': str(refresh.access_token),
            'refresh': str(refresh),
            'user': {
                'id': user.id,
                'email': user.email,
                'user_type': user.user_type,
                'identification_verified': user.identification_verified,
            }
        }, status=status.HTTP_200_OK)


class LogoutView(APIView):
    """
    Blacklist the caller's refresh token.

    POST /api/auth/logout/
    Request body: {"refresh": "<jwt_refresh_token>"}

    Success response (205): empty body
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = LogoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            token = RefreshToken(serializer.validated_data['refresh'])
            if str(token.get('user_id')) != str(request.user.pk):
                raise ForbiddenError('This refresh token belongs to another user.')
            token.blacklist()
        except TokenError as e:
            logger.warning(
                f"Logout with invalid refresh token. User ID: {request.user.pk}, "
                f"Error: {e}, IP: {get_client_ip(request)}"
            )
            return Response({'detail': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        logger.info(f"User logged out. User ID: {request.user.pk}")
        return Response(status=status.HTTP_205_RESET_CONTENT)


class CustomTokenRefreshView(APIView):
    """
    API endpoint for refreshing JWT access tokens.

    Security features:
    - Rate limiting via the 'refresh' throttle scope
    - Refresh token validation (signature, expiration, type, blacklist)
    - Token rotation: a new refresh token is issued and the old one blacklisted

    POST /api/token/refresh/
    Request body: {"refresh": "<jwt_refresh_token>"}

    Success response (200):
    {
        "access": "<new_jwt_access_token>",
        "refresh": "<new_jwt_refresh_token>"
    }

    Error responses:
    - 400: Missing refresh field
    - 401: Invalid, expired, or blacklisted refresh token
    """
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'refresh'

    def post(self, request, *args, **kwargs):
        serializer = TokenRefreshSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        client_ip = get_client_ip(request)

        try:
            refresh_token = RefreshToken(serializer.validated_data['refresh'])
        except TokenError as e:
            logger.warning(f"Failed token refresh attempt. Error: {e}, IP: {client_ip}")
            return Response({'detail': str(e)}, status=status.HTTP_401_UNAUTHORIZED)

        response_data = {'access': str(refresh_token.access_token)}

        if settings.SIMPLE_JWT.get('ROTATE_REFRESH_TOKENS', False):
            try:
                user = User.objects.get(pk=refresh_token.get('user_id'))
            except User.DoesNotExist:
                logger.warning(f"Token refresh for deleted user. IP: {client_ip}")
                return Response(
                    {'detail': 'User not found.'},
                    status=status.HTTP_401_UNAUTHORIZED
                )

            if settings.SIMPLE_JWT.get('BLACKLIST_AFTER_ROTATION', False):
                refresh_token.blacklist()

            response_data['refresh'] = str(RefreshToken.for_user(user))

        logger.info(f"Successful token refresh. IP: {client_ip}")
        return Response(response_data, status=status.HTTP_200_OK)


class UserProfileView(APIView):
    """
    API endpoint for retrieving and updating the authenticated user's profile.

    GET /api/auth/profile/
    PATCH /api/auth/profile/
    Body (all optional): first_name, last_name, phone_number,
    payout_details (homeowners only), profile_image (multipart)

    Email and user type cannot be changed here.
    """
    permission_classes = [IsAuthenticated]
    parser_classes = [JSONParser, MultiPartParser, FormParser]

    def get(self, request, *args, **kwargs):
        serializer = UserProfileSerializer(request.user, context={'request': request})
        return Response(serializer.data, status=status.HTTP_200_OK)

    def patch(self, request, *args, **kwargs):
        serializer = UserProfileUpdateSerializer(
            request.user,
            data=request.data,
            partial=True,
            context={'request': request}
        )
        serializer.is_valid(raise_exception=True)
        user = serializer.save()

        logger.info(
            f"Profile updated. User ID: {user.pk}, "
            f"Fields: {', '.join(sorted(serializer.validated_data))}"
        )
        return Response(
            UserProfileSerializer(user, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


# ============================================================================
# Parking spots
# ============================================================================

class SpotListCreateView(generics.ListCreateAPIView):
    """
    Public spot search and spot creation by homeowners.

    GET /api/spots/
    Query Parameters:
    - city: Case-insensitive exact city
    - spot_type: One of the spot type codes
    - vehicle_size: Vehicle size the spot must accommodate
    - max_price: Maximum price per hour
    - ordering: price, -price, rating, date (default: newest first)

    Only active, available spots are listed.

    POST /api/spots/ (homeowners)
    New spots start in 'pending_verification' until an administrator activates them.
    """
    serializer_class = ParkingSpotSerializer

    valid_orderings = {
        'price': 'price_per_hour',
        '-price': '-price_per_hour',
        'rating': '-rating_average',
        'date': '-created_at',
    }

    def get_permissions(self):
        if self.request.method == 'POST':
            return [IsAuthenticated(), IsHomeowner()]
        return [AllowAny()]

    def get_queryset(self):
        queryset = ParkingSpot.objects.filter(
            status=ParkingSpot.STATUS_ACTIVE,
            is_available=True,
        ).select_related('homeowner').prefetch_related('images')

        params = self.request.query_params

        city = params.get('city')
        if city:
            queryset = queryset.filter(city__iexact=city.strip())

        spot_type = params.get('spot_type')
        if spot_type:
            queryset = queryset.filter(spot_type=spot_type)

        vehicle_size = params.get('vehicle_size')
        if vehicle_size:
            queryset = queryset.filter(vehicle_size_accommodated=vehicle_size)

        max_price = params.get('max_price')
        if max_price is not None:
            try:
                max_price_decimal = Decimal(max_price)
            except InvalidOperation:
                raise ValidationError({'max_price': ['Must be a valid number.']})
            if max_price_decimal < 0:
                raise ValidationError({'max_price': ['Maximum price cannot be negative.']})
            queryset = queryset.filter(price_per_hour__lte=max_price_decimal)

        ordering = params.get('ordering')
        if ordering and ordering not in self.valid_orderings:
            raise ValidationError({
                'ordering': [f'Valid options: {", ".join(self.valid_orderings)}']
            })

        return queryset.order_by(self.valid_orderings.get(ordering, '-created_at'), 'pk')

    def create(self, request, *args, **kwargs):
        serializer = ParkingSpotWriteSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        spot = serializer.save()

        logger.info(
            f"Parking spot created. Spot ID: {spot.pk}, Homeowner ID: {request.user.pk}, "
            f"City: {spot.city}, IP: {get_client_ip(request)}"
        )
        return Response(
            ParkingSpotSerializer(spot, context={'request': request}).data,
            status=status.HTTP_201_CREATED
        )


class SpotDetailView(APIView):
    """
    GET /api/spots/<id>/     Public
    PATCH /api/spots/<id>/   Spot owner or administrator

    Spots that are not active are only visible to their owner and administrators.
    """

    def get_permissions(self):
        if self.request.method == 'GET':
            return [AllowAny()]
        return [IsAuthenticated(), IsSpotOwnerOrAdmin()]

    def get(self, request, pk, *args, **kwargs):
        spot = _get_spot(pk)

        if spot.status != ParkingSpot.STATUS_ACTIVE:
            user = request.user
            is_owner = user.is_authenticated and (
                spot.homeowner_id == user.pk or user.is_platform_admin()
            )
            if not is_owner:
                raise NotFoundError(f'Parking spot with ID {pk} does not exist.')

        serializer = ParkingSpotSerializer(spot, context={'request': request})
        return Response(serializer.data, status=status.HTTP_200_OK)

    def patch(self, request, pk, *args, **kwargs):
        spot = _get_spot(pk)
        self.check_object_permissions(request, spot)

        serializer = ParkingSpotWriteSerializer(
            spot, data=request.data, partial=True, context={'request': request}
        )
        serializer.is_valid(raise_exception=True)
        spot = serializer.save()

        logger.info(
            f"Parking spot updated. Spot ID: {spot.pk}, User ID: {request.user.pk}, "
            f"Fields: {', '.join(sorted(serializer.validated_data))}"
        )
        return Response(
            ParkingSpotSerializer(spot, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


class MySpotsView(generics.ListAPIView):
    """GET /api/spots/my/ - every spot of the authenticated homeowner, any status."""
    serializer_class = ParkingSpotSerializer
    permission_classes = [IsAuthenticated, IsHomeowner]

    def get_queryset(self):
        return (
            ParkingSpot.objects.filter(homeowner=self.request.user)
            .prefetch_related('images')
            .order_by('-created_at', 'pk')
        )


class SpotVerificationView(APIView):
    """
    PATCH /api/spots/<id>/verification/ (administrators)
    Body: {"status": "active" | "inactive" | "rejected" | "pending_verification"}
    """
    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def patch(self, request, pk, *args, **kwargs):
        serializer = SpotVerificationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with transaction.atomic():
            spot = availability.lock_spot(pk)
            previous = spot.status
            spot.status = serializer.validated_data['status']
            spot.save()

        logger.info(
            f"Spot verification updated. Spot ID: {spot.pk}, {previous} -> {spot.status}, "
            f"Admin ID: {request.user.pk}"
        )
        return Response(
            ParkingSpotSerializer(spot, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


class SpotImageUploadView(APIView):
    """
    POST /api/spots/<id>/images/ (spot owner, multipart)
    Body: image=<file>, is_primary=true|false
    """
    permission_classes = [IsAuthenticated, IsSpotOwnerOrAdmin]
    parser_classes = [MultiPartParser, FormParser]

    def post(self, request, pk, *args, **kwargs):
        spot = _get_spot(pk)
        self.check_object_permissions(request, spot)

        serializer = SpotImageSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        image = serializer.save(spot=spot)

        logger.info(
            f"Spot image uploaded. Spot ID: {spot.pk}, Image ID: {image.pk}, "
            f"Primary: {image.is_primary}, User ID: {request.user.pk}"
        )
        return Response(serializer.data, status=status.HTTP_201_CREATED)


# ============================================================================
# Availability
# ============================================================================

class SpotAvailabilityView(APIView):
    """
    GET /api/spots/<id>/availability/?start=<iso>&end=<iso>   Public
    POST /api/spots/<id>/availability/                       Spot owner

    POST body: {"start_time": "<iso>", "end_time": "<iso>"}

    Error responses:
    - 400: end_time <= start_time, or the window already ended
    - 403: Not the owner of the spot
    - 404: Spot does not exist
    - 409: Window overlaps another open slot of the spot
    """

    def get_permissions(self):
        if self.request.method == 'GET':
            return [AllowAny()]
        return [IsAuthenticated()]

    def get(self, request, pk, *args, **kwargs):
        params = AvailabilityQuerySerializer(data=request.query_params)
        params.is_valid(raise_exception=True)

        slots = availability.query(
            pk,
            start=params.validated_data.get('start'),
            end=params.validated_data.get('end'),
        )
        return Response(
            AvailabilitySlotSerializer(slots, many=True).data,
            status=status.HTTP_200_OK
        )

    def post(self, request, pk, *args, **kwargs):
        serializer = AvailabilityDeclareSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        slot = availability.declare(
            pk,
            request.user,
            serializer.validated_data['start_time'],
            serializer.validated_data['end_time'],
        )
        return Response(AvailabilitySlotSerializer(slot).data, status=status.HTTP_201_CREATED)


class AvailabilitySlotDetailView(APIView):
    """
    PATCH /api/availability/<id>/   Body: any of start_time, end_time, is_booked
    DELETE /api/availability/<id>/  Only unbooked slots
    """
    permission_classes = [IsAuthenticated]

    def patch(self, request, pk, *args, **kwargs):
        serializer = AvailabilityUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        slot = availability.update(pk, request.user, serializer.to_update())
        return Response(AvailabilitySlotSerializer(slot).data, status=status.HTTP_200_OK)

    def delete(self, request, pk, *args, **kwargs):
        availability.remove(pk, request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Bookings
# ============================================================================

class BookingCreateView(APIView):
    """
    API endpoint for creating parking bookings.

    POST /api/bookings/
    Headers: Authorization: Bearer <access_token>
    Request body:
    {
        "spot": 1,
        "start_time": "2026-11-01T09:00:00Z",
        "end_time": "2026-11-01T11:00:00Z",
        "total_price": "40.00"
    }

    Success response (201): the booking, 'pending' with payment 'pending'

    Error responses:
    - 400: Invalid range, start in the past, non-positive price, spot not accepting bookings
    - 403: User is not a driver
    - 404: Spot does not exist
    - 409: Overlaps an active booking, or not inside open availability
    """
    permission_classes = [IsAuthenticated, IsDriver]

    def post(self, request, *args, **kwargs):
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        booking = bookings.create_booking(
            data['spot'],
            request.user,
            data['start_time'],
            data['end_time'],
            data['total_price'],
        )
        return Response(
            BookingSerializer(booking, context={'request': request}).data,
            status=status.HTTP_201_CREATED
        )


class _BookingListView(generics.ListAPIView):
    """
    Shared filtering for booking lists.

    Query Parameters:
    - status: Booking status
    - payment_status: Payment status
    - upcoming: 'true' for bookings that have not ended yet
    """
    serializer_class = BookingSerializer

    def base_queryset(self):
        raise NotImplementedError

    def get_queryset(self):
        queryset = self.base_queryset().select_related('spot', 'driver', 'homeowner', 'review')
        params = self.request.query_params

        booking_status = params.get('status')
        if booking_status:
            valid = {choice for choice, _ in Booking.STATUS_CHOICES}
            if booking_status not in valid:
                raise ValidationError({'status': [f'"{booking_status}" is not a valid booking status.']})
            queryset = queryset.filter(booking_status=booking_status)

        payment_status = params.get('payment_status')
        if payment_status:
            queryset = queryset.filter(payment_status=payment_status)

        if params.get('upcoming', '').lower() == 'true':
            queryset = queryset.filter(end_time__gt=timezone.now())

        return queryset.order_by('-start_time', '-pk')


class DriverBookingsView(_BookingListView):
    """GET /api/bookings/my/ - bookings made by the authenticated driver."""
    permission_classes = [IsAuthenticated, IsDriver]

    def base_queryset(self):
        return Booking.objects.filter(driver=self.request.user)


class HomeownerBookingsView(_BookingListView):
    """
    GET /api/bookings/homeowner/ - bookings on the authenticated homeowner's spots.

    Accepts ``spot`` to narrow to one spot.
    """
    permission_classes = [IsAuthenticated, IsHomeowner]

    def base_queryset(self):
        queryset = Booking.objects.filter(homeowner=self.request.user)
        spot_id = self.request.query_params.get('spot')
        if spot_id:
            if not spot_id.isdigit():
                raise ValidationError({'spot': ['Must be a spot ID.']})
            queryset = queryset.filter(spot_id=int(spot_id))
        return queryset


class SpotOccupancyView(APIView):
    """
    GET /api/bookings/spot/<id>/?start=<iso>&end=<iso>

    Times and status of the bookings that currently hold time on a spot.
    No driver or payment details are included.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, pk, *args, **kwargs):
        spot = _get_spot(pk)

        params = AvailabilityQuerySerializer(data=request.query_params)
        params.is_valid(raise_exception=True)
        start = params.validated_data.get('start')
        end = params.validated_data.get('end')

        queryset = Booking.objects.filter(spot=spot, booking_status__in=BLOCKING_STATUSES)
        if start is not None and end is not None:
            queryset = bookings.blocking_bookings(spot, start, end) if start < end else queryset.none()
        elif start is not None:
            queryset = queryset.filter(end_time__gt=start)
        elif end is not None:
            queryset = queryset.filter(start_time__lt=end)

        serializer = BookingOccupancySerializer(queryset.order_by('start_time'), many=True)
        return Response(serializer.data, status=status.HTTP_200_OK)


class BookingDetailView(APIView):
    """GET /api/bookings/<id>/ - visible to the booking's driver, homeowner or an administrator."""
    permission_classes = [IsAuthenticated]

    def get(self, request, pk, *args, **kwargs):
        booking = bookings.get_booking_for(pk, request.user)
        return Response(
            BookingSerializer(booking, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


class BookingStatusUpdateView(APIView):
    """
    API endpoint for moving a booking through its lifecycle.

    PATCH /api/bookings/<id>/status/
    Request body: {"status": "confirmed"}

    Who may set what:
    - homeowner: confirmed, rejected (from pending), cancelled_by_homeowner,
      completed (from checked_out)
    - driver: cancelled_by_driver, checked_in (from pending or confirmed),
      checked_out (from checked_in)
    - administrator: any of the above, and completed from any open status

    Error responses:
    - 400: Transition not allowed from the current status
    - 403: Not a party to the booking, or the wrong party for this change
    - 404: Booking does not exist
    """
    permission_classes = [IsAuthenticated]

    def patch(self, request, pk, *args, **kwargs):
        serializer = BookingStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        booking = bookings.transition_booking(pk, request.user, serializer.validated_data['status'])
        return Response(
            BookingSerializer(booking, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


class BookingPaymentStatusView(APIView):
    """
    PATCH /api/bookings/<id>/payment-status/ (homeowner of the booking or administrator)
    Request body: {"payment_status": "paid", "payment_reference": "optional"}

    Changing payment status never changes the booking status.
    """
    permission_classes = [IsAuthenticated]

    def patch(self, request, pk, *args, **kwargs):
        serializer = PaymentStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        booking = payments.update_payment_status(
            pk,
            request.user,
            serializer.validated_data['payment_status'],
            reference=serializer.validated_data['payment_reference'],
        )
        booking.refresh_from_db()
        return Response(
            BookingSerializer(booking, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


# ============================================================================
# Payments
# ============================================================================

class PaymentIntentView(APIView):
    """
    POST /api/payments/intent/ (driver of the booking)
    Body: {"booking_id": 1}

    Success response (201):
    {"reference": "...", "amount": "40.00", "currency": "ETB", "client_secret": null}
    """
    permission_classes = [IsAuthenticated, IsDriver]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'payments'

    def post(self, request, *args, **kwargs):
        serializer = PaymentIntentRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        intent = payments.create_payment_intent(serializer.validated_data['booking_id'], request.user)
        return Response(
            {
                'reference': intent.reference,
                'amount': intent.amount,
                'currency': intent.currency,
                'client_secret': intent.client_secret,
            },
            status=status.HTTP_201_CREATED
        )


class PaymentConfirmView(APIView):
    """
    POST /api/payments/confirm/ (driver of the booking)
    Body: {"booking_id": 1, "reference": "<gateway reference>"}

    Confirming the same reference again returns the booking unchanged.
    """
    permission_classes = [IsAuthenticated, IsDriver]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'payments'

    def post(self, request, *args, **kwargs):
        serializer = PaymentConfirmSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        booking = payments.confirm_payment(
            serializer.validated_data['booking_id'],
            request.user,
            serializer.validated_data['reference'],
        )
        return Response(
            BookingSerializer(booking, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


class PaymentWebhookView(APIView):
    """
    POST /api/payments/webhook/

    Called by the payment gateway. The raw body must be signed with
    HMAC-SHA256 using PAYMENT_WEBHOOK_SECRET and the hex digest sent in the
    X-Payment-Signature header.

    Body: {"booking_id": 1, "reference": "...", "outcome": "succeeded" | "failed"}

    Redelivery of the same outcome is acknowledged without changing anything.
    """
    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        client_ip = get_client_ip(request)
        signature = request.META.get('HTTP_X_PAYMENT_SIGNATURE', '')
        payload = request.body

        gateway = payments.get_gateway()
        if not gateway.verify_webhook(payload, signature):
            logger.warning(f"Payment webhook with invalid signature. IP: {client_ip}")
            return Response(
                {'detail': 'Invalid signature.'},
                status=status.HTTP_401_UNAUTHORIZED
            )

        try:
            data = json.loads(payload.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return Response(
                {'detail': 'Request body must be JSON.'},
                status=status.HTTP_400_BAD_REQUEST
            )

        serializer = PaymentWebhookSerializer(data=data)
        serializer.is_valid(raise_exception=True)

        booking = payments.record_payment_outcome(
            serializer.validated_data['booking_id'],
            serializer.validated_data['reference'],
            serializer.validated_data['outcome'],
            gateway_name=gateway.name,
        )
        logger.info(
            f"Payment webhook processed. Booking ID: {booking.pk}, "
            f"Payment Status: {booking.payment_status}, IP: {client_ip}"
        )
        return Response(
            {'booking_id': booking.pk, 'payment_status': booking.payment_status},
            status=status.HTTP_200_OK
        )


# ============================================================================
# Reviews
# ============================================================================

class ReviewCreateView(APIView):
    """
    API endpoint for reviewing a completed booking.

    POST /api/reviews/
    Body: {"booking_id": 1, "rating": 5, "comment": "Easy to find."}

    Error responses:
    - 400: Booking is not completed, or invalid rating/comment
    - 403: Not the driver of the booking
    - 404: Booking does not exist
    - 409: Booking already reviewed
    """
    permission_classes = [IsAuthenticated, IsDriver]

    def post(self, request, *args, **kwargs):
        serializer = ReviewCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            booking = Booking.objects.select_related('spot').get(pk=data['booking_id'])
        except Booking.DoesNotExist:
            raise NotFoundError(f"Booking with ID {data['booking_id']} does not exist.")

        if booking.driver_id != request.user.pk:
            raise ForbiddenError('You can only review your own bookings.')

        if booking.booking_status != Booking.STATUS_COMPLETED:
            raise InvalidStateError('Only completed bookings can be reviewed.')

        if Review.objects.filter(booking=booking).exists():
            raise ConflictError('This booking has already been reviewed.')

        try:
            with transaction.atomic():
                review = Review.objects.create(
                    booking=booking,
                    reviewer=request.user,
                    spot=booking.spot,
                    rating=data['rating'],
                    comment=data['comment'],
                )
        except IntegrityError:
            logger.warning(
                f"Concurrent duplicate review. Booking ID: {booking.pk}, User ID: {request.user.pk}"
            )
            raise ConflictError('This booking has already been reviewed.')

        logger.info(
            f"Review created. Review ID: {review.pk}, Booking ID: {booking.pk}, "
            f"Spot ID: {booking.spot_id}, Rating: {review.rating}"
        )
        return Response(ReviewSerializer(review).data, status=status.HTTP_201_CREATED)


class SpotReviewsView(generics.ListAPIView):
    """
    API endpoint for retrieving reviews for a specific spot.

    GET /api/reviews/spot/<id>/

    Publicly accessible. Newest first; ``rating`` filters to one star value.
    The response includes rating statistics over all of the spot's reviews.
    """
    serializer_class = ReviewSerializer
    permission_classes = [AllowAny]

    def get_queryset(self):
        spot_id = self.kwargs['pk']
        if not ParkingSpot.objects.filter(pk=spot_id).exists():
            raise NotFoundError(f'Parking spot with ID {spot_id} does not exist.')

        queryset = Review.objects.filter(spot_id=spot_id).select_related('reviewer')

        rating = self.request.query_params.get('rating')
        if rating and rating.isdigit():
            queryset = queryset.filter(rating=int(rating))

        return queryset.order_by('-created_at', '-pk')

    def list(self, request, *args, **kwargs):
        queryset = self.get_queryset()

        all_reviews = Review.objects.filter(spot_id=self.kwargs['pk'])
        stats = all_reviews.aggregate(average_rating=Avg('rating'), total_reviews=Count('id'))

        distribution = {str(i): 0 for i in range(1, 6)}
        for item in all_reviews.values('rating').annotate(count=Count('id')):
            distribution[str(item['rating'])] = item['count']

        statistics = {
            'average_rating': round(stats['average_rating'] or 0, 2),
            'total_reviews': stats['total_reviews'],
            'rating_distribution': distribution,
        }

        page = self.paginate_queryset(queryset)
        if page is not None:
            response = self.get_paginated_response(self.get_serializer(page, many=True).data)
            response.data['statistics'] = statistics
            return response

        return Response({
            'results': self.get_serializer(queryset, many=True).data,
            'statistics': statistics,
        })


class MyReviewsView(generics.ListAPIView):
    """GET /api/reviews/my/ - reviews written by the authenticated user."""
    serializer_class = ReviewSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return (
            Review.objects.filter(reviewer=self.request.user)
            .select_related('reviewer')
            .order_by('-created_at', '-pk')
        )


# ============================================================================
# Notifications
# ============================================================================

class NotificationListView(generics.ListAPIView):
    """GET /api/notifications/?unread=true - the user's notifications, newest first."""
    serializer_class = NotificationSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = Notification.objects.filter(recipient=self.request.user)
        if self.request.query_params.get('unread', '').lower() == 'true':
            queryset = queryset.filter(is_read=False)
        return queryset.order_by('-created_at', '-pk')


class NotificationReadView(APIView):
    """POST /api/notifications/<id>/read/"""
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        if not Notification.objects.filter(pk=pk, recipient=request.user).exists():
            raise NotFoundError(f'Notification with ID {pk} does not exist.')

        mark_read(request.user, notification_id=pk)
        notification = Notification.objects.get(pk=pk)
        return Response(NotificationSerializer(notification).data, status=status.HTTP_200_OK)


class NotificationReadAllView(APIView):
    """POST /api/notifications/read-all/"""
    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        updated = mark_read(request.user)
        return Response({'updated': updated}, status=status.HTTP_200_OK)


class NotificationDeleteView(APIView):
    """DELETE /api/notifications/<id>/"""
    permission_classes = [IsAuthenticated]

    def delete(self, request, pk, *args, **kwargs):
        deleted, _ = Notification.objects.filter(pk=pk, recipient=request.user).delete()
        if not deleted:
            raise NotFoundError(f'Notification with ID {pk} does not exist.')
        return Response(status=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Transactions
# ============================================================================

class TransactionListCreateView(generics.ListCreateAPIView):
    """
    GET /api/transactions/?type=<type>&status=<status>
        Administrators see every transaction; other users see those they pay,
        receive or that concern their bookings.
    POST /api/transactions/ (administrators)
    """
    serializer_class = TransactionSerializer

    def get_permissions(self):
        if self.request.method == 'POST':
            return [IsAuthenticated(), IsPlatformAdmin()]
        return [IsAuthenticated()]

    def get_queryset(self):
        user = self.request.user
        queryset = Transaction.objects.all()
        if not user.is_platform_admin():
            queryset = queryset.filter(
                Q(payer=user)
                | Q(receiver=user)
                | Q(booking__driver=user)
                | Q(booking__homeowner=user)
            ).distinct()

        transaction_type = self.request.query_params.get('type')
        if transaction_type:
            queryset = queryset.filter(transaction_type=transaction_type)

        transaction_status = self.request.query_params.get('status')
        if transaction_status:
            queryset = queryset.filter(status=transaction_status)

        return queryset.order_by('-created_at', '-pk')

    def create(self, request, *args, **kwargs):
        serializer = TransactionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        fields = dict(serializer.validated_data)
        booking = fields.pop('booking', None)
        record = payments.record_transaction(request.user, booking=booking, **fields)

        return Response(TransactionSerializer(record).data, status=status.HTTP_201_CREATED)


class TransactionDetailView(APIView):
    """GET /api/transactions/<id>/ - involved parties and administrators only."""
    permission_classes = [IsAuthenticated]

    def get(self, request, pk, *args, **kwargs):
        try:
            record = Transaction.objects.select_related('booking').get(pk=pk)
        except Transaction.DoesNotExist:
            raise NotFoundError(f'Transaction with ID {pk} does not exist.')

        user = request.user
        involved = user.pk in (record.payer_id, record.receiver_id) or (
            record.booking is not None
            and user.pk in (record.booking.driver_id, record.booking.homeowner_id)
        )
        if not (involved or user.is_platform_admin()):
            raise ForbiddenError('You do not have access to this transaction.')

        return Response(TransactionSerializer(record).data, status=status.HTTP_200_OK)


class TransactionStatusView(APIView):
    """
    PATCH /api/transactions/<id>/status/ (administrators)
    Body: {"status": "completed"}

    Allowed changes: pending -> completed | failed, completed -> refunded.
    """
    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def patch(self, request, pk, *args, **kwargs):
        serializer = TransactionStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        record = payments.update_transaction_status(pk, request.user, serializer.validated_data['status'])
        return Response(TransactionSerializer(record).data, status=status.HTTP_200_OK)
