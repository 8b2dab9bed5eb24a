"""
Django admin configuration for the parking marketplace.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from .models import (
    AvailabilitySlot,
    Booking,
    Notification,
    ParkingSpot,
    Review,
    SpotImage,
    Transaction,
    User,
)


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Custom admin interface for User model.

    Extends Django's UserAdmin to include marketplace fields. The user type
    can only be chosen when the user is created.
    """

    list_display = [
        'email',
        'username',
        'user_type',
        'phone_number',
        'identification_verified',
        'is_staff',
        'is_active',
        'created_at',
    ]

    list_filter = [
        'user_type',
        'identification_verified',
        'is_staff',
        'is_superuser',
        'is_active',
        'created_at',
    ]

    search_fields = [
        'email',
        'username',
        'first_name',
        'last_name',
        'phone_number',
    ]

    ordering = ['-created_at']

    fieldsets = (
        (None, {
            'fields': ('username', 'password')
        }),
        (_('Personal Info'), {
            'fields': (
                'first_name',
                'last_name',
                'email',
                'phone_number',
            )
        }),
        (_('User Type & Verification'), {
            'fields': ('user_type', 'identification_verified', 'profile_image', 'payout_details')
        }),
        (_('Permissions'), {
            'fields': (
                'is_active',
                'is_staff',
                'is_superuser',
                'groups',
                'user_permissions',
            ),
            'classes': ('collapse',),
        }),
        (_('Important Dates'), {
            'fields': ('last_login', 'date_joined', 'created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': (
                'username',
                'email',
                'phone_number',
                'password1',
                'password2',
                'user_type',
            ),
        }),
    )

    readonly_fields = ['created_at', 'updated_at', 'last_login', 'date_joined']

    date_hierarchy = 'created_at'

    list_per_page = 25

    def get_readonly_fields(self, request, obj=None):
        if obj:  # Editing an existing object
            return self.readonly_fields + ['user_type']
        return []


class SpotImageInline(admin.TabularInline):
    model = SpotImage
    extra = 1
    fields = ['image', 'is_primary', 'uploaded_at']
    readonly_fields = ['uploaded_at']


class AvailabilitySlotInline(admin.TabularInline):
    """Slots are listed for reference; bookings own the booked flag."""
    model = AvailabilitySlot
    extra = 0
    fields = ['start_time', 'end_time', 'is_booked']
    readonly_fields = ['is_booked']
    ordering = ['start_time']


@admin.register(ParkingSpot)
class ParkingSpotAdmin(admin.ModelAdmin):
    """Admin interface for ParkingSpot model."""

    list_display = [
        'spot_name',
        'homeowner',
        'city',
        'price_per_hour',
        'spot_type',
        'status',
        'is_available',
        'rating_average',
        'created_at',
    ]

    list_filter = [
        'status',
        'is_available',
        'spot_type',
        'vehicle_size_accommodated',
        'city',
    ]

    search_fields = [
        'spot_name',
        'address_line_1',
        'city',
        'homeowner__email',
    ]

    readonly_fields = ['rating_average', 'total_reviews', 'created_at', 'updated_at']

    ordering = ['-created_at']

    list_per_page = 25

    inlines = [SpotImageInline, AvailabilitySlotInline]

    fieldsets = (
        (None, {
            'fields': ('homeowner', 'spot_name', 'description')
        }),
        (_('Location'), {
            'fields': (
                'address_line_1', 'address_line_2', 'city', 'sub_city', 'woreda',
                'latitude', 'longitude',
            )
        }),
        (_('Listing'), {
            'fields': (
                'price_per_hour', 'spot_type', 'vehicle_size_accommodated', 'amenities',
                'is_available', 'status',
            )
        }),
        (_('Ratings'), {
            'fields': ('rating_average', 'total_reviews'),
            'classes': ('collapse',),
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )


@admin.register(AvailabilitySlot)
class AvailabilitySlotAdmin(admin.ModelAdmin):
    list_display = ['id', 'spot', 'start_time', 'end_time', 'is_booked']
    list_filter = ['is_booked']
    search_fields = ['spot__spot_name']
    readonly_fields = ['is_booked', 'created_at', 'updated_at']
    ordering = ['spot', 'start_time']
    list_per_page = 50


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    """
    Admin interface for Booking model.

    Status, times and lifecycle timestamps change only through the booking
    service so the availability ledger stays in step.
    """

    list_display = [
        'id',
        'spot',
        'driver',
        'start_time',
        'end_time',
        'booking_status',
        'payment_status',
        'total_price',
    ]

    list_filter = [
        'booking_status',
        'payment_status',
        'start_time',
    ]

    search_fields = [
        'spot__spot_name',
        'driver__email',
        'homeowner__email',
        'payment_reference',
    ]

    readonly_fields = [
        'spot',
        'driver',
        'homeowner',
        'start_time',
        'end_time',
        'booking_status',
        'payment_status',
        'payment_reference',
        'driver_check_in_time',
        'driver_check_out_time',
        'homeowner_confirm_time',
        'homeowner_reject_time',
        'created_at',
        'updated_at',
    ]

    ordering = ['-start_time']

    date_hierarchy = 'start_time'

    list_per_page = 25

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = [
        'id',
        'transaction_type',
        'booking',
        'amount',
        'currency',
        'status',
        'gateway',
        'created_at',
    ]
    list_filter = ['transaction_type', 'status', 'currency', 'gateway']
    search_fields = ['gateway_reference_id', 'payer__email', 'receiver__email', 'description']
    readonly_fields = ['created_at', 'updated_at']
    ordering = ['-created_at']
    date_hierarchy = 'created_at'
    list_per_page = 25


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    """Admin interface for Review model. Reviews are immutable once written."""

    list_display = [
        'id',
        'reviewer',
        'spot',
        'booking',
        'rating',
        'created_at',
    ]

    list_filter = [
        'rating',
        'created_at',
    ]

    search_fields = [
        'reviewer__email',
        'spot__spot_name',
        'comment',
    ]

    readonly_fields = ['booking', 'reviewer', 'spot', 'rating', 'comment', 'created_at']

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['id', 'recipient', 'related_entity_type', 'related_entity_id', 'is_read', 'created_at']
    list_filter = ['related_entity_type', 'is_read']
    search_fields = ['recipient__email', 'message']
    readonly_fields = ['created_at']
    ordering = ['-created_at']
    list_per_page = 50
