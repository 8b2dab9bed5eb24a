"""
URL configuration for the parkshare project.
"""
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import path
from rest_framework_simplejwt.views import TokenVerifyView

from marketplace.views import (
    AvailabilitySlotDetailView,
    BookingCreateView,
    BookingDetailView,
    BookingPaymentStatusView,
    BookingStatusUpdateView,
    CustomTokenRefreshView,
    DriverBookingsView,
    HomeownerBookingsView,
    LoginView,
    LogoutView,
    MyReviewsView,
    MySpotsView,
    NotificationDeleteView,
    NotificationListView,
    NotificationReadAllView,
    NotificationReadView,
    PaymentConfirmView,
    PaymentIntentView,
    PaymentWebhookView,
    ReviewCreateView,
    SpotAvailabilityView,
    SpotDetailView,
    SpotImageUploadView,
    SpotListCreateView,
    SpotOccupancyView,
    SpotReviewsView,
    SpotVerificationView,
    TransactionDetailView,
    TransactionListCreateView,
    TransactionStatusView,
    UserProfileView,
    UserRegistrationView,
)


urlpatterns = [
    path('admin/', admin.site.urls),

    # Authentication endpoints
    path('api/auth/register/', UserRegistrationView.as_view(), name='user_register'),
    path('api/auth/login/', LoginView.as_view(), name='user_login'),
    path('api/auth/logout/', LogoutView.as_view(), name='user_logout'),
    path('api/auth/profile/', UserProfileView.as_view(), name='user_profile'),

    # Parking spot endpoints
    path('api/spots/', SpotListCreateView.as_view(), name='spot_list_create'),
    path('api/spots/my/', MySpotsView.as_view(), name='my_spots'),
    path('api/spots/<int:pk>/', SpotDetailView.as_view(), name='spot_detail'),
    path('api/spots/<int:pk>/verification/', SpotVerificationView.as_view(), name='spot_verification'),
    path('api/spots/<int:pk>/images/', SpotImageUploadView.as_view(), name='spot_images'),

    # Availability endpoints
    path('api/spots/<int:pk>/availability/', SpotAvailabilityView.as_view(), name='spot_availability'),
    path('api/availability/<int:pk>/', AvailabilitySlotDetailView.as_view(), name='availability_detail'),

    # Booking endpoints
    path('api/bookings/', BookingCreateView.as_view(), name='booking_create'),
    path('api/bookings/my/', DriverBookingsView.as_view(), name='driver_bookings'),
    path('api/bookings/homeowner/', HomeownerBookingsView.as_view(), name='homeowner_bookings'),
    path('api/bookings/spot/<int:pk>/', SpotOccupancyView.as_view(), name='spot_occupancy'),
    path('api/bookings/<int:pk>/', BookingDetailView.as_view(), name='booking_detail'),
    path('api/bookings/<int:pk>/status/', BookingStatusUpdateView.as_view(), name='booking_status_update'),
    path('api/bookings/<int:pk>/payment-status/', BookingPaymentStatusView.as_view(), name='booking_payment_status'),

    # Payment endpoints
    path('api/payments/intent/', PaymentIntentView.as_view(), name='payment_intent'),
    path('api/payments/confirm/', PaymentConfirmView.as_view(), name='payment_confirm'),
    path('api/payments/webhook/', PaymentWebhookView.as_view(), name='payment_webhook'),

    # Review endpoints
    path('api/reviews/', ReviewCreateView.as_view(), name='review_create'),
    path('api/reviews/my/', MyReviewsView.as_view(), name='my_reviews'),
    path('api/reviews/spot/<int:pk>/', SpotReviewsView.as_view(), name='spot_reviews'),

    # Notification endpoints
    path('api/notifications/', NotificationListView.as_view(), name='notification_list'),
    path('api/notifications/read-all/', NotificationReadAllView.as_view(), name='notification_read_all'),
    path('api/notifications/<int:pk>/', NotificationDeleteView.as_view(), name='notification_delete'),
    path('api/notifications/<int:pk>/read/', NotificationReadView.as_view(), name='notification_read'),

    # Transaction endpoints
    path('api/transactions/', TransactionListCreateView.as_view(), name='transaction_list_create'),
    path('api/transactions/<int:pk>/', TransactionDetailView.as_view(), name='transaction_detail'),
    path('api/transactions/<int:pk>/status/', TransactionStatusView.as_view(), name='transaction_status'),

    # JWT Authentication endpoints
    path('api/token/refresh/', CustomTokenRefreshView.as_view(), name='token_refresh'),
    path('api/token/verify/', TokenVerifyView.as_view(), name='token_verify'),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
