"""
Authentication backend that accepts either an email address or a phone number.
"""

from django.contrib.auth import get_user_model
from django.contrib.auth.backends import ModelBackend
from django.db.models import Q

from .validators import normalize_phone

User = get_user_model()


class EmailOrPhoneBackend(ModelBackend):
    """
    Log users in with their email address or their phone number.
    """

    def authenticate(self, request, username=None, password=None, **kwargs):
        """
        Authenticate by email (case-insensitive) or phone number.

        Args:
            request: HTTP request object
            username: Email address or phone number
            password: User password
            **kwargs: May carry ``email`` or ``phone_number`` instead of username

        Returns:
            User object if authentication successful, None otherwise
        """
        identifier = username or kwargs.get('email') or kwargs.get('phone_number')

        if identifier is None or password is None:
            return None

        identifier = identifier.strip()
        lookup = Q(email__iexact=identifier)
        phone = normalize_phone(identifier)
        if phone:
            lookup |= Q(phone_number=phone)

        user = User.objects.filter(lookup).order_by('pk').first()
        if user is None:
            # Run the default password hasher once to reduce the timing
            # difference between an existing and a nonexistent user
            User().set_password(password)
            return None

        if user.check_password(password) and self.user_can_authenticate(user):
            return user

        return None

    def get_user(self, user_id):
        try:
            return User.objects.get(pk=user_id)
        except User.DoesNotExist:
            return None
