"""
Custom validators for marketplace models.
"""

import re
from decimal import Decimal

from django.core.exceptions import ValidationError


AMENITY_CHOICES = (
    'covered',
    'cctv',
    'security_guard',
    'lighting',
    'ev_charging',
    'gated',
    'wheelchair_accessible',
    'car_wash',
)

PAYOUT_METHODS = ('bank_transfer', 'mobile_money')


def normalize_phone(value):
    """Strip separators so '+251 91-123 4567' and '+251911234567' compare equal."""
    return re.sub(r'[\s\-\(\)]', '', value or '')


def validate_phone_number(value):
    """
    Validate phone number format.

    Accepts international formats with an optional leading plus, spaces,
    dashes and parentheses. Requires 10 to 15 digits.

    Valid formats:
    - +251 91 123 4567
    - +1 (234) 567-8900
    - 0911234567

    Raises:
        ValidationError: If phone number format is invalid
    """
    if not value:
        return

    if not re.match(r'^[\d\s\-\+\(\)]+$', value):
        raise ValidationError(
            'Phone number can only contain digits, spaces, dashes, parentheses, and plus sign.',
            code='invalid_phone_chars'
        )

    digits = re.sub(r'\D', '', value)

    if len(digits) < 10 or len(digits) > 15:
        raise ValidationError(
            'Phone number must contain between 10 and 15 digits.',
            code='phone_length'
        )

    if len(set(digits)) == 1:
        raise ValidationError(
            'Phone number cannot be all the same digit.',
            code='invalid_phone_pattern'
        )


def _validate_image(image, max_mb):
    if not image:
        return

    max_size = max_mb * 1024 * 1024
    if image.size > max_size:
        raise ValidationError(
            f'Image file size cannot exceed {max_mb}MB. Current size: {image.size / (1024 * 1024):.2f}MB',
            code='image_too_large'
        )

    valid_extensions = ['jpg', 'jpeg', 'png', 'webp']
    file_name = image.name.lower()

    if not any(file_name.endswith(f'.{ext}') for ext in valid_extensions):
        raise ValidationError(
            f'Invalid image format. Allowed formats: {", ".join(valid_extensions)}',
            code='invalid_image_format'
        )

    valid_content_types = ['image/jpeg', 'image/png', 'image/webp']
    content_type = getattr(image, 'content_type', None)
    if content_type and content_type not in valid_content_types:
        raise ValidationError(
            f'Invalid image content type: {content_type}',
            code='invalid_content_type'
        )


def validate_profile_image(image):
    """Profile pictures: max 5MB, jpg/png/webp."""
    _validate_image(image, max_mb=5)


def validate_spot_image(image):
    """Spot photos: max 8MB, jpg/png/webp."""
    _validate_image(image, max_mb=8)


def validate_amenities(value):
    """
    Validate a spot's amenity list.

    Amenities are stored as a JSON array of known amenity codes without
    duplicates.

    Raises:
        ValidationError: If the value is not a list of known codes
    """
    if value in (None, ''):
        return

    if not isinstance(value, list):
        raise ValidationError('Amenities must be a list.', code='amenities_not_list')

    unknown = [item for item in value if item not in AMENITY_CHOICES]
    if unknown:
        raise ValidationError(
            f'Unknown amenities: {", ".join(str(item) for item in unknown)}. '
            f'Allowed: {", ".join(AMENITY_CHOICES)}',
            code='unknown_amenity'
        )

    if len(set(value)) != len(value):
        raise ValidationError('Amenities cannot contain duplicates.', code='duplicate_amenity')


def validate_payout_details(value):
    """
    Validate a homeowner's payout details.

    Expected shape::

        {"method": "bank_transfer", "account_name": "...", "account_number": "...",
         "bank_name": "..."}
        {"method": "mobile_money", "account_name": "...", "phone_number": "..."}

    An empty object means no payout details are on file.

    Raises:
        ValidationError: If the structure or any field is invalid
    """
    if not value:
        return

    if not isinstance(value, dict):
        raise ValidationError('Payout details must be an object.', code='payout_not_object')

    method = value.get('method')
    if method not in PAYOUT_METHODS:
        raise ValidationError(
            f'Payout method must be one of: {", ".join(PAYOUT_METHODS)}.',
            code='invalid_payout_method'
        )

    required = ['account_name']
    if method == 'bank_transfer':
        required += ['account_number', 'bank_name']
    else:
        required += ['phone_number']

    missing = [field for field in required if not str(value.get(field, '')).strip()]
    if missing:
        raise ValidationError(
            f'Missing payout fields: {", ".join(missing)}.',
            code='payout_missing_fields'
        )

    allowed = set(required) | {'method'}
    extra = sorted(set(value) - allowed)
    if extra:
        raise ValidationError(
            f'Unexpected payout fields: {", ".join(extra)}.',
            code='payout_unexpected_fields'
        )

    if method == 'bank_transfer' and not re.match(r'^\d{6,34}$', str(value['account_number'])):
        raise ValidationError(
            'Account number must contain 6 to 34 digits.',
            code='invalid_account_number'
        )

    if method == 'mobile_money':
        validate_phone_number(str(value['phone_number']))


def validate_latitude(value):
    if value is not None and not (Decimal('-90') <= value <= Decimal('90')):
        raise ValidationError('Latitude must be between -90 and 90.', code='invalid_latitude')


def validate_longitude(value):
    if value is not None and not (Decimal('-180') <= value <= Decimal('180')):
        raise ValidationError('Longitude must be between -180 and 180.', code='invalid_longitude')
