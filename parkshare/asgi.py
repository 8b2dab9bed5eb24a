"""
ASGI config for the parkshare project.
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'parkshare.settings')

application = get_asgi_application()

from marketplace.checks import ensure_store_available  # noqa: E402

ensure_store_available()
