"""
WSGI config for the parkshare project.

The database is checked once the application is built and before any
request is served; a process that cannot reach its store exits.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'parkshare.settings')

application = get_wsgi_application()

from marketplace.checks import ensure_store_available  # noqa: E402

ensure_store_available()
