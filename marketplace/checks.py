"""
Startup check for the relational store.
"""

import logging

from django.db import connections
from django.db.utils import OperationalError

logger = logging.getLogger(__name__)


def ensure_store_available(alias='default'):
    """
    Open a connection to the configured database or stop the process.

    Args:
        alias: Database alias to check

    Raises:
        SystemExit: If the connection cannot be established
    """
    connection = connections[alias]
    try:
        connection.ensure_connection()
    except OperationalError as e:
        logger.critical(
            f"Database '{alias}' is unreachable at startup: {e}. Shutting down."
        )
        raise SystemExit(1) from e

    logger.info(f"Database '{alias}' connection verified.")
