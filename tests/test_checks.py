"""
Tests for the startup database check.
"""

from unittest import mock

import pytest
from django.db.utils import OperationalError

from marketplace.checks import ensure_store_available


@pytest.mark.django_db
def test_reachable_database_passes():
    ensure_store_available()


def test_unreachable_database_exits():
    fake = mock.Mock()
    fake.ensure_connection.side_effect = OperationalError('(2003, "Can\'t connect to MySQL server")')

    with mock.patch('marketplace.checks.connections') as connections:
        connections.__getitem__.return_value = fake
        with pytest.raises(SystemExit) as excinfo:
            ensure_store_available()

    assert excinfo.value.code == 1
