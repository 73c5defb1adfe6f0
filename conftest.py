import os
import re

# Cheap bcrypt cost for tests; must be set before config is imported
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ["NOTIFICATION_WEBHOOK_URL"] = ""

import pytest

from lending.library import Library


@pytest.fixture
def lib(tmp_path, request):
    # A separate database file for every test
    db_file = str(tmp_path / f"test_{re.sub(r'[^A-Za-z0-9_.-]', '_', request.node.name)}.db")
    return Library(db_file=db_file)


@pytest.fixture
def make_book(lib):
    """Factory that adds a valid book, with any field overridable."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = {
            "title": f"Book {counter['n']}",
            "author": "Test Author",
            "isbn": f"978{counter['n']:010d}",
            "subject": "Fiction",
            "rack_number": "A1-01",
            "total_copies": 1,
        }
        fields.update(overrides)
        return lib.add_book(**fields)

    return _make


@pytest.fixture
def admin_credentials():
    return {
        "phone_number": "+15551234567",
        "username": "libadmin",
        "password": "Secret123",
        "name": "Lib Admin",
    }
