# conftest.py
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

PASSWORD = "correct-horse-battery"


@pytest.fixture(autouse=True)
def fresh_codec():
    """Rebuild the card codec from the active settings for every test."""
    from lending.encryption import reset_codec

    reset_codec()
    yield
    reset_codec()


@pytest.fixture
def codec():
    from lending.encryption import get_codec

    return get_codec()


@pytest.fixture
def make_user(db):
    """Factory creating a user with a lending profile (and borrower profile for borrowers)."""
    from django.contrib.auth import get_user_model

    from lending.models import BorrowerProfile, UserProfile

    User = get_user_model()
    counter = {"n": 0}

    def _make_user(role="lender", status=UserProfile.Status.ACTIVE, password=PASSWORD, **borrower_fields):
        counter["n"] += 1
        user = User.objects.create_user(
            username=f"{role}{counter['n']}",
            email=f"{role}{counter['n']}@example.com",
            password=password,
            first_name=role.title(),
            last_name=str(counter["n"]),
        )
        UserProfile.objects.create(user=user, role=role, status=status)
        if role == UserProfile.Role.BORROWER:
            borrower_fields.setdefault("card_number", "4111 1111 1111 1111")
            borrower_fields.setdefault("card_name", user.get_full_name())
            borrower_fields.setdefault("valid_til", "12/29")
            BorrowerProfile.objects.create(user=user, **borrower_fields)
        return User.objects.select_related("profile").get(pk=user.pk)

    return _make_user


@pytest.fixture
def admin_user(make_user):
    return make_user("admin")


@pytest.fixture
def lender(make_user):
    return make_user("lender")


@pytest.fixture
def other_lender(make_user):
    return make_user("lender")


@pytest.fixture
def borrower(make_user, lender):
    """A borrower created by ``lender``."""
    from lending.activity import record_borrower_created

    user = make_user("borrower")
    record_borrower_created(lender, user)
    return user


@pytest.fixture
def auth_client():
    """Return a factory for APIClients authenticated as the given user."""
    from rest_framework.test import APIClient

    from lending.auth import generate_access_token

    def _client(user):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {generate_access_token(user)}")
        return client

    return _client


@pytest.fixture
def password():
    """Password of every user created by ``make_user``."""
    return PASSWORD
