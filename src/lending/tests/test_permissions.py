import pytest
from django.contrib.auth.models import AnonymousUser

from lending.activity import lender_owns_borrower, record_borrower_created
from lending.permissions import can_reveal, can_update_card_details, get_role

pytestmark = pytest.mark.django_db


class TestCanReveal:
    def test_admin_any_borrower(self, admin_user, borrower):
        assert can_reveal(admin_user, borrower.pk) is True

    def test_admin_unknown_borrower(self, admin_user):
        assert can_reveal(admin_user, 424242) is True

    def test_borrower_self(self, borrower):
        assert can_reveal(borrower, borrower.pk) is True

    def test_borrower_other(self, borrower, make_user):
        other = make_user("borrower")
        assert can_reveal(borrower, other.pk) is False

    def test_lender_who_created_borrower(self, lender, borrower):
        assert can_reveal(lender, borrower.pk) is True

    def test_lender_without_relationship(self, other_lender, borrower):
        assert can_reveal(other_lender, borrower.pk) is False

    def test_referrer(self, make_user, borrower):
        assert can_reveal(make_user("referrer"), borrower.pk) is False

    def test_anonymous(self, borrower):
        assert can_reveal(AnonymousUser(), borrower.pk) is False

    def test_string_borrower_id(self, borrower):
        assert can_reveal(borrower, str(borrower.pk)) is True


class TestCanUpdateCardDetails:
    def test_admin(self, admin_user, borrower):
        assert can_update_card_details(admin_user, borrower.pk) is True

    def test_owning_lender(self, lender, borrower):
        assert can_update_card_details(lender, borrower.pk) is True

    def test_other_lender(self, other_lender, borrower):
        assert can_update_card_details(other_lender, borrower.pk) is False

    def test_borrower_cannot_edit_own_card(self, borrower):
        assert can_update_card_details(borrower, borrower.pk) is False


def test_ownership_fact_comes_from_activity_log(other_lender, make_user):
    borrower = make_user("borrower")
    assert lender_owns_borrower(other_lender.pk, borrower.pk) is False

    record_borrower_created(other_lender, borrower)

    assert lender_owns_borrower(other_lender.pk, borrower.pk) is True


def test_superuser_without_profile_is_admin(django_user_model):
    user = django_user_model.objects.create_superuser("root", "root@example.com", "pw")
    assert get_role(user) == "admin"
