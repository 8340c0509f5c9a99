"""
Tests for the card reveal flow and the borrower-card-details endpoint.

Tests cover:
- Policy denial before any re-authentication
- Placeholders without a re-authentication proof
- Reveal with a ticket or with the password in the request
- Unknown or deactivated borrowers, missing records and undecryptable envelopes
- Rate limiting of ticket attempts
- Activity log entries for every outcome
"""

import pytest
from django.core.cache import cache
from django.urls import reverse
from django.utils import timezone
from rest_framework.throttling import UserRateThrottle

from lending.card_store import CardDetailStore
from lending.encryption import CardSecretCodec, CodecConfig
from lending.models import ActivityLog, BorrowerProfile, CardDetail
from lending.reauth import issue_reveal_ticket
from lending.reveal import RevealFlow, RevealState

pytestmark = pytest.mark.django_db


@pytest.fixture
def card_on_file(borrower, codec):
    CardDetailStore(codec).upsert(borrower.pk, cvv="321", atm_pin="7890")
    return borrower


def _url(borrower_id):
    return reverse("borrower-card-details", kwargs={"borrower_id": borrower_id})


def _events(user, action_type):
    return ActivityLog.objects.filter(user=user, metadata__action_type=action_type)


class TestRevealFlow:
    def test_password_reveal(self, lender, card_on_file, password):
        outcome = RevealFlow().run(lender, card_on_file.pk, password=password)

        assert outcome.state == RevealState.RETURNED
        assert outcome.revealed is True
        assert outcome.data["cvv"] == "321"
        assert outcome.data["atmPin"] == "7890"
        assert outcome.data["cardNumber"] == "4111 1111 1111 1111"
        entry = _events(lender, "card_details_revealed").get()
        assert entry.related_user_id == card_on_file.pk
        assert entry.metadata["fields"] == ["atmPin", "cvv"]

    def test_ticket_reveal(self, lender, card_on_file):
        ticket, _ = issue_reveal_ticket(lender)

        outcome = RevealFlow().run(lender, card_on_file.pk, ticket=ticket)

        assert outcome.state == RevealState.RETURNED
        assert outcome.data["cvv"] == "321"

    def test_no_proof_returns_placeholders(self, lender, card_on_file):
        outcome = RevealFlow().run(lender, card_on_file.pk)

        assert outcome.state == RevealState.RETURNED
        assert outcome.revealed is False
        assert outcome.data["cvv"] == ""
        assert outcome.data["atmPin"] == ""
        assert outcome.data["cardName"] == card_on_file.get_full_name()

    def test_unrelated_lender_denied_even_with_own_password(self, other_lender, card_on_file, password):
        outcome = RevealFlow().run(other_lender, card_on_file.pk, password=password)

        assert outcome.state == RevealState.DENIED
        assert outcome.data == {}
        assert _events(other_lender, "card_details_reveal_denied").exists()

    def test_wrong_password(self, lender, card_on_file):
        outcome = RevealFlow().run(lender, card_on_file.pk, password="wrong")

        assert outcome.state == RevealState.REAUTH_FAILED
        assert _events(lender, "card_details_reauth_failed").exists()
        assert not _events(lender, "card_details_revealed").exists()

    def test_reused_ticket(self, lender, card_on_file):
        ticket, _ = issue_reveal_ticket(lender)
        RevealFlow().run(lender, card_on_file.pk, ticket=ticket)

        outcome = RevealFlow().run(lender, card_on_file.pk, ticket=ticket)

        assert outcome.state == RevealState.REAUTH_FAILED

    def test_unknown_borrower_returns_placeholders(self, admin_user, password):
        outcome = RevealFlow().run(admin_user, 555555, password=password)

        assert outcome.state == RevealState.NOT_FOUND
        assert set(outcome.data.values()) == {""}

    def test_borrower_without_card_record(self, lender, borrower, password):
        outcome = RevealFlow().run(lender, borrower.pk, password=password)

        assert outcome.state == RevealState.NOT_FOUND
        assert outcome.revealed is False
        assert outcome.data["cvv"] == ""
        assert outcome.data["atmPin"] == ""
        assert outcome.data["validTil"] == "12/29"
        assert _events(lender, "card_details_revealed").get().metadata["found"] is False

    def test_no_proof_without_card_record(self, lender, borrower):
        outcome = RevealFlow().run(lender, borrower.pk)

        assert outcome.state == RevealState.NOT_FOUND
        assert outcome.data["cardNumber"] == "4111 1111 1111 1111"

    def test_deactivated_borrower_is_hidden_from_lender(self, lender, card_on_file, password):
        BorrowerProfile.objects.filter(user=card_on_file).update(active=False)

        outcome = RevealFlow().run(lender, card_on_file.pk, password=password)

        assert outcome.state == RevealState.NOT_FOUND
        assert set(outcome.data.values()) == {""}

    def test_soft_deleted_borrower_is_hidden_from_admin(self, admin_user, card_on_file, password):
        BorrowerProfile.objects.filter(user=card_on_file).update(deleted_at=timezone.now())

        outcome = RevealFlow().run(admin_user, card_on_file.pk, password=password)

        assert outcome.state == RevealState.NOT_FOUND

    def test_deactivated_borrower_still_sees_own_card(self, card_on_file, password):
        BorrowerProfile.objects.filter(user=card_on_file).update(active=False)

        outcome = RevealFlow().run(card_on_file, card_on_file.pk, password=password)

        assert outcome.state == RevealState.RETURNED
        assert outcome.data["cvv"] == "321"

    def test_undecryptable_field_is_blanked(self, lender, borrower, codec, password):
        foreign = CardSecretCodec(CodecConfig.from_secret("some-other-key", hash_rounds=10))
        CardDetail.objects.create(
            borrower=borrower,
            encrypted_cvv=foreign.encrypt("321"),
            encrypted_atm_pin=codec.encrypt("7890"),
        )

        outcome = RevealFlow().run(lender, borrower.pk, password=password)

        assert outcome.state == RevealState.RETURNED
        assert outcome.data["cvv"] == ""
        assert outcome.data["atmPin"] == "7890"


class TestBorrowerCardDetailsEndpoint:
    def test_get_without_ticket_never_reveals(self, lender, card_on_file, auth_client):
        response = auth_client(lender).get(_url(card_on_file.pk))

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["revealed"] is False
        assert body["data"]["cvv"] == ""
        assert body["data"]["atmPin"] == ""
        assert body["data"]["validTil"] == "12/29"

    def test_verify_password_then_reveal_with_ticket(self, lender, card_on_file, auth_client, password):
        client = auth_client(lender)
        ticket = client.post(
            reverse("verify-password"), {"password": password}, format="json"
        ).json()["revealTicket"]

        response = client.get(_url(card_on_file.pk), HTTP_X_REVEAL_TICKET=ticket)

        assert response.status_code == 200
        assert response.json()["revealed"] is True
        assert response.json()["data"]["cvv"] == "321"
        assert response.json()["data"]["atmPin"] == "7890"

        again = client.get(_url(card_on_file.pk), HTTP_X_REVEAL_TICKET=ticket)
        assert again.status_code == 401

    def test_ticket_of_another_user_is_rejected(self, lender, admin_user, card_on_file, auth_client):
        ticket, _ = issue_reveal_ticket(admin_user)

        response = auth_client(lender).get(_url(card_on_file.pk), HTTP_X_REVEAL_TICKET=ticket)

        assert response.status_code == 401

    def test_post_with_password(self, borrower, auth_client, codec, password):
        CardDetailStore(codec).upsert(borrower.pk, cvv="321")

        response = auth_client(borrower).post(_url(borrower.pk), {"password": password}, format="json")

        assert response.status_code == 200
        assert response.json()["data"]["cvv"] == "321"

    def test_post_with_wrong_password(self, lender, card_on_file, auth_client):
        response = auth_client(lender).post(_url(card_on_file.pk), {"password": "wrong"}, format="json")

        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Incorrect password"}

    def test_post_without_password(self, lender, card_on_file, auth_client):
        response = auth_client(lender).post(_url(card_on_file.pk), {}, format="json")

        assert response.status_code == 400

    def test_denied_message_does_not_depend_on_existence(self, other_lender, card_on_file, auth_client, password):
        client = auth_client(other_lender)

        existing = client.post(_url(card_on_file.pk), {"password": password}, format="json")
        missing = client.post(_url(777777), {"password": password}, format="json")

        assert existing.status_code == missing.status_code == 403
        assert existing.json() == missing.json() == {
            "success": False,
            "message": "Not authorized to access this borrower",
        }

    def test_requires_authentication(self, card_on_file, client):
        response = client.get(_url(card_on_file.pk))

        assert response.status_code == 401

    def test_ticket_attempts_are_throttled(self, lender, card_on_file, auth_client, monkeypatch):
        monkeypatch.setattr(UserRateThrottle, "rate", "2/minute", raising=False)
        cache.clear()
        client = auth_client(lender)

        statuses = [
            client.get(_url(card_on_file.pk), HTTP_X_REVEAL_TICKET="guess").status_code for _ in range(3)
        ]

        assert statuses == [401, 401, 429]
