"""
Borrower card detail endpoints.

GET    /api/v1/borrower-card-details/<id>  - card metadata; secrets only with a reveal ticket
POST   /api/v1/borrower-card-details/<id>  - reveal with the password in the body
PUT    /api/v1/borrower-card-details/<id>  - update card metadata and secrets
POST   /api/v1/verify-card-details         - compare a CVV/PIN without revealing it
"""

import structlog
from django.conf import settings
from django.db import transaction
from rest_framework import status
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from lending.activity import CardEvent, log_activity
from lending.card_store import CardDetailStore
from lending.encryption import Absent, get_codec
from lending.exceptions import AuthzError, ReauthError
from lending.models import ActivityLog
from lending.permissions import can_reveal, can_update_card_details
from lending.reveal import RevealFlow, RevealState, get_borrower_profile
from lending.serializers import (
    CardDetailsUpdateSerializer,
    PasswordSerializer,
    VerifyCardDetailsSerializer,
)
from lending.throttling import CardVerifyRateThrottle, ReauthRateThrottle, with_default_throttles

logger = structlog.get_logger(__name__)

PUBLIC_CARD_FIELDS = ("card_number", "card_name", "valid_til")
SECRET_CARD_FIELDS = ("cvv", "atm_pin")

# verify-card-details "field" -> (encrypted column, legacy profile column)
VERIFIABLE_FIELDS = {
    "cvv": ("encrypted_cvv", "cvv"),
    "atmPin": ("encrypted_atm_pin", "atm_pin"),
}


def reveal_response(outcome):
    if outcome.state == RevealState.DENIED:
        raise AuthzError()
    if outcome.state == RevealState.REAUTH_FAILED:
        raise ReauthError()
    return Response(
        {"success": True, "revealed": outcome.revealed, "data": outcome.data},
        status=status.HTTP_200_OK,
    )


class BorrowerCardDetailsView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_classes = with_default_throttles(ReauthRateThrottle)

    def get(self, request, borrower_id):
        """Card details; secrets are placeholders unless a valid reveal ticket is sent."""
        ticket = request.headers.get(settings.REVEAL_TICKET_HEADER)
        outcome = RevealFlow().run(request.user, borrower_id, ticket=ticket)
        return reveal_response(outcome)

    def post(self, request, borrower_id):
        """Reveal card details, re-authenticating with the password in the body."""
        serializer = PasswordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        outcome = RevealFlow().run(
            request.user, borrower_id, password=serializer.validated_data["password"]
        )
        return reveal_response(outcome)

    def put(self, request, borrower_id):
        """Update card metadata and/or encrypted secrets of one borrower."""
        actor = request.user
        if not can_update_card_details(actor, borrower_id):
            logger.warning("card_update_denied", actor_id=actor.pk, borrower_id=borrower_id)
            raise AuthzError()

        serializer = CardDetailsUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        profile = get_borrower_profile(borrower_id, actor)
        if profile is None:
            raise NotFound("Borrower not found")

        public = {field: data[field] for field in PUBLIC_CARD_FIELDS if field in data}
        secrets = {field: data[field] for field in SECRET_CARD_FIELDS if field in data}

        with transaction.atomic():
            if secrets:
                CardDetailStore().upsert(profile.user_id, **secrets)
            # New secrets supersede whatever the legacy columns still hold
            stale = [field for field in secrets if getattr(profile, field)]
            for field, value in public.items():
                setattr(profile, field, value)
            for field in stale:
                setattr(profile, field, None)
            if public or stale:
                profile.save(update_fields=[*public, *stale, "updated_at"])

        log_activity(
            user=actor,
            related_user=profile.user,
            action="updated",
            action_type=CardEvent.UPDATED,
            description="Card details updated",
            metadata={"borrowerId": str(profile.user_id), "fields": sorted([*public, *secrets])},
        )

        return Response(
            {"success": True, "message": "Card details updated successfully"},
            status=status.HTTP_200_OK,
        )


class VerifyCardDetailsView(APIView):
    """
    POST /api/v1/verify-card-details - Check a CVV or ATM PIN

    Works for encrypted values as well as legacy hashes and returns only
    whether the supplied value matches. Guesses are rate limited per
    borrower and field.
    """

    permission_classes = [IsAuthenticated]
    throttle_classes = with_default_throttles(CardVerifyRateThrottle)

    def post(self, request):
        serializer = VerifyCardDetailsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        borrower_id = serializer.validated_data["user_id"]
        field = serializer.validated_data["field"]
        actor = request.user

        if not can_reveal(actor, borrower_id):
            log_activity(
                user=actor,
                action="verify_denied",
                action_type=CardEvent.REVEAL_DENIED,
                log_type=ActivityLog.Type.AUTH,
                description="Card details verification denied",
                metadata={"borrowerId": str(borrower_id), "field": field},
            )
            raise AuthzError()

        profile = get_borrower_profile(borrower_id, actor)
        if profile is None:
            raise NotFound("Borrower not found")

        codec = get_codec()
        encrypted_column, legacy_column = VERIFIABLE_FIELDS[field]
        record = CardDetailStore(codec).get(borrower_id, include_secrets=True)
        state = codec.classify(getattr(record, encrypted_column) if record else None)
        if isinstance(state, Absent):
            state = codec.classify(getattr(profile, legacy_column))

        is_match = codec.matches(serializer.validated_data["value"], state)

        log_activity(
            user=actor,
            action="verified",
            action_type=CardEvent.VERIFIED,
            description="Card details verified",
            metadata={
                "borrowerId": str(borrower_id),
                "field": field,
                "isMatch": is_match,
                "storage": type(state).__name__,
            },
        )

        return Response({"success": True, "isMatch": is_match}, status=status.HTTP_200_OK)
