"""
Password re-verification.

POST /api/v1/auth/verify-password exchanges the account password for a
short-lived single-use reveal ticket.
"""

import structlog
from django.conf import settings
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from lending.activity import CardEvent, log_activity
from lending.exceptions import ReauthError
from lending.models import ActivityLog
from lending.reauth import issue_reveal_ticket, require_reauth
from lending.serializers import PasswordSerializer
from lending.throttling import ReauthRateThrottle, with_default_throttles

logger = structlog.get_logger(__name__)


class VerifyPasswordView(APIView):
    """
    POST /api/v1/auth/verify-password - Re-enter the account password

    Returns a reveal ticket to send as the ``X-Reveal-Ticket`` header of a
    card details request.
    """

    permission_classes = [IsAuthenticated]
    throttle_classes = with_default_throttles(ReauthRateThrottle)

    def post(self, request):
        serializer = PasswordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = request.user

        if not require_reauth(user.pk, serializer.validated_data["password"]):
            log_activity(
                user=user,
                action="reauth_failed",
                action_type=CardEvent.REAUTH_FAILED,
                log_type=ActivityLog.Type.AUTH,
                description="Password re-verification failed",
            )
            raise ReauthError()

        ticket, expires_at = issue_reveal_ticket(user)
        log_activity(
            user=user,
            action="password_reverified",
            action_type=CardEvent.PASSWORD_REVERIFIED,
            log_type=ActivityLog.Type.AUTH,
            description="Password re-verified",
        )

        return Response(
            {
                "success": True,
                "message": "Password verified",
                "revealTicket": ticket,
                "expiresIn": settings.REVEAL_TICKET_TTL_SECONDS,
                "expiresAt": expires_at.isoformat(),
            },
            status=status.HTTP_200_OK,
        )
