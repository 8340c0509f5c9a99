"""
Error taxonomy for the card-detail protection layer.

Every error carries a short, generic ``message`` that is safe to show to a
client. Diagnostic detail goes to the server log only.
"""

import structlog
from rest_framework import status
from rest_framework.response import Response
from rest_framework.settings import api_settings
from rest_framework.views import exception_handler

logger = structlog.get_logger(__name__)


class CardProtectionError(Exception):
    """Base class for card-protection failures that map to an HTTP response."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Server Error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(CardProtectionError):
    """Malformed request: rejected before any secret work begins."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class AuthzError(CardProtectionError):
    """Access policy denial. Never says whether the borrower exists."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not authorized to access this borrower"


class ReauthError(CardProtectionError):
    """Wrong password, unknown user or unusable reveal ticket."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Incorrect password"


class CodecError(CardProtectionError):
    """A card secret could not be encrypted or decrypted."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Unable to decrypt card details"


class BatchRecordError(Exception):
    """A single migration/import record failed. Counted, never propagated."""

    def __init__(self, reason: str, record_ref: str = ""):
        self.reason = reason
        self.record_ref = record_ref
        super().__init__(f"{record_ref}: {reason}" if record_ref else reason)


def _error_body(message) -> dict:
    return {"success": False, "message": str(message)}


def card_exception_handler(exc, context):
    """
    DRF exception handler that renders every error as ``{success, message}``.

    Domain errors use their generic message; DRF errors keep their status
    code; anything else becomes a logged 500 with no detail in the body.
    """
    if isinstance(exc, CardProtectionError):
        return Response(_error_body(exc.message), status=exc.status_code)

    response = exception_handler(exc, context)
    if response is not None:
        detail = response.data
        if isinstance(detail, dict) and "detail" in detail:
            message = detail["detail"]
        elif isinstance(detail, dict):
            # Serializer errors: surface the first field message
            field, errors = next(iter(detail.items()))
            first = errors[0] if isinstance(errors, list) and errors else errors
            message = first if field == api_settings.NON_FIELD_ERRORS_KEY else f"{field}: {first}"
        elif isinstance(detail, list) and detail:
            message = detail[0]
        else:
            message = "Invalid request"
        response.data = _error_body(message)
        return response

    view = context.get("view")
    logger.error(
        "unhandled_exception",
        view=type(view).__name__ if view else None,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return Response(_error_body("Server Error"), status=status.HTTP_500_INTERNAL_SERVER_ERROR)
