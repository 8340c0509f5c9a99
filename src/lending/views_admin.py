"""
Admin-only batch endpoints for moving card secrets into encrypted storage.
"""

import structlog
from django.conf import settings
from rest_framework import status
from rest_framework.parsers import JSONParser, MultiPartParser
from rest_framework.response import Response
from rest_framework.views import APIView

from lending.card_migration import import_from_batch, migrate_in_place_secrets, parse_import_payload
from lending.exceptions import ValidationError
from lending.permissions import IsAdminRole

logger = structlog.get_logger(__name__)

IMPORT_FILE_FIELD = "cardDetailsFile"
JSON_CONTENT_TYPES = ("application/json", "text/json")


class MigrateCardDetailsView(APIView):
    """POST /api/v1/admin/migrate-card-details - Encrypt plaintext secrets left on borrower profiles"""

    permission_classes = [IsAdminRole]

    def post(self, request):
        summary = migrate_in_place_secrets(actor=request.user)
        return Response(
            {
                "success": True,
                "message": "Card details migration completed",
                "migratedCount": summary.migrated,
                "skippedCount": summary.skipped,
                "errorCount": summary.errored,
            },
            status=status.HTTP_200_OK,
        )


class ImportCardDetailsView(APIView):
    """
    POST /api/v1/admin/import-card-details - Import card secrets

    Accepts a multipart upload in ``cardDetailsFile`` or a JSON array body,
    each element shaped ``{"userId", "cvv", "atmPin"}``.
    """

    permission_classes = [IsAdminRole]
    parser_classes = [JSONParser, MultiPartParser]

    def post(self, request):
        upload = request.FILES.get(IMPORT_FILE_FIELD)
        if upload is not None:
            records = self._read_upload(upload)
        elif isinstance(request.data, list):
            records = request.data
        else:
            raise ValidationError("No file uploaded")

        summary = import_from_batch(records, actor=request.user)
        return Response(
            {
                "success": True,
                "message": "Card details import completed",
                "importedCount": summary.imported,
                "skippedCount": summary.skipped,
                "errorCount": summary.errored,
            },
            status=status.HTTP_200_OK,
        )

    def _read_upload(self, upload) -> list:
        max_bytes = settings.CARD_IMPORT_MAX_BYTES
        if upload.size > max_bytes:
            logger.warning("card_import_file_too_large", size=upload.size, max_bytes=max_bytes)
            raise ValidationError("File too large")

        is_json = upload.content_type in JSON_CONTENT_TYPES or upload.name.lower().endswith(".json")
        if not is_json:
            raise ValidationError("Only JSON files are allowed")

        return parse_import_payload(upload.read())
