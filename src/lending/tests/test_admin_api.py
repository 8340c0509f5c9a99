import json

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.urls import reverse

from lending.models import BorrowerProfile, CardDetail

pytestmark = pytest.mark.django_db


@pytest.fixture
def migrate_url():
    return reverse("admin-migrate-card-details")


@pytest.fixture
def import_url():
    return reverse("admin-import-card-details")


def _upload(records, name="cards.json", content_type="application/json"):
    return SimpleUploadedFile(name, json.dumps(records).encode("utf-8"), content_type=content_type)


class TestMigrateEndpoint:
    def test_admin_runs_migration(self, make_user, admin_user, auth_client, migrate_url, codec):
        borrower = make_user("borrower", cvv="321", atm_pin="7890")
        make_user("borrower", cvv=codec.hash("111"))

        response = auth_client(admin_user).post(migrate_url)

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Card details migration completed",
            "migratedCount": 1,
            "skippedCount": 1,
            "errorCount": 0,
        }
        profile = BorrowerProfile.objects.get(user=borrower)
        assert (profile.cvv, profile.atm_pin) == (None, None)

    def test_second_run_migrates_nothing(self, make_user, admin_user, auth_client, migrate_url):
        make_user("borrower", cvv="321")
        client = auth_client(admin_user)
        client.post(migrate_url)

        assert client.post(migrate_url).json()["migratedCount"] == 0

    @pytest.mark.parametrize("role", ["lender", "borrower", "referrer"])
    def test_non_admin_forbidden(self, make_user, auth_client, migrate_url, role):
        response = auth_client(make_user(role)).post(migrate_url)

        assert response.status_code == 403
        assert response.json()["success"] is False


class TestImportEndpoint:
    def test_file_upload(self, borrower, admin_user, auth_client, import_url, codec):
        response = auth_client(admin_user).post(
            import_url,
            {"cardDetailsFile": _upload([{"userId": borrower.pk, "cvv": "999", "atmPin": "0000"}])},
            format="multipart",
        )

        assert response.status_code == 200
        body = response.json()
        assert (body["importedCount"], body["skippedCount"], body["errorCount"]) == (1, 0, 0)
        row = CardDetail.objects.with_secrets().get(borrower=borrower)
        assert codec.decrypt(row.encrypted_cvv) == "999"

    def test_json_array_body(self, borrower, admin_user, auth_client, import_url):
        response = auth_client(admin_user).post(
            import_url, [{"userId": borrower.pk, "cvv": "999"}, {"userId": 0, "cvv": "1"}], format="json"
        )

        assert response.status_code == 200
        assert (response.json()["importedCount"], response.json()["skippedCount"]) == (1, 1)

    def test_no_file(self, admin_user, auth_client, import_url):
        response = auth_client(admin_user).post(import_url, {}, format="multipart")

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "No file uploaded"}

    def test_not_an_array(self, admin_user, auth_client, import_url):
        response = auth_client(admin_user).post(
            import_url, {"cardDetailsFile": _upload({"userId": 1})}, format="multipart"
        )

        assert response.status_code == 400
        assert response.json()["message"] == "File should contain an array of card details"

    def test_wrong_file_type(self, admin_user, auth_client, import_url):
        response = auth_client(admin_user).post(
            import_url,
            {"cardDetailsFile": _upload([], name="cards.csv", content_type="text/csv")},
            format="multipart",
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Only JSON files are allowed"

    def test_file_too_large(self, admin_user, auth_client, import_url, settings):
        settings.CARD_IMPORT_MAX_BYTES = 10

        response = auth_client(admin_user).post(
            import_url, {"cardDetailsFile": _upload([{"userId": 1, "cvv": "123"}])}, format="multipart"
        )

        assert response.status_code == 400
        assert response.json()["message"] == "File too large"

    def test_lender_forbidden(self, lender, auth_client, import_url):
        response = auth_client(lender).post(import_url, [], format="json")

        assert response.status_code == 403
