from django.urls import path

from lending.views_admin import ImportCardDetailsView, MigrateCardDetailsView
from lending.views_auth import VerifyPasswordView
from lending.views_card_details import BorrowerCardDetailsView, VerifyCardDetailsView

urlpatterns = [
    path("auth/verify-password", VerifyPasswordView.as_view(), name="verify-password"),
    path(
        "borrower-card-details/<int:borrower_id>",
        BorrowerCardDetailsView.as_view(),
        name="borrower-card-details",
    ),
    path("verify-card-details", VerifyCardDetailsView.as_view(), name="verify-card-details"),
    path(
        "admin/migrate-card-details",
        MigrateCardDetailsView.as_view(),
        name="admin-migrate-card-details",
    ),
    path(
        "admin/import-card-details",
        ImportCardDetailsView.as_view(),
        name="admin-import-card-details",
    ),
]
