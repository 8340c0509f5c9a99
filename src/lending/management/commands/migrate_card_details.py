"""
Management command to move plaintext CVV/ATM PIN values into encrypted storage.

Safe to run repeatedly: profiles that no longer hold plaintext are skipped.

Usage:
    python manage.py migrate_card_details
    python manage.py migrate_card_details --dry-run
"""

from django.core.management.base import BaseCommand

from lending.card_migration import borrowers_with_legacy_secrets, migrate_in_place_secrets


class Command(BaseCommand):
    help = "Encrypt plaintext card secrets left on borrower profiles"

    def add_arguments(self, parser):
        parser.add_argument(
            "--batch-size",
            type=int,
            default=100,
            help="Number of profiles to fetch per query (default: 100)",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Only count the profiles that still hold legacy secrets",
        )

    def handle(self, *args, **options):
        pending = borrowers_with_legacy_secrets().count()
        self.stdout.write(f"Borrower profiles with legacy secrets: {pending}")

        if options["dry_run"]:
            self.stdout.write(self.style.WARNING("DRY RUN - No changes will be made"))
            return

        summary = migrate_in_place_secrets(batch_size=options["batch_size"])

        self.stdout.write(
            self.style.SUCCESS(
                f"\nMigration complete!\n"
                f"  Migrated: {summary.migrated}\n"
                f"  Skipped: {summary.skipped}\n"
                f"  Errors: {summary.errored}\n"
            )
        )
        if summary.errored:
            self.stdout.write(
                self.style.WARNING(f"{summary.errored} profiles failed. Check the logs for details.")
            )
