"""
Management command to import card secrets from a JSON file.

The file holds an array of ``{"userId": ..., "cvv": ..., "atmPin": ...}``.

Usage:
    python manage.py import_card_details card_details.json
"""

from django.core.management.base import BaseCommand, CommandError

from lending.card_migration import import_from_batch, parse_import_payload
from lending.exceptions import ValidationError


class Command(BaseCommand):
    help = "Import and encrypt card secrets from a JSON file"

    def add_arguments(self, parser):
        parser.add_argument("path", type=str, help="Path to the JSON file")

    def handle(self, *args, **options):
        path = options["path"]
        try:
            with open(path, "rb") as fh:
                raw = fh.read()
        except OSError as e:
            raise CommandError(f"Cannot read {path}: {e}")

        try:
            records = parse_import_payload(raw)
        except ValidationError as e:
            raise CommandError(e.message)

        self.stdout.write(f"Records in file: {len(records)}")
        summary = import_from_batch(records)

        self.stdout.write(
            self.style.SUCCESS(
                f"\nImport complete!\n"
                f"  Imported: {summary.imported}\n"
                f"  Skipped: {summary.skipped}\n"
                f"  Errors: {summary.errored}\n"
            )
        )
