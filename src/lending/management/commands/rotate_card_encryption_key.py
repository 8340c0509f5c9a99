"""
Management command to re-encrypt card secrets under the current key.

Set the new key as ENCRYPTION_KEY and keep the old one in another
environment variable for the duration of the run.

Usage:
    OLD_ENCRYPTION_KEY=... python manage.py rotate_card_encryption_key --old-key-env OLD_ENCRYPTION_KEY
"""

import os

from django.core.management.base import BaseCommand, CommandError

from lending.card_migration import rotate_card_encryption
from lending.encryption import CardSecretCodec, CodecConfig, codec_config_from_settings
from lending.models import CardDetail


class Command(BaseCommand):
    help = "Re-encrypt stored card secrets from an old key to ENCRYPTION_KEY"

    def add_arguments(self, parser):
        parser.add_argument(
            "--old-key-env",
            type=str,
            required=True,
            help="Name of the environment variable holding the old key",
        )
        parser.add_argument(
            "--batch-size",
            type=int,
            default=100,
            help="Number of records to fetch per query (default: 100)",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be rotated without actually doing it",
        )

    def handle(self, *args, **options):
        old_secret = os.environ.get(options["old_key_env"], "")
        if not old_secret:
            raise CommandError(f"Environment variable {options['old_key_env']} is empty or unset")

        new_config = codec_config_from_settings()
        old_config = CodecConfig.from_secret(old_secret, hash_rounds=new_config.hash_rounds)
        if old_config.key == new_config.key:
            raise CommandError("Old and new keys are identical; nothing to rotate")

        total_count = CardDetail.objects.count()
        self.stdout.write(f"Card detail records: {total_count}")

        if options["dry_run"]:
            self.stdout.write(self.style.WARNING("DRY RUN - No changes will be made"))
            return

        summary = rotate_card_encryption(
            CardSecretCodec(old_config),
            CardSecretCodec(new_config),
            batch_size=options["batch_size"],
        )

        self.stdout.write(
            self.style.SUCCESS(
                f"\nRotation complete!\n"
                f"  Records rotated: {summary.rotated}\n"
                f"  Records without secrets: {summary.unchanged}\n"
                f"  Errors: {summary.errored}\n"
            )
        )
        if summary.errored:
            self.stdout.write(
                self.style.WARNING(
                    f"{summary.errored} records did not decrypt with the old key and were left untouched."
                )
            )
