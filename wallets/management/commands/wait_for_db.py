import time

from django.core.management.base import BaseCommand, CommandError
from django.db import connections
from django.db.utils import OperationalError


class Command(BaseCommand):
    help = "Blocks until the ledger database accepts connections"

    def add_arguments(self, parser):
        parser.add_argument(
            "--timeout",
            type=int,
            default=60,
            help="Seconds to wait before giving up.",
        )
        parser.add_argument("--database", default="default")

    def handle(self, *args, **options):
        alias = options["database"]
        deadline = time.monotonic() + options["timeout"]
        self.stdout.write(f"Waiting for database '{alias}'...")

        while True:
            try:
                connections[alias].ensure_connection()
                break
            except OperationalError:
                if time.monotonic() >= deadline:
                    raise CommandError(
                        f"Database '{alias}' unavailable after {options['timeout']}s."
                    )
                self.stdout.write(self.style.WARNING("Database unavailable, retrying in 1s..."))
                time.sleep(1)

        self.stdout.write(self.style.SUCCESS(f"Database '{alias}' available."))
