from datetime import date

from django.core.management.base import BaseCommand

from core.services.periods import reset_stale_availability


class Command(BaseCommand):
    help = "Delete weekly slot availability from periods before the current one."

    def add_arguments(self, parser):
        parser.add_argument("--today", type=str, help="Reference date (YYYY-MM-DD); defaults to today.")

    def handle(self, *args, **options):
        today = date.fromisoformat(options["today"]) if options.get("today") else None
        start, deleted = reset_stale_availability(today)
        self.stdout.write(
            self.style.SUCCESS(f"Removed {deleted} availability records before {start.isoformat()}")
        )
