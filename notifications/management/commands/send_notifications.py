from django.core.management.base import BaseCommand

from notifications.services import NotificationService


class Command(BaseCommand):
    help = "Send pending schedule notifications by email."

    def handle(self, *args, **options):
        service = NotificationService()
        sent = service.send_pending()
        self.stdout.write(self.style.SUCCESS(f"Notifications processed ({sent} sent)"))
