from django.core.management.base import BaseCommand

from core.models import Department
from core.services.slots import seed_default_slots


class Command(BaseCommand):
    help = "Create the standard weekly slots for departments that are missing them."

    def add_arguments(self, parser):
        parser.add_argument("--department-id", type=int)

    def handle(self, *args, **options):
        department_id = options.get("department_id")
        departments = Department.objects.all()
        if department_id:
            departments = departments.filter(id=department_id)
        for department in departments:
            created = seed_default_slots(department)
            self.stdout.write(self.style.SUCCESS(f"Department {department.id}: {len(created)} slots created"))
