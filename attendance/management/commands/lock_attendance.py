from django.conf import settings
from django.core.management.base import BaseCommand

from attendance.services import lock_old_attendance


class Command(BaseCommand):
    help = "Lock attendance records older than ATTENDANCE_LOCK_AFTER_DAYS."

    def add_arguments(self, parser):
        parser.add_argument(
            "--days",
            type=int,
            default=settings.SCHOOL_MANAGEMENT["ATTENDANCE_LOCK_AFTER_DAYS"],
            help="Lock records dated before today minus this many days.",
        )

    def handle(self, *args, **options):
        locked = lock_old_attendance(options["days"])
        self.stdout.write(self.style.SUCCESS(f"Locked {locked} attendance records"))
