from django.core.management.base import BaseCommand

from fees.services import mark_overdue


class Command(BaseCommand):
    help = "Flag unpaid fee installments past their due date as overdue."

    def handle(self, *args, **options):
        count = mark_overdue()
        self.stdout.write(self.style.SUCCESS(f"Marked {count} installments overdue"))
