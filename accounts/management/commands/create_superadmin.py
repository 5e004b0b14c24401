import logging

from django.conf import settings
from django.core.management.base import BaseCommand

from accounts.models import User

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Create the default superadmin account if it does not exist."

    def handle(self, *args, **options):
        username = settings.SUPERADMIN_USERNAME.lower()
        if User.objects.filter(username=username).exists():
            self.stdout.write(f"Superadmin '{username}' already exists")
            return
        User.objects.create_superuser(
            username,
            settings.SUPERADMIN_PASSWORD,
            email=settings.SUPERADMIN_EMAIL,
            first_name="Super",
            last_name="Admin",
        )
        logger.info("Created superadmin %s", username)
        self.stdout.write(self.style.SUCCESS(f"Superadmin '{username}' created"))
