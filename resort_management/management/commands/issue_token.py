from django.core.management.base import BaseCommand, CommandError
from resort_management.authentication import create_access_token
from resort_management.models import User


class Command(BaseCommand):
    help = 'Print a bearer token for an existing user'

    def add_arguments(self, parser):
        parser.add_argument('username')

    def handle(self, *args, **options):
        try:
            user = User.objects.get(username=options['username'], is_active=True)
        except User.DoesNotExist:
            raise CommandError(f"No active user named {options['username']!r}")

        self.stdout.write(create_access_token(user))
