from django.core.management.base import BaseCommand, CommandError

from apps.users.provider import ProviderClient, ProviderError
from apps.users.roles import ensure_defaults
from apps.users.sync import SyncConfigurationError, sync_identities


class Command(BaseCommand):
    help = 'Pull every identity provider user into the local identity store'

    def add_arguments(self, parser):
        parser.add_argument(
            '--with-defaults',
            action='store_true',
            help='Create the global roles and default organization first'
        )

    def handle(self, *args, **options):
        if options['with_defaults']:
            ensure_defaults()

        try:
            with ProviderClient() as client:
                summary = sync_identities(client)
        except (ProviderError, SyncConfigurationError) as e:
            raise CommandError(str(e))

        self.stdout.write(self.style.SUCCESS(
            'Identity sync complete: '
            f"{summary['total']} total, {summary['created']} created, "
            f"{summary['updated']} updated, {summary['skipped']} skipped"
        ))
