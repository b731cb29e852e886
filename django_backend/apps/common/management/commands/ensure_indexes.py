from django.core.management.base import BaseCommand

from apps.common import mongo


class Command(BaseCommand):
    help = 'Create the document store indexes for projects and tasks'

    def handle(self, *args, **options):
        created = mongo.ensure_indexes()
        for name in created:
            self.stdout.write(f'  {name}')
        self.stdout.write(self.style.SUCCESS(f'{len(created)} indexes ensured'))
