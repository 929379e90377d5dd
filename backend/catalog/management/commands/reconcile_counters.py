"""
Recount the fact tables and repair the cached counters on Model3D.

Usage:
    python manage.py reconcile_counters
    python manage.py reconcile_counters --stale-only
    python manage.py reconcile_counters --model-id 42
"""

from django.core.management.base import BaseCommand, CommandError

from catalog import counters
from catalog.exceptions import ModelNotFound
from catalog.models import Model3D


class Command(BaseCommand):
    help = 'Recompute cached like/comment/download/view counters from the fact tables'

    def add_arguments(self, parser):
        parser.add_argument(
            '--model-id',
            type=int,
            help='Reconcile a single model'
        )
        parser.add_argument(
            '--stale-only',
            action='store_true',
            help='Only models flagged after a failed counter update'
        )

    def handle(self, *args, **options):
        if options['model_id'] is not None:
            try:
                results = [counters.reconcile(options['model_id'])]
            except ModelNotFound as exc:
                raise CommandError(str(exc))
        else:
            results = counters.reconcile_many(
                Model3D.objects.all(),
                stale_only=options['stale_only']
            )

        corrected = [result for result in results if result.corrected]
        for result in corrected:
            changes = ', '.join(
                f'{name} {cached} -> {live}'
                for name, (cached, live) in sorted(result.drift.items())
            )
            self.stdout.write(self.style.WARNING(f'Model {result.model_id}: {changes}'))

        self.stdout.write(self.style.SUCCESS(
            f'Reconciled {len(results)} model(s), corrected {len(corrected)}.'
        ))
