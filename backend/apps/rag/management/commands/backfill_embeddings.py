"""
Backfill embeddings for incidents and runbook fragments that have none.

Usage:
    python manage.py backfill_embeddings                      # backfill everything
    python manage.py backfill_embeddings --model incident     # incidents only
    python manage.py backfill_embeddings --model all --batch-size 50
    python manage.py backfill_embeddings --dry-run            # show counts only
    python manage.py backfill_embeddings --reset              # clear stores, re-embed all
"""
import logging

from django.core.management.base import BaseCommand, CommandError
from django.db.models.functions import Trim

from apps.incidents.models import Incident
from apps.rag.embedding_service import get_embedding_generation_service, is_blank
from apps.rag.models import SourceType
from apps.runbooks.models import RunbookFragment

logger = logging.getLogger(__name__)


def pending_incidents():
    return (
        Incident.objects
        .annotate(trimmed_title=Trim('title'), trimmed_description=Trim('description'))
        .exclude(trimmed_title='', trimmed_description='')
        .exclude(embeddings__source_type=SourceType.RAW_INCIDENT)
        .order_by('id')
    )


def pending_fragments():
    return (
        RunbookFragment.objects
        .annotate(trimmed_title=Trim('title'), trimmed_content=Trim('content'))
        .exclude(trimmed_title='', trimmed_content='')
        .filter(embeddings__isnull=True)
        .order_by('id')
    )


# Registry of model -> pending queryset and batch argument
MODEL_REGISTRY = {
    'incident': {
        'label': 'Incident',
        'queryset': pending_incidents,
        'text_fields': ('title', 'description'),
        'batch_arg': 'incident_ids',
        'store': 'incident_store',
    },
    'runbook': {
        'label': 'RunbookFragment',
        'queryset': pending_fragments,
        'text_fields': ('title', 'content'),
        'batch_arg': 'fragment_ids',
        'store': 'runbook_store',
    },
}


class Command(BaseCommand):
    help = "Backfill embeddings for incidents and runbook fragments"

    def add_arguments(self, parser):
        parser.add_argument(
            '--model',
            choices=list(MODEL_REGISTRY.keys()) + ['all'],
            default='all',
            help="Which model(s) to backfill (default: all)",
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=100,
            help="Number of records per batch (default: 100)",
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help="Show counts of records needing backfill without processing",
        )
        parser.add_argument(
            '--reset',
            action='store_true',
            help="Delete existing embeddings of the selected model(s) first",
        )

    def handle(self, *args, **options):
        model_key = options['model']
        batch_size = options['batch_size']

        if batch_size <= 0:
            raise CommandError("--batch-size must be positive")

        keys = list(MODEL_REGISTRY.keys()) if model_key == 'all' else [model_key]

        if options['dry_run']:
            self._show_counts(keys)
            return

        service = get_embedding_generation_service()
        total = 0

        for key in keys:
            entry = MODEL_REGISTRY[key]
            label = entry['label']

            if options['reset']:
                deleted = getattr(service, entry['store']).clear()
                self.stdout.write(f"Cleared {deleted} {label} embeddings")

            self.stdout.write(f"\nBackfilling {label}...")

            batch_num = 0
            last_id = 0
            while True:
                rows = list(
                    entry['queryset']()
                    .filter(id__gt=last_id)
                    .values_list('id', *entry['text_fields'])[:batch_size]
                )
                if not rows:
                    break
                batch_num += 1
                last_id = rows[-1][0]

                # Trim() only strips spaces; tabs and newlines are caught here
                ids = [row[0] for row in rows if not is_blank(*row[1:])]
                if len(ids) < len(rows):
                    self.stdout.write(f"  Batch {batch_num}: skipped {len(rows) - len(ids)} blank")
                if not ids:
                    continue

                result = service.embed_batch(**{entry['batch_arg']: ids})
                if not result.ok:
                    self.stdout.write(self.style.ERROR(
                        f"  Batch {batch_num} failed: {result.error.kind} {result.error.cause}".rstrip()
                    ))
                    raise CommandError(f"Backfill of {label} aborted ({result.error.kind})")

                total += result.count
                self.stdout.write(f"  Batch {batch_num}: {result.count} embedded")

            self.stdout.write(self.style.SUCCESS(f"  {label} done."))

        logger.info("embedding_backfill_complete", extra={'models': keys, 'embedded': total})
        self.stdout.write(self.style.SUCCESS(f"\nTotal: {total} embedded"))

    def _show_counts(self, keys):
        """Show how many records need backfill for each model."""
        self.stdout.write("\nRecords needing embedding backfill:\n")
        for key in keys:
            entry = MODEL_REGISTRY[key]
            self.stdout.write(f"  {entry['label']}: {entry['queryset']().count()}")
