"""
Prepare the pgvector search strategy and copy existing embeddings into it.

Records written while EMBEDDING_SEARCH_BACKEND was 'in_memory' only carry the
packed payload; --migrate fills their embedding_vector column.

Usage:
    python manage.py sync_pgvector --check        # Check if pgvector is available
    python manage.py sync_pgvector --setup        # Add the embedding_vector columns
    python manage.py sync_pgvector --migrate      # Copy packed vectors into the columns
    python manage.py sync_pgvector --all          # Do everything
"""
from django.core.management.base import BaseCommand, CommandError
from django.db import DatabaseError

from apps.rag.embedding_store import PgVectorSearcher
from apps.rag.exceptions import EmbeddingStoreError
from apps.rag.models import IncidentEmbedding, RunbookEmbedding

EMBEDDING_MODELS = (IncidentEmbedding, RunbookEmbedding)


class Command(BaseCommand):
    help = 'Set up pgvector columns and backfill them from stored embeddings'

    def add_arguments(self, parser):
        parser.add_argument(
            '--check',
            action='store_true',
            help='Check if pgvector extension is available',
        )
        parser.add_argument(
            '--setup',
            action='store_true',
            help='Add the embedding_vector column to each embedding table',
        )
        parser.add_argument(
            '--migrate',
            action='store_true',
            help='Copy packed vectors into the embedding_vector column',
        )
        parser.add_argument(
            '--all',
            action='store_true',
            help='Run all steps: check, setup, migrate',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=1000,
            help='Batch size for migration (default: 1000)',
        )

    def handle(self, *args, **options):
        if options['all']:
            options['check'] = True
            options['setup'] = True
            options['migrate'] = True

        if not any([options['check'], options['setup'], options['migrate']]):
            self.stdout.write(self.style.WARNING(
                'No action specified. Use --check, --setup, --migrate, or --all'
            ))
            return

        searcher = PgVectorSearcher()

        if not searcher.extension_available:
            raise CommandError(
                'pgvector extension is NOT available.\n'
                'Install it in PostgreSQL with: CREATE EXTENSION vector;'
            )

        if options['check']:
            self.stdout.write(self.style.SUCCESS('pgvector extension is available'))

        if options['setup']:
            self.stdout.write('Setting up embedding_vector columns...')
            for model in EMBEDDING_MODELS:
                try:
                    searcher.ensure_setup(model)
                except DatabaseError as e:
                    raise CommandError(f'Error setting up {model._meta.db_table}: {e}') from e
                self.stdout.write(f'  {model._meta.db_table}: ready')
            self.stdout.write(self.style.SUCCESS('Setup complete'))

        if options['migrate']:
            batch_size = options['batch_size']
            self.stdout.write(f'Migrating embeddings (batch size: {batch_size})...')
            for model in EMBEDDING_MODELS:
                total = self._migrate(searcher, model, batch_size)
                self.stdout.write(self.style.SUCCESS(
                    f'  {model._meta.db_table}: {total} migrated'
                ))

    def _migrate(self, searcher, model, batch_size):
        total = 0
        last_id = 0
        while True:
            try:
                migrated, last_id = searcher.backfill_vectors(
                    model, batch_size=batch_size, after_id=last_id
                )
            except (DatabaseError, EmbeddingStoreError) as e:
                self.stdout.write(self.style.ERROR(
                    f'Error migrating {model._meta.db_table}: {e}'
                ))
                raise CommandError(f'Migration of {model._meta.db_table} failed') from e

            if last_id is None:
                return total
            total += migrated
            self.stdout.write(f'  Migrated {migrated} rows (total: {total})')
