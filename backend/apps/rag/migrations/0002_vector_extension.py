import logging

from django.db import DatabaseError, migrations, transaction

logger = logging.getLogger(__name__)


def create_vector_extension(apps, schema_editor):
    connection = schema_editor.connection
    if connection.vendor != 'postgresql':
        return

    with connection.cursor() as cursor:
        cursor.execute("SELECT EXISTS(SELECT 1 FROM pg_available_extensions WHERE name = 'vector')")
        if not cursor.fetchone()[0]:
            return

    # Needs CREATE privilege on the database; without it the in-memory strategy still works
    try:
        with transaction.atomic(using=connection.alias):
            with connection.cursor() as cursor:
                cursor.execute("CREATE EXTENSION IF NOT EXISTS vector")
    except DatabaseError as e:
        logger.warning("pgvector_extension_create_failed", extra={'error': str(e)})


class Migration(migrations.Migration):

    dependencies = [
        ('rag', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(create_vector_extension, migrations.RunPython.noop),
    ]
