"""
Tests for the migration that installs the vector extension on PostgreSQL.
"""
from importlib import import_module
from unittest.mock import MagicMock, patch

from django.db import DatabaseError
from django.test import SimpleTestCase

vector_extension = import_module('apps.rag.migrations.0002_vector_extension')


class CreateVectorExtensionTest(SimpleTestCase):

    def _schema_editor(self, vendor='postgresql', available=True):
        cursor = MagicMock()
        cursor.fetchone.return_value = (available,)
        connection = MagicMock(vendor=vendor, alias='default')
        connection.cursor.return_value.__enter__.return_value = cursor
        return MagicMock(connection=connection), cursor

    def _executed(self, cursor):
        return [call.args[0] for call in cursor.execute.call_args_list]

    def test_skipped_on_other_databases(self):
        schema_editor, cursor = self._schema_editor(vendor='sqlite')

        vector_extension.create_vector_extension(None, schema_editor)

        cursor.execute.assert_not_called()

    def test_created_when_available(self):
        schema_editor, cursor = self._schema_editor()

        with patch.object(vector_extension.transaction, 'atomic'):
            vector_extension.create_vector_extension(None, schema_editor)

        self.assertIn("CREATE EXTENSION IF NOT EXISTS vector", self._executed(cursor))

    def test_not_created_when_server_lacks_it(self):
        schema_editor, cursor = self._schema_editor(available=False)

        vector_extension.create_vector_extension(None, schema_editor)

        self.assertNotIn("CREATE EXTENSION IF NOT EXISTS vector", self._executed(cursor))

    def test_permission_error_does_not_fail_migration(self):
        schema_editor, cursor = self._schema_editor()
        cursor.execute.side_effect = [None, DatabaseError("permission denied to create extension")]

        with patch.object(vector_extension.transaction, 'atomic'):
            with self.assertLogs(vector_extension.logger, level='WARNING') as logs:
                vector_extension.create_vector_extension(None, schema_editor)

        self.assertIn('pgvector_extension_create_failed', logs.output[0])
