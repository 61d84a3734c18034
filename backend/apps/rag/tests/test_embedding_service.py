"""
Tests for EmbeddingGenerationService.
"""
from unittest.mock import MagicMock

from django.test import TestCase

from apps.rag.embedding_service import (
    EmbeddingGenerationService,
    build_diagnosis_text,
    build_incident_text,
)
from apps.rag.embedding_store import EmbeddingStore
from apps.rag.exceptions import DuplicateKey, OwnerNotFound
from apps.rag.models import IncidentEmbedding, RunbookEmbedding, SourceType
from apps.rag.results import EmbeddingErrorKind

from .helpers import (
    FailingEmbeddingModel,
    KeywordEmbeddingModel,
    make_diagnosis,
    make_fragment,
    make_incident,
    make_stores,
)


class EmbeddingServiceTestBase(TestCase):

    def setUp(self):
        self.model = KeywordEmbeddingModel()
        self.incident_store, self.runbook_store = make_stores()
        self.service = self._service(self.model)

    def _service(self, model):
        return EmbeddingGenerationService(
            embedding_model=model,
            incident_store=self.incident_store,
            runbook_store=self.runbook_store,
        )


class EmbedIncidentTest(EmbeddingServiceTestBase):

    def test_success(self):
        incident = make_incident(title='Database timeout', description='Connection refused')

        result = self.service.embed_incident(incident.pk)

        self.assertTrue(result.ok)
        self.assertEqual(result.count, 1)
        record = IncidentEmbedding.objects.get(incident=incident)
        self.assertEqual(record.source_text, 'Title: Database timeout\nDescription: Connection refused')
        self.assertEqual(record.source_type, SourceType.RAW_INCIDENT)
        self.assertEqual(record.get_vector(), [1.0, 1.0, 0.0, 1.0, 0.0, 0.0, 0.0, 0.0])
        self.assertEqual(self.model.calls, [record.source_text])

    def test_text_is_trimmed(self):
        incident = make_incident(title='Disk full', description='')

        self.service.embed_incident(incident.pk)

        record = IncidentEmbedding.objects.get(incident=incident)
        self.assertEqual(record.source_text, 'Title: Disk full\nDescription:')

    def test_missing_incident(self):
        result = self.service.embed_incident(999999)

        self.assertFalse(result.ok)
        self.assertEqual(result.error.kind, EmbeddingErrorKind.UNEXPECTED)
        self.assertEqual(self.model.calls, [])

    def test_blank_incident_rejected_without_model_call(self):
        incident = make_incident(title='   ', description='\n')

        result = self.service.embed_incident(incident.pk)

        self.assertEqual(result.error.kind, EmbeddingErrorKind.INVALID_TEXT)
        self.assertEqual(self.model.calls, [])
        self.assertEqual(IncidentEmbedding.objects.count(), 0)

    def test_model_failure(self):
        incident = make_incident()
        service = self._service(FailingEmbeddingModel())

        result = service.embed_incident(incident.pk)

        self.assertEqual(result.error.kind, EmbeddingErrorKind.EMBEDDING_FAILED)
        self.assertIn('model crashed', result.error.cause)
        self.assertEqual(IncidentEmbedding.objects.count(), 0)

    def test_wrong_dimension_reported_as_embedding_failure(self):
        incident = make_incident()
        model = MagicMock()
        model.embed.return_value = [1.0, 0.0]

        result = self._service(model).embed_incident(incident.pk)

        self.assertEqual(result.error.kind, EmbeddingErrorKind.EMBEDDING_FAILED)
        self.assertEqual(IncidentEmbedding.objects.count(), 0)

    def test_model_returning_no_vector(self):
        incident = make_incident()
        model = MagicMock()
        model.embed.return_value = None

        result = self._service(model).embed_incident(incident.pk)

        self.assertEqual(result.error.kind, EmbeddingErrorKind.EMBEDDING_FAILED)
        self.assertIn('no vector', result.error.cause)
        self.assertEqual(IncidentEmbedding.objects.count(), 0)

    def test_model_returning_non_numeric_vector(self):
        fragment = make_fragment()
        model = MagicMock()
        model.embed.return_value = ['x'] * 8

        result = self._service(model).embed_runbook_fragment(fragment.pk)

        self.assertEqual(result.error.kind, EmbeddingErrorKind.EMBEDDING_FAILED)
        self.assertIn('not numeric', result.error.cause)
        self.assertEqual(RunbookEmbedding.objects.count(), 0)

    def test_constraint_violation_reported_as_persistence_error(self):
        incident = make_incident()
        store = MagicMock(spec=EmbeddingStore)
        store.insert.side_effect = DuplicateKey("duplicate key value violates unique constraint")
        service = EmbeddingGenerationService(self.model, store, self.runbook_store)

        result = service.embed_incident(incident.pk)

        self.assertEqual(result.error.kind, EmbeddingErrorKind.PERSISTENCE_ERROR)
        self.assertIn('unique constraint', result.error.cause)

    def test_owner_deleted_mid_call(self):
        incident = make_incident()
        store = MagicMock(spec=EmbeddingStore)
        store.insert.side_effect = OwnerNotFound(incident.pk)
        service = EmbeddingGenerationService(self.model, store, self.runbook_store)

        result = service.embed_incident(incident.pk)

        self.assertEqual(result.error.kind, EmbeddingErrorKind.UNEXPECTED)

    def test_reembedding_appends(self):
        incident = make_incident()

        self.service.embed_incident(incident.pk)
        self.service.embed_incident(incident.pk)

        self.assertEqual(IncidentEmbedding.objects.filter(incident=incident).count(), 2)


class EmbedRunbookFragmentTest(EmbeddingServiceTestBase):

    def test_success(self):
        fragment = make_fragment(title='Disk cleanup', content='Free disk space')

        result = self.service.embed_runbook_fragment(fragment.pk)

        self.assertTrue(result.ok)
        record = RunbookEmbedding.objects.get(fragment=fragment)
        self.assertEqual(record.source_text, 'Title: Disk cleanup\nContent: Free disk space')
        self.assertEqual(record.source_type, SourceType.OFFICIAL_RUNBOOK)

    def test_missing_fragment(self):
        result = self.service.embed_runbook_fragment(999999)
        self.assertEqual(result.error.kind, EmbeddingErrorKind.UNEXPECTED)

    def test_blank_fragment(self):
        fragment = make_fragment(title='', content='  ')
        result = self.service.embed_runbook_fragment(fragment.pk)
        self.assertEqual(result.error.kind, EmbeddingErrorKind.INVALID_TEXT)


class EmbedBatchTest(EmbeddingServiceTestBase):

    def test_empty_batch(self):
        result = self.service.embed_batch([], [])

        self.assertTrue(result.ok)
        self.assertEqual(result.count, 0)

    def test_counts_all_owners(self):
        incidents = [make_incident(title=f'Database issue {i}') for i in range(3)]
        fragments = [make_fragment(title=f'Runbook {i}') for i in range(2)]

        result = self.service.embed_batch(
            incident_ids=[i.pk for i in incidents],
            fragment_ids=[f.pk for f in fragments],
        )

        self.assertTrue(result.ok)
        self.assertEqual(result.count, 5)
        self.assertEqual(self.incident_store.count(), 3)
        self.assertEqual(self.runbook_store.count(), 2)

    def test_incidents_before_fragments(self):
        incident = make_incident(title='Database issue')
        fragment = make_fragment(title='Runbook')

        self.service.embed_batch(incident_ids=[incident.pk], fragment_ids=[fragment.pk])

        self.assertTrue(self.model.calls[0].startswith('Title: Database issue'))
        self.assertTrue(self.model.calls[1].startswith('Title: Runbook'))

    def test_missing_owners_are_skipped(self):
        first = make_incident(title='Database issue')
        second = make_incident(title='Disk issue')

        result = self.service.embed_batch(incident_ids=[first.pk, 999999, second.pk])

        self.assertTrue(result.ok)
        self.assertEqual(result.count, 2)

    def test_model_failure_aborts_batch(self):
        incidents = [make_incident(title=f'Database issue {i}') for i in range(3)]
        service = self._service(FailingEmbeddingModel(fail_on_call=2))

        result = service.embed_batch(incident_ids=[i.pk for i in incidents])

        self.assertFalse(result.ok)
        self.assertEqual(result.error.kind, EmbeddingErrorKind.EMBEDDING_FAILED)
        self.assertEqual(result.count, 0)
        # No rollback: the first owner's record stays, the third is never attempted
        self.assertEqual(
            list(IncidentEmbedding.objects.values_list('incident_id', flat=True)),
            [incidents[0].pk],
        )
        self.assertEqual(len(service.embedding_model.calls), 2)

    def test_invalid_text_aborts_batch(self):
        blank = make_incident(title='', description='')
        later = make_incident(title='Database issue')

        result = self.service.embed_batch(incident_ids=[blank.pk, later.pk])

        self.assertEqual(result.error.kind, EmbeddingErrorKind.INVALID_TEXT)
        self.assertEqual(self.incident_store.count(), 0)


class EmbedVerifiedDiagnosisTest(EmbeddingServiceTestBase):

    def test_success(self):
        incident = make_incident(title='Database connection pool exhausted', description='Checkout down')
        diagnosis = make_diagnosis(incident, root_cause='Pool size too small')

        result = self.service.embed_verified_diagnosis(diagnosis.pk)

        self.assertTrue(result.ok)
        record = IncidentEmbedding.objects.get(incident=incident)
        self.assertEqual(record.source_type, SourceType.VERIFIED_DIAGNOSIS)
        self.assertEqual(record.source_text, build_diagnosis_text(diagnosis))
        self.assertIn('Root Cause: Pool size too small', record.source_text)
        self.assertIn('Remediation Steps: Raise pool size; Restart app', record.source_text)

    def test_unverified_rejected(self):
        diagnosis = make_diagnosis(make_incident(), verified=False)

        result = self.service.embed_verified_diagnosis(diagnosis.pk)

        self.assertEqual(result.error.kind, EmbeddingErrorKind.INVALID_TEXT)
        self.assertEqual(self.model.calls, [])

    def test_missing_root_cause_rejected(self):
        diagnosis = make_diagnosis(make_incident(), root_cause='  ')

        result = self.service.embed_verified_diagnosis(diagnosis.pk)

        self.assertEqual(result.error.kind, EmbeddingErrorKind.INVALID_TEXT)

    def test_missing_diagnosis(self):
        result = self.service.embed_verified_diagnosis(999999)
        self.assertEqual(result.error.kind, EmbeddingErrorKind.UNEXPECTED)


class EmbedResolutionTest(EmbeddingServiceTestBase):

    def test_success(self):
        incident = make_incident(
            title='Disk space usage critical',
            description='Worker volume full',
            resolution_text='Rotated logs and extended volume',
        )

        result = self.service.embed_resolution(incident.pk)

        self.assertTrue(result.ok)
        record = IncidentEmbedding.objects.get(incident=incident)
        self.assertEqual(record.source_type, SourceType.RESOLVED_INCIDENT)
        self.assertTrue(record.source_text.startswith(build_incident_text(incident)))
        self.assertTrue(record.source_text.endswith('Resolution: Rotated logs and extended volume'))

    def test_unresolved_rejected(self):
        incident = make_incident(resolution_text='')

        result = self.service.embed_resolution(incident.pk)

        self.assertEqual(result.error.kind, EmbeddingErrorKind.INVALID_TEXT)


class EmbeddingResultTest(TestCase):

    def test_to_dict(self):
        service = EmbeddingGenerationService(KeywordEmbeddingModel(), *make_stores())

        self.assertEqual(
            service.embed_incident(999999).to_dict(),
            {
                'ok': False,
                'count': 0,
                'error': EmbeddingErrorKind.UNEXPECTED,
                'cause': 'incident 999999 not found',
            },
        )
