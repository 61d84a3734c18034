"""
EmbeddingGenerationService: turn incidents, runbook fragments, verified
diagnoses and resolutions into stored embeddings.

Each call builds canonical text for one owner record, makes exactly one
embedding-model call and writes one record. Failures come back as
EmbeddingResult errors; nothing is retried.
"""
import logging
from typing import Iterable, Optional

from apps.incidents.models import Diagnosis, Incident
from apps.runbooks.models import RunbookFragment

from . import vector_codec
from .embedding_model import EmbeddingModel, get_embedding_model
from .embedding_store import EmbeddingStore, get_incident_store, get_runbook_store
from .exceptions import DuplicateKey, EmbeddingStoreError, OwnerNotFound
from .models import SourceType
from .results import EmbeddingErrorKind, EmbeddingResult

logger = logging.getLogger(__name__)


def build_incident_text(incident) -> str:
    return f"Title: {incident.title}\nDescription: {incident.description}".strip()


def build_runbook_text(fragment) -> str:
    return f"Title: {fragment.title}\nContent: {fragment.content}".strip()


def build_diagnosis_text(diagnosis) -> str:
    incident = diagnosis.incident
    steps = diagnosis.remediation_steps or []
    if isinstance(steps, (list, tuple)):
        steps = '; '.join(str(step) for step in steps)
    return (
        f"Title: {incident.title}\n"
        f"Description: {incident.description}\n"
        f"Root Cause: {diagnosis.suggested_root_cause}\n"
        f"Remediation Steps: {steps}"
    ).strip()


def build_resolution_text(incident) -> str:
    return (
        f"Title: {incident.title}\n"
        f"Description: {incident.description}\n"
        f"Resolution: {incident.resolution_text}"
    ).strip()


def is_blank(*values) -> bool:
    return all(not (value or '').strip() for value in values)


class EmbeddingGenerationService:
    """Generate and persist embeddings for owner records."""

    def __init__(
        self,
        embedding_model: Optional[EmbeddingModel] = None,
        incident_store: Optional[EmbeddingStore] = None,
        runbook_store: Optional[EmbeddingStore] = None,
    ):
        self.embedding_model = embedding_model or get_embedding_model()
        self.incident_store = incident_store or get_incident_store()
        self.runbook_store = runbook_store or get_runbook_store()

    def embed_incident(self, incident_id) -> EmbeddingResult:
        """
        Embed an incident's title and description.

        Returns:
            EmbeddingResult with count=1, or an error:
            UNEXPECTED (incident missing), INVALID_TEXT (blank title and
            description), EMBEDDING_FAILED (model or storage failure),
            PERSISTENCE_ERROR (constraint violation)
        """
        incident = Incident.objects.filter(pk=incident_id).first()
        if incident is None:
            return self._not_found('incident', incident_id)

        if is_blank(incident.title, incident.description):
            return self._invalid_text('incident', incident_id)

        return self._embed_and_store(
            store=self.incident_store,
            owner_id=incident.pk,
            text=build_incident_text(incident),
            source_type=SourceType.RAW_INCIDENT,
        )

    def embed_runbook_fragment(self, fragment_id) -> EmbeddingResult:
        """Embed a runbook fragment's title and content. Same error contract as embed_incident."""
        fragment = RunbookFragment.objects.filter(pk=fragment_id).first()
        if fragment is None:
            return self._not_found('runbook_fragment', fragment_id)

        if is_blank(fragment.title, fragment.content):
            return self._invalid_text('runbook_fragment', fragment_id)

        return self._embed_and_store(
            store=self.runbook_store,
            owner_id=fragment.pk,
            text=build_runbook_text(fragment),
            source_type=SourceType.OFFICIAL_RUNBOOK,
        )

    def embed_batch(
        self,
        incident_ids: Iterable = (),
        fragment_ids: Iterable = (),
    ) -> EmbeddingResult:
        """
        Embed incidents, then runbook fragments, one at a time.

        Missing owners (UNEXPECTED) are skipped so stale id lists don't abort
        the batch. Any other failure stops the batch and is returned as-is;
        the partial count is discarded, records already written are kept.
        """
        count = 0
        jobs = [(self.embed_incident, owner_id) for owner_id in incident_ids]
        jobs += [(self.embed_runbook_fragment, owner_id) for owner_id in fragment_ids]

        for embed, owner_id in jobs:
            result = embed(owner_id)
            if result.ok:
                count += result.count
                continue
            if result.error.kind == EmbeddingErrorKind.UNEXPECTED:
                continue

            logger.warning(
                "embedding_batch_aborted",
                extra={
                    'owner_id': owner_id,
                    'error': result.error.kind,
                    'embedded_before_abort': count,
                },
            )
            return result

        logger.info(
            "embedding_batch_complete",
            extra={'requested': len(jobs), 'embedded': count},
        )
        return EmbeddingResult.success(count)

    def embed_verified_diagnosis(self, diagnosis_id) -> EmbeddingResult:
        """
        Embed a verified diagnosis together with its incident.

        Stored in the incident store under the diagnosis's incident with
        source type VERIFIED_DIAGNOSIS, so retrieval surfaces confirmed root
        causes alongside raw incidents.
        """
        diagnosis = Diagnosis.objects.select_related('incident').filter(pk=diagnosis_id).first()
        if diagnosis is None:
            return self._not_found('diagnosis', diagnosis_id)

        if not diagnosis.verified or is_blank(diagnosis.suggested_root_cause):
            return self._invalid_text('diagnosis', diagnosis_id)

        return self._embed_and_store(
            store=self.incident_store,
            owner_id=diagnosis.incident_id,
            text=build_diagnosis_text(diagnosis),
            source_type=SourceType.VERIFIED_DIAGNOSIS,
        )

    def embed_resolution(self, incident_id) -> EmbeddingResult:
        """Embed a resolved incident with its resolution text (RESOLVED_INCIDENT)."""
        incident = Incident.objects.filter(pk=incident_id).first()
        if incident is None:
            return self._not_found('incident', incident_id)

        if is_blank(incident.resolution_text):
            return self._invalid_text('incident_resolution', incident_id)

        return self._embed_and_store(
            store=self.incident_store,
            owner_id=incident.pk,
            text=build_resolution_text(incident),
            source_type=SourceType.RESOLVED_INCIDENT,
        )

    def _embed_and_store(
        self,
        store: EmbeddingStore,
        owner_id,
        text: str,
        source_type: str,
    ) -> EmbeddingResult:
        try:
            vector = vector_codec.coerce(self.embedding_model.embed(text))
        except Exception as e:
            logger.exception(
                "embedding_model_failed",
                extra={'owner_id': owner_id, 'source_type': source_type},
            )
            return EmbeddingResult.failure(EmbeddingErrorKind.EMBEDDING_FAILED, str(e))

        try:
            store.insert(owner_id, text, vector, source_type)
        except OwnerNotFound:
            return self._not_found(source_type, owner_id)
        except DuplicateKey as e:
            logger.error(
                "embedding_persistence_failed",
                extra={'owner_id': owner_id, 'source_type': source_type, 'cause': str(e)},
            )
            return EmbeddingResult.failure(EmbeddingErrorKind.PERSISTENCE_ERROR, str(e))
        except EmbeddingStoreError as e:
            logger.exception(
                "embedding_store_failed",
                extra={'owner_id': owner_id, 'source_type': source_type},
            )
            return EmbeddingResult.failure(EmbeddingErrorKind.EMBEDDING_FAILED, str(e))

        logger.info(
            "embedding_created",
            extra={'owner_id': owner_id, 'source_type': source_type},
        )
        return EmbeddingResult.success(1)

    def _not_found(self, owner_kind: str, owner_id) -> EmbeddingResult:
        logger.info(
            "embedding_owner_not_found",
            extra={'owner_kind': owner_kind, 'owner_id': owner_id},
        )
        return EmbeddingResult.failure(
            EmbeddingErrorKind.UNEXPECTED,
            f"{owner_kind} {owner_id} not found",
        )

    def _invalid_text(self, owner_kind: str, owner_id) -> EmbeddingResult:
        logger.info(
            "embedding_invalid_text",
            extra={'owner_kind': owner_kind, 'owner_id': owner_id},
        )
        return EmbeddingResult.failure(EmbeddingErrorKind.INVALID_TEXT)


# Singleton instance
_generation_service = None


def get_embedding_generation_service() -> EmbeddingGenerationService:
    """Get or create the embedding generation service singleton"""
    global _generation_service
    if _generation_service is None:
        _generation_service = EmbeddingGenerationService()
    return _generation_service
