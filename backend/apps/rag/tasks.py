"""
Celery tasks for embedding generation.

Each task calls exactly one EmbeddingGenerationService method and returns
the result as a dict so it survives the result backend. Nothing is retried:
a failed embedding is reported, and the backfill command can pick it up later.
"""
import logging

from celery import shared_task

from .embedding_service import get_embedding_generation_service

logger = logging.getLogger(__name__)


@shared_task
def embed_incident_task(incident_id: int) -> dict:
    """Embed a newly saved incident."""
    return get_embedding_generation_service().embed_incident(incident_id).to_dict()


@shared_task
def embed_runbook_fragment_task(fragment_id: int) -> dict:
    """Embed a newly saved runbook fragment."""
    return get_embedding_generation_service().embed_runbook_fragment(fragment_id).to_dict()


@shared_task
def embed_verified_diagnosis_task(diagnosis_id: int) -> dict:
    """Embed a diagnosis once an operator has verified it."""
    return get_embedding_generation_service().embed_verified_diagnosis(diagnosis_id).to_dict()


@shared_task
def embed_resolution_task(incident_id: int) -> dict:
    """Embed a resolved incident with its resolution text."""
    return get_embedding_generation_service().embed_resolution(incident_id).to_dict()


@shared_task
def embed_batch_task(incident_ids=None, fragment_ids=None) -> dict:
    """
    Embed many owners in one sequential pass.

    Args:
        incident_ids: Incident ids, embedded first
        fragment_ids: Runbook fragment ids, embedded after the incidents

    Returns:
        EmbeddingResult dict; on abort, the error of the failing owner
    """
    incident_ids = list(incident_ids or [])
    fragment_ids = list(fragment_ids or [])

    result = get_embedding_generation_service().embed_batch(
        incident_ids=incident_ids,
        fragment_ids=fragment_ids,
    )
    if not result.ok:
        logger.warning(
            "embed_batch_task_failed",
            extra={
                'incident_count': len(incident_ids),
                'fragment_count': len(fragment_ids),
                'error': result.error.kind,
            },
        )
    return result.to_dict()
