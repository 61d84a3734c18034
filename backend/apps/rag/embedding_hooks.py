"""
Embedding generation hooks for owner records.

When RAG_AUTO_EMBED is on, saving an owner enqueues the matching Celery task
after the surrounding transaction commits (the worker must be able to read
the row). Registered in RagConfig.ready().

Covered models:
  - Incident (post_save, created): title + description
  - Incident (pre_save/post_save): resolution text, when it changes to non-blank
  - RunbookFragment (post_save, created): title + content
  - Diagnosis (pre_save/post_save): when it becomes verified

Embeddings are write-once, so edits to an already embedded incident or
fragment do not re-embed; use the backfill_embeddings command with --reset.
"""
import logging

from django.conf import settings
from django.db import transaction
from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver

logger = logging.getLogger(__name__)


def _auto_embed_enabled() -> bool:
    return getattr(settings, 'RAG_AUTO_EMBED', False)


def _enqueue(task, owner_id) -> None:
    transaction.on_commit(lambda: task.delay(owner_id))
    logger.debug(
        "embedding_task_enqueued",
        extra={'task_name': task.name, 'owner_id': owner_id},
    )


# ---------------------------------------------------------------------------
# Incident
# ---------------------------------------------------------------------------

@receiver(pre_save, sender='incidents.Incident')
def track_incident_resolution(sender, instance, **kwargs):
    """Remember whether this save changes the resolution text."""
    resolution = (instance.resolution_text or '').strip()
    if not resolution or not _auto_embed_enabled():
        instance._resolution_changed = False
        return

    if instance._state.adding or instance.pk is None:
        instance._resolution_changed = True
        return

    previous = sender.objects.filter(pk=instance.pk).values_list('resolution_text', flat=True).first()
    instance._resolution_changed = (previous or '').strip() != resolution


@receiver(post_save, sender='incidents.Incident')
def enqueue_incident_embedding(sender, instance, created, **kwargs):
    """Embed new incidents, and resolutions when they are written."""
    if not _auto_embed_enabled():
        return

    from .tasks import embed_incident_task, embed_resolution_task

    if created:
        _enqueue(embed_incident_task, instance.pk)
    if getattr(instance, '_resolution_changed', False):
        _enqueue(embed_resolution_task, instance.pk)


# ---------------------------------------------------------------------------
# RunbookFragment
# ---------------------------------------------------------------------------

@receiver(post_save, sender='runbooks.RunbookFragment')
def enqueue_fragment_embedding(sender, instance, created, **kwargs):
    if not created or not _auto_embed_enabled():
        return

    from .tasks import embed_runbook_fragment_task
    _enqueue(embed_runbook_fragment_task, instance.pk)


# ---------------------------------------------------------------------------
# Diagnosis
# ---------------------------------------------------------------------------

@receiver(pre_save, sender='incidents.Diagnosis')
def track_diagnosis_verification(sender, instance, **kwargs):
    """Remember whether this save marks the diagnosis as verified."""
    if not instance.verified or not _auto_embed_enabled():
        instance._became_verified = False
        return

    if instance._state.adding or instance.pk is None:
        instance._became_verified = True
        return

    was_verified = sender.objects.filter(pk=instance.pk).values_list('verified', flat=True).first()
    instance._became_verified = not was_verified


@receiver(post_save, sender='incidents.Diagnosis')
def enqueue_diagnosis_embedding(sender, instance, **kwargs):
    """Embed a diagnosis once, when it is verified."""
    if not getattr(instance, '_became_verified', False) or not _auto_embed_enabled():
        return

    from .tasks import embed_verified_diagnosis_task
    _enqueue(embed_verified_diagnosis_task, instance.pk)
