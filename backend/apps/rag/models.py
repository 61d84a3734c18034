"""
Embedding records for the two owner families.

Vectors are kept as packed float32 bytes in `vector`. When the pgvector search
strategy is active it also maintains an `embedding_vector` column on the same
table (added at runtime, see embedding_store.PgVectorSearcher), so the schema
below stays portable to databases without the extension.
"""
from django.db import models

from . import vector_codec


class SourceType(models.TextChoices):
    RAW_INCIDENT = 'RAW_INCIDENT', 'Raw incident'
    VERIFIED_DIAGNOSIS = 'VERIFIED_DIAGNOSIS', 'Verified diagnosis'
    RESOLVED_INCIDENT = 'RESOLVED_INCIDENT', 'Resolved incident'
    OFFICIAL_RUNBOOK = 'OFFICIAL_RUNBOOK', 'Official runbook'

    @classmethod
    def normalize(cls, value, default: str) -> str:
        """Return value if it is a known source type, otherwise default."""
        if value in cls.values:
            return value
        return default


class EmbeddingRecord(models.Model):
    """
    Write-once embedding of an owner's text.

    Several records may exist per owner (re-embedding appends, it never
    updates in place).
    """
    source_text = models.TextField(
        help_text="Exact text that was embedded, used for result snippets"
    )
    vector = models.BinaryField(
        help_text="Packed little-endian float32 components"
    )
    source_type = models.CharField(
        max_length=32,
        choices=SourceType.choices
    )
    created_at = models.DateTimeField(auto_now_add=True)

    # Set by subclasses
    OWNER_FIELD = ''
    DEFAULT_SOURCE_TYPE = ''

    class Meta:
        abstract = True

    @property
    def owner_id(self):
        return getattr(self, f'{self.OWNER_FIELD}_id')

    def get_vector(self):
        return vector_codec.decode(self.vector)

    @classmethod
    def owner_model(cls):
        return cls._meta.get_field(cls.OWNER_FIELD).related_model


class IncidentEmbedding(EmbeddingRecord):
    incident = models.ForeignKey(
        'incidents.Incident',
        on_delete=models.CASCADE,
        related_name='embeddings'
    )

    OWNER_FIELD = 'incident'
    DEFAULT_SOURCE_TYPE = SourceType.RAW_INCIDENT

    class Meta:
        db_table = 'incident_embeddings'
        ordering = ['id']

    def __str__(self):
        return f"IncidentEmbedding #{self.pk} ({self.source_type}) for incident #{self.incident_id}"


class RunbookEmbedding(EmbeddingRecord):
    fragment = models.ForeignKey(
        'runbooks.RunbookFragment',
        on_delete=models.CASCADE,
        related_name='embeddings'
    )

    OWNER_FIELD = 'fragment'
    DEFAULT_SOURCE_TYPE = SourceType.OFFICIAL_RUNBOOK

    class Meta:
        db_table = 'runbook_embeddings'
        ordering = ['id']

    def __str__(self):
        return f"RunbookEmbedding #{self.pk} for fragment #{self.fragment_id}"
