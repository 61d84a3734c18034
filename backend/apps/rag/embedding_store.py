"""
Embedding storage and similarity search

One EmbeddingStore per owner family (incidents, runbook fragments). Search is
delegated to a SimilaritySearcher chosen at construction time:

- PgVectorSearcher: native pgvector cosine distance, filtered, ordered and
  limited inside PostgreSQL. Production path.
- InMemorySearcher: loads every record, decodes it and scores in numpy.
  Used where the vector extension is unavailable (SQLite, plain Postgres).

Both return the same ordering for the same data: similarity descending,
ties broken by record id ascending (insertion order).
"""
import logging
from typing import List, Optional, Sequence, Tuple, Type

from django.conf import settings
from django.db import DatabaseError, IntegrityError, connection as default_connection, transaction

from . import vector_codec
from .exceptions import (
    DuplicateKey,
    MalformedVector,
    OwnerNotFound,
    PersistenceError,
    SearchFailed,
)
from .models import EmbeddingRecord, IncidentEmbedding, RunbookEmbedding, SourceType

logger = logging.getLogger(__name__)

ScoredRecord = Tuple[EmbeddingRecord, float]


class SimilaritySearcher:
    """Base class for similarity search strategies"""

    name = ''

    def index(self, record: EmbeddingRecord) -> None:
        """Called inside the insert transaction after a record is created."""

    def find_similar(
        self,
        model: Type[EmbeddingRecord],
        query_vector: Sequence[float],
        min_score: float,
        limit: int
    ) -> List[ScoredRecord]:
        """Returns up to `limit` (record, score) pairs with score >= min_score, best first"""
        raise NotImplementedError


class InMemorySearcher(SimilaritySearcher):
    """
    Brute-force search in process memory

    Pros:
    - Works on any database (no extension)
    - Reference behaviour for the native strategy

    Cons:
    - Loads every vector of the family on each query (O(n))
    """

    name = 'in_memory'

    def find_similar(
        self,
        model: Type[EmbeddingRecord],
        query_vector: Sequence[float],
        min_score: float,
        limit: int
    ) -> List[ScoredRecord]:
        # Quantize the query like stored vectors. Scoring runs in float64 while
        # pgvector accumulates in float32, so scores agree to about 1e-6; records
        # that close to min_score or to each other may filter or rank differently.
        query = vector_codec.decode(vector_codec.encode(query_vector))

        records = []
        vectors = []
        for record in model.objects.order_by('id').iterator():
            try:
                vector = record.get_vector()
            except MalformedVector as e:
                logger.warning(
                    "embedding_skipped_malformed",
                    extra={'table': model._meta.db_table, 'record_id': record.pk, 'error': str(e)},
                )
                continue
            if len(vector) != len(query):
                logger.warning(
                    "embedding_skipped_dimension_mismatch",
                    extra={
                        'table': model._meta.db_table,
                        'record_id': record.pk,
                        'dimension': len(vector),
                        'expected': len(query),
                    },
                )
                continue
            records.append(record)
            vectors.append(vector)

        if not records:
            return []

        scores = vector_codec.batch_cosine_similarity(query, vectors)

        scored = [
            (record, float(score))
            for record, score in zip(records, scores)
            if score >= min_score
        ]
        scored.sort(key=lambda item: (-item[1], item[0].pk))
        return scored[:limit]


class PgVectorSearcher(SimilaritySearcher):
    """
    Native search with the pgvector extension

    Keeps an `embedding_vector vector` column next to the packed bytes and
    lets PostgreSQL compute 1 - cosine distance, filter, order and limit.
    No ANN index is created: the scan is exact so results match the
    in-memory strategy.
    """

    name = 'pgvector'
    VECTOR_COLUMN = 'embedding_vector'

    def __init__(self, connection=None):
        self.connection = connection or default_connection
        self._extension_available = None
        self._ready_tables = set()

    @property
    def extension_available(self) -> bool:
        """Check if pgvector extension is installed in the database"""
        if self._extension_available is None:
            if self.connection.vendor != 'postgresql':
                self._extension_available = False
            else:
                try:
                    with self.connection.cursor() as cursor:
                        cursor.execute(
                            "SELECT EXISTS(SELECT 1 FROM pg_extension WHERE extname = 'vector')"
                        )
                        self._extension_available = cursor.fetchone()[0]
                except DatabaseError:
                    logger.warning("pgvector_extension_check_failed", exc_info=True)
                    self._extension_available = False
        return self._extension_available

    def vector_column_exists(self, table: str) -> bool:
        with self.connection.cursor() as cursor:
            cursor.execute(
                """
                SELECT EXISTS (
                    SELECT 1 FROM information_schema.columns
                    WHERE table_name = %s
                    AND column_name = %s
                )
                """,
                [table, self.VECTOR_COLUMN]
            )
            return cursor.fetchone()[0]

    def ensure_setup(self, model: Type[EmbeddingRecord]) -> bool:
        """
        Ensure the vector column exists on the model's table.

        Returns True if ready, False if the extension is not available.
        """
        table = model._meta.db_table
        if table in self._ready_tables:
            return True

        if not self.extension_available:
            return False

        if not self.vector_column_exists(table):
            with self.connection.cursor() as cursor:
                cursor.execute(
                    f"ALTER TABLE {self._quote(table)} "
                    f"ADD COLUMN IF NOT EXISTS {self.VECTOR_COLUMN} vector"
                )
            logger.info("pgvector_column_created", extra={'table': table})

        self._ready_tables.add(table)
        return True

    def index(self, record: EmbeddingRecord) -> None:
        model = type(record)
        if not self.ensure_setup(model):
            raise PersistenceError("pgvector extension not available")

        with self.connection.cursor() as cursor:
            cursor.execute(
                f"UPDATE {self._quote(model._meta.db_table)} "
                f"SET {self.VECTOR_COLUMN} = %s::vector WHERE id = %s",
                [vector_codec.to_pgvector_literal(record.get_vector()), record.pk]
            )

    def find_similar(
        self,
        model: Type[EmbeddingRecord],
        query_vector: Sequence[float],
        min_score: float,
        limit: int
    ) -> List[ScoredRecord]:
        """
        Single query: score, filter, order and limit server-side.

        Zero-norm vectors score 0.0 (pgvector would return NaN, which sorts
        above every number in PostgreSQL).
        """
        if not self.ensure_setup(model):
            raise SearchFailed("pgvector extension not available")

        columns = ', '.join(
            f"t.{self._quote(field.column)}" for field in model._meta.concrete_fields
        )
        sql = f"""
            WITH q AS (SELECT %s::vector AS v)
            SELECT * FROM (
                SELECT {columns},
                    CASE
                        WHEN vector_norm(t.{self.VECTOR_COLUMN}) = 0 OR vector_norm(q.v) = 0 THEN 0.0
                        ELSE 1 - (t.{self.VECTOR_COLUMN} <=> q.v)
                    END AS similarity
                FROM {self._quote(model._meta.db_table)} t CROSS JOIN q
                WHERE t.{self.VECTOR_COLUMN} IS NOT NULL
                  AND vector_dims(t.{self.VECTOR_COLUMN}) = vector_dims(q.v)
            ) scored
            WHERE scored.similarity >= %s
            ORDER BY scored.similarity DESC, scored.id ASC
            LIMIT %s
        """
        params = [vector_codec.to_pgvector_literal(query_vector), min_score, limit]

        records = list(model.objects.raw(sql, params))
        return [(record, float(record.similarity)) for record in records]

    def backfill_vectors(
        self,
        model: Type[EmbeddingRecord],
        batch_size: int = 1000,
        after_id: int = 0
    ) -> Tuple[int, Optional[int]]:
        """
        Copy packed payloads into the vector column for rows written while
        the in-memory strategy was active.

        Scans at most batch_size rows with id > after_id. Malformed payloads
        are skipped and stay NULL (never searched natively).

        Returns:
            (rows migrated, last id scanned or None when nothing was left)
        """
        if not self.ensure_setup(model):
            raise PersistenceError("pgvector extension not available")

        table = self._quote(model._meta.db_table)
        with self.connection.cursor() as cursor:
            cursor.execute(
                f"SELECT id, vector FROM {table} "
                f"WHERE {self.VECTOR_COLUMN} IS NULL AND id > %s ORDER BY id LIMIT %s",
                [after_id, batch_size]
            )
            rows = cursor.fetchall()

        if not rows:
            return 0, None

        migrated = 0
        for record_id, payload in rows:
            try:
                vector = vector_codec.decode(payload)
            except MalformedVector:
                logger.warning(
                    "pgvector_backfill_skipped_malformed",
                    extra={'table': model._meta.db_table, 'record_id': record_id},
                )
                continue
            with self.connection.cursor() as cursor:
                cursor.execute(
                    f"UPDATE {table} SET {self.VECTOR_COLUMN} = %s::vector WHERE id = %s",
                    [vector_codec.to_pgvector_literal(vector), record_id]
                )
            migrated += 1

        return migrated, rows[-1][0]

    def _quote(self, name: str) -> str:
        return self.connection.ops.quote_name(name)


class EmbeddingStore:
    """
    Write-once storage and similarity search for one owner family.

    Storage errors are raised as store exceptions and never retried here.
    """

    def __init__(
        self,
        model: Type[EmbeddingRecord],
        searcher: SimilaritySearcher,
        dimension: Optional[int] = None
    ):
        self.model = model
        self.searcher = searcher
        self.dimension = dimension if dimension is not None else getattr(settings, 'EMBEDDING_DIMENSION', None)

    def insert(
        self,
        owner_id,
        source_text: str,
        vector: Sequence[float],
        source_type: Optional[str] = None
    ) -> EmbeddingRecord:
        """
        Persist a new embedding record.

        Args:
            owner_id: Incident or RunbookFragment id
            source_text: The exact text that was embedded
            vector: Embedding vector, EMBEDDING_DIMENSION components
            source_type: Provenance tag; unknown values fall back to the family default

        Raises:
            OwnerNotFound: Owner row does not exist
            DuplicateKey: Database constraint violation
            PersistenceError: Invalid input or any other database failure
        """
        if not source_text or not source_text.strip():
            raise PersistenceError("Cannot store an embedding with empty source text")
        if len(vector) == 0:
            raise PersistenceError("Cannot store an empty vector")
        if self.dimension and len(vector) != self.dimension:
            raise PersistenceError(
                f"Vector has {len(vector)} dimensions, store expects {self.dimension}"
            )

        source_type = SourceType.normalize(source_type, self.model.DEFAULT_SOURCE_TYPE)

        try:
            if not self._owner_exists(owner_id):
                raise OwnerNotFound(owner_id)

            with transaction.atomic():
                record = self.model.objects.create(
                    **{f'{self.model.OWNER_FIELD}_id': owner_id},
                    source_text=source_text,
                    vector=vector_codec.encode(vector),
                    source_type=source_type,
                )
                self.searcher.index(record)
        except IntegrityError as e:
            # Owner deleted between the check and the insert
            if not self._owner_exists(owner_id):
                raise OwnerNotFound(owner_id) from e
            raise DuplicateKey(str(e)) from e
        except DatabaseError as e:
            raise PersistenceError(str(e)) from e

        logger.debug(
            "embedding_stored",
            extra={
                'table': self.model._meta.db_table,
                'record_id': record.pk,
                'owner_id': owner_id,
                'source_type': source_type,
            },
        )
        return record

    def find_similar(
        self,
        query_vector: Sequence[float],
        min_score: float,
        limit: int
    ) -> List[ScoredRecord]:
        """
        Find stored records most similar to query_vector.

        Returns:
            At most `limit` (record, score) tuples with score >= min_score,
            strictly descending by score. Empty list if none qualify.

        Raises:
            SearchFailed: Storage error or unusable query vector
        """
        if limit <= 0:
            return []
        if len(query_vector) == 0:
            raise SearchFailed("Query vector is empty")

        try:
            results = self.searcher.find_similar(self.model, query_vector, min_score, limit)
        except DatabaseError as e:
            raise SearchFailed(str(e)) from e

        logger.debug(
            "similarity_search_complete",
            extra={
                'table': self.model._meta.db_table,
                'strategy': self.searcher.name,
                'min_score': min_score,
                'limit': limit,
                'result_count': len(results),
            },
        )
        return results

    def count(self) -> int:
        return self.model.objects.count()

    def clear(self) -> int:
        """Delete every record of this family. Returns number deleted."""
        deleted, _ = self.model.objects.all().delete()
        logger.info(
            "embedding_store_cleared",
            extra={'table': self.model._meta.db_table, 'deleted': deleted},
        )
        return deleted

    def _owner_exists(self, owner_id) -> bool:
        return self.model.owner_model().objects.filter(pk=owner_id).exists()


def build_searcher(backend: Optional[str] = None) -> SimilaritySearcher:
    """
    Create the search strategy for a backend name.

    Args:
        backend: 'pgvector' or 'in_memory'; defaults to EMBEDDING_SEARCH_BACKEND
    """
    backend = backend or getattr(settings, 'EMBEDDING_SEARCH_BACKEND', 'pgvector')
    if backend == PgVectorSearcher.name:
        return PgVectorSearcher()
    if backend == InMemorySearcher.name:
        return InMemorySearcher()
    raise ValueError(f"Unknown embedding search backend: {backend}")


# Singleton instances
_searcher = None
_incident_store = None
_runbook_store = None


def get_searcher() -> SimilaritySearcher:
    global _searcher
    if _searcher is None:
        _searcher = build_searcher()
    return _searcher


def get_incident_store() -> EmbeddingStore:
    """Get or create the incident embedding store"""
    global _incident_store
    if _incident_store is None:
        _incident_store = EmbeddingStore(IncidentEmbedding, get_searcher())
    return _incident_store


def get_runbook_store() -> EmbeddingStore:
    """Get or create the runbook fragment embedding store"""
    global _runbook_store
    if _runbook_store is None:
        _runbook_store = EmbeddingStore(RunbookEmbedding, get_searcher())
    return _runbook_store


def reset_stores() -> None:
    """Drop cached stores so the next call re-reads settings."""
    global _searcher, _incident_store, _runbook_store
    _searcher = None
    _incident_store = None
    _runbook_store = None
