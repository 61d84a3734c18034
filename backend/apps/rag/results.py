"""
Result objects returned by the public service operations.

Expected failures are returned, not raised: callers branch on `result.ok`
and `result.error.kind`.
"""
from dataclasses import dataclass, field
from typing import List, Optional

from django.db import models


class EmbeddingErrorKind(models.TextChoices):
    MODEL_UNAVAILABLE = 'model_unavailable', 'Embedding model unavailable'
    EMBEDDING_FAILED = 'embedding_failed', 'Embedding failed'
    PERSISTENCE_ERROR = 'persistence_error', 'Persistence error'
    INVALID_TEXT = 'invalid_text', 'Invalid text'
    UNEXPECTED = 'unexpected', 'Owner record not found'


class RetrievalErrorKind(models.TextChoices):
    INVALID_QUERY = 'invalid_query', 'Invalid query'
    MODEL_UNAVAILABLE = 'model_unavailable', 'Embedding model unavailable'
    SEARCH_FAILED = 'search_failed', 'Search failed'
    UNEXPECTED = 'unexpected', 'Unexpected error'


@dataclass(frozen=True)
class EmbeddingError:
    kind: str
    cause: str = ''


@dataclass(frozen=True)
class RetrievalError:
    kind: str
    cause: str = ''


@dataclass
class EmbeddingResult:
    """Outcome of an embedding generation call: number of records written or an error."""
    count: int = 0
    error: Optional[EmbeddingError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, count: int) -> 'EmbeddingResult':
        return cls(count=count)

    @classmethod
    def failure(cls, kind: str, cause: str = '') -> 'EmbeddingResult':
        return cls(error=EmbeddingError(kind=kind, cause=cause))

    def to_dict(self) -> dict:
        return {
            'ok': self.ok,
            'count': self.count,
            'error': self.error.kind if self.error else None,
            'cause': self.error.cause if self.error else None,
        }


@dataclass(frozen=True)
class RetrievalMatch:
    """One similar record. Read-only projection of a stored embedding."""
    owner_id: int
    score: float
    snippet: Optional[str]
    source_type: str


@dataclass
class RetrievalContext:
    """Ranked matches handed to the diagnosis step. Built per request."""
    similar_incident_matches: List[RetrievalMatch] = field(default_factory=list)
    similar_fragment_matches: List[RetrievalMatch] = field(default_factory=list)
    query_text: str = ''

    @property
    def is_empty(self) -> bool:
        return not self.similar_incident_matches and not self.similar_fragment_matches


@dataclass
class RetrievalResult:
    context: Optional[RetrievalContext] = None
    error: Optional[RetrievalError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, context: RetrievalContext) -> 'RetrievalResult':
        return cls(context=context)

    @classmethod
    def failure(cls, kind: str, cause: str = '') -> 'RetrievalResult':
        return cls(error=RetrievalError(kind=kind, cause=cause))
