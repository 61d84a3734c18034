"""
Embedding model access.

The engine only depends on the `EmbeddingModel` protocol (text in, vector out).
The default implementation wraps sentence-transformers; the model name is
configurable via EMBEDDING_MODEL (default: all-MiniLM-L12-v2, 384 dimensions).
No retries or caching here: every call reaches the model exactly once.
"""
import logging
from typing import List, Protocol

logger = logging.getLogger(__name__)


class EmbeddingModel(Protocol):
    def embed(self, text: str) -> List[float]:
        ...


class _SentenceTransformerSingleton:
    """
    Process-wide holder for the SentenceTransformer model.

    The model is ~100MB in memory, so it is loaded once on first use.
    """

    _instance = None
    _model = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            from django.conf import settings
            model_name = getattr(settings, 'EMBEDDING_MODEL', 'all-MiniLM-L12-v2')
            logger.info("embedding_model_loading", extra={'model_name': model_name})
            self.__class__._model = SentenceTransformer(model_name)

    def encode(self, text, **kwargs):
        """Encode text to embedding vector(s)."""
        return self._model.encode(text, **kwargs)


class SentenceTransformerEmbeddingModel:
    """Default EmbeddingModel backed by a local sentence-transformers model."""

    def embed(self, text: str) -> List[float]:
        """
        Embed a single text.

        Raises whatever the underlying model raises; callers map failures
        to their own error kinds.
        """
        return _SentenceTransformerSingleton().encode(text).tolist()


# Module-level singleton
_embedding_model = None


def get_embedding_model() -> EmbeddingModel:
    """Lazy load the embedding model to avoid import overhead."""
    global _embedding_model
    if _embedding_model is None:
        _embedding_model = SentenceTransformerEmbeddingModel()
    return _embedding_model
