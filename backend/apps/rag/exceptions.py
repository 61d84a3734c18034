"""
Exceptions raised inside the retrieval engine.

The store and codec raise these; the generation and retrieval services catch
them and translate them into result objects (see results.py).
"""


class MalformedVector(ValueError):
    """Raised when a packed vector payload cannot be decoded or compared.

    Indicates data corruption for that record; callers skip the record
    rather than failing the whole search.
    """
    pass


class EmbeddingStoreError(Exception):
    """Base class for embedding store failures."""
    pass


class OwnerNotFound(EmbeddingStoreError):
    """Raised when the incident/fragment an embedding belongs to no longer exists."""

    def __init__(self, owner_id):
        self.owner_id = owner_id
        super().__init__(f"Owner {owner_id} not found")


class PersistenceError(EmbeddingStoreError):
    """Raised when writing an embedding record fails."""
    pass


class DuplicateKey(PersistenceError):
    """Raised when the database rejects an insert on a constraint violation."""
    pass


class SearchFailed(EmbeddingStoreError):
    """Raised when a similarity search cannot be executed."""
    pass
