"""
Vector packing and cosine similarity.

Embeddings are stored as packed little-endian float32 (4 bytes per component)
so the same payload can be read by the in-memory search and copied into a
pgvector column. All functions here are pure.
"""
from typing import List, Sequence, Union

import numpy as np

from .exceptions import MalformedVector

# Fixed byte order for every deployment
VECTOR_DTYPE = np.dtype('<f4')
BYTES_PER_COMPONENT = VECTOR_DTYPE.itemsize

Payload = Union[bytes, bytearray, memoryview]


def encode(vector: Sequence[float]) -> bytes:
    """
    Pack a vector into bytes.

    Args:
        vector: Sequence of floats (list, tuple or numpy array)

    Returns:
        len(vector) * 4 bytes, no header, no compression
    """
    return np.asarray(vector, dtype=VECTOR_DTYPE).tobytes()


def coerce(vector) -> List[float]:
    """
    Turn an embedding model's output into a flat list of floats.

    Raises:
        MalformedVector: If the output is missing, not numeric or not one-dimensional
    """
    if vector is None:
        raise MalformedVector("Embedding model returned no vector")
    try:
        array = np.asarray(vector, dtype=float)
    except (TypeError, ValueError) as e:
        raise MalformedVector(f"Embedding is not numeric: {e}") from e
    if array.ndim != 1:
        raise MalformedVector(f"Embedding must be one-dimensional, got shape {array.shape}")
    return array.tolist()


def decode(payload: Payload) -> List[float]:
    """
    Unpack bytes produced by encode().

    Raises:
        MalformedVector: If the payload length is not a multiple of 4
    """
    raw = bytes(payload)
    if len(raw) % BYTES_PER_COMPONENT != 0:
        raise MalformedVector(
            f"Vector payload of {len(raw)} bytes is not a multiple of {BYTES_PER_COMPONENT}"
        )
    return np.frombuffer(raw, dtype=VECTOR_DTYPE).astype(float).tolist()


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """
    Compute cosine similarity between two vectors.

    Returns 0.0 when either vector is empty or has zero norm.

    Args:
        vec1: First vector
        vec2: Second vector

    Returns:
        Similarity score in [-1.0, 1.0]

    Raises:
        MalformedVector: If the vectors have different dimensions
    """
    if len(vec1) == 0 or len(vec2) == 0:
        return 0.0

    if len(vec1) != len(vec2):
        raise MalformedVector(f"Vector dimensions must match: {len(vec1)} != {len(vec2)}")

    a = np.asarray(vec1, dtype=float)
    b = np.asarray(vec2, dtype=float)

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return _clamp(float(np.dot(a, b) / (norm_a * norm_b)))


def batch_cosine_similarity(
    query: Sequence[float],
    embeddings: Sequence[Sequence[float]]
) -> np.ndarray:
    """
    Compute cosine similarity between one query and multiple embeddings.

    Vectorized implementation, same results as calling cosine_similarity
    in a loop, including 0.0 for zero-norm rows.

    Args:
        query: Single query embedding vector
        embeddings: Embedding vectors to compare against, all of the query's dimension

    Returns:
        Numpy array of similarity scores (same order as input)
    """
    if len(embeddings) == 0:
        return np.array([])

    query_vec = np.asarray(query, dtype=float)
    embed_matrix = np.asarray(embeddings, dtype=float)

    if embed_matrix.ndim != 2 or embed_matrix.shape[1] != query_vec.shape[0]:
        raise MalformedVector(
            f"Embedding matrix shape {embed_matrix.shape} does not match query dimension {query_vec.shape[0]}"
        )

    query_norm = np.linalg.norm(query_vec)
    if query_norm == 0:
        return np.zeros(len(embeddings))

    embed_norms = np.linalg.norm(embed_matrix, axis=1)
    zero_rows = embed_norms == 0
    embed_norms = np.where(zero_rows, 1, embed_norms)

    similarities = np.dot(embed_matrix, query_vec) / (embed_norms * query_norm)
    similarities[zero_rows] = 0.0

    return np.clip(similarities, -1.0, 1.0)


def to_pgvector_literal(vector: Sequence[float]) -> str:
    """Text form accepted by a `%s::vector` cast."""
    return '[' + ','.join(repr(float(x)) for x in vector) + ']'


def _clamp(score: float) -> float:
    # Rounding can push identical vectors a hair past 1.0
    return max(-1.0, min(1.0, score))
