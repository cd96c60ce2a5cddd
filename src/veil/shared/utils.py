"""
Shared utility functions.
"""
import time
from typing import Optional, Tuple

import numpy as np


def generate_random_vectors(
    num_vectors: int,
    dimension: int,
    normalize: bool = True,
    seed: Optional[int] = None,
) -> np.ndarray:
    """
    Generate Gaussian random vectors for testing.

    Args:
        num_vectors: Number of vectors to generate
        dimension: Dimension of each vector
        normalize: Whether to L2-normalize vectors
        seed: Random seed for reproducibility

    Returns:
        Array of shape (num_vectors, dimension)
    """
    rng = np.random.default_rng(seed)
    vectors = rng.standard_normal((num_vectors, dimension))

    if normalize:
        vectors = normalize_vectors(vectors)

    return vectors


def normalize_vectors(vectors: np.ndarray) -> np.ndarray:
    """
    L2-normalize vectors.

    Zero rows are left as zeros so the codec can reject them explicitly.

    Args:
        vectors: Array of shape (n, d)

    Returns:
        Normalized vectors of same shape
    """
    vectors = np.asarray(vectors, dtype=np.float64)
    norms = np.linalg.norm(vectors, axis=-1, keepdims=True)
    norms = np.where(norms == 0, 1, norms)
    return vectors / norms


def compute_plaintext_similarity(
    query: np.ndarray,
    vectors: np.ndarray
) -> np.ndarray:
    """
    Compute dot product similarities in plaintext (for verification).

    Args:
        query: Query vector of shape (d,) or (1, d)
        vectors: Database vectors of shape (n, d)

    Returns:
        Similarity scores of shape (n,)
    """
    query = query.reshape(1, -1) if query.ndim == 1 else query
    return (vectors @ query.T).flatten()


def plaintext_max(query: np.ndarray, vectors: np.ndarray) -> Tuple[float, int]:
    """Maximum similarity and the index that attains it."""
    scores = compute_plaintext_similarity(query, vectors)
    argmax = int(np.argmax(scores))
    return float(scores[argmax]), argmax


class Timer:
    """Context manager for timing operations."""

    def __init__(self):
        self.start_time: Optional[float] = None
        self.elapsed: Optional[float] = None

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args) -> None:
        self.elapsed = time.perf_counter() - self.start_time

    @property
    def elapsed_ms(self) -> float:
        """Get elapsed time in milliseconds."""
        if self.elapsed is None:
            if self.start_time is not None:
                return (time.perf_counter() - self.start_time) * 1000
            return 0.0
        return self.elapsed * 1000
