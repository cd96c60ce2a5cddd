"""
Server-side encrypted similarity computation.

The computing party scores an encrypted query against encrypted items
without seeing:
- The query vector (it's encrypted)
- The database vectors (they're encrypted)
- The similarity scores (results are encrypted)
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from veil.crypto.capability import HomomorphicCapability
from veil.shared.errors import ValidationError
from veil.shared.protocol import EncryptedScalar, EncryptedVector, RejectedItem
from veil.shared.utils import Timer

logger = logging.getLogger(__name__)


@dataclass
class EncryptedStore:
    """
    Encrypted database held by the computing party.

    ``indices`` maps each ciphertext back to its position in the caller's
    database, since rejected items leave gaps.
    """
    items: List[EncryptedVector] = field(default_factory=list)
    indices: List[int] = field(default_factory=list)
    rejected: List[RejectedItem] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.items)

    def add(self, index: int, item: EncryptedVector) -> None:
        self.indices.append(index)
        self.items.append(item)

    def reject(self, index: int, reason: str) -> None:
        self.rejected.append(RejectedItem(index=index, reason=reason))

    def discard(self, index: int, reason: str) -> None:
        """Drop an accepted item and record why."""
        position = self.indices.index(index)
        del self.indices[position]
        del self.items[position]
        self.reject(index, reason)


def encrypt_database(
    capability: HomomorphicCapability,
    vectors: Sequence[np.ndarray],
    workers: Optional[int] = None,
) -> EncryptedStore:
    """
    Encrypt database vectors, skipping the ones that fail validation.

    Args:
        capability: Context holding the joint public key
        vectors: Plaintext database vectors
        workers: Thread pool size (defaults to the configured value)

    Returns:
        EncryptedStore with accepted items in database order
    """
    workers = workers or capability.config.workers

    def encrypt_one(index: int) -> Tuple[int, Optional[EncryptedVector], Optional[str]]:
        try:
            return index, capability.encrypt(vectors[index], item_index=index), None
        except ValidationError as exc:
            return index, None, str(exc)

    with Timer() as t:
        if workers > 1 and len(vectors) > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                outcomes = list(executor.map(encrypt_one, range(len(vectors))))
        else:
            outcomes = [encrypt_one(i) for i in range(len(vectors))]

    store = EncryptedStore()
    for index, item, reason in outcomes:
        if item is None:
            logger.warning("Skipping database item: %s", reason)
            store.reject(index, reason)
        else:
            store.add(index, item)

    logger.info(
        "Encrypted %d/%d database vectors in %.0fms",
        len(store),
        len(vectors),
        t.elapsed_ms,
    )
    return store


class SimilarityComputer:
    """
    Encrypted cosine similarity between a query and database items.

    Inputs are unit vectors, so the dot product is the cosine.
    """

    def __init__(self, capability: HomomorphicCapability, workers: Optional[int] = None):
        """
        Initialize similarity computer.

        Args:
            capability: Shared, read-only crypto context
            workers: Thread pool size for batch scoring
        """
        self.capability = capability
        self.workers = workers or capability.config.workers

    def compute_similarity(
        self,
        encrypted_query: EncryptedVector,
        encrypted_item: EncryptedVector,
        item_index: Optional[int] = None,
    ) -> EncryptedScalar:
        """
        Encrypted dot product of two packed vectors.

        One slot-wise multiply (one level), then a rotate-and-add slot sum.

        Raises:
            ValidationError: dimension or parameter mismatch
            DepthExhausted: no level left for the multiply
        """
        if encrypted_query.dimension != encrypted_item.dimension:
            raise ValidationError(
                f"dimension {encrypted_item.dimension} does not match query "
                f"dimension {encrypted_query.dimension}",
                item_index=item_index,
            )
        if not encrypted_query.compatible_with(encrypted_item):
            raise ValidationError(
                "encrypted under a different context or scaling parameters",
                item_index=item_index,
            )

        product = self.capability.multiply(encrypted_query, encrypted_item)
        return self.capability.rotate_and_sum(product)

    def compute_scores(
        self,
        encrypted_query: EncryptedVector,
        store: EncryptedStore,
    ) -> Tuple[List[EncryptedScalar], List[int], float]:
        """
        Score every item in the store, in parallel when workers > 1.

        Items failing validation are moved out of the store into
        ``store.rejected``, so scoring the store again skips them; depth
        exhaustion aborts the whole batch.

        Returns:
            Tuple of (encrypted_scores, database indices, time_ms)
        """
        def score_one(position: int) -> Tuple[int, Optional[EncryptedScalar], Optional[str]]:
            index = store.indices[position]
            try:
                score = self.compute_similarity(
                    encrypted_query, store.items[position], item_index=index
                )
                return index, score, None
            except ValidationError as exc:
                return index, None, str(exc)

        with Timer() as t:
            if self.workers > 1 and len(store) > 1:
                with ThreadPoolExecutor(max_workers=self.workers) as executor:
                    outcomes = list(executor.map(score_one, range(len(store))))
            else:
                outcomes = [score_one(position) for position in range(len(store))]

        scores: List[EncryptedScalar] = []
        indices: List[int] = []
        for index, score, reason in outcomes:
            if score is None:
                logger.warning("Skipping similarity: %s", reason)
                store.discard(index, reason)
                continue
            scores.append(score)
            indices.append(index)

        logger.info("Computed %d encrypted similarities in %.0fms", len(scores), t.elapsed_ms)
        return scores, indices, t.elapsed_ms
