"""
Packing between plaintext vectors and CKKS slots.
"""
import logging
from typing import List, Optional, Sequence

import numpy as np

from veil.shared.errors import ValidationError

logger = logging.getLogger(__name__)

UNIT_NORM_TOLERANCE = 1e-6


class VectorCodec:
    """
    Encodes D-dimensional vectors into a ``slots``-wide packed layout.

    Vectors occupy slots [0, D) and the rest is zero padding, so a slot-sum
    over the whole batch equals the sum over the vector. Scalars are
    replicated into every slot, matching what a slot-sum produces.
    """

    def __init__(self, dimension: int, slots: int):
        if slots < dimension:
            raise ValueError(f"{slots} slots cannot hold dimension {dimension}")
        self.dimension = dimension
        self.slots = slots

    def validate(self, vector, item_index: Optional[int] = None) -> np.ndarray:
        """
        Check a vector and return a frozen float64 copy.

        Raises:
            ValidationError: wrong shape, non-finite values or zero norm
        """
        try:
            array = np.array(vector, dtype=np.float64)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"not a numeric vector: {exc}", item_index=item_index) from exc
        if array.ndim != 1 or array.shape[0] != self.dimension:
            raise ValidationError(
                f"expected a {self.dimension}-dimensional vector, got shape {array.shape}",
                item_index=item_index,
            )
        if not np.all(np.isfinite(array)):
            raise ValidationError("vector has non-finite values", item_index=item_index)

        norm = float(np.linalg.norm(array))
        if norm == 0.0:
            raise ValidationError("zero-norm vector", item_index=item_index)
        if abs(norm - 1.0) > UNIT_NORM_TOLERANCE:
            logger.warning(
                "Vector %s has norm %.6f; similarities are cosines only for unit vectors",
                "query" if item_index is None else item_index,
                norm,
            )

        array.setflags(write=False)
        return array

    def encode(self, vector: np.ndarray) -> List[float]:
        """Zero-pad a validated vector to the slot count."""
        packed = np.zeros(self.slots, dtype=np.float64)
        packed[: self.dimension] = vector
        return packed.tolist()

    def encode_scalar(self, value: float) -> List[float]:
        """Replicate a scalar across every slot."""
        return [float(value)] * self.slots

    def decode(self, values: Sequence[float]) -> float:
        """Read the scalar a slot-sum left in slot 0."""
        if len(values) == 0:
            raise ValueError("Cannot decode an empty plaintext")
        return float(np.real(values[0]))
