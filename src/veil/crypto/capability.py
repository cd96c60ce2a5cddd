"""
The homomorphic capability contract consumed by the pipeline.

Concrete backends implement the raw ``_eval_*`` primitives and the key
ceremony steps. The depth bookkeeping lives here, on the ciphertext values
themselves, so every budget check is local and independent of whatever the
backend tracks internally.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence, Tuple, TypeVar

from veil.crypto.codec import VectorCodec
from veil.shared.approx import chebyshev_depth
from veil.shared.config import PipelineConfig
from veil.shared.errors import ConfigurationError, DepthExhausted, ValidationError
from veil.shared.protocol import (
    Ciphertext,
    EncryptedScalar,
    EncryptedVector,
    KeyMaterial,
)

logger = logging.getLogger(__name__)

C = TypeVar("C", bound=Ciphertext)


class HomomorphicCapability(ABC):
    """
    Explicitly constructed crypto context, read-only once keys are installed.

    Lifecycle:
    1. construct from a validated PipelineConfig
    2. key holders run the ceremony through the ``*_key_*`` primitives
    3. ``install_keys`` freezes the public key and evaluation keys
    4. encrypt / evaluate / partially decrypt
    """

    def __init__(self, config: PipelineConfig):
        self.config = config
        self.context_id = uuid.uuid4().hex[:16]
        self.codec = VectorCodec(config.dimension, config.batch_size)
        self._key_material: Optional[KeyMaterial] = None

    # ------------------------------------------------------------------
    # Key ceremony primitives (each takes at most one party's secret)
    # ------------------------------------------------------------------

    @abstractmethod
    def generate_key_share(self, previous_public_key: Any = None) -> Tuple[Any, Any]:
        """Return (public key, secret share); chained after the previous party."""

    @abstractmethod
    def switch_key_seed(self, secret_share: Any) -> Any:
        """Lead party's key-switching key, the base every other party extends."""

    @abstractmethod
    def switch_key_contribution(self, secret_share: Any, seed: Any) -> Any:
        """Another party's key-switching key over the same randomness."""

    @abstractmethod
    def combine_switch_keys(self, joint: Any, contribution: Any, public_key: Any) -> Any:
        """Fold a contribution into the joint key-switching key."""

    @abstractmethod
    def mult_key_share(self, secret_share: Any, joint_switch_key: Any, public_key: Any) -> Any:
        """One party's factor of the joint relinearisation key."""

    @abstractmethod
    def combine_mult_keys(self, joint: Any, share: Any) -> Any:
        """Fold a relinearisation factor into the joint key."""

    @abstractmethod
    def sum_keys_seed(self, secret_share: Any) -> Any:
        """Lead party's rotation keys for the slot-sum."""

    @abstractmethod
    def sum_keys_contribution(self, secret_share: Any, seed: Any, public_key: Any) -> Any:
        """Another party's rotation keys over the same randomness."""

    @abstractmethod
    def combine_sum_keys(self, joint: Any, contribution: Any, public_key: Any) -> Any:
        """Fold rotation-key contributions together."""

    @abstractmethod
    def _install(self, public_key: Any, mult_key: Any, sum_keys: Any, lead_public_key: Any) -> None:
        """Register evaluation keys with the backend."""

    def install_keys(
        self,
        public_key: Any,
        mult_key: Any,
        sum_keys: Any,
        lead_public_key: Any,
        party_count: int,
    ) -> KeyMaterial:
        """
        Freeze the joint public key and evaluation keys. Runs exactly once.

        Returns:
            The shared, read-only KeyMaterial
        """
        if self._key_material is not None:
            raise ConfigurationError("Keys are already installed for this context")
        self._install(public_key, mult_key, sum_keys, lead_public_key)
        self._key_material = KeyMaterial(
            public_key=public_key,
            party_count=party_count,
            decryption_threshold=self.config.decryption_threshold,
            sum_slots=self.codec.slots if sum_keys is not None else 0,
            has_mult_key=mult_key is not None,
            has_sum_keys=sum_keys is not None,
        )
        logger.info(
            "Installed keys for context %s (%d part%s, slot-sum over %d slots)",
            self.context_id,
            party_count,
            "y" if party_count == 1 else "ies",
            self.codec.slots,
        )
        return self._key_material

    @property
    def key_material(self) -> KeyMaterial:
        if self._key_material is None:
            raise ConfigurationError("Key generation has not completed for this context")
        return self._key_material

    @property
    def is_ready(self) -> bool:
        return self._key_material is not None

    # ------------------------------------------------------------------
    # Raw backend primitives
    # ------------------------------------------------------------------

    @abstractmethod
    def _encrypt(self, public_key: Any, values: List[float]) -> Any:
        ...

    @abstractmethod
    def _eval_add(self, x: Any, y: Any) -> Any:
        ...

    @abstractmethod
    def _eval_sub(self, x: Any, y: Any) -> Any:
        ...

    @abstractmethod
    def _eval_mult(self, x: Any, y: Any) -> Any:
        ...

    @abstractmethod
    def _eval_mult_const(self, x: Any, constant: float) -> Any:
        ...

    @abstractmethod
    def _eval_sum(self, x: Any, slots: int) -> Any:
        ...

    @abstractmethod
    def _eval_chebyshev(
        self, x: Any, coefficients: Sequence[float], lower: float, upper: float
    ) -> Any:
        """Evaluate sum(c_k * T_k) with [lower, upper] mapped onto [-1, 1]."""

    @abstractmethod
    def partial_decrypt(self, secret_share: Any, ciphertext: Ciphertext, lead: bool) -> Any:
        """One party's decryption share; reveals nothing by itself."""

    @abstractmethod
    def _fuse(self, payloads: Sequence[Any]) -> Sequence[float]:
        ...

    # ------------------------------------------------------------------
    # Depth-checked operations
    # ------------------------------------------------------------------

    def _require_levels(
        self, level: int, cost: int, operation: str, round_index: Optional[int] = None
    ) -> None:
        budget = self.config.multiplicative_depth
        if level + cost > budget:
            raise DepthExhausted(level, cost, budget, operation, round_index)

    def _check_pair(self, x: Ciphertext, y: Ciphertext) -> None:
        if not x.compatible_with(y):
            raise ValidationError(
                "ciphertexts come from different contexts or scaling parameters"
            )

    def encrypt(self, vector, item_index: Optional[int] = None) -> EncryptedVector:
        """Validate, pack and encrypt a vector under the joint public key."""
        array = self.codec.validate(vector, item_index=item_index)
        ciphertext = self._encrypt(self.key_material.public_key, self.codec.encode(array))
        return EncryptedVector(
            ciphertext=ciphertext,
            slots=self.codec.slots,
            scale_bits=self.config.scaling_precision_bits,
            context_id=self.context_id,
            level=0,
            dimension=self.codec.dimension,
        )

    def encrypt_scalar(self, value: float) -> EncryptedScalar:
        """Encrypt a public scalar replicated across the batch."""
        ciphertext = self._encrypt(self.key_material.public_key, self.codec.encode_scalar(value))
        return EncryptedScalar(
            ciphertext=ciphertext,
            slots=self.codec.slots,
            scale_bits=self.config.scaling_precision_bits,
            context_id=self.context_id,
            level=0,
        )

    def add(self, x: C, y: C) -> C:
        self._check_pair(x, y)
        base = x if x.level >= y.level else y
        return base.advanced(self._eval_add(x.ciphertext, y.ciphertext))

    def subtract(self, x: C, y: C) -> C:
        self._check_pair(x, y)
        base = x if x.level >= y.level else y
        return base.advanced(self._eval_sub(x.ciphertext, y.ciphertext))

    def multiply(self, x: C, y: C, round_index: Optional[int] = None) -> C:
        self._check_pair(x, y)
        base = x if x.level >= y.level else y
        self._require_levels(base.level, 1, "multiply", round_index)
        return base.advanced(self._eval_mult(x.ciphertext, y.ciphertext), cost=1)

    def multiply_const(self, x: C, constant: float, round_index: Optional[int] = None) -> C:
        self._require_levels(x.level, 1, "multiply by constant", round_index)
        return x.advanced(self._eval_mult_const(x.ciphertext, float(constant)), cost=1)

    def rotate_and_sum(self, x: EncryptedVector) -> EncryptedScalar:
        """Sum all slots by log2(slots) rotate-and-add steps. Costs no depth."""
        return EncryptedScalar(
            ciphertext=self._eval_sum(x.ciphertext, x.slots),
            slots=x.slots,
            scale_bits=x.scale_bits,
            context_id=x.context_id,
            level=x.level,
        )

    def chebyshev(
        self,
        x: C,
        coefficients: Sequence[float],
        domain: Tuple[float, float],
        round_index: Optional[int] = None,
    ) -> C:
        """Evaluate a Chebyshev series over ``domain``; its degree sets the cost."""
        degree = len(coefficients) - 1
        cost = chebyshev_depth(degree)
        self._require_levels(x.level, cost, f"chebyshev(degree={degree})", round_index)
        lower, upper = domain
        return x.advanced(self._eval_chebyshev(x.ciphertext, coefficients, lower, upper), cost=cost)

    def combine_shares(self, payloads: Sequence[Any]) -> float:
        """Fuse partial decryptions and decode the scalar in slot 0."""
        return self.codec.decode(self._fuse(payloads))

