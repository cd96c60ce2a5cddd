"""
Pipeline configuration.

One immutable object, validated exhaustively at construction time, replaces
the scattered constants and "enable feature X" calls of a raw crypto setup.
Anything invalid surfaces as ConfigurationError before a key is generated.
"""
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from veil.shared.approx import (
    MAX_DEGREE,
    MIN_DEGREE,
    chebyshev_depth,
    secure_max_depth,
    tournament_rounds,
)
from veil.shared.errors import ConfigurationError
from veil.shared.protocol import Disclosure

SecurityLevel = Literal["128_classic", "192_classic", "256_classic", "none"]


def _is_power_of_two(value: int) -> bool:
    return value > 0 and value & (value - 1) == 0


class PipelineConfig(BaseModel):
    """Recognised options for one uniqueness check."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    dimension: int = Field(64, gt=0, description="Embedding dimension D")
    database_size: int = Field(100, gt=0, description="Number of database items N")
    multiplicative_depth: int = Field(
        50, gt=0, description="Multiplicative depth budget of the CKKS context"
    )
    scaling_precision_bits: int = Field(
        40, ge=20, le=60, description="CKKS scaling modulus size in bits"
    )
    batch_size: int = Field(64, gt=0, description="Packed slots per ciphertext")
    security_level: SecurityLevel = Field(
        "128_classic", description="Lattice security level, or 'none' for tests"
    )
    ring_dimension: Optional[int] = Field(
        None, description="Ring dimension; required when security_level is 'none'"
    )
    party_count: int = Field(1, gt=0, description="Key-share holders n")
    decryption_threshold: int = Field(1, gt=0, description="Quorum t")
    similarity_threshold: float = Field(0.5, ge=-1.0, le=1.0)
    abs_degree: int = Field(27, ge=MIN_DEGREE, le=MAX_DEGREE)
    sign_degree: int = Field(27, ge=MIN_DEGREE, le=MAX_DEGREE)
    disclosure: Disclosure = Disclosure.MAXIMUM
    workers: int = Field(1, gt=0, description="Thread pool size for ciphertext ops")
    decryption_timeout: float = Field(30.0, gt=0, description="Quorum wait in seconds")
    accuracy_tolerance: float = Field(1e-4, gt=0)

    def __init__(self, **data: Any):
        try:
            super().__init__(**data)
        except PydanticValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
                for err in exc.errors()
            )
            raise ConfigurationError(f"Invalid configuration: {problems}") from exc

    @model_validator(mode="after")
    def _check_consistency(self) -> "PipelineConfig":
        if not _is_power_of_two(self.batch_size):
            raise ValueError(f"batch_size must be a power of two, got {self.batch_size}")
        if self.batch_size < self.dimension:
            raise ValueError(
                f"batch_size {self.batch_size} cannot hold dimension {self.dimension}"
            )
        if self.ring_dimension is not None:
            if not _is_power_of_two(self.ring_dimension):
                raise ValueError("ring_dimension must be a power of two")
            if self.ring_dimension < 2 * self.batch_size:
                raise ValueError(
                    f"ring_dimension {self.ring_dimension} has fewer than "
                    f"{self.batch_size} slots"
                )
        elif self.security_level == "none":
            raise ValueError("security_level 'none' requires an explicit ring_dimension")
        if self.decryption_threshold > self.party_count:
            raise ValueError(
                f"decryption_threshold {self.decryption_threshold} exceeds "
                f"party_count {self.party_count}"
            )
        if self.disclosure is Disclosure.SIGN_ONLY and self.sign_degree % 2 == 0:
            raise ValueError("sign_degree must be odd: the sign series keeps only odd terms")
        if self.multiplicative_depth < self.required_depth:
            raise ValueError(
                f"multiplicative_depth {self.multiplicative_depth} is below the "
                f"{self.required_depth} levels needed: 1 (similarity) + "
                f"{self.rounds} round(s) x {self.depth_per_round}"
                + (
                    f" + {chebyshev_depth(self.sign_degree)} (sign)"
                    if self.disclosure is Disclosure.SIGN_ONLY
                    else ""
                )
            )
        return self

    @property
    def rounds(self) -> int:
        """Tournament rounds needed for ``database_size`` scores."""
        return tournament_rounds(self.database_size)

    @property
    def depth_per_round(self) -> int:
        return secure_max_depth(self.abs_degree)

    @property
    def required_depth(self) -> int:
        """Levels the whole pipeline consumes on its deepest path."""
        depth = 1 + self.rounds * self.depth_per_round
        if self.disclosure is Disclosure.SIGN_ONLY:
            depth += chebyshev_depth(self.sign_degree)
        return depth

    def with_options(self, **changes: Any) -> "PipelineConfig":
        """Return a re-validated copy with some options replaced."""
        return PipelineConfig(**{**self.model_dump(), **changes})

    @classmethod
    def for_database(cls, database_size: int, **options: Any) -> "PipelineConfig":
        """
        Build a config whose depth budget exactly covers ``database_size`` items.

        Args:
            database_size: Number of items to reduce
            **options: Any other recognised option

        Returns:
            Validated PipelineConfig
        """
        probe = {**options, "database_size": database_size}
        abs_degree = probe.get("abs_degree", 27)
        depth = 1 + tournament_rounds(database_size) * secure_max_depth(abs_degree)
        if Disclosure(probe.get("disclosure", Disclosure.MAXIMUM)) is Disclosure.SIGN_ONLY:
            depth += chebyshev_depth(probe.get("sign_degree", 27))
        probe.setdefault("multiplicative_depth", depth)
        return cls(**probe)

    @classmethod
    def demo(cls) -> "PipelineConfig":
        """D=64, N=100, threshold 0.5, single party, 40-bit scale."""
        return cls.for_database(100, dimension=64, batch_size=64)
