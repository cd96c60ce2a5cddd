"""Shared utilities, configuration and protocol definitions."""
from veil.shared.config import PipelineConfig
from veil.shared.errors import (
    ConfigurationError,
    DepthExhausted,
    InsufficientShares,
    KeyGenerationFailure,
    ValidationError,
    VeilError,
)
from veil.shared.protocol import (
    Decision,
    DecryptionShare,
    Disclosure,
    EncryptedScalar,
    EncryptedVector,
    KeyMaterial,
    ReductionTrace,
    UniquenessReport,
)
from veil.shared.utils import (
    Timer,
    compute_plaintext_similarity,
    generate_random_vectors,
    normalize_vectors,
    plaintext_max,
)

__all__ = [
    "PipelineConfig",
    "ConfigurationError",
    "DepthExhausted",
    "InsufficientShares",
    "KeyGenerationFailure",
    "ValidationError",
    "VeilError",
    "Decision",
    "DecryptionShare",
    "Disclosure",
    "EncryptedScalar",
    "EncryptedVector",
    "KeyMaterial",
    "ReductionTrace",
    "UniquenessReport",
    "Timer",
    "compute_plaintext_similarity",
    "generate_random_vectors",
    "normalize_vectors",
    "plaintext_max",
]
