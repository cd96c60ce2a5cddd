"""
End-to-end uniqueness check.

Coordinates the full flow:
1. Validate configuration and run the key ceremony
2. Encrypt query and database
3. Encrypted similarities, tournament maximum, threshold decision
4. Compare against a plaintext baseline and report
"""
import logging
from typing import Callable, List, Optional, Sequence

import numpy as np

from veil.client.coordinator import ThresholdDecryptionCoordinator
from veil.client.party import KeyHolder, run_key_ceremony
from veil.crypto.capability import HomomorphicCapability
from veil.crypto.openfhe_backend import OpenFHECapability
from veil.server.decision import ThresholdDecisionMaker, is_unique
from veil.server.reduction import SecureMaxReducer
from veil.server.similarity import SimilarityComputer, encrypt_database
from veil.shared.approx import max_error_bound
from veil.shared.config import PipelineConfig
from veil.shared.errors import ConfigurationError, ValidationError
from veil.shared.protocol import Disclosure, KeyMaterial, UniquenessReport
from veil.shared.utils import Timer, plaintext_max

logger = logging.getLogger(__name__)

# Below this many scaling bits, rescaling noise is a plausible contributor.
_COMFORTABLE_SCALE_BITS = 50


def diagnose_error_sources(
    absolute_error: float,
    tolerance: float,
    error_bound: float,
    config: PipelineConfig,
) -> List[str]:
    """
    Explain an accuracy miss.

    Args:
        absolute_error: |decrypted max - plaintext max|
        tolerance: Accepted error
        error_bound: Worst-case approximation error of the tournament
        config: Parameters of the run

    Returns:
        Contributing sources, empty when the tolerance was met
    """
    if absolute_error < tolerance:
        return []

    sources = []
    if error_bound >= tolerance:
        sources.append(
            f"approximation: approxAbs of degree {config.abs_degree} allows up to "
            f"{error_bound:.2e} over {config.rounds} round(s)"
        )
    residual = absolute_error - error_bound
    if residual > 0:
        sources.append(
            f"noise_accumulation: {residual:.2e} beyond the approximation bound "
            f"after {config.required_depth} level(s)"
        )
        if config.scaling_precision_bits < _COMFORTABLE_SCALE_BITS:
            sources.append(
                f"parameter_scale: {config.scaling_precision_bits}-bit scaling "
                f"leaves little headroom for rescaling noise"
            )
    return sources


class UniquenessPipeline:
    """
    Runs the privacy-preserving uniqueness check.

    Key holders and the computing party live in one process here, but they
    only meet through the capability's public state and the coordinator.
    """

    def __init__(
        self,
        config: PipelineConfig,
        capability_factory: Callable[[PipelineConfig], HomomorphicCapability] = OpenFHECapability,
    ):
        """
        Initialize pipeline.

        Args:
            config: Validated configuration
            capability_factory: Builds the crypto context from the config
        """
        self.config = config
        self._capability_factory = capability_factory
        self.capability: Optional[HomomorphicCapability] = None
        self.key_material: Optional[KeyMaterial] = None
        self.holders: List[KeyHolder] = []

    def setup(self) -> KeyMaterial:
        """Create the crypto context and run the key ceremony, once."""
        if self.key_material is not None:
            return self.key_material
        self.capability = self._capability_factory(self.config)
        self.key_material, self.holders = run_key_ceremony(self.capability)
        return self.key_material

    def run(
        self,
        query: np.ndarray,
        database: Sequence[np.ndarray],
        verbose: bool = False,
    ) -> UniquenessReport:
        """
        Check whether ``query`` is unique against ``database``.

        Args:
            query: Unit query vector of shape (D,)
            database: Unit database vectors of shape (N, D)
            verbose: Print stage timings

        Returns:
            UniquenessReport comparing encrypted and plaintext outcomes

        Raises:
            ConfigurationError: database larger than the configured size
            ValidationError: invalid query, or no valid database item
        """
        database = [np.asarray(vector, dtype=np.float64) for vector in database]
        if len(database) > self.config.database_size:
            raise ConfigurationError(
                f"database has {len(database)} items but the depth budget was "
                f"sized for {self.config.database_size}"
            )

        timing = {}
        with Timer() as t:
            self.setup()
        timing["setup_ms"] = t.elapsed_ms
        capability = self.capability

        # Step 1: Encrypt query and database
        with Timer() as t:
            encrypted_query = capability.encrypt(query)
            store = encrypt_database(capability, database)
        timing["encrypt_ms"] = t.elapsed_ms
        if verbose:
            print(f"  Encryption took {t.elapsed_ms:.2f}ms")

        if len(store) == 0:
            raise ValidationError("no valid database items to compare against")

        # Step 2: Encrypted similarities
        computer = SimilarityComputer(capability)
        scores, indices, similarity_ms = computer.compute_scores(encrypted_query, store)
        timing["similarity_ms"] = similarity_ms
        if not scores:
            raise ValidationError("every database item was rejected")

        # Step 3: Tournament maximum
        reducer = SecureMaxReducer(capability)
        with Timer() as t:
            encrypted_max, trace = reducer.reduce_max(scores)
        timing["reduction_ms"] = t.elapsed_ms
        if verbose:
            print(f"  Reduction took {t.elapsed_ms:.2f}ms over {trace.round_count} round(s)")

        # Step 4: Threshold decision through coordinated decryption
        coordinator = ThresholdDecryptionCoordinator(capability)
        decision_maker = ThresholdDecisionMaker(capability, coordinator, self.holders)
        with Timer() as t:
            decision = decision_maker.decide(encrypted_max, self.config.similarity_threshold)
        timing["decision_ms"] = t.elapsed_ms

        timing["total_ms"] = sum(timing.values())
        if verbose:
            print(f"\nTotal time: {timing['total_ms']:.2f}ms")

        # Plaintext baseline over the same accepted items
        plain_max, best = plaintext_max(np.asarray(query, dtype=np.float64), np.vstack([database[i] for i in indices]))
        threshold = self.config.similarity_threshold
        error_bound = max_error_bound(len(scores), self.config.abs_degree)

        decrypted_max = None
        absolute_error = None
        within_tolerance = None
        error_sources: List[str] = []
        if decision.disclosure is Disclosure.MAXIMUM:
            decrypted_max = decision.revealed_value
            absolute_error = abs(decrypted_max - plain_max)
            within_tolerance = absolute_error < self.config.accuracy_tolerance
            error_sources = diagnose_error_sources(
                absolute_error, self.config.accuracy_tolerance, error_bound, self.config
            )
            if not within_tolerance:
                logger.warning(
                    "Absolute error %.2e misses tolerance %.0e: %s",
                    absolute_error,
                    self.config.accuracy_tolerance,
                    "; ".join(error_sources),
                )

        return UniquenessReport(
            plaintext_max=plain_max,
            plaintext_argmax=indices[best],
            decrypted_max=decrypted_max,
            is_unique_plaintext=is_unique(plain_max, threshold),
            is_unique_encrypted=decision.is_unique,
            absolute_error=absolute_error,
            similarity_threshold=threshold,
            disclosure=decision.disclosure,
            accuracy_tolerance=self.config.accuracy_tolerance,
            within_tolerance=within_tolerance,
            error_sources=error_sources,
            error_bound=error_bound,
            rounds=trace.round_count,
            items_scored=len(scores),
            rejected_items=store.rejected,
            timing=timing,
        )
