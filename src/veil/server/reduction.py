"""
Tournament reduction of encrypted scores to their encrypted maximum.

max(a, b) = (a + b + |a - b|) / 2 holds exactly; under CKKS the |.| is a
Chebyshev interpolant, and its error is the only inexact step. Rounds are
barrier-synchronised: round r + 1 consumes every output of round r.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Tuple

from veil.crypto.capability import HomomorphicCapability
from veil.shared.approx import (
    ABS_DOMAIN,
    abs_approximation_error,
    abs_coefficients,
    secure_max_depth,
    tournament_rounds,
)
from veil.shared.errors import DepthExhausted, ValidationError
from veil.shared.protocol import EncryptedScalar, ReductionTrace, RoundTrace
from veil.shared.utils import Timer

logger = logging.getLogger(__name__)


class SecureMaxReducer:
    """Reduces N encrypted scores to one in ceil(log2(N)) rounds."""

    def __init__(
        self,
        capability: HomomorphicCapability,
        abs_degree: Optional[int] = None,
        workers: Optional[int] = None,
    ):
        """
        Initialize reducer.

        Args:
            capability: Shared crypto context
            abs_degree: Degree of the |x| interpolant (defaults to config)
            workers: Thread pool size for the pairings inside a round
        """
        self.capability = capability
        self.abs_degree = abs_degree or capability.config.abs_degree
        self.workers = workers or capability.config.workers

    @property
    def depth_per_round(self) -> int:
        return secure_max_depth(self.abs_degree)

    @property
    def epsilon(self) -> float:
        """Sup-norm error of approxAbs over the difference domain."""
        return abs_approximation_error(self.abs_degree)

    def approx_abs(self, x: EncryptedScalar, round_index: Optional[int] = None) -> EncryptedScalar:
        return self.capability.chebyshev(
            x, abs_coefficients(self.abs_degree), ABS_DOMAIN, round_index=round_index
        )

    def secure_max(
        self,
        a: EncryptedScalar,
        b: EncryptedScalar,
        round_index: Optional[int] = None,
    ) -> EncryptedScalar:
        """(a + b + approxAbs(a - b)) / 2."""
        total = self.capability.add(a, b)
        magnitude = self.approx_abs(self.capability.subtract(a, b), round_index)
        return self.capability.multiply_const(
            self.capability.add(total, magnitude), 0.5, round_index=round_index
        )

    def reduce_max(
        self, scores: Sequence[EncryptedScalar]
    ) -> Tuple[EncryptedScalar, ReductionTrace]:
        """
        Tournament maximum.

        Args:
            scores: Non-empty encrypted scores at a common level

        Returns:
            Tuple of (encrypted maximum, per-round trace)

        Raises:
            ValidationError: empty input or mixed levels/parameters
            DepthExhausted: the scores cannot afford every round
        """
        if not scores:
            raise ValidationError("cannot reduce an empty list of scores")
        first = scores[0]
        for position, score in enumerate(scores[1:], start=1):
            if score.level != first.level or not score.compatible_with(first):
                raise ValidationError(
                    f"score at position {position} differs in level or parameters"
                )

        rounds = tournament_rounds(len(scores))
        needed = rounds * self.depth_per_round
        budget = self.capability.config.multiplicative_depth
        if first.level + needed > budget:
            raise DepthExhausted(first.level, needed, budget, operation="reduce_max")

        trace = ReductionTrace()
        working: List[EncryptedScalar] = list(scores)
        executor = ThreadPoolExecutor(max_workers=self.workers) if self.workers > 1 else None
        try:
            with Timer() as t:
                for round_index in range(rounds):
                    working = self._run_round(working, round_index, trace, executor)
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        if len(working) != 1:
            raise AssertionError(f"tournament left {len(working)} scores")

        logger.info(
            "Reduced %d encrypted scores in %d round(s), %.0fms (bound %.2e)",
            len(scores),
            rounds,
            t.elapsed_ms,
            rounds * self.epsilon / 2,
        )
        return working[0], trace

    def _run_round(
        self,
        working: List[EncryptedScalar],
        round_index: int,
        trace: ReductionTrace,
        executor: Optional[ThreadPoolExecutor],
    ) -> List[EncryptedScalar]:
        pairs = [(working[i], working[i + 1]) for i in range(0, len(working) - 1, 2)]
        passed_through = len(working) - 1 if len(working) % 2 == 1 else None

        def pair_max(pair: Tuple[EncryptedScalar, EncryptedScalar]) -> EncryptedScalar:
            return self.secure_max(pair[0], pair[1], round_index=round_index)

        # list() blocks until every pairing of this round has finished.
        if executor is not None and len(pairs) > 1:
            survivors = list(executor.map(pair_max, pairs))
        else:
            survivors = [pair_max(pair) for pair in pairs]

        if passed_through is not None:
            survivors.append(working[passed_through])

        trace.rounds.append(
            RoundTrace(
                round_index=round_index,
                inputs=len(working),
                pairings=len(pairs),
                passed_through=passed_through,
            )
        )
        logger.debug(
            "Round %d: %d -> %d%s",
            round_index,
            len(working),
            len(survivors),
            "" if passed_through is None else f" (index {passed_through} passed through)",
        )
        return survivors
