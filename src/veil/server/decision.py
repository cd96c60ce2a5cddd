"""
Turns the encrypted maximum into a revealed uniqueness decision.
"""
import logging
from typing import Optional, Sequence

from veil.client.coordinator import ThresholdDecryptionCoordinator
from veil.client.party import KeyHolder
from veil.crypto.capability import HomomorphicCapability
from veil.shared.approx import SIGN_DOMAIN, sign_coefficients
from veil.shared.protocol import Ciphertext, Decision, Disclosure, EncryptedScalar

logger = logging.getLogger(__name__)


def is_unique(score: float, threshold: float) -> bool:
    """A query is unique only if its best match is strictly below the threshold."""
    return score < threshold


class ThresholdDecisionMaker:
    """
    Opens exactly one ciphertext per decision.

    SIGN_ONLY reveals sign(max - threshold) and nothing else. MAXIMUM reveals
    the maximum similarity itself, which is strictly more information and
    exists for diagnostics against a plaintext baseline.
    """

    def __init__(
        self,
        capability: HomomorphicCapability,
        coordinator: ThresholdDecryptionCoordinator,
        holders: Sequence[KeyHolder],
        disclosure: Optional[Disclosure] = None,
        sign_degree: Optional[int] = None,
    ):
        self.capability = capability
        self.coordinator = coordinator
        self.holders = list(holders)
        self.disclosure = disclosure or capability.config.disclosure
        self.sign_degree = sign_degree or capability.config.sign_degree

    def disclosed_ciphertext(self, encrypted_max: EncryptedScalar, threshold: float) -> Ciphertext:
        """The single ciphertext that will be decrypted for this decision."""
        if self.disclosure is Disclosure.MAXIMUM:
            return encrypted_max
        encrypted_threshold = self.capability.encrypt_scalar(threshold)
        difference = self.capability.subtract(encrypted_max, encrypted_threshold)
        return self.capability.chebyshev(
            difference, sign_coefficients(self.sign_degree), SIGN_DOMAIN
        )

    def decide(self, encrypted_max: EncryptedScalar, threshold: float) -> Decision:
        """
        Decide uniqueness of the query against a public threshold.

        Args:
            encrypted_max: Encrypted maximum similarity
            threshold: Public similarity cutoff

        Returns:
            Decision with the revealed value for this disclosure mode
        """
        target = self.disclosed_ciphertext(encrypted_max, threshold)
        revealed = self.coordinator.request_decryption(target, self.holders)

        if self.disclosure is Disclosure.MAXIMUM:
            unique = is_unique(revealed, threshold)
        else:
            unique = is_unique(revealed, 0.0)

        logger.info(
            "Decision (%s disclosure, threshold %.4f): %s",
            self.disclosure.value,
            threshold,
            "UNIQUE" if unique else "NOT UNIQUE",
        )
        return Decision(
            is_unique=unique,
            disclosure=self.disclosure,
            threshold=threshold,
            revealed_value=revealed,
        )
