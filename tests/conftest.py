"""Shared fixtures: a numpy-backed capability and small OpenFHE contexts."""
import itertools
from typing import Any, List, Sequence, Tuple

import numpy as np
import pytest

from veil.client.party import run_key_ceremony
from veil.crypto.capability import HomomorphicCapability
from veil.crypto.openfhe_backend import OpenFHECapability
from veil.shared.approx import evaluate_chebyshev
from veil.shared.config import PipelineConfig
from veil.shared.protocol import Ciphertext
from veil.shared.utils import generate_random_vectors


class PlaintextCapability(HomomorphicCapability):
    """
    Evaluates the contract on numpy arrays in the clear.

    Chebyshev evaluations use the same coefficient series as the encrypted
    backend, so approximation behaviour matches; there is no CKKS noise. Fusion needs
    a share from every party that took part in the ceremony.
    """

    _ids = itertools.count()

    def __init__(self, config: PipelineConfig):
        super().__init__(config)
        self.parties: List[int] = []
        self.installed: Tuple[Any, ...] = ()

    def generate_key_share(self, previous_public_key: Any = None) -> Tuple[Any, Any]:
        secret = next(self._ids)
        self.parties.append(secret)
        return ("pk", tuple(self.parties)), secret

    def switch_key_seed(self, secret_share):
        return ("switch", (secret_share,))

    def switch_key_contribution(self, secret_share, seed):
        return ("switch", (secret_share,))

    def combine_switch_keys(self, joint, contribution, public_key):
        return ("switch", joint[1] + contribution[1])

    def mult_key_share(self, secret_share, joint_switch_key, public_key):
        return ("mult", (secret_share,))

    def combine_mult_keys(self, joint, share):
        return ("mult", joint[1] + share[1])

    def sum_keys_seed(self, secret_share):
        return ("sum", (secret_share,))

    def sum_keys_contribution(self, secret_share, seed, public_key):
        return ("sum", (secret_share,))

    def combine_sum_keys(self, joint, contribution, public_key):
        return ("sum", joint[1] + contribution[1])

    def _install(self, public_key, mult_key, sum_keys, lead_public_key):
        self.installed = (public_key, mult_key, sum_keys, lead_public_key)

    def _encrypt(self, public_key, values):
        return np.array(values, dtype=np.float64)

    def _eval_add(self, x, y):
        return x + y

    def _eval_sub(self, x, y):
        return x - y

    def _eval_mult(self, x, y):
        return x * y

    def _eval_mult_const(self, x, constant):
        return x * constant

    def _eval_sum(self, x, slots):
        return np.full(slots, x.sum())

    def _eval_chebyshev(self, x, coefficients, lower, upper):
        return evaluate_chebyshev(coefficients, x, (lower, upper))

    def partial_decrypt(self, secret_share, ciphertext: Ciphertext, lead: bool):
        return secret_share, (ciphertext.ciphertext.copy() if lead else None)

    def _fuse(self, payloads: Sequence[Any]) -> Sequence[float]:
        secrets = sorted(secret for secret, _ in payloads)
        if secrets != sorted(self.parties):
            raise RuntimeError(f"fusion needs shares from {self.parties}, got {secrets}")
        return payloads[0][1]


def small_config(database_size: int = 8, **options) -> PipelineConfig:
    """Insecure parameters that keep OpenFHE contexts fast."""
    options.setdefault("dimension", 8)
    options.setdefault("batch_size", 8)
    options.setdefault("security_level", "none")
    options.setdefault("ring_dimension", 1 << 11)
    return PipelineConfig.for_database(database_size, **options)


@pytest.fixture
def plain_config():
    return small_config(8, abs_degree=27, multiplicative_depth=40)


@pytest.fixture
def plain_setup(plain_config):
    """Single-party plaintext capability with keys installed."""
    capability = PlaintextCapability(plain_config)
    _, holders = run_key_ceremony(capability)
    return capability, holders


@pytest.fixture(scope="session")
def fhe_config():
    # Room for three tournament rounds plus a sign evaluation.
    return small_config(8, abs_degree=27, multiplicative_depth=28)


@pytest.fixture(scope="session")
def fhe_setup(fhe_config):
    """One single-party OpenFHE context shared by the whole session."""
    capability = OpenFHECapability(fhe_config)
    _, holders = run_key_ceremony(capability)
    return capability, holders


@pytest.fixture(scope="session")
def two_party_setup():
    """OpenFHE context whose key is shared by two parties, both required."""
    config = small_config(2, party_count=2, decryption_threshold=2)
    capability = OpenFHECapability(config)
    _, holders = run_key_ceremony(capability)
    return capability, holders


@pytest.fixture
def unit_vectors():
    return generate_random_vectors(8, 8, seed=42)
