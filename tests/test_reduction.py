"""Tests for the tournament maximum."""
from dataclasses import replace

import pytest

from veil.client.coordinator import ThresholdDecryptionCoordinator
from veil.server.reduction import SecureMaxReducer
from veil.shared.errors import DepthExhausted, ValidationError


def encrypt_scores(capability, values):
    return [capability.encrypt_scalar(v) for v in values]


def decrypt(capability, holders, ciphertext):
    return ThresholdDecryptionCoordinator(capability).request_decryption(ciphertext, holders)


class TestTournamentShape:
    """Round structure, independent of the backend."""

    @pytest.mark.parametrize("count,rounds", [(1, 0), (2, 1), (4, 2), (8, 3)])
    def test_powers_of_two_never_pass_through(self, plain_setup, count, rounds):
        capability, _ = plain_setup
        _, trace = SecureMaxReducer(capability).reduce_max(
            encrypt_scores(capability, [0.1 * i for i in range(count)])
        )
        assert trace.round_count == rounds
        assert trace.pass_throughs == 0

    def test_odd_round_passes_last_element_through(self, plain_setup):
        capability, _ = plain_setup
        _, trace = SecureMaxReducer(capability).reduce_max(
            encrypt_scores(capability, [0.1, 0.2, 0.3, 0.4, 0.5])
        )
        assert trace.round_count == 3
        assert [r.inputs for r in trace.rounds] == [5, 3, 2]
        assert [r.passed_through for r in trace.rounds] == [4, 2, None]
        assert [r.pairings for r in trace.rounds] == [2, 1, 1]

    def test_result_level(self, plain_setup):
        capability, _ = plain_setup
        reducer = SecureMaxReducer(capability)
        result, trace = reducer.reduce_max(encrypt_scores(capability, [0.1, 0.2, 0.3]))
        assert result.level == trace.round_count * reducer.depth_per_round

    def test_single_score_is_returned_as_is(self, plain_setup):
        capability, _ = plain_setup
        score = capability.encrypt_scalar(0.3)
        result, trace = SecureMaxReducer(capability).reduce_max([score])
        assert result is score
        assert trace.round_count == 0

    def test_parallel_matches_sequential(self, plain_setup):
        capability, holders = plain_setup
        values = [0.3, -0.2, 0.7, 0.1, 0.65, -0.9, 0.0]
        sequential, _ = SecureMaxReducer(capability, workers=1).reduce_max(
            encrypt_scores(capability, values)
        )
        parallel, _ = SecureMaxReducer(capability, workers=4).reduce_max(
            encrypt_scores(capability, values)
        )
        assert decrypt(capability, holders, parallel) == pytest.approx(
            decrypt(capability, holders, sequential)
        )


class TestReductionErrors:
    """Preconditions are checked before any evaluation."""

    def test_empty_input(self, plain_setup):
        capability, _ = plain_setup
        with pytest.raises(ValidationError, match="empty"):
            SecureMaxReducer(capability).reduce_max([])

    def test_mixed_levels(self, plain_setup):
        capability, _ = plain_setup
        scores = encrypt_scores(capability, [0.1, 0.2])
        scores[1] = replace(scores[1], level=1)
        with pytest.raises(ValidationError, match="position 1"):
            SecureMaxReducer(capability).reduce_max(scores)

    def test_insufficient_depth(self, plain_setup):
        capability, _ = plain_setup
        budget = capability.config.multiplicative_depth
        scores = [replace(s, level=budget - 10) for s in encrypt_scores(capability, [0.1, 0.2, 0.3])]

        with pytest.raises(DepthExhausted) as exc_info:
            SecureMaxReducer(capability).reduce_max(scores)
        assert exc_info.value.budget == budget
        assert exc_info.value.cost == 2 * SecureMaxReducer(capability).depth_per_round

    def test_chebyshev_reports_round(self, plain_setup):
        capability, _ = plain_setup
        budget = capability.config.multiplicative_depth
        a, b = [replace(s, level=budget - 2) for s in encrypt_scores(capability, [0.1, 0.2])]

        with pytest.raises(DepthExhausted, match="in round 3"):
            SecureMaxReducer(capability).secure_max(a, b, round_index=3)


class TestEncryptedMaximum:
    """Accuracy under real CKKS encryption."""

    def test_secure_max_pair(self, fhe_setup):
        capability, holders = fhe_setup
        reducer = SecureMaxReducer(capability)
        a, b = encrypt_scores(capability, [0.9, 0.1])
        value = decrypt(capability, holders, reducer.secure_max(a, b))
        assert abs(value - 0.9) <= reducer.epsilon / 2 + 1e-3

    def test_reduce_max_within_bound(self, fhe_setup):
        """Error grows at most with ceil(log2(N)) * eps_abs."""
        capability, holders = fhe_setup
        reducer = SecureMaxReducer(capability, workers=2)
        values = [0.12, -0.4, 0.83, 0.3, 0.05, 0.61, -0.77]

        result, trace = reducer.reduce_max(encrypt_scores(capability, values))
        value = decrypt(capability, holders, result)

        assert trace.round_count == 3
        assert abs(value - max(values)) <= trace.round_count * reducer.epsilon / 2 + 1e-3
