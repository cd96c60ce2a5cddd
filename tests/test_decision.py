"""Tests for the threshold decision."""
import pytest

from veil.client.coordinator import ThresholdDecryptionCoordinator
from veil.server.decision import ThresholdDecisionMaker, is_unique
from veil.shared.protocol import Disclosure


def make_decider(setup, disclosure):
    capability, holders = setup
    coordinator = ThresholdDecryptionCoordinator(capability)
    return capability, ThresholdDecisionMaker(capability, coordinator, holders, disclosure=disclosure)


class TestUniquenessRule:
    """Strict comparison against the threshold."""

    @pytest.mark.parametrize(
        "score,unique",
        [(0.49, True), (0.5, False), (0.51, False), (-1.0, True)],
    )
    def test_strictly_below_is_unique(self, score, unique):
        assert is_unique(score, 0.5) is unique


class TestMaximumDisclosure:
    """The maximum itself is opened."""

    def test_equal_to_threshold_is_not_unique(self, plain_setup):
        capability, decider = make_decider(plain_setup, Disclosure.MAXIMUM)
        decision = decider.decide(capability.encrypt_scalar(0.5), 0.5)
        assert decision.revealed_value == 0.5
        assert not decision.is_unique

    def test_below_threshold(self, plain_setup):
        capability, decider = make_decider(plain_setup, Disclosure.MAXIMUM)
        decision = decider.decide(capability.encrypt_scalar(0.2), 0.5)
        assert decision.is_unique
        assert decision.disclosure is Disclosure.MAXIMUM
        assert decision.threshold == 0.5

    def test_encrypted_maximum(self, fhe_setup):
        capability, decider = make_decider(fhe_setup, Disclosure.MAXIMUM)
        decision = decider.decide(capability.encrypt_scalar(0.8), 0.5)
        assert not decision.is_unique
        assert decision.revealed_value == pytest.approx(0.8, abs=1e-4)


class TestSignOnlyDisclosure:
    """Only sign(max - threshold) is opened."""

    @pytest.mark.parametrize("score,unique", [(0.1, True), (0.9, False), (-0.6, True)])
    def test_sign_decision(self, plain_setup, score, unique):
        capability, decider = make_decider(plain_setup, Disclosure.SIGN_ONLY)
        decision = decider.decide(capability.encrypt_scalar(score), 0.5)
        assert decision.is_unique is unique
        assert decision.disclosure is Disclosure.SIGN_ONLY

    def test_revealed_value_is_not_the_maximum(self, plain_setup):
        capability, decider = make_decider(plain_setup, Disclosure.SIGN_ONLY)
        decision = decider.decide(capability.encrypt_scalar(0.9), 0.5)
        assert decision.revealed_value == pytest.approx(1.0, abs=0.25)

    def test_sign_costs_chebyshev_levels(self, plain_setup):
        capability, decider = make_decider(plain_setup, Disclosure.SIGN_ONLY)
        target = decider.disclosed_ciphertext(capability.encrypt_scalar(0.9), 0.5)
        assert target.level == 6

    def test_encrypted_sign(self, fhe_setup):
        capability, decider = make_decider(fhe_setup, Disclosure.SIGN_ONLY)
        assert decider.decide(capability.encrypt_scalar(0.1), 0.5).is_unique
        assert not decider.decide(capability.encrypt_scalar(0.9), 0.5).is_unique

    @pytest.mark.parametrize("sign_degree", [5, 9, 11, 23, 27])
    @pytest.mark.parametrize("threshold", [0.5, 0.3, 0.1, -0.2, 0.7, 0.25])
    def test_equal_to_threshold_is_not_unique(self, plain_setup, sign_degree, threshold):
        """A maximum exactly at the threshold stays non-unique for every odd degree."""
        capability, holders = plain_setup
        decider = ThresholdDecisionMaker(
            capability,
            ThresholdDecryptionCoordinator(capability),
            holders,
            disclosure=Disclosure.SIGN_ONLY,
            sign_degree=sign_degree,
        )
        decision = decider.decide(capability.encrypt_scalar(threshold), threshold)
        assert decision.revealed_value == 0.0
        assert decision.is_unique is False
