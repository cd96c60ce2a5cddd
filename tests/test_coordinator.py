"""Tests for threshold decryption and the key ceremony."""
import time
from dataclasses import replace

import pytest

from conftest import PlaintextCapability, small_config
from veil.client.coordinator import ThresholdDecryptionCoordinator
from veil.client.party import run_key_ceremony
from veil.crypto.openfhe_backend import OpenFHECapability
from veil.shared.errors import (
    ConfigurationError,
    InsufficientShares,
    KeyGenerationFailure,
    ValidationError,
)


class TestTwoPartyDecryption:
    """Both shares of a 2-of-2 key are needed."""

    def test_exactly_threshold_shares_decrypt(self, two_party_setup):
        capability, holders = two_party_setup
        ciphertext = capability.encrypt_scalar(0.375)
        value = ThresholdDecryptionCoordinator(capability).request_decryption(ciphertext, holders)
        assert value == pytest.approx(0.375, abs=1e-4)

    def test_shares_can_arrive_in_any_order(self, two_party_setup):
        capability, holders = two_party_setup
        ciphertext = capability.encrypt_scalar(-0.25)
        main = holders[1].partial_decrypt(ciphertext, "r1", lead=False)
        lead = holders[0].partial_decrypt(ciphertext, "r1", lead=True)
        value = ThresholdDecryptionCoordinator(capability).decrypt(ciphertext, [main, lead])
        assert value == pytest.approx(-0.25, abs=1e-4)

    def test_fewer_than_threshold(self, two_party_setup):
        capability, holders = two_party_setup
        ciphertext = capability.encrypt_scalar(0.5)
        lead = holders[0].partial_decrypt(ciphertext, "r1", lead=True)

        with pytest.raises(InsufficientShares) as exc_info:
            ThresholdDecryptionCoordinator(capability).decrypt(ciphertext, [lead])
        assert exc_info.value.present == 1
        assert exc_info.value.required == 2

    def test_duplicate_shares_count_once(self, two_party_setup):
        capability, holders = two_party_setup
        ciphertext = capability.encrypt_scalar(0.5)
        lead = holders[0].partial_decrypt(ciphertext, "r1", lead=True)

        with pytest.raises(InsufficientShares):
            ThresholdDecryptionCoordinator(capability).decrypt(ciphertext, [lead, lead])

    def test_missing_lead_share(self, two_party_setup):
        capability, holders = two_party_setup
        ciphertext = capability.encrypt_scalar(0.5)
        shares = [h.partial_decrypt(ciphertext, "r1", lead=False) for h in holders]

        with pytest.raises(InsufficientShares, match="no lead share"):
            ThresholdDecryptionCoordinator(capability).decrypt(ciphertext, shares)

    def test_mixed_requests(self, two_party_setup):
        capability, holders = two_party_setup
        ciphertext = capability.encrypt_scalar(0.5)
        shares = [
            holders[0].partial_decrypt(ciphertext, "r1", lead=True),
            holders[1].partial_decrypt(ciphertext, "r2", lead=False),
        ]
        with pytest.raises(ValidationError, match="different requests"):
            ThresholdDecryptionCoordinator(capability).decrypt(ciphertext, shares)

    def test_foreign_ciphertext(self, two_party_setup):
        capability, holders = two_party_setup
        ciphertext = replace(capability.encrypt_scalar(0.5), context_id="elsewhere")
        with pytest.raises(ValidationError, match="different crypto context"):
            ThresholdDecryptionCoordinator(capability).request_decryption(ciphertext, holders)


class TestCollection:
    """Bounded waiting for key holders."""

    def two_parties(self):
        config = small_config(2, party_count=2, decryption_threshold=2)
        capability = PlaintextCapability(config)
        _, holders = run_key_ceremony(capability)
        return capability, holders

    def test_late_party_is_missing(self, monkeypatch):
        capability, holders = self.two_parties()
        original = holders[1].partial_decrypt

        def slow(ciphertext, request_id, lead):
            time.sleep(1.0)
            return original(ciphertext, request_id, lead)

        monkeypatch.setattr(holders[1], "partial_decrypt", slow)
        coordinator = ThresholdDecryptionCoordinator(capability, timeout=0.05)
        ciphertext = capability.encrypt_scalar(0.5)

        shares = coordinator.collect(ciphertext, holders)
        assert [s.party_id for s in shares] == [0]
        with pytest.raises(InsufficientShares):
            coordinator.request_decryption(ciphertext, holders)

    def test_failing_party_is_missing(self, monkeypatch):
        capability, holders = self.two_parties()

        def broken(ciphertext, request_id, lead):
            raise RuntimeError("share unavailable")

        monkeypatch.setattr(holders[0], "partial_decrypt", broken)
        coordinator = ThresholdDecryptionCoordinator(capability)

        with pytest.raises(InsufficientShares) as exc_info:
            coordinator.request_decryption(capability.encrypt_scalar(0.5), holders)
        assert exc_info.value.present == 1

    def test_all_parties_in_time(self):
        capability, holders = self.two_parties()
        coordinator = ThresholdDecryptionCoordinator(capability)
        assert coordinator.request_decryption(capability.encrypt_scalar(0.125), holders) == 0.125


class TestKeyCeremony:
    """Key generation across parties."""

    def test_key_material_is_public_only(self):
        capability = PlaintextCapability(small_config(2, party_count=3, decryption_threshold=3))
        key_material, holders = run_key_ceremony(capability)

        assert key_material.party_count == 3
        assert key_material.decryption_threshold == 3
        assert key_material.has_mult_key and key_material.has_sum_keys
        assert key_material.sum_slots == 8
        assert [h.party_id for h in holders] == [0, 1, 2]
        assert holders[0].is_lead and not holders[1].is_lead
        assert key_material.public_key == holders[-1].public_key

    def test_keys_install_once(self):
        capability = PlaintextCapability(small_config(2))
        run_key_ceremony(capability)
        with pytest.raises(ConfigurationError, match="already installed"):
            run_key_ceremony(capability)

    def test_encrypt_before_keys(self):
        capability = PlaintextCapability(small_config(2))
        assert not capability.is_ready
        with pytest.raises(ConfigurationError, match="Key generation"):
            capability.encrypt_scalar(0.5)

    def test_failure_names_the_party(self):
        class FailingCapability(PlaintextCapability):
            def generate_key_share(self, previous_public_key=None):
                if previous_public_key is not None:
                    raise KeyGenerationFailure("entropy source closed")
                return super().generate_key_share(previous_public_key)

        capability = FailingCapability(small_config(2, party_count=2, decryption_threshold=2))
        with pytest.raises(KeyGenerationFailure, match="party 1: entropy source closed") as exc_info:
            run_key_ceremony(capability)
        assert exc_info.value.party_id == 1

    def test_partial_threshold_is_rejected_by_openfhe(self):
        config = small_config(2, party_count=3, decryption_threshold=2)
        with pytest.raises(ConfigurationError, match="not supported"):
            OpenFHECapability(config)
