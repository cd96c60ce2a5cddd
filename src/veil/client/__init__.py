"""Key-holder side: key shares, partial decryption and share combination."""
from veil.client.coordinator import ThresholdDecryptionCoordinator
from veil.client.party import KeyHolder, run_key_ceremony

__all__ = ["KeyHolder", "ThresholdDecryptionCoordinator", "run_key_ceremony"]
