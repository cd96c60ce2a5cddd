"""
Key holders and the key-generation ceremony.

Each KeyHolder owns one secret-key share and only ever hands the capability
that one share. The ceremony moves public material between holders; the
joint secret key is never assembled.
"""
import logging
import uuid
from typing import Any, List, Optional, Tuple

from veil.crypto.capability import HomomorphicCapability
from veil.shared.errors import KeyGenerationFailure
from veil.shared.protocol import Ciphertext, DecryptionShare, KeyMaterial
from veil.shared.utils import Timer

logger = logging.getLogger(__name__)


class KeyHolder:
    """
    One party in the threshold protocol.

    Responsible for:
    - Generating its own secret-key share
    - Contributing to the joint evaluation keys
    - Producing partial decryptions on request
    """

    def __init__(
        self,
        party_id: int,
        capability: HomomorphicCapability,
        previous_public_key: Any = None,
    ):
        """
        Generate this party's key share.

        Args:
            party_id: Position in the ceremony (0 is the lead)
            capability: Shared crypto context
            previous_public_key: Public key of party ``party_id - 1``
        """
        self.party_id = party_id
        self._capability = capability
        try:
            self.public_key, self._secret_share = capability.generate_key_share(
                previous_public_key
            )
        except KeyGenerationFailure as exc:
            raise KeyGenerationFailure(str(exc), party_id=party_id) from exc

    def __repr__(self) -> str:
        return f"KeyHolder(party_id={self.party_id})"

    @property
    def is_lead(self) -> bool:
        return self.party_id == 0

    def switch_key(self, seed: Any = None) -> Any:
        if seed is None:
            return self._capability.switch_key_seed(self._secret_share)
        return self._capability.switch_key_contribution(self._secret_share, seed)

    def mult_key(self, joint_switch_key: Any, joint_public_key: Any) -> Any:
        return self._capability.mult_key_share(
            self._secret_share, joint_switch_key, joint_public_key
        )

    def sum_keys(self, seed: Any = None) -> Any:
        if seed is None:
            return self._capability.sum_keys_seed(self._secret_share)
        return self._capability.sum_keys_contribution(
            self._secret_share, seed, self.public_key
        )

    def partial_decrypt(self, ciphertext: Ciphertext, request_id: str, lead: bool) -> DecryptionShare:
        """
        Decrypt with this party's share only.

        Args:
            ciphertext: Value the coordinator wants opened
            request_id: Identifies the decryption round
            lead: Whether this share carries the ciphertext's constant term

        Returns:
            DecryptionShare, useless without the other parties' shares
        """
        payload = self._capability.partial_decrypt(self._secret_share, ciphertext, lead)
        logger.debug(
            "Party %d produced %s share for request %s",
            self.party_id,
            "lead" if lead else "main",
            request_id,
        )
        return DecryptionShare(
            party_id=self.party_id,
            request_id=request_id,
            is_lead=lead,
            payload=payload,
        )


def run_key_ceremony(
    capability: HomomorphicCapability,
    party_count: Optional[int] = None,
) -> Tuple[KeyMaterial, List[KeyHolder]]:
    """
    Run multiparty key generation and install the joint evaluation keys.

    Round 1 chains public keys through the parties. Round 2 builds the
    key-switching key and rotation keys over the lead's randomness. Round 3
    has every party multiply the joint switching key by its own share to
    form the relinearisation key.

    Args:
        capability: Context to set up; must not have keys yet
        party_count: Defaults to the configured party count

    Returns:
        Tuple of (shared KeyMaterial, key holders in ceremony order)
    """
    party_count = party_count or capability.config.party_count
    ceremony_id = uuid.uuid4().hex[:8]

    with Timer() as t:
        holders: List[KeyHolder] = []
        previous_public_key = None
        for party_id in range(party_count):
            holder = KeyHolder(party_id, capability, previous_public_key)
            holders.append(holder)
            previous_public_key = holder.public_key
        lead = holders[0]
        joint_public_key = holders[-1].public_key

        try:
            switch_seed = lead.switch_key()
            sum_seed = lead.sum_keys()
            joint_switch_key = switch_seed
            joint_sum_keys = sum_seed
            for holder in holders[1:]:
                joint_switch_key = capability.combine_switch_keys(
                    joint_switch_key, holder.switch_key(switch_seed), holder.public_key
                )
                joint_sum_keys = capability.combine_sum_keys(
                    joint_sum_keys, holder.sum_keys(sum_seed), holder.public_key
                )

            mult_key = None
            for holder in holders:
                share = holder.mult_key(joint_switch_key, joint_public_key)
                mult_key = share if mult_key is None else capability.combine_mult_keys(mult_key, share)
        except RuntimeError as exc:
            raise KeyGenerationFailure(f"evaluation key generation failed: {exc}") from exc

        key_material = capability.install_keys(
            public_key=joint_public_key,
            mult_key=mult_key,
            sum_keys=joint_sum_keys,
            lead_public_key=lead.public_key,
            party_count=party_count,
        )

    logger.info(
        "Key ceremony %s finished for %d part%s in %.0fms",
        ceremony_id,
        party_count,
        "y" if party_count == 1 else "ies",
        t.elapsed_ms,
    )
    return key_material, holders
