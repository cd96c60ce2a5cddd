"""
Threshold decryption coordinator.

The coordinator never holds key material. It asks key holders for partial
decryptions, waits a bounded time for a quorum and fuses what arrived. Too
few shares is an error, never a degraded answer.
"""
import logging
import uuid
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Dict, List, Optional, Sequence

from veil.client.party import KeyHolder
from veil.crypto.capability import HomomorphicCapability
from veil.shared.errors import InsufficientShares, ValidationError
from veil.shared.protocol import Ciphertext, DecryptionShare
from veil.shared.utils import Timer

logger = logging.getLogger(__name__)


class ThresholdDecryptionCoordinator:
    """
    Combines t-of-n partial decryptions.

    With t = n = 1 this is ordinary decryption through the same path: one
    lead share, fused on its own.
    """

    def __init__(
        self,
        capability: HomomorphicCapability,
        threshold: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize coordinator.

        Args:
            capability: Context the ciphertexts belong to
            threshold: Quorum t (defaults to the configured decryption threshold)
            timeout: Seconds to wait for shares (defaults to the configured timeout)
        """
        self.capability = capability
        self.threshold = threshold or capability.config.decryption_threshold
        self.timeout = timeout if timeout is not None else capability.config.decryption_timeout

    def decrypt(self, ciphertext: Ciphertext, shares: Sequence[DecryptionShare]) -> float:
        """
        Fuse partial decryptions of ``ciphertext`` into its plaintext value.

        Args:
            ciphertext: The value being opened
            shares: Partial decryptions collected so far

        Returns:
            Decrypted scalar

        Raises:
            InsufficientShares: fewer than ``threshold`` distinct parties, or
                no single lead share among them
            ValidationError: shares from mixed requests or a foreign ciphertext
        """
        if ciphertext.context_id != self.capability.context_id:
            raise ValidationError("ciphertext belongs to a different crypto context")

        by_party: Dict[int, DecryptionShare] = {}
        for share in shares:
            if share.party_id in by_party:
                logger.warning("Ignoring duplicate share from party %d", share.party_id)
                continue
            by_party[share.party_id] = share

        request_ids = {share.request_id for share in by_party.values()}
        if len(request_ids) > 1:
            raise ValidationError(f"shares come from {len(request_ids)} different requests")

        present = len(by_party)
        if present < self.threshold:
            logger.warning(
                "Decryption refused: %d of %d required shares", present, self.threshold
            )
            raise InsufficientShares(present, self.threshold)

        leads = [share for share in by_party.values() if share.is_lead]
        if len(leads) != 1:
            raise InsufficientShares(
                present,
                self.threshold,
                reason="no lead share" if not leads else f"{len(leads)} lead shares",
            )

        ordered = leads + sorted(
            (share for share in by_party.values() if not share.is_lead),
            key=lambda share: share.party_id,
        )
        value = self.capability.combine_shares([share.payload for share in ordered])
        logger.info(
            "Decrypted request %s with shares from parties %s",
            next(iter(request_ids)),
            [share.party_id for share in ordered],
        )
        return value

    def collect(
        self,
        ciphertext: Ciphertext,
        holders: Sequence[KeyHolder],
        timeout: Optional[float] = None,
    ) -> List[DecryptionShare]:
        """
        Ask every holder for a partial decryption and wait for the quorum.

        Holders are queried in parallel. Shares that fail or arrive after
        ``timeout`` are simply missing; nothing is retried.

        Args:
            ciphertext: Value to open
            holders: Key holders to ask; the first one produces the lead share
            timeout: Seconds to wait (defaults to the coordinator's timeout)

        Returns:
            Shares that arrived in time
        """
        if not holders:
            return []
        timeout = self.timeout if timeout is None else timeout
        request_id = uuid.uuid4().hex[:12]
        lead_id = holders[0].party_id

        executor = ThreadPoolExecutor(max_workers=len(holders))
        try:
            futures = {
                executor.submit(
                    holder.partial_decrypt, ciphertext, request_id, holder.party_id == lead_id
                ): holder
                for holder in holders
            }
            with Timer() as t:
                done, not_done = wait(futures, timeout=timeout)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        shares = []
        for future in done:
            holder = futures[future]
            error = future.exception()
            if error is not None:
                logger.warning("Party %d failed to decrypt: %s", holder.party_id, error)
                continue
            shares.append(future.result())
        for future in not_done:
            logger.warning(
                "Party %d missed the %.1fs deadline", futures[future].party_id, timeout
            )

        logger.debug(
            "Request %s collected %d/%d shares in %.0fms",
            request_id,
            len(shares),
            len(holders),
            t.elapsed_ms,
        )
        return shares

    def request_decryption(
        self,
        ciphertext: Ciphertext,
        holders: Sequence[KeyHolder],
        timeout: Optional[float] = None,
    ) -> float:
        """Collect shares from ``holders`` and fuse them."""
        return self.decrypt(ciphertext, self.collect(ciphertext, holders, timeout))
