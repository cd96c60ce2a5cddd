"""
CKKS capability backed by the OpenFHE Python bindings.

Multiparty keys follow OpenFHE's additive scheme: every party extends the
previous party's public key, and evaluation keys are built jointly so no
combined secret key ever exists in one place. Decryption therefore needs a
share from every party, which is why this backend insists on t == n.
"""
import logging
from typing import Any, List, Sequence, Tuple

import openfhe

from veil.crypto.capability import HomomorphicCapability
from veil.shared.config import PipelineConfig
from veil.shared.errors import ConfigurationError, KeyGenerationFailure
from veil.shared.protocol import Ciphertext

logger = logging.getLogger(__name__)

_SECURITY_LEVELS = {
    "128_classic": openfhe.SecurityLevel.HEStd_128_classic,
    "192_classic": openfhe.SecurityLevel.HEStd_192_classic,
    "256_classic": openfhe.SecurityLevel.HEStd_256_classic,
    "none": openfhe.SecurityLevel.HEStd_NotSet,
}

_FEATURES = ("PKE", "KEYSWITCH", "LEVELEDSHE", "ADVANCEDSHE", "MULTIPARTY")


class OpenFHECapability(HomomorphicCapability):
    """HomomorphicCapability over an OpenFHE CKKS-RNS crypto context."""

    def __init__(self, config: PipelineConfig):
        if config.decryption_threshold != config.party_count:
            raise ConfigurationError(
                f"OpenFHE additive key sharing needs all {config.party_count} "
                f"parties to decrypt; decryption_threshold "
                f"{config.decryption_threshold} is not supported"
            )
        super().__init__(config)

        params = openfhe.CCParamsCKKSRNS()
        params.SetMultiplicativeDepth(config.multiplicative_depth)
        params.SetScalingModSize(config.scaling_precision_bits)
        params.SetBatchSize(config.batch_size)
        params.SetSecurityLevel(_SECURITY_LEVELS[config.security_level])
        if config.ring_dimension is not None:
            params.SetRingDim(config.ring_dimension)

        try:
            self._cc = openfhe.GenCryptoContext(params)
        except RuntimeError as exc:
            raise ConfigurationError(f"OpenFHE rejected the parameters: {exc}") from exc

        for feature in _FEATURES:
            self._cc.Enable(getattr(openfhe.PKESchemeFeature, feature))

        logger.info(
            "Created CKKS context %s: depth=%d scale=%d bits batch=%d ring=%d security=%s",
            self.context_id,
            config.multiplicative_depth,
            config.scaling_precision_bits,
            config.batch_size,
            self._cc.GetRingDimension(),
            config.security_level,
        )

    # ------------------------------------------------------------------
    # Key ceremony
    # ------------------------------------------------------------------

    def generate_key_share(self, previous_public_key: Any = None) -> Tuple[Any, Any]:
        try:
            if previous_public_key is None:
                key_pair = self._cc.KeyGen()
            else:
                key_pair = self._cc.MultipartyKeyGen(previous_public_key)
        except RuntimeError as exc:
            raise KeyGenerationFailure(str(exc)) from exc
        if not key_pair.good():
            raise KeyGenerationFailure("OpenFHE produced an invalid key pair")
        return key_pair.publicKey, key_pair.secretKey

    def switch_key_seed(self, secret_share: Any) -> Any:
        return self._cc.KeySwitchGen(secret_share, secret_share)

    def switch_key_contribution(self, secret_share: Any, seed: Any) -> Any:
        return self._cc.MultiKeySwitchGen(secret_share, secret_share, seed)

    def combine_switch_keys(self, joint: Any, contribution: Any, public_key: Any) -> Any:
        return self._cc.MultiAddEvalKeys(joint, contribution, public_key.GetKeyTag())

    def mult_key_share(self, secret_share: Any, joint_switch_key: Any, public_key: Any) -> Any:
        return self._cc.MultiMultEvalKey(secret_share, joint_switch_key, public_key.GetKeyTag())

    def combine_mult_keys(self, joint: Any, share: Any) -> Any:
        return self._cc.MultiAddEvalMultKeys(joint, share, joint.GetKeyTag())

    def sum_keys_seed(self, secret_share: Any) -> Any:
        self._cc.EvalSumKeyGen(secret_share)
        return self._cc.GetEvalSumKeyMap(secret_share.GetKeyTag())

    def sum_keys_contribution(self, secret_share: Any, seed: Any, public_key: Any) -> Any:
        return self._cc.MultiEvalSumKeyGen(secret_share, seed, public_key.GetKeyTag())

    def combine_sum_keys(self, joint: Any, contribution: Any, public_key: Any) -> Any:
        return self._cc.MultiAddEvalSumKeys(joint, contribution, public_key.GetKeyTag())

    def _install(self, public_key: Any, mult_key: Any, sum_keys: Any, lead_public_key: Any) -> None:
        try:
            self._cc.InsertEvalMultKey([mult_key])
            # EvalSumKeyGen already registered the lead's own keys; with a
            # single party the joint keys are those same keys.
            if public_key.GetKeyTag() != lead_public_key.GetKeyTag():
                self._cc.InsertEvalSumKey(sum_keys)
        except RuntimeError as exc:
            raise KeyGenerationFailure(f"could not install evaluation keys: {exc}") from exc

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _encrypt(self, public_key: Any, values: List[float]) -> Any:
        plaintext = self._cc.MakeCKKSPackedPlaintext(values)
        return self._cc.Encrypt(public_key, plaintext)

    def _eval_add(self, x: Any, y: Any) -> Any:
        return self._cc.EvalAdd(x, y)

    def _eval_sub(self, x: Any, y: Any) -> Any:
        return self._cc.EvalSub(x, y)

    def _eval_mult(self, x: Any, y: Any) -> Any:
        return self._cc.EvalMult(x, y)

    def _eval_mult_const(self, x: Any, constant: float) -> Any:
        return self._cc.EvalMult(x, constant)

    def _eval_sum(self, x: Any, slots: int) -> Any:
        return self._cc.EvalSum(x, slots)

    def _eval_chebyshev(
        self, x: Any, coefficients: Sequence[float], lower: float, upper: float
    ) -> Any:
        # OpenFHE halves the constant term of the series it evaluates.
        series = list(coefficients)
        series[0] *= 2.0
        return self._cc.EvalChebyshevSeries(x, series, lower, upper)

    # ------------------------------------------------------------------
    # Threshold decryption
    # ------------------------------------------------------------------

    def partial_decrypt(self, secret_share: Any, ciphertext: Ciphertext, lead: bool) -> Any:
        if lead:
            return self._cc.MultipartyDecryptLead([ciphertext.ciphertext], secret_share)[0]
        return self._cc.MultipartyDecryptMain([ciphertext.ciphertext], secret_share)[0]

    def _fuse(self, payloads: Sequence[Any]) -> Sequence[float]:
        plaintext = self._cc.MultipartyDecryptFusion(list(payloads))
        plaintext.SetLength(self.codec.slots)
        return plaintext.GetRealPackedValue()
