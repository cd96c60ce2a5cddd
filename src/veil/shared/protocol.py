"""
Protocol definitions shared by the computing party and the key holders.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Disclosure(str, Enum):
    """What the final decryption is allowed to reveal."""
    SIGN_ONLY = "sign_only"  # only sign(max - threshold)
    MAXIMUM = "maximum"      # the maximum similarity itself (weaker)


@dataclass(frozen=True)
class Ciphertext:
    """
    Opaque backend ciphertext plus the bookkeeping it needs to be used safely.

    ``level`` counts multiplicative levels already consumed on this value's
    computation path. Values are never mutated; every homomorphic operation
    returns a new one.
    """
    ciphertext: Any
    slots: int
    scale_bits: int
    context_id: str
    level: int = 0

    def advanced(self, ciphertext: Any, cost: int = 0) -> "Ciphertext":
        """Same metadata, new payload, ``cost`` more levels consumed."""
        return replace(self, ciphertext=ciphertext, level=self.level + cost)

    def compatible_with(self, other: "Ciphertext") -> bool:
        return (
            self.context_id == other.context_id
            and self.slots == other.slots
            and self.scale_bits == other.scale_bits
        )


@dataclass(frozen=True)
class EncryptedVector(Ciphertext):
    """A D-dimensional vector packed into the first D slots, zero padded."""
    dimension: int = 0


@dataclass(frozen=True)
class EncryptedScalar(Ciphertext):
    """A single real replicated across every slot of the batch."""


@dataclass(frozen=True)
class KeyMaterial:
    """
    Public, shared, read-only key state.

    Secret shares are deliberately absent: they stay inside their KeyHolder.
    """
    public_key: Any
    party_count: int
    decryption_threshold: int
    sum_slots: int = 0  # batch width the joint slot-sum keys cover
    has_mult_key: bool = False
    has_sum_keys: bool = False


@dataclass(frozen=True)
class DecryptionShare:
    """One party's partial decryption. Meaningless on its own."""
    party_id: int
    request_id: str
    is_lead: bool
    payload: Any


@dataclass(frozen=True)
class Decision:
    """The revealed outcome of a uniqueness check."""
    is_unique: bool
    disclosure: Disclosure
    threshold: float
    revealed_value: float


@dataclass
class RoundTrace:
    """What happened in one tournament round."""
    round_index: int
    inputs: int
    pairings: int
    passed_through: Optional[int] = None  # index of the unpaired element


@dataclass
class ReductionTrace:
    """Round-by-round record of a tournament reduction."""
    rounds: List[RoundTrace] = field(default_factory=list)

    @property
    def round_count(self) -> int:
        return len(self.rounds)

    @property
    def pass_throughs(self) -> int:
        return sum(1 for r in self.rounds if r.passed_through is not None)


class RejectedItem(BaseModel):
    """A database item skipped because it failed validation."""
    index: int
    reason: str


class UniquenessReport(BaseModel):
    """Structured record of one run, comparing encrypted and plaintext outcomes."""
    plaintext_max: float
    plaintext_argmax: int
    decrypted_max: Optional[float] = Field(
        None, description="Only present when the maximum itself was disclosed"
    )
    is_unique_plaintext: bool
    is_unique_encrypted: bool
    absolute_error: Optional[float] = None
    similarity_threshold: float
    disclosure: Disclosure
    accuracy_tolerance: float
    within_tolerance: Optional[bool] = None
    error_sources: List[str] = Field(default_factory=list)
    error_bound: float = 0.0
    rounds: int = 0
    items_scored: int = 0
    rejected_items: List[RejectedItem] = Field(default_factory=list)
    timing: Dict[str, float] = Field(default_factory=dict)

    @property
    def decisions_match(self) -> bool:
        return self.is_unique_plaintext == self.is_unique_encrypted

    def __str__(self) -> str:
        lines = [
            "Uniqueness check",
            f"  Plaintext max:     {self.plaintext_max:.8f} (index {self.plaintext_argmax})",
        ]
        if self.decrypted_max is not None:
            lines.append(f"  Decrypted max:     {self.decrypted_max:.8f}")
            lines.append(f"  Absolute error:    {self.absolute_error:.3e}")
        lines.extend([
            f"  Threshold:         {self.similarity_threshold}",
            f"  Disclosure:        {self.disclosure.value}",
            f"  Unique (plain):    {self.is_unique_plaintext}",
            f"  Unique (enc):      {self.is_unique_encrypted}",
            f"  Decisions match:   {'YES' if self.decisions_match else 'NO'}",
            f"  Rounds:            {self.rounds}",
            f"  Items scored:      {self.items_scored}",
        ])
        if self.within_tolerance is not None:
            verdict = "PASS" if self.within_tolerance else "FAIL"
            lines.append(f"  Accuracy (< {self.accuracy_tolerance:g}): {verdict}")
        for source in self.error_sources:
            lines.append(f"    - {source}")
        return "\n".join(lines)
