"""
Error taxonomy for the uniqueness pipeline.

Every error is terminal for the computation that raised it. Nothing here is
retried automatically; callers decide what to do with the context attached.
"""
from typing import Optional


class VeilError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(VeilError):
    """Invalid parameters, detected before any cryptographic work starts."""


class ValidationError(VeilError):
    """
    A vector or ciphertext failed a precondition.

    Fatal for the offending item only, unless the item is the query.
    """

    def __init__(self, message: str, item_index: Optional[int] = None):
        if item_index is not None:
            message = f"item {item_index}: {message}"
        super().__init__(message)
        self.item_index = item_index


class DepthExhausted(VeilError):
    """A ciphertext has no multiplicative levels left for the next operation."""

    def __init__(
        self,
        level: int,
        cost: int,
        budget: int,
        operation: str = "multiply",
        round_index: Optional[int] = None,
    ):
        where = f" in round {round_index}" if round_index is not None else ""
        super().__init__(
            f"{operation}{where} needs {cost} level(s) at level {level}, "
            f"budget is {budget}"
        )
        self.level = level
        self.cost = cost
        self.budget = budget
        self.operation = operation
        self.round_index = round_index


class InsufficientShares(VeilError):
    """Fewer partial decryptions than the quorum requires."""

    def __init__(self, present: int, required: int, reason: str = ""):
        message = f"{present} of {required} required decryption shares present"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.present = present
        self.required = required


class KeyGenerationFailure(VeilError):
    """Key material could not be produced; nothing downstream can run."""

    def __init__(self, message: str, party_id: Optional[int] = None):
        if party_id is not None:
            message = f"party {party_id}: {message}"
        super().__init__(message)
        self.party_id = party_id
