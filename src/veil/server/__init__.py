"""Computing-party components: similarity, reduction and decision."""
from veil.server.decision import ThresholdDecisionMaker, is_unique
from veil.server.reduction import SecureMaxReducer
from veil.server.similarity import EncryptedStore, SimilarityComputer, encrypt_database

__all__ = [
    "EncryptedStore",
    "SecureMaxReducer",
    "SimilarityComputer",
    "ThresholdDecisionMaker",
    "encrypt_database",
    "is_unique",
]
