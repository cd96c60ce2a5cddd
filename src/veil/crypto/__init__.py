"""Homomorphic capability: the CKKS operations the pipeline consumes."""
from veil.crypto.capability import HomomorphicCapability
from veil.crypto.codec import VectorCodec
from veil.crypto.openfhe_backend import OpenFHECapability

__all__ = [
    "HomomorphicCapability",
    "OpenFHECapability",
    "VectorCodec",
]
