"""
Veil: privacy-preserving uniqueness check over encrypted embeddings.

Uses CKKS homomorphic encryption end to end:
1. Similarity: encrypted dot products between query and database items
2. Reduction: tournament maximum via (a + b + |a - b|) / 2
3. Decision: threshold decryption of a single ciphertext

The computing party NEVER sees a plaintext vector or an individual score.
No key holder can decrypt alone.
"""

__version__ = "0.1.0"
