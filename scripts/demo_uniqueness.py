#!/usr/bin/env python3
"""
Privacy-preserving uniqueness check, end to end.

Demonstrates the encrypted pipeline:
1. Key ceremony: n parties share the CKKS secret key
2. Encrypted cosine similarities against every database item
3. Tournament maximum via (a + b + |a - b|) / 2
4. Threshold decision opened by coordinated decryption

Compares the outcome with a plaintext baseline.
"""
import argparse
import logging
import sys

import numpy as np

from veil.pipeline import UniquenessPipeline
from veil.shared.config import PipelineConfig
from veil.shared.errors import VeilError
from veil.shared.utils import generate_random_vectors, normalize_vectors


def run_demo(
    dimension: int = 64,
    database_size: int = 100,
    threshold: float = 0.5,
    parties: int = 1,
    abs_degree: int = 27,
    disclosure: str = "maximum",
    workers: int = 1,
    insecure: bool = False,
    duplicate: bool = False,
    seed: int = 42,
):
    """
    Run the uniqueness check demonstration.
    """
    options = dict(
        dimension=dimension,
        batch_size=1 << (dimension - 1).bit_length(),
        similarity_threshold=threshold,
        party_count=parties,
        decryption_threshold=parties,
        abs_degree=abs_degree,
        disclosure=disclosure,
        workers=workers,
    )
    if insecure:
        options.update(security_level="none", ring_dimension=1 << 12)
    config = PipelineConfig.for_database(database_size, **options)

    print("=" * 70)
    print("Veil - Encrypted Uniqueness Check")
    print("=" * 70)
    print(f"\nConfiguration:")
    print(f"  Database size:       {database_size} vectors")
    print(f"  Dimension:           {dimension}")
    print(f"  Similarity cutoff:   {threshold}")
    print(f"  Key holders:         {parties} (all required to decrypt)")
    print(f"  |x| degree:          {abs_degree}")
    print(f"  Tournament rounds:   {config.rounds}")
    print(f"  Depth budget:        {config.multiplicative_depth}")
    print(f"  Security level:      {config.security_level}")
    print(f"  Disclosure:          {config.disclosure.value}")

    database = generate_random_vectors(database_size, dimension, seed=seed)
    if duplicate:
        noise = generate_random_vectors(1, dimension, seed=seed + 1)[0]
        query = normalize_vectors(database[database_size // 2] + 0.05 * noise)
    else:
        query = generate_random_vectors(1, dimension, seed=seed + 1000)[0]

    print("\n" + "=" * 70)
    print("ENCRYPTED RUN")
    print("=" * 70)
    pipeline = UniquenessPipeline(config)
    report = pipeline.run(np.asarray(query), database, verbose=True)

    print("\n" + "=" * 70)
    print("RESULTS")
    print("=" * 70)
    print(report)

    print("\n" + "=" * 70)
    print("TIMING BREAKDOWN")
    print("=" * 70)
    for stage, elapsed in report.timing.items():
        print(f"  {stage:<16} {elapsed:10.2f}ms")

    return report


def main():
    parser = argparse.ArgumentParser(description="Encrypted uniqueness check demo")
    parser.add_argument("--dimension", type=int, default=64, help="Vector dimension")
    parser.add_argument("--num-vectors", type=int, default=100, help="Database size")
    parser.add_argument("--threshold", type=float, default=0.5, help="Similarity cutoff")
    parser.add_argument("--parties", type=int, default=1, help="Number of key holders")
    parser.add_argument("--abs-degree", type=int, default=27, help="Degree of the |x| interpolant")
    parser.add_argument(
        "--sign-only",
        action="store_true",
        help="Reveal only sign(max - threshold) instead of the maximum",
    )
    parser.add_argument("--workers", type=int, default=1, help="Thread pool size")
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Small ring without a security level, for quick runs",
    )
    parser.add_argument(
        "--duplicate",
        action="store_true",
        help="Query with a near-copy of a database item",
    )
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        run_demo(
            dimension=args.dimension,
            database_size=args.num_vectors,
            threshold=args.threshold,
            parties=args.parties,
            abs_degree=args.abs_degree,
            disclosure="sign_only" if args.sign_only else "maximum",
            workers=args.workers,
            insecure=args.insecure,
            duplicate=args.duplicate,
            seed=args.seed,
        )
    except VeilError as exc:
        print(f"\nFAILED: {type(exc).__name__}: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
