"""Cryptographic primitives — leaf encoding, sorted-pair Merkle trees, proof verification."""

from raffle.crypto.merkle import MerkleProof, MerkleTree, RevealedLeaf, leaf_hash, verify

__all__ = ["MerkleProof", "MerkleTree", "RevealedLeaf", "leaf_hash", "verify"]
