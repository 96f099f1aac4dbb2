"""Merkle authenticator for committed raffle outcomes.

Uses Keccak-256 as the hash function so that roots and proofs are
bit-exact with trees built by Ethereum tooling.

Leaf:
    keccak256(serial_id[32] || secret[32] || win[1])

which is the Solidity ``abi.encodePacked(bytes32, bytes32, bool)`` layout.
Every field is fixed width, so no length prefix is needed.

Internal node:
    keccak256(min(a, b) || max(a, b))

Pairs are combined in sorted order, so proofs carry no left/right
positions. A builder that concatenates positionally produces different
roots and every proof it emits will be rejected here.

Odd levels pair the last node with itself; the proof for that node
carries the node itself as the sibling at that level.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Union

from web3 import Web3

from raffle.errors import ValidationError


DIGEST_SIZE = 32
ZERO_DIGEST = b"\x00" * DIGEST_SIZE

BytesLike = Union[bytes, bytearray, str]


def to_bytes32(value: BytesLike, name: str = "value") -> bytes:
    """Normalise a 32-byte value given as raw bytes or a hex string."""
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        text = value[2:] if value[:2] in ("0x", "0X") else value
        try:
            raw = bytes.fromhex(text)
        except ValueError as exc:
            raise ValidationError(f"{name} is not valid hex: {value!r}") from exc
    else:
        raise ValidationError(
            f"{name} must be bytes or a hex string, got {type(value).__name__}"
        )
    if len(raw) != DIGEST_SIZE:
        raise ValidationError(
            f"{name} must be {DIGEST_SIZE} bytes, got {len(raw)}"
        )
    return raw


def to_hex(digest: bytes) -> str:
    return "0x" + digest.hex()


def keccak(data: bytes) -> bytes:
    return bytes(Web3.keccak(data))


def encode_leaf(serial_id: BytesLike, secret: BytesLike, win: bool) -> bytes:
    """Packed 65-byte leaf preimage."""
    if not isinstance(win, bool):
        raise ValidationError(f"win flag must be a bool, got {type(win).__name__}")
    return (
        to_bytes32(serial_id, "serial_id")
        + to_bytes32(secret, "secret")
        + (b"\x01" if win else b"\x00")
    )


def leaf_hash(serial_id: BytesLike, secret: BytesLike, win: bool) -> bytes:
    return keccak(encode_leaf(serial_id, secret, win))


def hash_pair(a: bytes, b: bytes) -> bytes:
    """Commutative node hash: the smaller digest goes first."""
    if b < a:
        a, b = b, a
    return keccak(a + b)


def process_proof(leaf: BytesLike, proof: Sequence[BytesLike]) -> bytes:
    """Fold a leaf up through its sibling path and return the implied root."""
    computed = to_bytes32(leaf, "leaf")
    for i, sibling in enumerate(proof):
        computed = hash_pair(computed, to_bytes32(sibling, f"proof[{i}]"))
    return computed


def verify(root: BytesLike, leaf: BytesLike, proof: Sequence[BytesLike]) -> bool:
    """Return True if ``proof`` links ``leaf`` to ``root``.

    Pure function. Raises ValidationError only for malformed digests;
    a well-formed proof that does not match returns False.
    """
    return process_proof(leaf, proof) == to_bytes32(root, "root")


@dataclass(frozen=True)
class RevealedLeaf:
    """The disclosed facts behind one committed leaf. Never persisted."""
    serial_id: bytes
    secret: bytes
    win: bool

    def __post_init__(self) -> None:
        object.__setattr__(self, "serial_id", to_bytes32(self.serial_id, "serial_id"))
        object.__setattr__(self, "secret", to_bytes32(self.secret, "secret"))
        if not isinstance(self.win, bool):
            raise ValidationError(f"win flag must be a bool, got {type(self.win).__name__}")

    @property
    def leaf_hash(self) -> bytes:
        return leaf_hash(self.serial_id, self.secret, self.win)


@dataclass(frozen=True)
class MerkleProof:
    """An inclusion proof for a single leaf."""
    index: int
    leaf: bytes
    path: tuple[bytes, ...]
    root: bytes

    def verify(self) -> bool:
        return verify(self.root, self.leaf, self.path)

    def as_hex(self) -> dict:
        return {
            "index": self.index,
            "leaf": to_hex(self.leaf),
            "proof": [to_hex(p) for p in self.path],
            "root": to_hex(self.root),
        }


class MerkleTree:
    """Off-system tree builder matching the verifier above.

    Leaves keep their insertion order; the leaf index is its position.

    Usage:
        tree = MerkleTree.from_outcomes([
            RevealedLeaf(sid_a, secret_a, True),
            RevealedLeaf(sid_b, secret_b, False),
        ])
        root = tree.root
        proof = tree.proof(0)
    """

    def __init__(self, leaves: Sequence[BytesLike]) -> None:
        if not leaves:
            raise ValidationError("Cannot build a Merkle tree with no leaves")

        level = [to_bytes32(leaf, f"leaves[{i}]") for i, leaf in enumerate(leaves)]
        self._levels: list[list[bytes]] = [level]

        while len(level) > 1:
            next_level: list[bytes] = []
            for i in range(0, len(level), 2):
                left = level[i]
                right = level[i + 1] if i + 1 < len(level) else left
                next_level.append(hash_pair(left, right))
            self._levels.append(next_level)
            level = next_level

    @classmethod
    def from_outcomes(cls, outcomes: Iterable[RevealedLeaf]) -> MerkleTree:
        return cls([outcome.leaf_hash for outcome in outcomes])

    @property
    def root(self) -> bytes:
        return self._levels[-1][0]

    @property
    def leaves(self) -> list[bytes]:
        return list(self._levels[0])

    @property
    def leaf_count(self) -> int:
        return len(self._levels[0])

    @property
    def depth(self) -> int:
        return len(self._levels) - 1

    def proof(self, index: int) -> MerkleProof:
        """Sibling path for the leaf at ``index``.

        A node without a right-hand partner is paired with itself, so the
        node itself is emitted as the sibling at that level.
        """
        if not 0 <= index < self.leaf_count:
            raise IndexError(f"Leaf index {index} out of range (0..{self.leaf_count - 1})")

        path: list[bytes] = []
        current_idx = index
        for level in self._levels[:-1]:
            if current_idx % 2 == 0:
                sibling_idx = current_idx + 1
                if sibling_idx < len(level):
                    path.append(level[sibling_idx])
                else:
                    path.append(level[current_idx])  # Self-paired
            else:
                path.append(level[current_idx - 1])
            current_idx //= 2

        return MerkleProof(
            index=index,
            leaf=self._levels[0][index],
            path=tuple(path),
            root=self.root,
        )

    def proof_for_leaf(self, leaf: BytesLike) -> Optional[MerkleProof]:
        """Proof for the first occurrence of ``leaf``, or None if absent."""
        target = to_bytes32(leaf, "leaf")
        try:
            idx = self._levels[0].index(target)
        except ValueError:
            return None
        return self.proof(idx)
