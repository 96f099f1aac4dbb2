"""Raffle records — campaigns, claims and settlements.

Ownership:
- Campaign records belong to the campaign registry. The core only reads them.
- Claim records belong to the claim ledger.
- Settlement records belong to the settlement engine.

Per-claim lifecycle (no transition ever reverses):
    UNCLAIMED → CLAIMED → REVEALED_WON
                        → REVEALED_LOST

UNCLAIMED → REVEALED_* is impossible: settlement requires an existing claim.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from raffle.crypto.merkle import RevealedLeaf, to_bytes32, to_hex
from raffle.errors import ValidationError


ZERO_ADDRESS = "0x" + "0" * 40


class ClaimState(str, enum.Enum):
    """Where a serial id sits in its claim/reveal lifecycle."""
    UNCLAIMED = "unclaimed"
    CLAIMED = "claimed"
    REVEALED_WON = "revealed_won"
    REVEALED_LOST = "revealed_lost"


CLAIM_TRANSITIONS: Dict[ClaimState, frozenset] = {
    ClaimState.UNCLAIMED: frozenset({ClaimState.CLAIMED}),
    ClaimState.CLAIMED: frozenset({
        ClaimState.REVEALED_WON,
        ClaimState.REVEALED_LOST,
    }),
    ClaimState.REVEALED_WON: frozenset(),
    ClaimState.REVEALED_LOST: frozenset(),
}


class SettlementOutcome(str, enum.Enum):
    WON = "won"
    LOST = "lost"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Campaign:
    """A raffle instance committed via a single Merkle root.

    committed_root is never changed after creation; the registry replaces
    the record only to toggle ``active`` or update ``metadata_uri``.
    """
    campaign_id: int
    owner_id: str
    committed_root: bytes
    reward_asset: str
    total_leaves: int
    expiry_utc: datetime
    metadata_uri: str = ""
    active: bool = True
    created_utc: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expiry_utc


@dataclass(frozen=True)
class Claim:
    """One claim per (campaign_id, serial_id). Never deleted."""
    campaign_id: int
    serial_id: bytes
    claimant_id: str
    payload: bytes  # Ciphertext of the eventual reveal, never interpreted
    claimed_utc: datetime
    revealed: bool = False
    revealed_utc: Optional[datetime] = None


@dataclass(frozen=True)
class SettlementRecord:
    campaign_id: int
    serial_id: bytes
    claimant_id: str
    outcome: SettlementOutcome
    settled_by: str
    settled_utc: datetime


@dataclass(frozen=True)
class SettlementEntry:
    """One reveal in a batch settlement request."""
    serial_id: bytes
    secret: bytes
    win: bool
    proof: tuple[bytes, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "serial_id", to_bytes32(self.serial_id, "serial_id"))
        object.__setattr__(self, "secret", to_bytes32(self.secret, "secret"))
        if not isinstance(self.win, bool):
            raise ValidationError(f"win flag must be a bool, got {type(self.win).__name__}")
        object.__setattr__(
            self, "proof",
            tuple(to_bytes32(p, f"proof[{i}]") for i, p in enumerate(self.proof)),
        )

    @property
    def revealed_leaf(self) -> RevealedLeaf:
        return RevealedLeaf(self.serial_id, self.secret, self.win)


@dataclass(frozen=True)
class SettlementResult:
    """Outcome of settling one serial id.

    reason is set for skipped batch entries; reward_error is set when the
    reward hook failed after the settlement was recorded.
    """
    campaign_id: int
    serial_id: bytes
    outcome: SettlementOutcome
    claimant_id: Optional[str] = None
    reason: str = ""
    reward_error: Optional[str] = None

    @property
    def settled(self) -> bool:
        return self.outcome != SettlementOutcome.SKIPPED

    @property
    def won(self) -> bool:
        return self.outcome == SettlementOutcome.WON

    def to_dict(self) -> dict:
        return {
            "campaign_id": self.campaign_id,
            "serial_id": to_hex(self.serial_id),
            "outcome": self.outcome.value,
            "claimant_id": self.claimant_id,
            "reason": self.reason,
            "reward_error": self.reward_error,
        }
