"""Data models for campaigns, claims and settlements."""

from raffle.crypto.merkle import RevealedLeaf
from raffle.models.raffle import (
    CLAIM_TRANSITIONS,
    ZERO_ADDRESS,
    Campaign,
    Claim,
    ClaimState,
    SettlementEntry,
    SettlementOutcome,
    SettlementRecord,
    SettlementResult,
)

__all__ = [
    "CLAIM_TRANSITIONS",
    "ZERO_ADDRESS",
    "Campaign",
    "Claim",
    "ClaimState",
    "RevealedLeaf",
    "SettlementEntry",
    "SettlementOutcome",
    "SettlementRecord",
    "SettlementResult",
]
