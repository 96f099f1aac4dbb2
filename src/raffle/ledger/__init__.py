"""Claim ledger — claim registration and reveal marking."""

from raffle.ledger.claims import ClaimLedger

__all__ = ["ClaimLedger"]
