"""Claim ledger — one claim per (campaign, serial id), never deleted.

Participants register claims against opaque serial ids while a campaign
is active and before its expiry. The encrypted payload is stored for
off-system bookkeeping only and is never interpreted here.

Single registration aborts on the first failed check. Batch registration
is atomic: every entry is checked before any is written, so one bad
entry leaves the ledger untouched. Batch settlement in
raffle.settlement.engine skips bad entries instead.

Claims move CLAIMED → revealed exactly once, and only through
mark_revealed, which is restricted to OPERATOR holders (the settlement
engine).
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from raffle.access.component import ControlledComponent, utc_now
from raffle.crypto.merkle import BytesLike, to_bytes32, to_hex
from raffle.errors import (
    AlreadyRevealedError,
    CampaignExpiredError,
    CampaignInactiveError,
    CampaignNotFoundError,
    ClaimNotFoundError,
    DuplicateClaimError,
    EmptyPayloadError,
    LengthMismatchError,
    ValidationError,
)
from raffle.models.raffle import Campaign, Claim
from raffle.persistence.event_log import EventKind, EventLog
from raffle.registry.campaigns import CampaignSource

logger = logging.getLogger(__name__)

ClaimKey = Tuple[int, bytes]


class ClaimLedger(ControlledComponent):
    """Records claims and their reveal flag.

    Usage:
        ledger = ClaimLedger(registry, admin_id="admin")
        ledger.grant_role("admin", Role.OPERATOR, engine.identity)
        claim = ledger.register_claim(user, campaign_id, sid, b"ciphertext")
    """

    component_name = "claim_ledger"

    def __init__(
        self,
        campaigns: CampaignSource,
        admin_id: str,
        event_log: Optional[EventLog] = None,
    ) -> None:
        super().__init__(admin_id, event_log)
        self._campaigns = campaigns
        self._claims: Dict[ClaimKey, Claim] = {}
        self._claims_by_claimant: Dict[Tuple[int, str], List[bytes]] = {}

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def register_claim(
        self,
        caller: str,
        campaign_id: int,
        serial_id: BytesLike,
        payload: bytes,
        now: Optional[datetime] = None,
    ) -> Claim:
        """Claim ``serial_id`` in ``campaign_id`` for ``caller``."""
        self._begin("register_claim", caller)
        now = utc_now(now)
        self._require_open_campaign(campaign_id, now)

        sid = to_bytes32(serial_id, "serial_id")
        self._check_entry(campaign_id, sid, payload)

        return self._write_claim(caller, campaign_id, sid, bytes(payload), now)

    def register_claim_batch(
        self,
        caller: str,
        campaign_id: int,
        serial_ids: Sequence[BytesLike],
        payloads: Sequence[bytes],
        now: Optional[datetime] = None,
    ) -> List[Claim]:
        """Claim several serial ids at once. All or nothing."""
        self._begin("register_claim_batch", caller)
        now = utc_now(now)

        if len(serial_ids) != len(payloads):
            raise LengthMismatchError(
                f"serial_ids ({len(serial_ids)}) and payloads ({len(payloads)}) "
                f"must have the same length"
            )
        self._require_open_campaign(campaign_id, now)

        sids = [to_bytes32(s, f"serial_ids[{i}]") for i, s in enumerate(serial_ids)]
        seen: set[bytes] = set()
        for sid, payload in zip(sids, payloads):
            self._check_entry(campaign_id, sid, payload)
            if sid in seen:
                raise DuplicateClaimError(
                    f"Serial id {to_hex(sid)} appears more than once in batch"
                )
            seen.add(sid)

        return [
            self._write_claim(caller, campaign_id, sid, bytes(payload), now)
            for sid, payload in zip(sids, payloads)
        ]

    def mark_revealed(
        self,
        caller: str,
        campaign_id: int,
        serial_id: BytesLike,
        now: Optional[datetime] = None,
        outcome: Optional[str] = None,
    ) -> Claim:
        """Flip a claim to revealed. OPERATOR only, exactly once per claim.

        ``outcome`` is the settled result ("won" or "lost") carried on the
        notification; it is not stored on the claim.
        """
        self._begin("mark_revealed", caller)
        now = utc_now(now)
        sid = to_bytes32(serial_id, "serial_id")

        claim = self._claims.get((campaign_id, sid))
        if claim is None:
            raise ClaimNotFoundError(
                f"No claim for {to_hex(sid)} in campaign {campaign_id}"
            )
        if claim.revealed:
            raise AlreadyRevealedError(
                f"Claim {to_hex(sid)} in campaign {campaign_id} already revealed"
            )

        updated = replace(claim, revealed=True, revealed_utc=now)
        self._claims[(campaign_id, sid)] = updated
        self._emit(EventKind.CLAIM_REVEALED, caller, {
            "campaign_id": campaign_id,
            "serial_id": to_hex(sid),
            "outcome": outcome,
        }, now)
        return updated

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_claim(self, campaign_id: int, serial_id: BytesLike) -> Optional[Claim]:
        return self._claims.get((campaign_id, to_bytes32(serial_id, "serial_id")))

    def is_claimed(self, campaign_id: int, serial_id: BytesLike) -> bool:
        return (campaign_id, to_bytes32(serial_id, "serial_id")) in self._claims

    def claims_of(self, campaign_id: int, claimant_id: str) -> List[bytes]:
        """Serial ids claimed by ``claimant_id`` in this campaign, in claim order."""
        return list(self._claims_by_claimant.get((campaign_id, claimant_id), []))

    def claim_count(self, campaign_id: int) -> int:
        return sum(1 for (cid, _) in self._claims if cid == campaign_id)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _require_open_campaign(self, campaign_id: int, now: datetime) -> Campaign:
        campaign = self._campaigns.get_campaign(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(f"Unknown campaign: {campaign_id}")
        if not campaign.active:
            raise CampaignInactiveError(f"Campaign {campaign_id} is not active")
        if campaign.is_expired(now):
            raise CampaignExpiredError(f"Claim period for campaign {campaign_id} has expired")
        return campaign

    def _check_entry(self, campaign_id: int, sid: bytes, payload: bytes) -> None:
        if (campaign_id, sid) in self._claims:
            raise DuplicateClaimError(
                f"Serial id {to_hex(sid)} already claimed in campaign {campaign_id}"
            )
        if not isinstance(payload, (bytes, bytearray)):
            raise ValidationError(
                f"Encrypted payload must be bytes, got {type(payload).__name__}"
            )
        if not payload:
            raise EmptyPayloadError("Encrypted payload cannot be empty")

    def _write_claim(
        self,
        caller: str,
        campaign_id: int,
        sid: bytes,
        payload: bytes,
        now: datetime,
    ) -> Claim:
        claim = Claim(
            campaign_id=campaign_id,
            serial_id=sid,
            claimant_id=caller,
            payload=payload,
            claimed_utc=now,
        )
        self._claims[(campaign_id, sid)] = claim
        self._claims_by_claimant.setdefault((campaign_id, caller), []).append(sid)
        self._emit(EventKind.CLAIM_REGISTERED, caller, {
            "campaign_id": campaign_id,
            "serial_id": to_hex(sid),
            "payload_size": len(payload),
        }, now)
        logger.debug("Claim %s registered in campaign %d by %s", to_hex(sid), campaign_id, caller)
        return claim
