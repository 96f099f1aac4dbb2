"""Settlement engine — reveal, verify, settle exactly once.

After a campaign's expiry, anyone may reveal the secret and win flag
behind a claimed serial id together with a Merkle proof. The engine
checks, in order, each a hard failure for single settlement:

1. The campaign exists.
2. now >= campaign expiry (no reveal before all claims are locked in).
3. A claim exists for (campaign, serial id).
4. The serial id has not already been settled.
5. keccak(serial_id || secret || win) is proven under the committed root.

On success, as one unit: the claim is marked revealed on the claim
ledger, the settlement is recorded, and for a win the campaign's winner
tally is incremented and the reward hook is invoked.

Batch settlement is best-effort: an entry whose claim is missing, is
already settled or fails verification is reported as SKIPPED and the
remaining entries still settle. Campaign-level failures abort the batch.

A call-depth guard is held for the whole of each mutating operation, so
a reward hook cannot re-enter the engine while a settlement is in flight.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple, Union

from raffle.access.component import ControlledComponent, utc_now
from raffle.access.guard import CallGuard
from raffle.crypto import merkle
from raffle.crypto.merkle import BytesLike, to_bytes32, to_hex
from raffle.errors import (
    AlreadySettledError,
    CampaignNotExpiredError,
    CampaignNotFoundError,
    ClaimNotFoundError,
    InvalidProofError,
    PausedError,
    ProofError,
    StateError,
    ValidationError,
)
from raffle.ledger.claims import ClaimLedger
from raffle.models.raffle import (
    Campaign,
    Claim,
    ClaimState,
    SettlementEntry,
    SettlementOutcome,
    SettlementRecord,
    SettlementResult,
)
from raffle.persistence.event_log import EventKind, EventLog
from raffle.registry.campaigns import CampaignSource

logger = logging.getLogger(__name__)

# Reward amount and token id are not computed by the core.
PLACEHOLDER_REWARD_AMOUNT = 0
PLACEHOLDER_TOKEN_ID = 0


class RewardHook(Protocol):
    """Called once per confirmed win, after the settlement is recorded."""

    def __call__(
        self,
        campaign_id: int,
        serial_id: bytes,
        claimant_id: str,
        reward_asset: str,
    ) -> None:
        ...


def no_reward(
    campaign_id: int,
    serial_id: bytes,
    claimant_id: str,
    reward_asset: str,
) -> None:
    """Default hook: reward transfer happens outside the core."""


def _coerce_entry(index: int, entry: Union[SettlementEntry, tuple]) -> SettlementEntry:
    if isinstance(entry, SettlementEntry):
        return entry
    if not isinstance(entry, (tuple, list)) or len(entry) != 4:
        raise ValidationError(f"entry {index} must be (serial_id, secret, win, proof)")
    serial_id, secret, win, proof = entry
    return SettlementEntry(serial_id, secret, win, _as_proof(proof, f"entry {index} proof"))


def _as_proof(proof: Sequence[BytesLike], name: str = "proof") -> tuple:
    if not isinstance(proof, (tuple, list)):
        raise ValidationError(f"{name} must be a list of sibling digests")
    return tuple(proof)


class SettlementEngine(ControlledComponent):
    """Settles revealed claims against each campaign's committed root.

    The engine acts on the claim ledger under its own ``identity``, which
    must hold Role.OPERATOR there.

    Usage:
        engine = SettlementEngine(registry, ledger, admin_id="admin")
        ledger.grant_role("admin", Role.OPERATOR, engine.identity)
        result = engine.reveal_and_settle(
            caller, campaign_id, sid, secret, True, proof.path,
        )
    """

    component_name = "settlement_engine"

    def __init__(
        self,
        campaigns: CampaignSource,
        ledger: ClaimLedger,
        admin_id: str,
        identity: str = "settlement-engine",
        reward_hook: Optional[RewardHook] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        super().__init__(admin_id, event_log if event_log is not None else ledger.event_log)
        self._campaigns = campaigns
        self._ledger = ledger
        self._identity = identity
        self._reward_hook: RewardHook = reward_hook or no_reward
        self._settlements: Dict[Tuple[int, bytes], SettlementRecord] = {}
        self._total_winners: Dict[int, int] = {}
        self._zk_verifier: Optional[str] = None
        self._guard = CallGuard(self.component_name)

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def zk_verifier(self) -> Optional[str]:
        return self._zk_verifier

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def reveal_and_settle(
        self,
        caller: str,
        campaign_id: int,
        serial_id: BytesLike,
        secret: BytesLike,
        win: bool,
        proof: Sequence[BytesLike],
        now: Optional[datetime] = None,
    ) -> SettlementResult:
        """Reveal one claim and settle it. Any failed check raises."""
        self._begin("reveal_and_settle", caller)
        entry = SettlementEntry(serial_id=serial_id, secret=secret, win=win, proof=_as_proof(proof))
        now = utc_now(now)

        with self._guard:
            campaign = self._require_settleable(campaign_id, now)
            return self._settle(caller, campaign, entry, now)

    def reveal_and_settle_batch(
        self,
        caller: str,
        campaign_id: int,
        entries: Iterable[Union[SettlementEntry, tuple]],
        now: Optional[datetime] = None,
    ) -> List[SettlementResult]:
        """Settle many claims; entries that fail their checks are skipped.

        Entries may be SettlementEntry instances or
        (serial_id, secret, win, proof) tuples. Malformed entries are
        rejected before any entry is processed.
        """
        self._begin("reveal_and_settle_batch", caller)
        normalised = [_coerce_entry(i, e) for i, e in enumerate(entries)]
        now = utc_now(now)

        with self._guard:
            campaign = self._require_settleable(campaign_id, now)
            results: List[SettlementResult] = []
            for entry in normalised:
                try:
                    results.append(self._settle(caller, campaign, entry, now))
                except (StateError, ProofError) as exc:
                    logger.debug(
                        "Skipping %s in campaign %d: %s",
                        to_hex(entry.serial_id), campaign_id, exc,
                    )
                    results.append(SettlementResult(
                        campaign_id=campaign_id,
                        serial_id=entry.serial_id,
                        outcome=SettlementOutcome.SKIPPED,
                        reason=f"{type(exc).__name__}: {exc}",
                    ))
            return results

    def set_zk_verifier(
        self,
        caller: str,
        verifier: Optional[str],
        now: Optional[datetime] = None,
    ) -> None:
        """Record a zero-knowledge verifier reference. Not consulted by settlement."""
        self._begin("set_zk_verifier", caller)
        now = utc_now(now)
        previous = self._zk_verifier
        self._zk_verifier = verifier
        self._emit(EventKind.ZK_VERIFIER_UPDATED, caller, {
            "previous": previous,
            "current": verifier,
        }, now)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def verify_only(
        self,
        campaign_id: int,
        serial_id: BytesLike,
        secret: BytesLike,
        win: bool,
        proof: Sequence[BytesLike],
    ) -> bool:
        """Read-only verification. Unknown campaign or malformed input gives False."""
        campaign = self._campaigns.get_campaign(campaign_id)
        if campaign is None:
            return False
        try:
            leaf = merkle.leaf_hash(serial_id, secret, win)
            return merkle.verify(campaign.committed_root, leaf, _as_proof(proof))
        except ValidationError:
            return False

    def is_settled(self, campaign_id: int, serial_id: BytesLike) -> bool:
        return (campaign_id, to_bytes32(serial_id, "serial_id")) in self._settlements

    def total_winners(self, campaign_id: int) -> int:
        return self._total_winners.get(campaign_id, 0)

    def get_settlement(
        self,
        campaign_id: int,
        serial_id: BytesLike,
    ) -> Optional[SettlementRecord]:
        return self._settlements.get((campaign_id, to_bytes32(serial_id, "serial_id")))

    def claim_state(self, campaign_id: int, serial_id: BytesLike) -> ClaimState:
        record = self.get_settlement(campaign_id, serial_id)
        if record is not None:
            if record.outcome == SettlementOutcome.WON:
                return ClaimState.REVEALED_WON
            return ClaimState.REVEALED_LOST
        if self._ledger.is_claimed(campaign_id, serial_id):
            return ClaimState.CLAIMED
        return ClaimState.UNCLAIMED

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _require_settleable(self, campaign_id: int, now: datetime) -> Campaign:
        campaign = self._campaigns.get_campaign(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(f"Unknown campaign: {campaign_id}")
        if not campaign.is_expired(now):
            raise CampaignNotExpiredError(
                f"Claim period for campaign {campaign_id} has not expired yet"
            )
        if self._ledger.paused:
            raise PausedError("claim_ledger is paused")
        return campaign

    def _settle(
        self,
        caller: str,
        campaign: Campaign,
        entry: SettlementEntry,
        now: datetime,
    ) -> SettlementResult:
        cid = campaign.campaign_id
        sid = entry.serial_id
        claim = self._ledger.get_claim(cid, sid)
        if claim is None:
            raise ClaimNotFoundError(f"No claim for {to_hex(sid)} in campaign {cid}")
        if (cid, sid) in self._settlements:
            raise AlreadySettledError(f"Claim {to_hex(sid)} in campaign {cid} already settled")
        if not merkle.verify(campaign.committed_root, entry.revealed_leaf.leaf_hash, entry.proof):
            raise InvalidProofError(f"Invalid Merkle proof for {to_hex(sid)} in campaign {cid}")

        outcome = SettlementOutcome.WON if entry.win else SettlementOutcome.LOST
        # mark_revealed runs its own checks before writing, so a failure
        # here leaves both the ledger and the engine untouched.
        self._ledger.mark_revealed(self._identity, cid, sid, now=now, outcome=outcome.value)

        self._settlements[(cid, sid)] = SettlementRecord(
            campaign_id=cid,
            serial_id=sid,
            claimant_id=claim.claimant_id,
            outcome=outcome,
            settled_by=caller,
            settled_utc=now,
        )

        reward_error: Optional[str] = None
        if entry.win:
            self._total_winners[cid] = self._total_winners.get(cid, 0) + 1
            self._emit(EventKind.WINNER_SETTLED, caller, {
                "campaign_id": cid,
                "serial_id": to_hex(sid),
                "claimant_id": claim.claimant_id,
                "reward_asset": campaign.reward_asset,
                "reward_amount": PLACEHOLDER_REWARD_AMOUNT,
                "token_id": PLACEHOLDER_TOKEN_ID,
                "outcome": outcome.value,
            }, now)
            logger.info("Campaign %d: %s settled as win for %s", cid, to_hex(sid), claim.claimant_id)
            reward_error = self._distribute_reward(campaign, claim)
        else:
            self._emit(EventKind.NON_WINNER_REVEALED, caller, {
                "campaign_id": cid,
                "serial_id": to_hex(sid),
                "claimant_id": claim.claimant_id,
                "outcome": outcome.value,
            }, now)
            logger.info("Campaign %d: %s revealed as non-winner", cid, to_hex(sid))

        return SettlementResult(
            campaign_id=cid,
            serial_id=sid,
            outcome=outcome,
            claimant_id=claim.claimant_id,
            reward_error=reward_error,
        )

    def _distribute_reward(self, campaign: Campaign, claim: Claim) -> Optional[str]:
        """Invoke the reward hook. Its failure does not undo the settlement."""
        try:
            self._reward_hook(
                campaign.campaign_id,
                claim.serial_id,
                claim.claimant_id,
                campaign.reward_asset,
            )
        except Exception as exc:
            logger.exception(
                "Reward hook failed for %s in campaign %d",
                to_hex(claim.serial_id), campaign.campaign_id,
            )
            return f"{type(exc).__name__}: {exc}"
        return None
