"""Raffle service — unified facade over registry, claim ledger and settlement engine.

Wires the three components onto one shared event log and grants the
settlement engine OPERATOR on the claim ledger, so that mark_revealed is
reachable only through settlement.

All operations return a ServiceResult instead of raising: component
errors (validation, authorization, state, proof) become
``success=False`` with the error class and message in ``errors``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

from raffle.access.control import Role
from raffle.config import RaffleSettings
from raffle.crypto.merkle import BytesLike, to_hex
from raffle.errors import RaffleError, ValidationError
from raffle.ledger.claims import ClaimLedger
from raffle.models.raffle import ZERO_ADDRESS, SettlementEntry
from raffle.persistence.event_log import EventLog
from raffle.registry.campaigns import CampaignRegistry
from raffle.settlement.engine import RewardHook, SettlementEngine


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


def _failure(exc: RaffleError) -> ServiceResult:
    return ServiceResult(success=False, errors=[f"{type(exc).__name__}: {exc}"])


class RaffleService:
    """Facade for the claim-and-settlement protocol.

    Usage:
        service = RaffleService(admin_id="admin")
        service.grant_merchant("admin", "merchant-1")
        result = service.create_campaign("merchant-1", root, 4, expiry)
        campaign_id = result.data["campaign_id"]

        service.register_claim(user, campaign_id, sid, b"ciphertext")
        # ... after expiry ...
        service.reveal_and_settle(user, campaign_id, sid, secret, True, proof)
    """

    def __init__(
        self,
        admin_id: str = "admin",
        engine_id: str = "settlement-engine",
        event_log: Optional[EventLog] = None,
        reward_hook: Optional[RewardHook] = None,
    ) -> None:
        if admin_id == engine_id:
            raise ValueError("Admin and engine identities must differ")
        self._admin_id = admin_id
        self._event_log = event_log if event_log is not None else EventLog()
        self._registry = CampaignRegistry(admin_id, self._event_log)
        self._ledger = ClaimLedger(self._registry, admin_id, self._event_log)
        self._engine = SettlementEngine(
            self._registry,
            self._ledger,
            admin_id,
            identity=engine_id,
            reward_hook=reward_hook,
            event_log=self._event_log,
        )
        self._ledger.grant_role(admin_id, Role.OPERATOR, engine_id)

    @classmethod
    def from_settings(
        cls,
        settings: RaffleSettings,
        reward_hook: Optional[RewardHook] = None,
    ) -> RaffleService:
        event_log = EventLog(storage_path=settings.event_log_path)
        return cls(
            admin_id=settings.admin_id,
            engine_id=settings.engine_id,
            event_log=event_log,
            reward_hook=reward_hook,
        )

    @property
    def registry(self) -> CampaignRegistry:
        return self._registry

    @property
    def ledger(self) -> ClaimLedger:
        return self._ledger

    @property
    def engine(self) -> SettlementEngine:
        return self._engine

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    # ------------------------------------------------------------------
    # Campaigns
    # ------------------------------------------------------------------

    def grant_merchant(self, caller: str, merchant_id: str) -> ServiceResult:
        try:
            self._registry.grant_role(caller, Role.MERCHANT, merchant_id)
        except RaffleError as exc:
            return _failure(exc)
        return ServiceResult(success=True, data={"merchant_id": merchant_id})

    def create_campaign(
        self,
        caller: str,
        committed_root: BytesLike,
        total_leaves: int,
        expiry_utc: datetime,
        reward_asset: str = ZERO_ADDRESS,
        metadata_uri: str = "",
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        try:
            campaign = self._registry.create_campaign(
                caller, committed_root, total_leaves, expiry_utc,
                reward_asset=reward_asset, metadata_uri=metadata_uri, now=now,
            )
        except RaffleError as exc:
            return _failure(exc)
        return ServiceResult(success=True, data={
            "campaign_id": campaign.campaign_id,
            "committed_root": to_hex(campaign.committed_root),
        })

    def set_campaign_active(
        self,
        caller: str,
        campaign_id: int,
        active: bool,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        try:
            self._registry.set_active(caller, campaign_id, active, now=now)
        except RaffleError as exc:
            return _failure(exc)
        return ServiceResult(success=True, data={"campaign_id": campaign_id, "active": active})

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def register_claim(
        self,
        caller: str,
        campaign_id: int,
        serial_id: BytesLike,
        payload: bytes,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        try:
            claim = self._ledger.register_claim(caller, campaign_id, serial_id, payload, now=now)
        except RaffleError as exc:
            return _failure(exc)
        return ServiceResult(success=True, data={
            "campaign_id": campaign_id,
            "serial_id": to_hex(claim.serial_id),
        })

    def register_claim_batch(
        self,
        caller: str,
        campaign_id: int,
        serial_ids: Sequence[BytesLike],
        payloads: Sequence[bytes],
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        try:
            claims = self._ledger.register_claim_batch(
                caller, campaign_id, serial_ids, payloads, now=now,
            )
        except RaffleError as exc:
            return _failure(exc)
        return ServiceResult(success=True, data={
            "campaign_id": campaign_id,
            "serial_ids": [to_hex(c.serial_id) for c in claims],
        })

    # ------------------------------------------------------------------
    # Settlement
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
    ) -> ServiceResult:
        try:
            result = self._engine.reveal_and_settle(
                caller, campaign_id, serial_id, secret, win, proof, now=now,
            )
        except RaffleError as exc:
            return _failure(exc)
        return ServiceResult(success=True, data=result.to_dict())

    def reveal_and_settle_batch(
        self,
        caller: str,
        campaign_id: int,
        entries: Iterable[SettlementEntry],
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        try:
            results = self._engine.reveal_and_settle_batch(caller, campaign_id, entries, now=now)
        except RaffleError as exc:
            return _failure(exc)
        return ServiceResult(success=True, data={
            "campaign_id": campaign_id,
            "settled": sum(1 for r in results if r.settled),
            "skipped": sum(1 for r in results if not r.settled),
            "results": [r.to_dict() for r in results],
        })

    def verify_only(
        self,
        campaign_id: int,
        serial_id: BytesLike,
        secret: BytesLike,
        win: bool,
        proof: Sequence[BytesLike],
    ) -> bool:
        return self._engine.verify_only(campaign_id, serial_id, secret, win, proof)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def pause(self, caller: str, component: str, now: Optional[datetime] = None) -> ServiceResult:
        try:
            self._component(component).pause(caller, now=now)
        except RaffleError as exc:
            return _failure(exc)
        return ServiceResult(success=True, data={"component": component, "paused": True})

    def unpause(self, caller: str, component: str, now: Optional[datetime] = None) -> ServiceResult:
        try:
            self._component(component).unpause(caller, now=now)
        except RaffleError as exc:
            return _failure(exc)
        return ServiceResult(success=True, data={"component": component, "paused": False})

    def campaign_status(self, campaign_id: int) -> dict[str, Any]:
        """Observable state of one campaign across all three components."""
        campaign = self._registry.get_campaign(campaign_id)
        if campaign is None:
            return {"campaign_id": campaign_id, "exists": False}
        return {
            "campaign_id": campaign_id,
            "exists": True,
            "owner_id": campaign.owner_id,
            "active": campaign.active,
            "committed_root": to_hex(campaign.committed_root),
            "total_leaves": campaign.total_leaves,
            "expiry_utc": campaign.expiry_utc.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "claims": self._ledger.claim_count(campaign_id),
            "total_winners": self._engine.total_winners(campaign_id),
        }

    def _component(self, name: str):
        components = {
            self._registry.component_name: self._registry,
            self._ledger.component_name: self._ledger,
            self._engine.component_name: self._engine,
        }
        try:
            return components[name]
        except KeyError:
            raise ValidationError(
                f"Unknown component {name!r}; expected one of {sorted(components)}"
            ) from None
