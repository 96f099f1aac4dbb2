"""Campaign registry — owns campaign metadata and the active flag.

The claim ledger and settlement engine only need to ask "does campaign X
exist, is it active, what is its root / reward asset / expiry". They do
that through the CampaignSource protocol, so any registry (including one
backed by a chain reader) can be plugged in. CampaignRegistry is the
in-process reference implementation.

Rules:
- Only MERCHANT or ADMIN holders create campaigns.
- committed_root must be non-zero, total_leaves > 0, expiry in the future.
- Only the campaign owner or an ADMIN may change metadata or the active flag.
- The active flag may only change strictly before expiry.
- committed_root never changes.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, Optional, Protocol, runtime_checkable

from raffle.access.component import ControlledComponent, require_aware, utc_now
from raffle.access.control import Role
from raffle.crypto.merkle import ZERO_DIGEST, BytesLike, to_bytes32, to_hex
from raffle.errors import (
    AuthorizationError,
    CampaignExpiredError,
    CampaignNotFoundError,
    ValidationError,
)
from raffle.models.raffle import ZERO_ADDRESS, Campaign
from raffle.persistence.event_log import EventKind, EventLog

logger = logging.getLogger(__name__)


@runtime_checkable
class CampaignSource(Protocol):
    """Read-only view of campaigns consumed by the ledger and engine."""

    def get_campaign(self, campaign_id: int) -> Optional[Campaign]:
        """Return the campaign, or None if it does not exist."""
        ...


class CampaignRegistry(ControlledComponent):
    """In-memory campaign registry.

    Usage:
        registry = CampaignRegistry(admin_id="admin")
        registry.grant_role("admin", Role.MERCHANT, "merchant-1")
        campaign = registry.create_campaign(
            "merchant-1", tree.root, total_leaves=4, expiry_utc=expiry,
        )
    """

    component_name = "campaign_registry"

    def __init__(self, admin_id: str, event_log: Optional[EventLog] = None) -> None:
        super().__init__(admin_id, event_log)
        self._campaigns: Dict[int, Campaign] = {}
        self._next_id = 1

    def create_campaign(
        self,
        caller: str,
        committed_root: BytesLike,
        total_leaves: int,
        expiry_utc: datetime,
        reward_asset: str = ZERO_ADDRESS,
        metadata_uri: str = "",
        now: Optional[datetime] = None,
    ) -> Campaign:
        """Register a new campaign committed to ``committed_root``."""
        self._begin("create_campaign", caller)
        now = utc_now(now)
        expiry_utc = require_aware(expiry_utc, "expiry_utc")

        root = to_bytes32(committed_root, "committed_root")
        if root == ZERO_DIGEST:
            raise ValidationError("committed_root cannot be zero")
        if total_leaves <= 0:
            raise ValidationError("total_leaves must be > 0")
        if expiry_utc <= now:
            raise ValidationError("expiry must be in the future")

        campaign = Campaign(
            campaign_id=self._next_id,
            owner_id=caller,
            committed_root=root,
            reward_asset=reward_asset,
            total_leaves=total_leaves,
            expiry_utc=expiry_utc,
            metadata_uri=metadata_uri,
            active=True,
            created_utc=now,
        )
        self._campaigns[campaign.campaign_id] = campaign
        self._next_id += 1

        self._emit(EventKind.CAMPAIGN_CREATED, caller, {
            "campaign_id": campaign.campaign_id,
            "committed_root": to_hex(root),
            "reward_asset": reward_asset,
            "total_leaves": total_leaves,
            "expiry_utc": expiry_utc.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "metadata_uri": metadata_uri,
        }, now)
        logger.info("Campaign %d created by %s", campaign.campaign_id, caller)
        return campaign

    def update_metadata(
        self,
        caller: str,
        campaign_id: int,
        metadata_uri: str,
        now: Optional[datetime] = None,
    ) -> Campaign:
        self._begin("update_metadata", caller)
        now = utc_now(now)
        campaign = self._get_owned(campaign_id, caller)
        updated = replace(campaign, metadata_uri=metadata_uri)
        self._campaigns[campaign_id] = updated
        self._emit(EventKind.CAMPAIGN_METADATA_UPDATED, caller, {
            "campaign_id": campaign_id,
            "metadata_uri": metadata_uri,
        }, now)
        return updated

    def set_active(
        self,
        caller: str,
        campaign_id: int,
        active: bool,
        now: Optional[datetime] = None,
    ) -> Campaign:
        """Toggle the active flag. Only allowed strictly before expiry."""
        self._begin("set_active", caller)
        now = utc_now(now)
        campaign = self._get_owned(campaign_id, caller)
        if campaign.is_expired(now):
            raise CampaignExpiredError(
                f"Cannot change status of campaign {campaign_id} after expiry"
            )
        updated = replace(campaign, active=active)
        self._campaigns[campaign_id] = updated
        self._emit(EventKind.CAMPAIGN_STATUS_CHANGED, caller, {
            "campaign_id": campaign_id,
            "active": active,
        }, now)
        logger.info("Campaign %d set active=%s by %s", campaign_id, active, caller)
        return updated

    def get_campaign(self, campaign_id: int) -> Optional[Campaign]:
        return self._campaigns.get(campaign_id)

    @property
    def campaign_count(self) -> int:
        return len(self._campaigns)

    def _get_owned(self, campaign_id: int, caller: str) -> Campaign:
        campaign = self._campaigns.get(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(f"Unknown campaign: {campaign_id}")
        if campaign.owner_id != caller and not self.has_role(Role.ADMIN, caller):
            raise AuthorizationError(
                f"Only the campaign owner or an admin can modify campaign {campaign_id}"
            )
        return campaign
