"""Tests for the reference campaign registry."""

from datetime import datetime, timedelta, timezone

import pytest
from web3 import Web3

from raffle.access.control import Role
from raffle.errors import (
    AuthorizationError,
    CampaignExpiredError,
    CampaignNotFoundError,
    PausedError,
    ValidationError,
)
from raffle.models.raffle import ZERO_ADDRESS
from raffle.persistence.event_log import EventKind
from raffle.registry.campaigns import CampaignRegistry, CampaignSource


ADMIN = "admin"
MERCHANT = "merchant-1"
ROOT = bytes(Web3.keccak(text="test-root"))


def _now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def registry() -> CampaignRegistry:
    reg = CampaignRegistry(ADMIN)
    reg.grant_role(ADMIN, Role.MERCHANT, MERCHANT, now=_now())
    return reg


def _create(registry: CampaignRegistry, caller: str = MERCHANT, **overrides):
    kwargs = dict(
        committed_root=ROOT,
        total_leaves=100,
        expiry_utc=_now() + timedelta(days=1),
        metadata_uri="ipfs://QmTest123",
        now=_now(),
    )
    kwargs.update(overrides)
    return registry.create_campaign(caller, **kwargs)


class TestCreateCampaign:
    def test_create_with_valid_parameters(self, registry: CampaignRegistry) -> None:
        campaign = _create(registry)
        assert campaign.campaign_id == 1
        assert campaign.owner_id == MERCHANT
        assert campaign.committed_root == ROOT
        assert campaign.reward_asset == ZERO_ADDRESS
        assert campaign.total_leaves == 100
        assert campaign.active
        assert registry.get_campaign(1) == campaign

        event = registry.event_log.events(EventKind.CAMPAIGN_CREATED)[0]
        assert event.payload["campaign_id"] == 1
        assert event.payload["committed_root"] == "0x" + ROOT.hex()

    def test_ids_increment(self, registry: CampaignRegistry) -> None:
        _create(registry)
        second = _create(registry)
        assert second.campaign_id == 2
        assert registry.campaign_count == 2

    def test_admin_may_create(self, registry: CampaignRegistry) -> None:
        assert _create(registry, caller=ADMIN).owner_id == ADMIN

    def test_requires_merchant_or_admin(self, registry: CampaignRegistry) -> None:
        with pytest.raises(AuthorizationError):
            _create(registry, caller="stranger")

    def test_zero_root_rejected(self, registry: CampaignRegistry) -> None:
        with pytest.raises(ValidationError, match="zero"):
            _create(registry, committed_root=b"\x00" * 32)

    def test_zero_leaves_rejected(self, registry: CampaignRegistry) -> None:
        with pytest.raises(ValidationError, match="total_leaves"):
            _create(registry, total_leaves=0)

    def test_past_expiry_rejected(self, registry: CampaignRegistry) -> None:
        with pytest.raises(ValidationError, match="future"):
            _create(registry, expiry_utc=_now() - timedelta(seconds=1))

    def test_paused_registry_rejects_create(self, registry: CampaignRegistry) -> None:
        registry.pause(ADMIN, now=_now())
        with pytest.raises(PausedError):
            _create(registry)

    def test_is_a_campaign_source(self, registry: CampaignRegistry) -> None:
        assert isinstance(registry, CampaignSource)


class TestCampaignUpdates:
    def test_update_metadata(self, registry: CampaignRegistry) -> None:
        _create(registry)
        updated = registry.update_metadata(MERCHANT, 1, "ipfs://new", now=_now())
        assert updated.metadata_uri == "ipfs://new"
        assert updated.committed_root == ROOT

    def test_only_owner_or_admin_updates(self, registry: CampaignRegistry) -> None:
        _create(registry)
        with pytest.raises(AuthorizationError):
            registry.update_metadata("stranger", 1, "ipfs://evil", now=_now())
        registry.update_metadata(ADMIN, 1, "ipfs://admin", now=_now())

    def test_set_active_before_expiry(self, registry: CampaignRegistry) -> None:
        _create(registry)
        campaign = registry.set_active(MERCHANT, 1, False, now=_now())
        assert not campaign.active
        assert registry.event_log.events(EventKind.CAMPAIGN_STATUS_CHANGED)[0].payload == {
            "campaign_id": 1, "active": False,
        }

    def test_set_active_after_expiry_rejected(self, registry: CampaignRegistry) -> None:
        _create(registry)
        with pytest.raises(CampaignExpiredError):
            registry.set_active(MERCHANT, 1, False, now=_now() + timedelta(days=2))
        assert registry.get_campaign(1).active

    def test_unknown_campaign(self, registry: CampaignRegistry) -> None:
        with pytest.raises(CampaignNotFoundError):
            registry.set_active(ADMIN, 99, False, now=_now())
        assert registry.get_campaign(99) is None


class TestTimestamps:
    def test_naive_expiry_rejected(self, registry: CampaignRegistry) -> None:
        with pytest.raises(ValidationError, match="expiry_utc must be timezone-aware"):
            _create(registry, expiry_utc=datetime(2030, 1, 1))
        assert registry.campaign_count == 0

    def test_naive_now_rejected(self, registry: CampaignRegistry) -> None:
        with pytest.raises(ValidationError, match="now must be timezone-aware"):
            _create(registry, now=datetime(2026, 3, 1, 12, 0))

    def test_naive_now_rejected_on_status_change(self, registry: CampaignRegistry) -> None:
        _create(registry)
        with pytest.raises(ValidationError):
            registry.set_active(MERCHANT, 1, False, now=datetime(2026, 3, 1, 12, 0))
        assert registry.get_campaign(1).active

    def test_non_utc_offset_accepted(self, registry: CampaignRegistry) -> None:
        plus_two = timezone(timedelta(hours=2))
        campaign = _create(registry, expiry_utc=datetime(2026, 3, 2, 14, 0, tzinfo=plus_two))
        assert campaign.is_expired(datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc))
