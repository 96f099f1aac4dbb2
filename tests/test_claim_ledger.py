"""Tests for the claim ledger — registration, atomic batches, reveal marking."""

from datetime import datetime, timedelta, timezone

import pytest
from eth_account import Account
from web3 import Web3

from raffle.access.control import Role
from raffle.errors import (
    AlreadyRevealedError,
    AuthorizationError,
    CampaignExpiredError,
    CampaignInactiveError,
    CampaignNotFoundError,
    ClaimNotFoundError,
    DuplicateClaimError,
    EmptyPayloadError,
    LengthMismatchError,
    PausedError,
    ValidationError,
)
from raffle.ledger.claims import ClaimLedger
from raffle.persistence.event_log import EventKind
from raffle.registry.campaigns import CampaignRegistry


ADMIN = "admin"
MERCHANT = "merchant-1"
OPERATOR = "settlement-engine"
USER1 = Account.from_key("0x" + "11" * 32).address
USER2 = Account.from_key("0x" + "22" * 32).address


def _now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _sid(label: str) -> bytes:
    return bytes(Web3.keccak(text=label))


@pytest.fixture
def registry() -> CampaignRegistry:
    reg = CampaignRegistry(ADMIN)
    reg.grant_role(ADMIN, Role.MERCHANT, MERCHANT)
    reg.create_campaign(
        MERCHANT, _sid("test-root"), 10, _now() + timedelta(days=1), now=_now(),
    )
    return reg


@pytest.fixture
def ledger(registry: CampaignRegistry) -> ClaimLedger:
    led = ClaimLedger(registry, ADMIN, event_log=registry.event_log)
    led.grant_role(ADMIN, Role.OPERATOR, OPERATOR)
    return led


class TestRegisterClaim:
    def test_claim_recorded(self, ledger: ClaimLedger) -> None:
        sid = _sid("product-123")
        claim = ledger.register_claim(USER1, 1, sid, b"encrypted-data", now=_now())
        assert claim.claimant_id == USER1
        assert claim.payload == b"encrypted-data"
        assert not claim.revealed
        assert ledger.is_claimed(1, sid)
        assert ledger.get_claim(1, sid) == claim

        event = ledger.event_log.events(EventKind.CLAIM_REGISTERED)[0]
        assert event.actor_id == USER1
        assert event.payload["serial_id"] == "0x" + sid.hex()

    def test_hex_serial_id_accepted(self, ledger: ClaimLedger) -> None:
        sid = _sid("product-hex")
        ledger.register_claim(USER1, 1, "0x" + sid.hex(), b"x", now=_now())
        assert ledger.is_claimed(1, sid)

    def test_duplicate_rejected_regardless_of_payload(self, ledger: ClaimLedger) -> None:
        sid = _sid("product-123")
        ledger.register_claim(USER1, 1, sid, b"first", now=_now())
        with pytest.raises(DuplicateClaimError):
            ledger.register_claim(USER1, 1, sid, b"first", now=_now())
        with pytest.raises(DuplicateClaimError):
            ledger.register_claim(USER2, 1, sid, b"something else", now=_now())
        assert ledger.get_claim(1, sid).claimant_id == USER1

    def test_unknown_campaign(self, ledger: ClaimLedger) -> None:
        with pytest.raises(CampaignNotFoundError):
            ledger.register_claim(USER1, 999, _sid("p"), b"x", now=_now())

    def test_inactive_campaign(self, registry: CampaignRegistry, ledger: ClaimLedger) -> None:
        registry.set_active(MERCHANT, 1, False, now=_now())
        with pytest.raises(CampaignInactiveError):
            ledger.register_claim(USER1, 1, _sid("p"), b"x", now=_now())

    def test_expired_campaign(self, ledger: ClaimLedger) -> None:
        with pytest.raises(CampaignExpiredError):
            ledger.register_claim(USER1, 1, _sid("p"), b"x", now=_now() + timedelta(days=1))

    def test_empty_payload(self, ledger: ClaimLedger) -> None:
        with pytest.raises(EmptyPayloadError):
            ledger.register_claim(USER1, 1, _sid("p"), b"", now=_now())
        assert not ledger.is_claimed(1, _sid("p"))

    def test_non_bytes_payload(self, ledger: ClaimLedger) -> None:
        with pytest.raises(ValidationError):
            ledger.register_claim(USER1, 1, _sid("p"), "text", now=_now())  # type: ignore[arg-type]

    def test_tracks_claimant_order(self, ledger: ClaimLedger) -> None:
        sid1, sid2 = _sid("product-1"), _sid("product-2")
        ledger.register_claim(USER1, 1, sid1, b"x", now=_now())
        ledger.register_claim(USER2, 1, _sid("product-other"), b"x", now=_now())
        ledger.register_claim(USER1, 1, sid2, b"x", now=_now())
        assert ledger.claims_of(1, USER1) == [sid1, sid2]
        assert ledger.claims_of(1, "nobody") == []
        assert ledger.claim_count(1) == 3

    def test_paused(self, ledger: ClaimLedger) -> None:
        ledger.pause(ADMIN, now=_now())
        with pytest.raises(PausedError):
            ledger.register_claim(USER1, 1, _sid("p"), b"x", now=_now())
        # Queries keep working
        assert not ledger.is_claimed(1, _sid("p"))
        ledger.unpause(ADMIN, now=_now())
        ledger.register_claim(USER1, 1, _sid("p"), b"x", now=_now())

    def test_only_admin_pauses(self, ledger: ClaimLedger) -> None:
        with pytest.raises(AuthorizationError):
            ledger.pause(USER1, now=_now())


class TestRegisterClaimBatch:
    def test_batch_claims(self, ledger: ClaimLedger) -> None:
        sids = [_sid(f"product-{i}") for i in range(1, 4)]
        payloads = [f"encrypted-{i}".encode() for i in range(1, 4)]
        claims = ledger.register_claim_batch(USER1, 1, sids, payloads, now=_now())
        assert [c.serial_id for c in claims] == sids
        for sid in sids:
            assert ledger.get_claim(1, sid).claimant_id == USER1
        assert ledger.claims_of(1, USER1) == sids

    def test_length_mismatch(self, ledger: ClaimLedger) -> None:
        with pytest.raises(LengthMismatchError):
            ledger.register_claim_batch(
                USER1, 1, [_sid("product-1")], [b"encrypted-1", b"encrypted-2"], now=_now(),
            )

    def test_one_empty_payload_aborts_whole_batch(self, ledger: ClaimLedger) -> None:
        sids = [_sid(f"product-{i}") for i in range(5)]
        payloads = [b"x", b"x", b"", b"x", b"x"]
        before = ledger.event_log.count
        with pytest.raises(EmptyPayloadError):
            ledger.register_claim_batch(USER1, 1, sids, payloads, now=_now())
        assert ledger.claim_count(1) == 0
        assert ledger.event_log.count == before

    def test_one_duplicate_aborts_whole_batch(self, ledger: ClaimLedger) -> None:
        ledger.register_claim(USER2, 1, _sid("product-3"), b"x", now=_now())
        sids = [_sid(f"product-{i}") for i in range(5)]
        with pytest.raises(DuplicateClaimError):
            ledger.register_claim_batch(USER1, 1, sids, [b"x"] * 5, now=_now())
        assert ledger.claim_count(1) == 1
        assert ledger.claims_of(1, USER1) == []

    def test_repeated_sid_within_batch_aborts(self, ledger: ClaimLedger) -> None:
        sid = _sid("product-1")
        with pytest.raises(DuplicateClaimError, match="more than once"):
            ledger.register_claim_batch(USER1, 1, [sid, _sid("product-2"), sid], [b"x"] * 3, now=_now())
        assert ledger.claim_count(1) == 0

    def test_malformed_sid_aborts(self, ledger: ClaimLedger) -> None:
        with pytest.raises(ValidationError):
            ledger.register_claim_batch(USER1, 1, [_sid("a"), b"short"], [b"x", b"x"], now=_now())
        assert ledger.claim_count(1) == 0

    def test_naive_timestamp_rejected(self, ledger: ClaimLedger) -> None:
        with pytest.raises(ValidationError, match="timezone-aware"):
            ledger.register_claim(USER1, 1, _sid("p"), b"x", now=datetime(2026, 3, 1, 12, 0))
        assert ledger.claim_count(1) == 0

    def test_campaign_checked_once(self, ledger: ClaimLedger) -> None:
        with pytest.raises(CampaignExpiredError):
            ledger.register_claim_batch(
                USER1, 1, [_sid("a")], [b"x"], now=_now() + timedelta(days=2),
            )


class TestMarkRevealed:
    def test_operator_marks_revealed(self, ledger: ClaimLedger) -> None:
        sid = _sid("product-123")
        ledger.register_claim(USER1, 1, sid, b"encrypted-data", now=_now())
        claim = ledger.mark_revealed(OPERATOR, 1, sid, now=_now())
        assert claim.revealed
        assert claim.revealed_utc == _now()
        event = ledger.event_log.events(EventKind.CLAIM_REVEALED)[0]
        assert event.payload == {"campaign_id": 1, "serial_id": "0x" + sid.hex(), "outcome": None}

    def test_outcome_carried_on_event(self, ledger: ClaimLedger) -> None:
        sid = _sid("product-123")
        ledger.register_claim(USER1, 1, sid, b"x", now=_now())
        ledger.mark_revealed(OPERATOR, 1, sid, now=_now(), outcome="lost")
        assert ledger.event_log.events(EventKind.CLAIM_REVEALED)[0].payload["outcome"] == "lost"

    def test_non_operator_rejected(self, ledger: ClaimLedger) -> None:
        sid = _sid("product-123")
        ledger.register_claim(USER1, 1, sid, b"encrypted-data", now=_now())
        with pytest.raises(AuthorizationError):
            ledger.mark_revealed(USER1, 1, sid, now=_now())
        with pytest.raises(AuthorizationError):
            ledger.mark_revealed(ADMIN, 1, sid, now=_now())
        assert not ledger.get_claim(1, sid).revealed

    def test_missing_claim(self, ledger: ClaimLedger) -> None:
        with pytest.raises(ClaimNotFoundError):
            ledger.mark_revealed(OPERATOR, 1, _sid("nothing"), now=_now())

    def test_reveal_only_once(self, ledger: ClaimLedger) -> None:
        sid = _sid("product-123")
        ledger.register_claim(USER1, 1, sid, b"x", now=_now())
        ledger.mark_revealed(OPERATOR, 1, sid, now=_now())
        with pytest.raises(AlreadyRevealedError):
            ledger.mark_revealed(OPERATOR, 1, sid, now=_now())

    def test_revoked_operator_rejected(self, ledger: ClaimLedger) -> None:
        sid = _sid("product-123")
        ledger.register_claim(USER1, 1, sid, b"x", now=_now())
        ledger.revoke_role(ADMIN, Role.OPERATOR, OPERATOR, now=_now())
        with pytest.raises(AuthorizationError):
            ledger.mark_revealed(OPERATOR, 1, sid, now=_now())
