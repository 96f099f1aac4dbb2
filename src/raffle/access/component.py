"""Administrative surface shared by the registry, ledger and engine.

Each component owns its role table, its pause switch and a handle on the
event log. Role changes and pause toggles are themselves audited.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from raffle.access.control import AccessControl, Role
from raffle.access.guard import Pausable
from raffle.errors import ValidationError
from raffle.persistence.event_log import EventKind, EventLog, EventRecord

logger = logging.getLogger(__name__)


class ControlledComponent:
    """Base class for components with roles, a halt switch and an audit trail."""

    component_name = "component"

    def __init__(self, admin_id: str, event_log: Optional[EventLog] = None) -> None:
        self._access = AccessControl(admin_id)
        self._pausable = Pausable(self.component_name)
        self._event_log = event_log if event_log is not None else EventLog()

    @property
    def access(self) -> AccessControl:
        return self._access

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    @property
    def paused(self) -> bool:
        return self._pausable.paused

    def has_role(self, role: Role, actor_id: str) -> bool:
        return self._access.has_role(role, actor_id)

    def grant_role(
        self,
        caller: str,
        role: Role,
        actor_id: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """Grant ``role`` to ``actor_id``. Admin only."""
        self._access.require("grant_role", caller)
        now = utc_now(now)
        granted = self._access.grant(role, actor_id)
        if granted:
            self._emit(EventKind.ROLE_GRANTED, caller, {
                "component": self.component_name,
                "role": role.value,
                "actor_id": actor_id,
            }, now)
            logger.info("%s: granted %s to %s", self.component_name, role.value, actor_id)
        return granted

    def revoke_role(
        self,
        caller: str,
        role: Role,
        actor_id: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """Revoke ``role`` from ``actor_id``. Admin only."""
        self._access.require("revoke_role", caller)
        now = utc_now(now)
        revoked = self._access.revoke(role, actor_id)
        if revoked:
            self._emit(EventKind.ROLE_REVOKED, caller, {
                "component": self.component_name,
                "role": role.value,
                "actor_id": actor_id,
            }, now)
            logger.info("%s: revoked %s from %s", self.component_name, role.value, actor_id)
        return revoked

    def pause(self, caller: str, now: Optional[datetime] = None) -> None:
        self._access.require("pause", caller)
        now = utc_now(now)
        self._pausable.pause()
        self._emit(EventKind.PAUSED, caller, {"component": self.component_name}, now)
        logger.info("%s paused by %s", self.component_name, caller)

    def unpause(self, caller: str, now: Optional[datetime] = None) -> None:
        self._access.require("unpause", caller)
        now = utc_now(now)
        self._pausable.unpause()
        self._emit(EventKind.UNPAUSED, caller, {"component": self.component_name}, now)
        logger.info("%s unpaused by %s", self.component_name, caller)

    def _begin(self, operation: str, caller: str) -> None:
        """Entry checks for every mutating operation: permission, then halt switch."""
        self._access.require(operation, caller)
        self._pausable.require_not_paused()

    def _emit(
        self,
        kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        now: Optional[datetime] = None,
    ) -> EventRecord:
        return self._event_log.record(kind, actor_id, payload, timestamp_utc=now)


def require_aware(value: datetime, name: str = "now") -> datetime:
    if not isinstance(value, datetime):
        raise ValidationError(f"{name} must be a datetime, got {type(value).__name__}")
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValidationError(f"{name} must be timezone-aware")
    return value


def utc_now(now: Optional[datetime] = None) -> datetime:
    return require_aware(now) if now is not None else datetime.now(timezone.utc)
