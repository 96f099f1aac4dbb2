"""Access control — permission matrix, halt switch, call-depth guard."""

from raffle.access.component import ControlledComponent
from raffle.access.control import ANY_CALLER, PERMISSIONS, AccessControl, Role
from raffle.access.guard import CallGuard, Pausable

__all__ = [
    "ANY_CALLER",
    "PERMISSIONS",
    "AccessControl",
    "CallGuard",
    "ControlledComponent",
    "Pausable",
    "Role",
]
