"""Error taxonomy for the claim-and-settlement core.

Every failure is scoped to the single requested operation. Nothing here
is fatal to the process and nothing is retried by the core itself.

    RaffleError
    ├── ValidationError        malformed input, never retried
    │   ├── EmptyPayloadError
    │   └── LengthMismatchError
    ├── AuthorizationError     caller lacks the role for the operation
    ├── StateError             operation not allowed in the current state
    │   ├── CampaignNotFoundError
    │   ├── CampaignInactiveError
    │   ├── CampaignExpiredError
    │   ├── CampaignNotExpiredError
    │   ├── DuplicateClaimError
    │   ├── ClaimNotFoundError
    │   ├── AlreadyRevealedError
    │   ├── AlreadySettledError
    │   ├── PausedError
    │   └── ReentrancyError
    └── ProofError             revealed leaf does not match the committed root
        └── InvalidProofError

Batch settlement converts per-entry StateError / ProofError into a
skipped outcome instead of propagating it.
"""

from __future__ import annotations


class RaffleError(Exception):
    """Base class for all raffle core failures."""


class ValidationError(RaffleError, ValueError):
    """Malformed or empty input."""


class EmptyPayloadError(ValidationError):
    """A claim was submitted without an encrypted payload."""


class LengthMismatchError(ValidationError):
    """Parallel batch arrays differ in length."""


class AuthorizationError(RaffleError):
    """The caller does not hold a role permitted for the operation."""


class StateError(RaffleError):
    """The operation is not valid for the current record state."""


class CampaignNotFoundError(StateError):
    pass


class CampaignInactiveError(StateError):
    pass


class CampaignExpiredError(StateError):
    pass


class CampaignNotExpiredError(StateError):
    pass


class DuplicateClaimError(StateError):
    pass


class ClaimNotFoundError(StateError):
    pass


class AlreadyRevealedError(StateError):
    pass


class AlreadySettledError(StateError):
    pass


class PausedError(StateError):
    """A mutating entry point was invoked while the component is paused."""


class ReentrancyError(StateError):
    """An operation was re-entered before the in-flight one finished."""


class ProofError(RaffleError):
    """Merkle verification failed."""


class InvalidProofError(ProofError):
    pass
