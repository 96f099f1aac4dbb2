"""Campaign registry — the read interface the core depends on and a reference implementation."""

from raffle.registry.campaigns import CampaignRegistry, CampaignSource

__all__ = ["CampaignRegistry", "CampaignSource"]
