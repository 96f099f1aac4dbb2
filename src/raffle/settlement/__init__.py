"""Settlement — reveal verification, one-shot settlement and winner tally."""

from raffle.settlement.engine import RewardHook, SettlementEngine, no_reward

__all__ = ["RewardHook", "SettlementEngine", "no_reward"]
