"""Strategy registry — maps strategy names to ready-to-use instances."""

from typing import Callable

from confluence.strategy.base import StrategyProtocol
from confluence.strategy.breaker_flip import BreakerFlipStrategy
from confluence.strategy.liquidity_sweep import LiquiditySweepStrategy
from confluence.strategy.order_block import OrderBlockStrategy
from confluence.strategy.scalp import ScalpStrategy
from confluence.strategy.wyckoff import WyckoffStrategy


STRATEGY_REGISTRY: dict[str, Callable[[], StrategyProtocol]] = {
    "order_block": OrderBlockStrategy,
    "liquidity_sweep": LiquiditySweepStrategy,
    "wyckoff_accumulation": lambda: WyckoffStrategy("accumulation"),
    "wyckoff_distribution": lambda: WyckoffStrategy("distribution"),
    "breaker_flip": BreakerFlipStrategy,
    "scalp": ScalpStrategy,
}


def get_strategy(name: str) -> StrategyProtocol:
    """Look up and instantiate a strategy by registry key.

    Raises ``KeyError`` if the strategy name is not registered.
    """
    if name not in STRATEGY_REGISTRY:
        raise KeyError(
            f"Unknown strategy '{name}'. "
            f"Available: {', '.join(STRATEGY_REGISTRY.keys())}"
        )
    return STRATEGY_REGISTRY[name]()


def all_strategies() -> list[StrategyProtocol]:
    return [factory() for factory in STRATEGY_REGISTRY.values()]
