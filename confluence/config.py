"""Confluence — application configuration.

Loads .env variables into a typed config object.  Nothing is required:
an unset collaborator URL disables that collaborator.
"""

import os
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from dotenv import load_dotenv

T = TypeVar("T")


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    market_data_url: Optional[str]
    enrichment_url: Optional[str]
    enrichment_timeout_seconds: float
    cooldown_hours: float
    decay_half_life_hours: float
    min_quant_score: float
    max_setups: int
    log_level: str
    api_port: int


def _typed(name: str, default: str, cast: Callable[[str], T]) -> T:
    raw = os.environ.get(name, default)
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from None


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` naming the variable when a numeric value cannot
    be parsed.
    """
    load_dotenv(dotenv_path=env_path)

    return Config(
        market_data_url=os.environ.get("MARKET_DATA_URL") or None,
        enrichment_url=os.environ.get("ENRICHMENT_URL") or None,
        enrichment_timeout_seconds=_typed("ENRICHMENT_TIMEOUT_SECONDS", "2.0", float),
        cooldown_hours=_typed("COOLDOWN_HOURS", "4.0", float),
        decay_half_life_hours=_typed("DECAY_HALF_LIFE_HOURS", "4.0", float),
        min_quant_score=_typed("MIN_QUANT_SCORE", "30.0", float),
        max_setups=_typed("MAX_SETUPS", "4", int),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        api_port=_typed("API_PORT", "8080", int),
    )
