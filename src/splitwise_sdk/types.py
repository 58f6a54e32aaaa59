from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from typing import Any, TypeVar, Union

from .errors import ConfigurationError

DAY = 86_400.0


@dataclass(frozen=True)
class AuthConfig:
    header: str = "Authorization"
    scheme: str = "Bearer"


@dataclass(frozen=True)
class RetryConfig:
    # retries after the first attempt; 0 disables retrying
    max_retries: int = 3
    # full-jitter backoff ceiling is base_delay * 2**attempt, capped at max_delay (seconds)
    base_delay: float = 0.5
    max_delay: float = 30.0

    def __post_init__(self):
        if self.max_retries < 0:
            raise ConfigurationError("RetryConfig.max_retries must be >= 0")
        if self.base_delay < 0:
            raise ConfigurationError("RetryConfig.base_delay must be >= 0")
        if self.max_delay < 0:
            raise ConfigurationError("RetryConfig.max_delay must be >= 0")


def _default_ttl_overrides() -> dict[str, float]:
    # Reference data that rarely changes
    return {"/get_currencies": DAY, "/get_categories": DAY}


@dataclass(frozen=True)
class CacheConfig:
    enabled: bool = True
    default_ttl: float = 300.0
    # endpoint prefix -> ttl seconds; longest matching prefix wins
    ttl_overrides: Mapping[str, float] = field(default_factory=_default_ttl_overrides)
    # seconds between background sweeps of expired entries; None or <= 0 disables
    sweep_interval: Union[float, None] = 60.0


C = TypeVar("C", RetryConfig, CacheConfig, AuthConfig)


def coerce_config(cls: type[C], value: Union[C, Mapping[str, Any], None]) -> C:
    """Turn None | partial mapping | config instance into a config instance.

    Mapping keys not declared on ``cls`` are rejected so typos surface early.
    """
    if value is None:
        return cls()
    if isinstance(value, cls):
        return value
    if isinstance(value, Mapping):
        known = {f.name for f in fields(cls)}
        unknown = set(value) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown {cls.__name__} option(s): {', '.join(sorted(unknown))}"
            )
        return replace(cls(), **dict(value))
    raise TypeError(f"expected {cls.__name__}, a mapping, or None; got {type(value).__name__}")
