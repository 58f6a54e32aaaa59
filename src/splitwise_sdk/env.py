import os
from typing import Any, Callable, Union

from .errors import ConfigurationError
from .logs import LEVELS

DEFAULT_PREFIX = "SPLITWISE_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_env_file(env_path: str) -> dict[str, str]:
    """Parse a simple .env file into a dict without modifying os.environ.

    Supports basic KEY=VALUE pairs, ignoring comments and blank lines.
    Surrounding single/double quotes are stripped if present.
    """
    values: dict[str, str] = {}
    try:
        with open(env_path) as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue
                if line.startswith("export "):
                    line = line[len("export ") :].lstrip()
                if "=" not in line:
                    continue
                key, val = line.split("=", 1)
                key = key.strip()
                val = val.strip().strip('"').strip("'")
                if key:
                    values[key] = val
    except FileNotFoundError:
        # A missing file just means "environment only"
        pass
    return values


def _to_bool(name: str, raw: str) -> bool:
    v = raw.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ConfigurationError(f"{name} must be a boolean (true/false), got {raw!r}")


def _convert(name: str, raw: str, conv: Callable[[str], Any]) -> Any:
    try:
        return conv(raw.strip())
    except ValueError:
        raise ConfigurationError(f"{name} has an invalid value {raw!r}") from None


def load_client_settings_from_env(
    prefix: str = DEFAULT_PREFIX,
    env_path: Union[str, None] = None,
) -> dict[str, Any]:
    """Collect SplitwiseClient keyword arguments from environment variables.

    Recognised (with the default prefix): SPLITWISE_ACCESS_TOKEN, SPLITWISE_BASE_URL,
    SPLITWISE_MAX_RETRIES, SPLITWISE_BASE_DELAY, SPLITWISE_MAX_DELAY,
    SPLITWISE_CACHE_ENABLED, SPLITWISE_CACHE_TTL, SPLITWISE_LOG_LEVEL.

    If 'env_path' is provided, variables from that .env file augment the lookup
    (the process environment takes precedence). Unset variables are omitted so
    the client's own defaults apply.
    """
    file_env = _parse_env_file(env_path) if env_path else {}
    env_map: dict[str, str] = {**file_env, **os.environ}

    def lookup(suffix: str) -> Union[str, None]:
        raw = env_map.get(prefix + suffix)
        return raw if raw not in (None, "") else None

    settings: dict[str, Any] = {}
    token = lookup("ACCESS_TOKEN")
    if token is not None:
        settings["access_token"] = token
    base_url = lookup("BASE_URL")
    if base_url is not None:
        settings["base_url"] = base_url
    level = lookup("LOG_LEVEL")
    if level is not None:
        level = level.strip().lower()
        if level not in LEVELS:
            raise ConfigurationError(
                f"{prefix}LOG_LEVEL must be one of {sorted(LEVELS)}, got {level!r}"
            )
        settings["log_level"] = level

    retry: dict[str, Any] = {}
    for suffix, field_name, conv in (
        ("MAX_RETRIES", "max_retries", int),
        ("BASE_DELAY", "base_delay", float),
        ("MAX_DELAY", "max_delay", float),
    ):
        raw = lookup(suffix)
        if raw is not None:
            retry[field_name] = _convert(prefix + suffix, raw, conv)
    if retry:
        settings["retry"] = retry

    cache: dict[str, Any] = {}
    raw = lookup("CACHE_ENABLED")
    if raw is not None:
        cache["enabled"] = _to_bool(prefix + "CACHE_ENABLED", raw)
    raw = lookup("CACHE_TTL")
    if raw is not None:
        cache["default_ttl"] = _convert(prefix + "CACHE_TTL", raw, float)
    if cache:
        settings["cache"] = cache

    return settings
