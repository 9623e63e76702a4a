"""Provider profiles and configuration loading for pilot-llm.

Config discovery (first match wins):
  1. ``--config`` flag
  2. ``./pilot_llm.yaml``
  3. ``~/.config/pilot-llm/config.yaml``
  4. Built-in defaults
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from pilot_llm.errors import ConfigError

_logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0
DEFAULT_AZURE_API_VERSION = "2024-02-01"
DEFAULT_REFERER = "https://pilotx.local"


# ---------------------------------------------------------------------------
# Config data structures
# ---------------------------------------------------------------------------

class ProviderKind(enum.Enum):
    """Backend families that differ in URL shape and auth header."""

    OPENAI = "openai"
    OPENROUTER = "openrouter"
    AZURE = "azure"
    CUSTOM = "custom"


@dataclass(frozen=True)
class ProviderProfile:
    """How to address one backend.

    Treated as read-only for the lifetime of any call that uses it.
    """

    name: str = "default"
    kind: ProviderKind = ProviderKind.CUSTOM
    base_url: str = "http://localhost:11434/v1"
    model: str = "gpt-4o-mini"
    api_key: str = ""
    extra_headers: dict[str, str] = field(default_factory=dict)
    azure_deployment: str | None = None
    azure_api_version: str | None = None
    referer: str = DEFAULT_REFERER
    timeout: float = DEFAULT_TIMEOUT

    @property
    def deployment(self) -> str:
        return self.azure_deployment or self.model

    @property
    def api_version(self) -> str:
        return self.azure_api_version or DEFAULT_AZURE_API_VERSION


@dataclass
class ClientConfig:
    """Top-level config: named profiles plus the active one."""

    profile: str = "default"
    profiles: dict[str, ProviderProfile] = field(
        default_factory=lambda: {"default": ProviderProfile()}
    )

    @property
    def active_profile(self) -> ProviderProfile:
        return self.profiles.get(self.profile, ProviderProfile())

    def get_profile(self, name: str | None) -> ProviderProfile:
        """Return profile *name*, or the active one when *name* is None."""
        if name is None:
            return self.active_profile
        try:
            return self.profiles[name]
        except KeyError:
            raise ConfigError(f"Unknown profile: {name!r}") from None


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./pilot_llm.yaml"),
    Path.home() / ".config" / "pilot-llm" / "config.yaml",
]


def _parse_kind(value: Any) -> ProviderKind:
    try:
        return ProviderKind(str(value).lower())
    except ValueError:
        valid = ", ".join(k.value for k in ProviderKind)
        raise ConfigError(
            f"Unknown provider {value!r} (expected one of: {valid})"
        ) from None


def _parse_profile(name: str, raw: dict[str, Any]) -> ProviderProfile:
    azure = raw.get("azure") or {}
    return ProviderProfile(
        name=name,
        kind=_parse_kind(raw.get("provider", "custom")),
        base_url=raw.get("base_url", "http://localhost:11434/v1"),
        model=raw.get("model", "gpt-4o-mini"),
        api_key=raw.get("api_key") or "",
        extra_headers={
            str(k): str(v) for k, v in (raw.get("extra_headers") or {}).items()
        },
        azure_deployment=azure.get("deployment"),
        azure_api_version=azure.get("api_version"),
        referer=raw.get("referer", DEFAULT_REFERER),
        timeout=float(raw.get("timeout", DEFAULT_TIMEOUT)),
    )


def load_config(path: str | Path | None = None) -> ClientConfig:
    """Load configuration from YAML.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.

    Returns
    -------
    ClientConfig
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s, using defaults", path)
            return ClientConfig()
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found, using defaults")
        return ClientConfig()

    _logger.info("Loading config from %s", config_path)
    with open(config_path) as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Expected a mapping at top level of {config_path}")

    profiles: dict[str, ProviderProfile] = {}
    for name, praw in (raw.get("profiles") or {}).items():
        profiles[name] = _parse_profile(name, praw or {})

    if not profiles:
        profiles["default"] = ProviderProfile()

    return ClientConfig(
        profile=raw.get("profile", next(iter(profiles))),
        profiles=profiles,
    )
