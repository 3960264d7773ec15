"""Configuration for the adaptive generation runtime.

Settings are validated with Pydantic and read from the environment using the
``GEMINI_HYBRID_`` prefix. ``resolve_config`` layers an optional TOML file
beneath the environment and programmatic overrides on top:

    Programmatic > Environment > File > Defaults
"""

import logging
from pathlib import Path
import tomllib
from typing import Any, Literal

from pydantic import AliasChoices, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from . import constants
from .exceptions import ConfigurationError

log = logging.getLogger(__name__)

ProviderPreference = Literal["stateful", "stateless"]

_PROVIDER_ALIASES = {
    "stateful": "stateful",
    "native": "stateful",
    "nano": "stateful",
    "stateless": "stateless",
    "remote": "stateless",
    "cloud": "stateless",
}


def normalize_provider(value: Any) -> str:
    """Map a provider name or alias to ``stateful`` or ``stateless``."""
    if isinstance(value, str):
        normalized = _PROVIDER_ALIASES.get(value.strip().lower())
        if normalized:
            return normalized
    raise ValueError(
        f"Invalid provider: {value!r}. Must be 'stateful' or 'stateless'"
    )


class HybridSettings(BaseSettings):
    """Pydantic settings schema for gemini-hybrid.

    Handles validation, type coercion and defaults for every tunable of the
    runtime. The complexity threshold and truncation floor are ordinary
    settings so they can be adjusted per deployment.
    """

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_HYBRID_",
        env_file=None,
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # --- Provider Configuration ---

    api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_HYBRID_API_KEY", "GEMINI_API_KEY"),
        description="Google Gemini API key for the stateless provider",
    )

    model: str = Field(
        default=constants.DEFAULT_MODEL,
        description="Gemini model identifier for the stateless provider",
        min_length=1,
    )

    preferred_provider: ProviderPreference = Field(
        default="stateful",
        description="Provider tried first when a session is created",
    )

    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    top_k: int | None = Field(default=None, ge=1)

    # --- Generation Tuning ---

    complexity_threshold: float = Field(
        default=constants.DEFAULT_COMPLEXITY_THRESHOLD,
        ge=0.0,
        description="Scores above this skip the native schema path",
    )
    union_penalty: float = Field(default=constants.DEFAULT_UNION_PENALTY, ge=0.0)
    nested_weight: float = Field(default=constants.DEFAULT_NESTED_WEIGHT, ge=0.0, le=1.0)
    max_analysis_depth: int = Field(default=constants.DEFAULT_MAX_ANALYSIS_DEPTH, ge=1)
    min_structured_chars: int = Field(
        default=constants.DEFAULT_MIN_STRUCTURED_CHARS,
        ge=0,
        description="Structured responses shorter than this are treated as truncated",
    )

    # --- Session Handling ---

    max_stateful_sessions: int = Field(
        default=constants.DEFAULT_MAX_STATEFUL_SESSIONS,
        ge=1,
        description="Upper bound on concurrently live native sessions",
    )
    wait_for_stateful_slot: bool = Field(
        default=False,
        description="Wait for a native slot instead of using the stateless provider",
    )
    max_context_chars: int | None = Field(
        default=None,
        ge=1,
        description="Character budget for rebuilt stateless context",
    )

    @field_validator("preferred_provider", mode="before")
    @classmethod
    def parse_provider(cls, v: Any) -> str:
        """Accept the common aliases for each provider kind."""
        return normalize_provider(v)

    def summary(self) -> dict[str, Any]:
        """Field values with secrets redacted, for debugging output."""
        data = self.model_dump()
        if data.get("api_key"):
            data["api_key"] = "***"
        return data


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Read settings from a TOML file.

    Values are taken from a ``[tool.gemini_hybrid]`` table when present,
    otherwise from the top level of the document.
    """
    file_path = Path(path)
    try:
        with file_path.open(mode="rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigurationError(f"Failed to read config file {file_path}: {e}") from e

    section = data.get("tool", {}).get("gemini_hybrid")
    if section is None:
        section = {k: v for k, v in data.items() if k != "tool"}
    known = set(HybridSettings.model_fields)
    unknown = sorted(set(section) - known)
    if unknown:
        log.warning("Ignoring unknown config keys in %s: %s", file_path, unknown)
    return {k: v for k, v in section.items() if k in known}


def resolve_config(
    overrides: dict[str, Any] | None = None,
    *,
    config_file: str | Path | None = None,
) -> HybridSettings:
    """Resolve settings from all sources with proper precedence.

    Args:
        overrides: Programmatic values (highest precedence).
        config_file: Optional TOML file (below the environment).

    Raises:
        ConfigurationError: If any source holds an invalid value.
    """
    merged: dict[str, Any] = {}
    if config_file is not None:
        merged.update(load_config_file(config_file))

    try:
        from_env = HybridSettings()
        merged.update(from_env.model_dump(include=from_env.model_fields_set))
        if overrides:
            merged.update(overrides)
        settings = HybridSettings(**merged)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    log.debug("Resolved configuration: %s", settings.summary())
    return settings
