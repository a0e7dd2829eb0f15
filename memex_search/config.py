"""Config manager for the search engine's config.yaml."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import yaml

ENV_STATE_DIR = "MEMEX_SEARCH_STATE_DIR"
ENV_DAYS_TO_SEARCH = "MEMEX_SEARCH_DAYS"


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class SearchConfig:
    """Search engine configuration."""

    state_dir: Path = Path("state")
    days_to_search: int = 1  # Blank search window size
    starts_with_matching: bool = False  # Prefix term lookups on pages
    default_limit: int | None = None  # Terms search page size (None = all)

    def __post_init__(self) -> None:
        self.state_dir = Path(self.state_dir)
        if not _is_int(self.days_to_search):
            raise ValueError(f"days_to_search must be an integer: {self.days_to_search!r}")
        if not isinstance(self.starts_with_matching, bool):
            raise ValueError(
                f"starts_with_matching must be true or false: {self.starts_with_matching!r}"
            )
        if self.default_limit is not None and not _is_int(self.default_limit):
            raise ValueError(f"default_limit must be an integer: {self.default_limit!r}")
        if self.days_to_search <= 0:
            raise ValueError(f"days_to_search must be positive: {self.days_to_search}")
        if self.default_limit is not None and self.default_limit <= 0:
            raise ValueError(f"default_limit must be positive: {self.default_limit}")

    def to_dict(self) -> dict:
        """Serialize to dict for YAML storage."""
        result: dict = {
            "state_dir": str(self.state_dir),
            "search": {
                "days_to_search": self.days_to_search,
                "starts_with_matching": self.starts_with_matching,
            },
        }
        if self.default_limit is not None:
            result["search"]["default_limit"] = self.default_limit
        return result

    @classmethod
    def from_dict(cls, data: dict) -> SearchConfig:
        """Deserialize from dict."""
        search = data.get("search") or {}
        if not isinstance(search, dict):
            raise ValueError(f"search section must be a mapping: {search!r}")
        return cls(
            state_dir=Path(data.get("state_dir", "state")),
            days_to_search=search.get("days_to_search", 1),
            starts_with_matching=search.get("starts_with_matching", False),
            default_limit=search.get("default_limit"),
        )


def apply_env_overrides(
    config: SearchConfig,
    environ: Mapping[str, str] | None = None,
) -> SearchConfig:
    """Apply environment variable overrides to a loaded config.

    Args:
        config: Config loaded from file.
        environ: Environment mapping (defaults to os.environ).

    Returns:
        The same config object, updated in place.

    Raises:
        ValueError: If an override value is invalid.
    """
    env = os.environ if environ is None else environ

    state_dir = env.get(ENV_STATE_DIR)
    if state_dir:
        config.state_dir = Path(state_dir)

    days = env.get(ENV_DAYS_TO_SEARCH)
    if days:
        try:
            config.days_to_search = int(days)
        except ValueError:
            raise ValueError(f"{ENV_DAYS_TO_SEARCH} must be an integer: {days!r}") from None
        if config.days_to_search <= 0:
            raise ValueError(f"{ENV_DAYS_TO_SEARCH} must be positive: {days!r}")

    return config


class ConfigManager:
    """Loads and saves SearchConfig from a YAML file.

    Saves use an atomic write (temp file + rename) to prevent corruption.
    """

    def __init__(self, config_path: Path) -> None:
        """Initialize with path to config.yaml file.

        Args:
            config_path: Path to the YAML configuration file.
        """
        self._config_path = config_path

    @property
    def config_path(self) -> Path:
        """Return the configuration file path."""
        return self._config_path

    def load(self) -> SearchConfig:
        """Load configuration, falling back to defaults if the file is missing or empty.

        Relative state_dir values are resolved against the config file's directory.
        """
        if not self._config_path.exists():
            return SearchConfig()

        with open(self._config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if data is None:
            return SearchConfig()
        if not isinstance(data, dict):
            raise ValueError(f"Config must be a mapping: {self._config_path}")

        config = SearchConfig.from_dict(data)
        if not config.state_dir.is_absolute():
            config.state_dir = self._config_path.parent / config.state_dir
        return config

    def save(self, config: SearchConfig) -> None:
        """Save configuration to the YAML file.

        Args:
            config: The configuration to persist.
        """
        self._config_path.parent.mkdir(parents=True, exist_ok=True)

        # Same directory keeps the rename atomic
        fd, temp_path = tempfile.mkstemp(
            dir=self._config_path.parent,
            prefix=".config_",
            suffix=".yaml.tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yaml.safe_dump(config.to_dict(), f, default_flow_style=False)
            os.replace(temp_path, self._config_path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
