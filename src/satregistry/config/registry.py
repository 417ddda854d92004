"""Registry locations and reconciliation settings."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .env import optional_env_var, require_env_vars
from .errors import ConfigurationError

DEFAULT_LOOKUP_PATTERN: Final[str] = "sat_*.json"
DEFAULT_PARTITION_SIZE: Final[int] = 10_000
DEFAULT_PARTITION_FETCH_DELAY: Final[float] = 0.0
DEFAULT_RESOLVE_DELAY: Final[float] = 0.1


def is_remote(location: str) -> bool:
    return location.startswith(("http://", "https://"))


def local_path(location: str) -> Path:
    """Turn a local location (optionally a ``file://`` URL) into a path."""

    if location.startswith("file://"):
        location = location.removeprefix("file://")
    return Path(location).expanduser()


@dataclass(frozen=True, slots=True)
class RegistryLocation:
    """Where one registry lives.

    ``base`` is either a directory or a raw-content URL prefix; ``list_url`` is
    the GitHub contents API endpoint used to enumerate a remote registry.
    """

    label: str
    base: str
    list_url: str | None = None

    @property
    def remote(self) -> bool:
        return is_remote(self.base)


@dataclass(frozen=True, slots=True)
class ReconcileConfig:
    source_a: RegistryLocation
    source_b: RegistryLocation
    lookup_pattern: str = DEFAULT_LOOKUP_PATTERN
    partition_size: int = DEFAULT_PARTITION_SIZE
    partition_fetch_delay: float = DEFAULT_PARTITION_FETCH_DELAY
    resolve_delay: float = DEFAULT_RESOLVE_DELAY


@dataclass(frozen=True, slots=True)
class DuplicateConfig:
    registry_dir: Path
    canonical_dir: Path
    lookup_pattern: str = DEFAULT_LOOKUP_PATTERN
    expected_range: tuple[int, int] | None = None


def _location(prefix: str, base: str, default_label: str) -> RegistryLocation:
    list_url = optional_env_var(f"{prefix}_LIST_URL")
    label = optional_env_var(f"{prefix}_LABEL", default_label) or default_label
    if is_remote(base) and list_url is None:
        msg = f"{prefix}_LIST_URL is required when {prefix}_BASE is a URL"
        raise ConfigurationError(msg)
    return RegistryLocation(label=label, base=base, list_url=list_url)


def get_reconcile_config() -> ReconcileConfig:
    values = require_env_vars(("REGISTRY_A_BASE", "REGISTRY_B_BASE"))
    return ReconcileConfig(
        source_a=_location("REGISTRY_A", values["REGISTRY_A_BASE"], "Repo1"),
        source_b=_location("REGISTRY_B", values["REGISTRY_B_BASE"], "Repo2"),
    )


def get_duplicate_config(
    registry_dir: Path | None = None,
    canonical_dir: Path | None = None,
) -> DuplicateConfig:
    """Duplicate pipeline settings; explicit paths win over ``REGISTRY_DIR``/``CANONICAL_DIR``."""

    if registry_dir is None:
        registry_dir = Path(require_env_vars(("REGISTRY_DIR",))["REGISTRY_DIR"])
    if canonical_dir is None:
        canonical_env = optional_env_var("CANONICAL_DIR")
        canonical_dir = Path(canonical_env) if canonical_env else registry_dir
    return DuplicateConfig(registry_dir=registry_dir, canonical_dir=canonical_dir)
