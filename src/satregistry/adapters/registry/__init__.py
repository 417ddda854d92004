"""Registry sources: local directories and GitHub-hosted registries."""

from __future__ import annotations

from typing import TYPE_CHECKING

from satregistry.config.registry import local_path

from .local import LocalRegistrySource
from .remote import RemoteRegistrySource

if TYPE_CHECKING:
    from satregistry.config.registry import RegistryLocation


def source_for(location: RegistryLocation) -> LocalRegistrySource | RemoteRegistrySource:
    if location.remote:
        return RemoteRegistrySource(
            location.base, location.list_url or location.base, label=location.label
        )
    return LocalRegistrySource(local_path(location.base), label=location.label)


__all__ = ["LocalRegistrySource", "RemoteRegistrySource", "source_for"]
