from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
import pytest

from satregistry.adapters.registry import LocalRegistrySource, RemoteRegistrySource, source_for
from satregistry.config.registry import RegistryLocation
from satregistry.domain.errors import RegistryReadError
from tests.helpers.http import make_client_factory
from tests.helpers.registry import write_registry

RAW = "https://raw.test/org/repo/main/data"
LISTING = "https://api.test/repos/org/repo/contents/data"


def _remote(handler) -> RemoteRegistrySource:  # noqa: ANN001
    return RemoteRegistrySource(
        RAW, LISTING, label="Repo1", client_factory=make_client_factory(handler)
    )


def test_remote_listing_keeps_matching_files_only() -> None:
    listing = [
        {"name": "sat_2.json", "type": "file"},
        {"name": "sat_1.json", "type": "file"},
        {"name": "sat_dir.json", "type": "dir"},
        {"name": "README.md", "type": "file"},
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == LISTING
        return httpx.Response(200, json=listing)

    async def run() -> list[str]:
        async with _remote(handler) as source:
            return await source.list_files("sat_*.json")

    assert asyncio.run(run()) == ["sat_1.json", "sat_2.json"]


def test_remote_read_records_joins_raw_base() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == f"{RAW}/sat_1.json"
        return httpx.Response(200, json=[{"sat": 1, "block": 2}])

    async def run() -> object:
        async with _remote(handler) as source:
            return await source.read_records("sat_1.json")

    assert asyncio.run(run()) == [{"sat": 1, "block": 2}]


@pytest.mark.parametrize(
    "response",
    [httpx.Response(404), httpx.Response(200, text="<html>")],
    ids=["status", "json"],
)
def test_remote_errors_become_registry_read_errors(response: httpx.Response) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return response

    async def run() -> object:
        async with _remote(handler) as source:
            return await source.read_records("sat_1.json")

    with pytest.raises(RegistryReadError) as excinfo:
        asyncio.run(run())
    assert excinfo.value.location == f"{RAW}/sat_1.json"


def test_remote_listing_rejects_unexpected_payload() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"message": "API rate limit exceeded"})

    async def run() -> list[str]:
        async with _remote(handler) as source:
            return await source.list_files("sat_*.json")

    with pytest.raises(RegistryReadError):
        asyncio.run(run())


def test_local_source_lists_and_reads(tmp_path: Path) -> None:
    write_registry(tmp_path, {"sat_1.json": [{"sat": 1, "block": 1}], "other.json": []})
    (tmp_path / "sat_bad.json").write_text("[", encoding="utf-8")
    source = LocalRegistrySource(tmp_path, label="local")

    assert asyncio.run(source.list_files("sat_*.json")) == ["sat_1.json", "sat_bad.json"]
    assert asyncio.run(source.read_records("sat_1.json")) == [{"sat": 1, "block": 1}]
    with pytest.raises(RegistryReadError):
        asyncio.run(source.read_records("sat_bad.json"))
    with pytest.raises(RegistryReadError):
        asyncio.run(source.read_records("sat_missing.json"))


def test_local_source_requires_directory(tmp_path: Path) -> None:
    source = LocalRegistrySource(tmp_path / "missing")

    with pytest.raises(RegistryReadError):
        asyncio.run(source.list_files("sat_*.json"))


def test_source_for_picks_local_or_remote(tmp_path: Path) -> None:
    local = source_for(RegistryLocation(label="A", base=str(tmp_path)))
    remote = source_for(RegistryLocation(label="B", base=RAW, list_url=LISTING))

    assert isinstance(local, LocalRegistrySource)
    assert local.directory == tmp_path
    assert isinstance(remote, RemoteRegistrySource)
    assert remote.raw_base_url == f"{RAW}/"
    assert remote.list_url == LISTING
