"""Shared fixtures for the Factory Save Analyzer test suite."""

from __future__ import annotations

import io
import json
import zipfile
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from save_analyzer.main import app, get_header_codec, get_storage
from save_analyzer.storage import StorageManager


def _decode_json(data: bytes) -> dict[str, Any]:
    return json.loads(data.decode("utf-8"))


@pytest.fixture()
def json_codec() -> Callable[[bytes], dict[str, Any]]:
    """Stand-in header codec: the test archives carry JSON in level-init.dat."""
    return _decode_json


@pytest.fixture()
def storage(tmp_path: Path) -> StorageManager:
    """Storage manager rooted in a per-test temporary directory."""
    return StorageManager(tmp_path / "game-saves")


@pytest.fixture()
def client(storage: StorageManager) -> Iterator[TestClient]:
    """FastAPI test client wired to the temporary store and the JSON codec."""
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_header_codec] = lambda: _decode_json
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def make_zip() -> Callable[[dict[str, bytes]], bytes]:
    """Return a builder that zips a {member name: bytes} mapping in memory."""

    def _build(entries: dict[str, bytes]) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
            for name, data in entries.items():
                zf.writestr(name, data)
        return buffer.getvalue()

    return _build


@pytest.fixture()
def header_record() -> dict[str, Any]:
    """A header-only codec record."""
    return {
        "name": "铁路基地",
        "version": {"asString": "1.1.110"},
        "modList": [{"name": "base"}, {"name": "quality"}],
    }


@pytest.fixture()
def full_snapshot() -> dict[str, Any]:
    """
    A small mid-game snapshot.

    5 hours in, 40 of 100 technologies researched (mid stage), steam power
    at a 1.00 ratio (tight), two stone furnaces still around, 12 nests.
    """
    technologies = {f"tech-{i}": {"researched": i < 40} for i in range(100)}
    entities = (
        [{"name": "stone-furnace"}] * 2
        + [{"name": "steel-furnace"}] * 6
        + [{"name": "electric-mining-drill"}] * 8
        + [{"name": "lab"}] * 10
        + [{"name": "assembling-machine-2"}] * 4
        + [{"name": "iron-ore", "amount": 5000}, {"name": "iron-ore", "amount": 3000}]
        + [{"name": "copper-ore", "amount": 100}]
        + [{"name": "coal", "amount": 20000}]
        + [{"name": "small-biter"}] * 30
        + [{"name": "biter-nest"}] * 12
    )
    return {
        "name": "铁路基地",
        "version": "1.1.110",
        "game_version": "1.1.110",
        "game": {
            "tick": 5 * 60 * 3600,
            "forces": {
                "player": {
                    "technologies": technologies,
                    "electric_network_statistics": {
                        "production": {"total": 5000, "steam": 5000},
                        "consumption": {"total": 5000},
                    },
                    "item_production_statistics": {
                        "output_counts": {
                            "iron-ore": 40000,
                            "copper-ore": 30000,
                            "coal": 10000,
                        }
                    },
                    "items": {"iron-plate": 800, "copper-plate": 900},
                }
            },
        },
        "map": {"name": "Nauvis 基地", "surfaces": [{"entities": entities}]},
    }
