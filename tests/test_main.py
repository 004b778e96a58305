"""Tests for save_analyzer/main.py – FastAPI routes, envelope, and headers."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from save_analyzer import main
from save_analyzer.header_codec import unconfigured_codec
from save_analyzer.save_archive import HEADER_ENTRY_NAME
from save_analyzer.storage import StorageManager

ZipBuilder = Callable[[dict[str, bytes]], bytes]

UPLOAD = "/api/game-save/upload"
ANALYZE = "/api/game-save/analyze/{}"
RETENTION = "/api/game-save/retention"


def _upload(client: TestClient, data: bytes, name: str = "base.zip", mime: str = "application/zip"):
    return client.post(UPLOAD, files={"file": (name, data, mime)})


def _upload_save(client: TestClient, make_zip: ZipBuilder, record: dict[str, Any]) -> str:
    container = make_zip({f"base/{HEADER_ENTRY_NAME}": json.dumps(record).encode("utf-8")})
    resp = _upload(client, container)
    assert resp.status_code == 200
    return resp.json()["response_object"]["generated_name"]


def _assert_no_cache(resp) -> None:
    assert resp.headers["cache-control"] == "no-store, no-cache, must-revalidate, proxy-revalidate"
    assert resp.headers["pragma"] == "no-cache"
    assert resp.headers["expires"] == "0"


# ── POST /api/game-save/upload ──────────────────────────────────────────────


class TestUpload:
    def test_zip_upload_is_stored_under_generated_name(
        self, client: TestClient, storage: StorageManager
    ) -> None:
        resp = _upload(client, b"\x00" * 1024, name="base.zip")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["status_code"] == 200
        assert body["message"] == "File uploaded successfully"

        stored = body["response_object"]
        assert stored["generated_name"] != "base.zip"
        assert stored["original_name"] == "base.zip"
        assert stored["size_bytes"] == 1024
        assert stored["mime_type"] == "application/zip"
        assert (storage.root / stored["generated_name"]).read_bytes() == b"\x00" * 1024

    def test_disallowed_type_is_rejected_and_not_stored(
        self, client: TestClient, storage: StorageManager
    ) -> None:
        resp = _upload(client, b"hello", name="notes.txt", mime="text/plain")
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["status_code"] == 400
        assert "Invalid file type" in body["message"]
        assert storage.count() == 0

    @pytest.mark.parametrize("mime", ["application/x-7z-compressed", "application/gzip"])
    def test_other_archive_types_accepted(self, client: TestClient, mime: str) -> None:
        assert _upload(client, b"data", mime=mime).status_code == 200

    def test_content_type_parameters_ignored(self, client: TestClient) -> None:
        resp = _upload(client, b"data", mime="application/zip; charset=binary")
        assert resp.status_code == 200
        assert resp.json()["response_object"]["mime_type"] == "application/zip"

    def test_oversized_upload_rejected(
        self, client: TestClient, storage: StorageManager, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(main, "MAX_UPLOAD_SIZE", 16)
        resp = _upload(client, b"x" * 17)
        assert resp.status_code == 400
        assert "exceeds" in resp.json()["message"]
        assert storage.count() == 0

    def test_upload_at_limit_accepted(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(main, "MAX_UPLOAD_SIZE", 16)
        assert _upload(client, b"x" * 16).status_code == 200

    def test_missing_file_field(self, client: TestClient) -> None:
        resp = client.post(UPLOAD)
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["message"] == "No file uploaded"

    def test_percent_encoded_name_is_repaired(self, client: TestClient) -> None:
        resp = _upload(client, b"data", name="%E5%9F%BA%E5%9C%B0.zip")
        assert resp.json()["response_object"]["original_name"] == "基地.zip"

    def test_auto_retention_after_upload(
        self, client: TestClient, storage: StorageManager, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(main, "_RETENTION_MAX", 2)
        for _ in range(4):
            assert _upload(client, b"data").status_code == 200
        assert storage.count() == 2

    def test_failed_auto_retention_still_returns_upload(
        self, client: TestClient, storage: StorageManager, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(main, "_RETENTION_MAX", 1)
        _upload(client, b"first")
        with patch.object(StorageManager, "_list_files", side_effect=PermissionError("denied")):
            resp = _upload(client, b"second")

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        name = body["response_object"]["generated_name"]
        assert (storage.root / name).read_bytes() == b"second"
        assert len(list(storage.root.iterdir())) == 2

    def test_upload_never_sends_no_cache_headers(self, client: TestClient) -> None:
        resp = _upload(client, b"data")
        assert "pragma" not in resp.headers


# ── POST /api/game-save/analyze/{filename} ──────────────────────────────────


class TestAnalyze:
    def test_unknown_name_is_404(self, client: TestClient) -> None:
        resp = client.post(ANALYZE.format("nonexistent.zip"))
        assert resp.status_code == 404
        body = resp.json()
        assert body["success"] is False
        assert body["status_code"] == 404
        assert "nonexistent.zip" in body["message"]
        _assert_no_cache(resp)

    def test_zip_without_header_lists_entries(
        self, client: TestClient, make_zip: ZipBuilder
    ) -> None:
        entries = {f"save/part{i:02d}.dat": b"x" for i in range(12)}
        resp = _upload(client, make_zip(entries))
        name = resp.json()["response_object"]["generated_name"]

        resp = client.post(ANALYZE.format(name))
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["message"].startswith("Failed to decode save:")
        assert body["response_object"] == sorted(entries)[:10]
        _assert_no_cache(resp)

    def test_file_pruned_after_resolve_is_404(
        self, client: TestClient, storage: StorageManager
    ) -> None:
        gone = storage.root / "pruned.zip"
        with patch.object(StorageManager, "resolve", return_value=gone):
            resp = client.post(ANALYZE.format("pruned.zip"))
        assert resp.status_code == 404
        body = resp.json()
        assert body["success"] is False
        assert str(storage.root) not in body["message"]
        _assert_no_cache(resp)

    def test_non_zip_upload_fails_to_decode(self, client: TestClient) -> None:
        name = _upload(client, b"not a zip at all").json()["response_object"]["generated_name"]
        resp = client.post(ANALYZE.format(name))
        assert resp.status_code == 400
        assert "not a valid zip" in resp.json()["message"]

    def test_header_only_report(
        self, client: TestClient, make_zip: ZipBuilder, header_record: dict[str, Any]
    ) -> None:
        name = _upload_save(client, make_zip, header_record)
        resp = client.post(ANALYZE.format(name))
        assert resp.status_code == 200
        _assert_no_cache(resp)

        body = resp.json()
        assert body["success"] is True
        assert body["message"] == "Game save analyzed successfully"
        report = body["response_object"]
        assert report["full_analysis_available"] is False
        assert report["basic"] == {
            "save_name": "铁路基地",
            "game_time_hour": "—",
            "game_version": "1.1.110",
            "mods": ["base", "quality"],
        }
        assert report["develop"]["score"] == 0
        assert report["optimize_suggestions"]["urgent"] == []
        assert len(report["optimize_suggestions"]["suggest"]) == 1

    def test_full_report(
        self, client: TestClient, make_zip: ZipBuilder, full_snapshot: dict[str, Any]
    ) -> None:
        name = _upload_save(client, make_zip, full_snapshot)
        resp = client.post(ANALYZE.format(name))
        assert resp.status_code == 200
        _assert_no_cache(resp)

        report = resp.json()["response_object"]
        assert report["full_analysis_available"] is True
        assert report["basic"]["save_name"] == "Nauvis 基地"
        assert report["basic"]["game_time_hour"] == "5.00"
        assert report["develop"]["tech_status"] == {
            "researched_count": 40,
            "total_tech_count": 100,
            "tech_rate": "40.00%",
        }
        assert report["develop"]["main_power_type"] == "蒸汽"
        assert report["power"]["power_ratio"] == "1.00"
        assert report["power"]["power_status"] == "紧张"
        assert report["enemy"]["nest_count"] == 12
        assert report["enemy"]["threat_level"] == "高"

    def test_analysis_is_repeatable(
        self, client: TestClient, make_zip: ZipBuilder, full_snapshot: dict[str, Any]
    ) -> None:
        name = _upload_save(client, make_zip, full_snapshot)
        first = client.post(ANALYZE.format(name)).json()
        second = client.post(ANALYZE.format(name)).json()
        assert first == second

    def test_unconfigured_codec_is_decode_error(
        self, client: TestClient, make_zip: ZipBuilder, header_record: dict[str, Any]
    ) -> None:
        name = _upload_save(client, make_zip, header_record)
        main.app.dependency_overrides[main.get_header_codec] = lambda: unconfigured_codec
        resp = client.post(ANALYZE.format(name))
        assert resp.status_code == 400
        assert "SAVE_HEADER_CODEC" in resp.json()["message"]

    def test_engine_failure_is_500(
        self,
        client: TestClient,
        make_zip: ZipBuilder,
        full_snapshot: dict[str, Any],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def boom(save_data: Any):
            raise ZeroDivisionError("division by zero")

        monkeypatch.setattr("save_analyzer.analysis.build_full_report", boom)
        name = _upload_save(client, make_zip, full_snapshot)
        resp = client.post(ANALYZE.format(name))
        assert resp.status_code == 500
        body = resp.json()
        assert body["success"] is False
        assert body["message"] == "Failed to analyze game save: division by zero"


# ── POST /api/game-save/retention ───────────────────────────────────────────


class TestRetention:
    def test_prunes_to_cap(self, client: TestClient, storage: StorageManager) -> None:
        for _ in range(3):
            _upload(client, b"data")
        resp = client.post(RETENTION, json={"max_files": 1})
        assert resp.status_code == 200
        result = resp.json()["response_object"]
        assert len(result["removed"]) == 2
        assert result["remaining"] == 1
        assert storage.count() == 1

    def test_zero_empties_the_store(self, client: TestClient, storage: StorageManager) -> None:
        _upload(client, b"data")
        resp = client.post(RETENTION, json={"max_files": 0})
        assert resp.json()["response_object"]["remaining"] == 0
        assert storage.count() == 0

    def test_negative_cap_rejected(self, client: TestClient) -> None:
        resp = client.post(RETENTION, json={"max_files": -1})
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["message"] == "Invalid request."
        assert body["response_object"][0]["loc"] == ["body", "max_files"]

    def test_removed_file_no_longer_analyzable(self, client: TestClient) -> None:
        name = _upload(client, b"data").json()["response_object"]["generated_name"]
        client.post(RETENTION, json={"max_files": 0})
        assert client.post(ANALYZE.format(name)).status_code == 404
