"""Tests for FastAPI routes: health, info, uploads, export, export listing."""

from __future__ import annotations

import hashlib
import zipfile
from io import BytesIO
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from legacy_export.main import app
from legacy_export.routes.export import set_stores
from legacy_export.storage import LocalContentStore, LocalExportStore, MemoryContentStore, MemoryExportStore


@pytest.fixture
def stores():
    """Swap in fresh in-memory stores for every test."""
    content = MemoryContentStore()
    exports = MemoryExportStore()
    set_stores(content, exports)
    yield content, exports
    set_stores(None, None)


@pytest.fixture
def client(stores) -> TestClient:
    """Return a TestClient for the FastAPI app (lifespan not started)."""
    return TestClient(app)


def _request(content: MemoryContentStore, name: str = "My Beatmap", fmt: str = "beatmap") -> dict:
    return {
        "format": fmt,
        "item": {
            "displayName": name,
            "files": [
                {"filename": "audio.mp3", "contentRef": content.put(b"audio")},
                {"filename": "sb/bg.png", "contentRef": content.put(b"png")},
            ],
        },
    }


# ---------------------------------------------------------------------------
# Health / info
# ---------------------------------------------------------------------------


class TestHealth:
    def test_health(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("LEGACY_EXPORT_MODE", raising=False)
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "version": "0.1.0", "mode": "local"}


class TestInfo:
    def test_local_by_default(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("LEGACY_EXPORT_MODE", raising=False)
        data = client.get("/api/info").json()
        assert data["mode"] == "local"
        assert data["version"] == app.version
        assert data["formats"] == {"beatmap": ".osz", "skin": ".osk"}
        assert data["max_filename_length"] == 217

    def test_cloud(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LEGACY_EXPORT_MODE", "cloud")
        data = client.get("/api/info").json()
        assert data["mode"] == "cloud"
        assert "MemoryExportStore" in data["storage"]


# ---------------------------------------------------------------------------
# POST /api/export
# ---------------------------------------------------------------------------


class TestExportRoute:
    def test_export_creates_archive(self, client: TestClient, stores) -> None:
        content, exports = stores
        resp = client.post("/api/export", json=_request(content))

        assert resp.status_code == 201
        data = resp.json()
        assert data["filename"] == "My Beatmap.osz"
        assert data["format"] == "beatmap"
        assert data["sizeBytes"] == len(exports.files["My Beatmap.osz"])

        with zipfile.ZipFile(BytesIO(exports.files["My Beatmap.osz"])) as zf:
            assert zf.read("audio.mp3") == b"audio"
            assert zf.read("sb/bg.png") == b"png"

    def test_repeated_export_disambiguates(self, client: TestClient, stores) -> None:
        content, _ = stores
        names = [client.post("/api/export", json=_request(content)).json()["filename"] for _ in range(3)]
        assert names == ["My Beatmap.osz", "My Beatmap (1).osz", "My Beatmap (2).osz"]

    def test_skin_format(self, client: TestClient, stores) -> None:
        content, _ = stores
        resp = client.post("/api/export", json=_request(content, name="Skin", fmt="skin"))
        assert resp.status_code == 201
        assert resp.json()["filename"] == "Skin.osk"

    def test_unknown_format_400(self, client: TestClient, stores) -> None:
        content, exports = stores
        resp = client.post("/api/export", json=_request(content, fmt="replay"))
        assert resp.status_code == 400
        assert "Unknown export format" in resp.json()["detail"]
        assert exports.files == {}

    def test_missing_content_404(self, client: TestClient, stores) -> None:
        content, exports = stores
        body = _request(content)
        body["item"]["files"].append({"filename": "gone.osu", "contentRef": "0" * 64})

        resp = client.post("/api/export", json=body)

        assert resp.status_code == 404
        assert exports.files == {}

    def test_empty_filename_422(self, client: TestClient, stores) -> None:
        content, _ = stores
        body = _request(content)
        body["item"]["files"][0]["filename"] = ""
        assert client.post("/api/export", json=body).status_code == 422


# ---------------------------------------------------------------------------
# GET /api/exports
# ---------------------------------------------------------------------------


class TestListExports:
    def test_empty(self, client: TestClient) -> None:
        resp = client.get("/api/exports")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_lists_exports(self, client: TestClient, stores) -> None:
        content, _ = stores
        client.post("/api/export", json=_request(content))
        client.post("/api/export", json=_request(content, name="Other"))

        data = client.get("/api/exports").json()
        assert {e["filename"] for e in data} == {"My Beatmap.osz", "Other.osz"}
        assert all(e["sizeBytes"] > 0 for e in data)
        assert all("modifiedAt" in e for e in data)


class TestExportRouteValidation:
    @pytest.mark.parametrize("ref", ["NOT-A-HASH", "../../etc/passwd", "AB" * 32, "a"])
    def test_malformed_content_ref_422(self, client: TestClient, stores, ref: str) -> None:
        content, exports = stores
        body = _request(content)
        body["item"]["files"][0]["contentRef"] = ref

        resp = client.post("/api/export", json=body)

        assert resp.status_code == 422
        assert exports.files == {}

    def test_malformed_ref_with_local_store_422(self, tmp_path) -> None:
        set_stores(LocalContentStore(str(tmp_path / "files")), LocalExportStore(str(tmp_path / "exports")))
        try:
            body = {"item": {"displayName": "Map", "files": [{"filename": "a.osu", "contentRef": "NOT-A-HASH"}]}}
            resp = TestClient(app).post("/api/export", json=body)
        finally:
            set_stores(None, None)

        assert resp.status_code == 422
        assert list((tmp_path / "exports").iterdir()) == []

    def test_rejected_input_400(self, client: TestClient, stores) -> None:
        content, _ = stores
        with patch(
            "legacy_export.routes.export.LegacyExporter.export",
            side_effect=ValueError("Invalid export name: '..'"),
        ):
            resp = client.post("/api/export", json=_request(content))

        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid export name: '..'"


# ---------------------------------------------------------------------------
# POST /api/files
# ---------------------------------------------------------------------------


class TestUploadFile:
    def test_upload_returns_content_ref(self, client: TestClient, stores) -> None:
        content, _ = stores
        resp = client.post(
            "/api/files",
            files={"file": ("audio.mp3", BytesIO(b"audio bytes"), "audio/mpeg")},
        )

        assert resp.status_code == 201
        data = resp.json()
        assert data["contentRef"] == hashlib.sha256(b"audio bytes").hexdigest()
        assert data["sizeBytes"] == len(b"audio bytes")
        assert content.open(data["contentRef"]).read() == b"audio bytes"

    def test_same_bytes_same_ref(self, client: TestClient, stores) -> None:
        refs = {
            client.post("/api/files", files={"file": (name, BytesIO(b"same"), "application/octet-stream")}).json()[
                "contentRef"
            ]
            for name in ("a.png", "b.png")
        }
        assert len(refs) == 1

    def test_too_large_400(self, client: TestClient, stores, monkeypatch: pytest.MonkeyPatch) -> None:
        content, _ = stores
        monkeypatch.setattr("legacy_export.routes.export.MAX_UPLOAD_BYTES", 8)

        resp = client.post("/api/files", files={"file": ("big.bin", BytesIO(b"123456789"), "application/octet-stream")})

        assert resp.status_code == 400
        assert "too large" in resp.json()["detail"]
        assert not content.exists(hashlib.sha256(b"123456789").hexdigest())

    def test_missing_file_422(self, client: TestClient) -> None:
        assert client.post("/api/files").status_code == 422


class TestCloudMode:
    def test_upload_then_export(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Cloud mode starts with empty in-memory stores; uploads fill them."""
        monkeypatch.setenv("LEGACY_EXPORT_MODE", "cloud")
        set_stores(None, None)
        try:
            client = TestClient(app)
            audio = client.post("/api/files", files={"file": ("audio.mp3", BytesIO(b"audio"), "audio/mpeg")})
            chart = client.post("/api/files", files={"file": ("map.osu", BytesIO(b"osu file"), "text/plain")})
            body = {
                "format": "beatmap",
                "item": {
                    "displayName": "Cloud Map",
                    "files": [
                        {"filename": "audio.mp3", "contentRef": audio.json()["contentRef"]},
                        {"filename": "map.osu", "contentRef": chart.json()["contentRef"]},
                    ],
                },
            }

            resp = client.post("/api/export", json=body)
            listing = client.get("/api/exports").json()
        finally:
            set_stores(None, None)

        assert resp.status_code == 201
        assert resp.json()["filename"] == "Cloud Map.osz"
        assert [e["filename"] for e in listing] == ["Cloud Map.osz"]
