"""
Tests for the HTTP conversion endpoint
"""
import pytest
import numpy as np


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from svgtrace.api import create_app

    return TestClient(create_app())


class TestHealth:
    """Test informational endpoints"""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_limits(self, client):
        data = client.get("/limits").json()
        assert data["max_side"] == 12000
        assert data["max_megapixels"] == 80
        assert data["allowed_mime_types"] == ["image/jpeg", "image/png"]


class TestConvertEndpoint:
    """Test POST /convert"""

    def test_convert_png(self, client, square_png):
        response = client.post(
            "/convert",
            files={"file": ("square.png", square_png, "image/png")},
            data={"lineColor": "#0ea5e9", "transparent": "false", "bgColor": "#000000"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["width"] == 64
        assert body["height"] == 64
        assert 'fill="#0ea5e9"' in body["svg"]
        assert '<rect x="0" y="0" width="64" height="64" fill="#000000"/>' in body["svg"]

    def test_convert_edge_uniform(self, client, white_png):
        response = client.post(
            "/convert",
            files={"file": ("white.png", white_png, "image/png")},
            data={"preprocess": "edge", "blurSigma": "0.8", "edgeBoost": "1.0"},
        )

        assert response.status_code == 200
        assert 'viewBox="0 0 500 500"' in response.json()["svg"]

    def test_wrong_type(self, client, square_png):
        response = client.post("/convert", files={"file": ("square.gif", square_png, "image/gif")})
        assert response.status_code == 415
        assert "PNG or JPEG" in response.json()["error"]

    def test_too_large(self, client, png_header):
        response = client.post(
            "/convert",
            files={"file": ("huge.png", png_header(13000, 8000), "image/png")},
        )
        assert response.status_code == 413
        assert "13000×8000" in response.json()["error"]

    def test_invalid_threshold(self, client, square_png):
        response = client.post(
            "/convert",
            files={"file": ("square.png", square_png, "image/png")},
            data={"threshold": "300"},
        )
        assert response.status_code == 422

    def test_unknown_preprocess(self, client, square_png):
        response = client.post(
            "/convert",
            files={"file": ("square.png", square_png, "image/png")},
            data={"preprocess": "sharpen"},
        )
        assert response.status_code == 422

    def test_large_upload_never_spools_to_disk(self, client, png_header, monkeypatch):
        import tempfile

        rollovers = []
        original = tempfile.SpooledTemporaryFile.rollover

        def recording_rollover(self):
            rollovers.append(self._max_size)
            return original(self)

        monkeypatch.setattr(tempfile.SpooledTemporaryFile, "rollover", recording_rollover)

        # Valid header, then 2 MiB of trailing bytes the probe never reads
        payload = png_header(13000, 8000) + b"\0" * (2 * 1024 * 1024)
        response = client.post("/convert", files={"file": ("huge.png", payload, "image/png")})

        assert response.status_code == 413
        assert rollovers == []


class TestConvertTimeout:
    """Test the conversion time limit"""

    def test_timeout_returns_504_and_stops_tracing(self, encode_image):
        import multiprocessing
        import time
        from fastapi.testclient import TestClient
        from svgtrace.api import create_app
        from svgtrace.config import Settings

        client = TestClient(create_app(Settings(conversion_timeout=0.5)))
        noise = np.random.default_rng(2).integers(0, 256, (600, 600), dtype=np.uint8)

        start = time.monotonic()
        response = client.post(
            "/convert",
            files={"file": ("noise.png", encode_image(noise), "image/png")},
            data={"threshold": "128", "turdSize": "0"},
        )

        assert response.status_code == 504
        assert response.json()["error"] == "Conversion timed out."
        assert time.monotonic() - start < 10
        assert multiprocessing.active_children() == []
