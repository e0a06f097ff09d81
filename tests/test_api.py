"""
HTTP tests for the FastAPI routes.
"""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import yt_dlp
from fastapi.testclient import TestClient

from social_downloader.config import settings
from social_downloader.dependencies import get_manager
from social_downloader.main import app
from social_downloader.middleware.rate_limit import limiter
from social_downloader.services.lifecycle import DownloadManager
from social_downloader.services.registry import FileState
from tests.fakes import FakeWorker
from tests.test_inspect import SAMPLE_INFO


URL = "https://valid.example/video"


class ApiTest(unittest.TestCase):
    """Tests for inspect, prepare, download, status and health endpoints"""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.temp_dir = Path(self._tmp.name)
        self.worker = FakeWorker()
        self.manager = DownloadManager(worker=self.worker, temp_dir=self.temp_dir, max_jobs=2)

        app.dependency_overrides[get_manager] = lambda: self.manager
        limiter.reset()

        self.client = TestClient(app)
        self.client.__enter__()

    def tearDown(self):
        self.client.__exit__(None, None, None)
        app.dependency_overrides.clear()
        self.manager.shutdown()
        self._tmp.cleanup()

    def prepare(self, **body):
        body.setdefault("url", URL)
        return self.client.post("/api/prepare", json=body)

    # ------------------------------------------------------------------
    # prepare + download
    # ------------------------------------------------------------------

    def test_prepare_then_download(self):
        response = self.prepare(format={"type": "video", "quality": "480p"})

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["downloadUrl"], f"/api/download/{data['token']}")
        self.assertNotIn("download_url", data)

        download = self.client.get(data["downloadUrl"])

        expected = self.worker.files["Sample Clip.mp4"]
        self.assertEqual(download.status_code, 200)
        self.assertEqual(download.content, expected)
        self.assertEqual(download.headers["content-length"], str(len(expected)))
        self.assertEqual(download.headers["content-type"], "video/mp4")
        self.assertIn("attachment", download.headers["content-disposition"])
        self.assertIn("Sample%20Clip.mp4", download.headers["content-disposition"])
        self.assertEqual(len(self.manager.registry), 0)

    def test_second_download_is_not_found(self):
        token = self.prepare().json()["token"]
        self.client.get(f"/api/download/{token}")

        response = self.client.get(f"/api/download/{token}")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["detail"]["error_code"], "NOT_FOUND")

    def test_unknown_token(self):
        response = self.client.get("/api/download/not-a-token")

        self.assertEqual(response.status_code, 404)

    def test_preparing_token_is_locked(self):
        entry = self.manager.registry.create(
            file_path=self.temp_dir / "dl-x" / "clip.mp4",
            file_name="clip.mp4",
            size_bytes=0,
            mime_type="video/mp4",
            source_url=URL,
            ttl_seconds=300,
            state=FileState.PREPARING,
        )

        response = self.client.get(f"/api/download/{entry.token}")

        self.assertEqual(response.status_code, 423)
        self.assertEqual(response.json()["detail"]["error_code"], "NOT_READY")

    def test_prepare_requires_url(self):
        response = self.client.post("/api/prepare", json={"format": {"type": "video"}})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"]["error_code"], "VALIDATION_ERROR")

    def test_prepare_by_id_only_is_rejected(self):
        response = self.client.post("/api/prepare", json={"id": "abc123"})

        self.assertEqual(response.status_code, 400)
        self.assertIn("id", response.json()["detail"]["message"])
        self.assertEqual(self.worker.calls, [])

    def test_prepare_rejects_unknown_format_type(self):
        response = self.prepare(format={"type": "gif"})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"]["error_code"], "VALIDATION_ERROR")

    def test_prepare_worker_failure(self):
        self.worker.returncode = 1
        self.worker.stderr = "network unreachable"

        response = self.prepare()

        self.assertEqual(response.status_code, 502)
        detail = response.json()["detail"]
        self.assertEqual(detail["error_code"], "WORKER_ERROR")
        self.assertIn("network unreachable", detail["details"])
        self.assertEqual(list(self.temp_dir.iterdir()), [])

    def test_prepare_empty_output(self):
        self.worker.files = {}

        response = self.prepare()

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["detail"]["error_code"], "EMPTY_OUTPUT")

    def test_prepare_when_busy(self):
        self.manager.admission.try_admit()
        self.manager.admission.try_admit()

        response = self.prepare()

        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json()["detail"]["error_code"], "SERVER_BUSY")
        self.assertEqual(self.worker.calls, [])

    # ------------------------------------------------------------------
    # status
    # ------------------------------------------------------------------

    def test_status_does_not_consume(self):
        token = self.prepare().json()["token"]

        status = self.client.get(f"/api/download/{token}/status")

        self.assertEqual(status.status_code, 200)
        data = status.json()
        self.assertEqual(data["state"], "ready")
        self.assertEqual(data["file_name"], "Sample Clip.mp4")
        self.assertEqual(data["size_bytes"], len(self.worker.files["Sample Clip.mp4"]))
        self.assertGreater(data["expires_in_seconds"], 0)
        self.assertTrue(data["expires_at"].endswith("Z"))

        self.assertEqual(self.client.get(f"/api/download/{token}").status_code, 200)
        self.assertEqual(self.client.get(f"/api/download/{token}/status").status_code, 404)

    # ------------------------------------------------------------------
    # inspect
    # ------------------------------------------------------------------

    @patch("social_downloader.services.inspect.extract_info")
    def test_inspect(self, mock_extract):
        mock_extract.return_value = SAMPLE_INFO

        response = self.client.post("/api/inspect", json={"url": URL})

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["title"], "Sample Clip")
        self.assertEqual(data["duration"], "2:05")
        self.assertEqual(data["formats"][0], {"type": "video", "quality": "720p", "ext": "mp4", "filesize": 9000})

    @patch("social_downloader.services.inspect.extract_info")
    def test_inspect_not_found(self, mock_extract):
        mock_extract.side_effect = yt_dlp.utils.DownloadError("ERROR: Video unavailable")

        response = self.client.post("/api/inspect", json={"url": URL})

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["detail"]["error_code"], "CONTENT_NOT_FOUND")

    def test_inspect_invalid_url(self):
        response = self.client.post("/api/inspect", json={"url": "notaurl"})

        self.assertEqual(response.status_code, 400)

    # ------------------------------------------------------------------
    # health
    # ------------------------------------------------------------------

    def test_health(self):
        self.prepare()

        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["status"], "ok")
        self.assertEqual(data["checks"]["tokens"], 1)
        self.assertEqual(data["checks"]["active_jobs"], 0)
        self.assertEqual(data["checks"]["max_jobs"], 2)

    def test_root(self):
        response = self.client.get("/")

        self.assertEqual(response.json()["service"], "social-downloader")

    # ------------------------------------------------------------------
    # rate limiting
    # ------------------------------------------------------------------

    def assert_rate_limited(self, path):
        for _ in range(settings.RATE_LIMIT_REQUESTS):
            self.assertNotEqual(self.client.get(path).status_code, 429)

        response = self.client.get(path)

        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json()["detail"]["error_code"], "RATE_LIMITED")

    def test_rate_limit_on_health(self):
        self.assert_rate_limited("/health")

    def test_rate_limit_on_download(self):
        self.assert_rate_limited("/api/download/not-a-token")

    def test_rate_limit_on_prepare(self):
        for _ in range(settings.RATE_LIMIT_REQUESTS):
            self.assertEqual(self.prepare().status_code, 200)

        response = self.prepare()

        self.assertEqual(response.status_code, 429)
        self.assertEqual(len(self.worker.calls), settings.RATE_LIMIT_REQUESTS)
