"""
Tests for services/inspect.py
"""

import unittest
from unittest.mock import patch

import yt_dlp

from social_downloader.services.inspect import (
    format_duration,
    inspect_url,
    map_formats,
    map_info,
)
from social_downloader.utils.exceptions import (
    ContentNotFoundError,
    InspectError,
    ValidationError,
)


SAMPLE_INFO = {
    "id": "abc123",
    "title": "Sample Clip",
    "channel": "Sample Channel",
    "duration": 125,
    "thumbnail": "https://img.example/default.jpg",
    "thumbnails": [
        {"url": "https://img.example/small.jpg"},
        {"url": "https://img.example/large.jpg"},
    ],
    "formats": [
        {"format_id": "sb0", "vcodec": "none", "acodec": "none", "ext": "mhtml", "format_note": "storyboard"},
        {"format_id": "140", "vcodec": "none", "acodec": "mp4a.40.2", "ext": "m4a", "abr": 129.5, "filesize": 2000},
        {"format_id": "18", "vcodec": "avc1", "acodec": "mp4a", "ext": "mp4", "height": 360, "filesize": 5000},
        {"format_id": "22", "vcodec": "avc1", "acodec": "mp4a", "ext": "mp4", "height": 720, "filesize_approx": 9000.0},
        {"format_id": "136", "vcodec": "avc1", "acodec": "none", "ext": "mp4", "height": 720},
        {"format_id": "247", "vcodec": "vp9", "acodec": "none", "ext": "webm", "height": 720},
    ],
}


class MapInfoTest(unittest.TestCase):
    """Tests for mapping yt-dlp metadata to the display contract"""

    def test_map_info(self):
        result = map_info(SAMPLE_INFO)

        self.assertEqual(result.id, "abc123")
        self.assertEqual(result.title, "Sample Clip")
        self.assertEqual(result.author, "Sample Channel")
        self.assertEqual(result.thumbnail, "https://img.example/large.jpg")
        self.assertEqual(result.duration, "2:05")

    def test_formats_are_deduplicated_and_sorted(self):
        formats = map_formats(SAMPLE_INFO["formats"])

        self.assertEqual(
            [(f.type, f.quality, f.ext) for f in formats],
            [
                ("video", "720p", "mp4"),
                ("video", "720p", "webm"),
                ("video", "360p", "mp4"),
                ("audio", "130kbps", "m4a"),
            ],
        )
        self.assertEqual(formats[0].filesize, 9000)
        self.assertEqual(formats[-1].filesize, 2000)

    def test_missing_fields(self):
        result = map_info({"formats": None, "thumbnail": "https://img.example/t.jpg"})

        self.assertTrue(result.id)
        self.assertIsNone(result.title)
        self.assertIsNone(result.author)
        self.assertIsNone(result.duration)
        self.assertEqual(result.thumbnail, "https://img.example/t.jpg")
        self.assertEqual(result.formats, [])

    def test_quality_falls_back_to_format_note(self):
        formats = map_formats([{"format_id": "hls", "vcodec": "avc1", "ext": "mp4", "format_note": "source"}])
        self.assertEqual(formats[0].quality, "source")

    def test_format_duration(self):
        self.assertEqual(format_duration(59), "0:59")
        self.assertEqual(format_duration(65.4), "1:05")
        self.assertEqual(format_duration(3725), "1:02:05")
        self.assertIsNone(format_duration(None))
        self.assertIsNone(format_duration(0))


class InspectUrlTest(unittest.IsolatedAsyncioTestCase):
    """Tests for inspect_url error handling"""

    @patch("social_downloader.services.inspect.extract_info")
    async def test_success(self, mock_extract):
        mock_extract.return_value = SAMPLE_INFO

        result = await inspect_url("https://valid.example/video")

        mock_extract.assert_called_once_with("https://valid.example/video")
        self.assertEqual(len(result.formats), 4)

    async def test_invalid_url(self):
        with self.assertRaises(ValidationError):
            await inspect_url("javascript:alert(1)")

    @patch("social_downloader.services.inspect.extract_info")
    async def test_unavailable_content_is_not_found(self, mock_extract):
        mock_extract.side_effect = yt_dlp.utils.DownloadError("ERROR: [generic] HTTP Error 404: Not Found")

        with self.assertRaises(ContentNotFoundError):
            await inspect_url("https://valid.example/missing")

    @patch("social_downloader.services.inspect.extract_info")
    async def test_other_failures_are_generic(self, mock_extract):
        mock_extract.side_effect = yt_dlp.utils.DownloadError("ERROR: Unsupported URL: https://valid.example/x")

        with self.assertRaises(InspectError):
            await inspect_url("https://valid.example/x")

    @patch("social_downloader.services.inspect.extract_info")
    async def test_unexpected_exception_is_generic(self, mock_extract):
        mock_extract.side_effect = RuntimeError("boom")

        with self.assertRaises(InspectError):
            await inspect_url("https://valid.example/x")
