"""
Tests for services/sweeper.py
"""

import asyncio
import tempfile
import unittest
from pathlib import Path

from social_downloader.services.lifecycle import DownloadManager
from social_downloader.services.sweeper import ExpirySweeper
from tests.fakes import FakeClock, FakeWorker


class ExpirySweeperTest(unittest.IsolatedAsyncioTestCase):
    """Tests for the background expiry sweeper"""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.clock = FakeClock()
        self.manager = DownloadManager(
            worker=FakeWorker(),
            temp_dir=Path(self._tmp.name),
            ttl_seconds=300,
            grace_seconds=60,
            clock=self.clock,
        )
        self.sweeper = ExpirySweeper(self.manager, interval_seconds=0.02)

    async def asyncTearDown(self):
        await self.sweeper.stop()
        self.manager.shutdown()

    def tearDown(self):
        self._tmp.cleanup()

    async def test_sweep_once(self):
        await self.manager.prepare("https://valid.example/video")

        self.assertEqual(self.sweeper.sweep_once(), 0)
        self.clock.advance(301)
        self.assertEqual(self.sweeper.sweep_once(), 1)
        self.assertEqual(len(self.manager.registry), 0)

    async def test_background_loop_reclaims_expired_files(self):
        result = await self.manager.prepare("https://valid.example/video")
        entry = self.manager.lookup(result.token)

        await self.sweeper.start()
        self.assertTrue(self.sweeper.running)

        await asyncio.sleep(0.1)
        self.assertIn(result.token, self.manager.registry)

        self.clock.advance(301)
        await asyncio.sleep(0.1)

        self.assertNotIn(result.token, self.manager.registry)
        self.assertFalse(entry.file_path.exists())

    async def test_loop_survives_sweep_errors(self):
        calls = []

        def flaky_sweep(now=None):
            calls.append(now)
            if len(calls) == 1:
                raise OSError("transient")
            return 0

        self.manager.sweep = flaky_sweep
        await self.sweeper.start()
        await asyncio.sleep(0.1)

        self.assertGreater(len(calls), 1)
        self.assertTrue(self.sweeper.running)

    async def test_stop(self):
        await self.sweeper.start()
        await self.sweeper.stop()

        self.assertFalse(self.sweeper.running)
