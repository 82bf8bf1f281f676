"""Unit tests for ui.output -- JSON creation and text formatting."""

import json
import os
import tempfile
import unittest

from engine.endpoints import Endpoints
from engine.models import LatencyResult, Phase, PhaseResult, SpeedTestReport
from ui.output import create_result_json, format_text_result, save_json


def _report():
    return SpeedTestReport(
        latency=LatencyResult.from_samples([9.0, 10.0, 11.0]),
        download=PhaseResult.from_totals(Phase.DOWNLOAD, 100_000_000, 8.0, 6),
        upload=PhaseResult.from_totals(Phase.UPLOAD, 50_000_000, 8.0, 4),
    )


class TestCreateResultJson(unittest.TestCase):
    def setUp(self):
        self.result = create_result_json(_report(), Endpoints.from_base_url("http://host:8080"))

    def test_basic_structure(self):
        for key in ("timestamp", "server", "latency_ms", "download_mbps", "upload_mbps",
                    "latency", "download", "upload"):
            self.assertIn(key, self.result)

    def test_values(self):
        self.assertEqual(self.result["latency_ms"], 10.0)
        self.assertEqual(self.result["download_mbps"], 100.0)
        self.assertEqual(self.result["upload_mbps"], 50.0)
        self.assertEqual(self.result["download"]["connections"], 6)
        self.assertEqual(self.result["latency"]["samples"], [9.0, 10.0, 11.0])

    def test_server_urls(self):
        self.assertEqual(self.result["server"]["download_url"], "http://host:8080/api/download")

    def test_serialisable(self):
        json.dumps(self.result)


class TestSaveJson(unittest.TestCase):
    def test_save_and_read(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "result.json")
            save_json({"download_mbps": 1.5}, path)
            with open(path) as fh:
                self.assertEqual(json.load(fh), {"download_mbps": 1.5})
            self.assertEqual(os.listdir(tmpdir), ["result.json"])

    def test_missing_directory_raises(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "missing", "result.json")
            with self.assertRaises(OSError):
                save_json({}, path)


class TestFormatTextResult(unittest.TestCase):
    def test_contents(self):
        text = format_text_result(_report(), "http://host:8080")
        self.assertIn("Server: http://host:8080", text)
        self.assertIn("Latency: 10.0 ms", text)
        self.assertIn("Download: 100.00 Mbps", text)
        self.assertIn("Upload: 50.00 Mbps", text)


if __name__ == "__main__":
    unittest.main()
