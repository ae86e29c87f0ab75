"""
Tests for the command line entry point.
"""

import contextlib
import io
import json
import os
import tempfile
import unittest

from tests.test_framework import BaseTestCase, page_html, table_html
from main import main, parse_args, scan_file


class TestMain(BaseTestCase):
    """Test case for one-off scans from the command line."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.page_path = os.path.join(self.tmp.name, "chat.html")
        html = page_html(
            f'<div data-message-author-role="assistant">{table_html(["A", "B"], [["1", "2"]])}</div>',
            f'<div data-message-author-role="assistant"><pre>| X | Y |\n|---|---|\n| 3 | 4 |</pre></div>',
            title="Model comparison - ChatGPT",
        )
        with open(self.page_path, "w", encoding="utf-8") as f:
            f.write(html)

    def tearDown(self):
        self.tmp.cleanup()

    def test_scan_file(self):
        batch = scan_file(self.page_path, "https://chatgpt.com/c/9", self.settings)

        self.assertEqual(batch.count, 2)
        self.assertEqual(batch.source, "chatgpt")
        self.assertEqual(batch.chat_title, "Model_comparison")
        self.assertEqual(batch.tables[1].data.headers, ["X", "Y"])

    def test_main_prints_batch(self):
        output = io.StringIO()
        with contextlib.redirect_stdout(output):
            code = main(["--file", self.page_path, "--source-url", "https://chatgpt.com/c/9"])

        self.assertEqual(code, 0)
        payload = json.loads(output.getvalue())
        self.assertEqual(payload["count"], 2)
        self.assertEqual(payload["chatTitle"], "Model_comparison")

    def test_missing_input(self):
        with contextlib.redirect_stderr(io.StringIO()):
            self.assertEqual(main([]), 2)
            self.assertEqual(main(["--mode", "watch"]), 2)

    def test_unreadable_file(self):
        self.assertEqual(main(["--file", os.path.join(self.tmp.name, "missing.html")]), 1)

    def test_bad_config(self):
        config_path = os.path.join(self.tmp.name, "settings.json")
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump({"debounce_ms": -5}, f)

        with contextlib.redirect_stderr(io.StringIO()):
            self.assertEqual(main(["--config", config_path, "--file", self.page_path]), 2)

    def test_parse_args(self):
        args = parse_args(["--mode", "api", "--port", "9000", "--debug"])

        self.assertEqual(args.mode, "api")
        self.assertEqual(args.port, 9000)
        self.assertTrue(args.debug)
        self.assertIsNone(args.duration)


if __name__ == "__main__":
    unittest.main()
