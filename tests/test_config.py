import os
import pathlib
import sys
import tempfile
import unittest
from unittest import mock

# Ensure src/ is on path for direct test execution
ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from livetrace.config.runtime import (
    DEFAULT_URL,
    URL_ENV_VAR,
    StreamConfig,
    config_from_mapping,
    load_config,
)


class StreamConfigTest(unittest.TestCase):
    def setUp(self):
        patcher = mock.patch.dict(os.environ)
        patcher.start()
        self.addCleanup(patcher.stop)
        os.environ.pop(URL_ENV_VAR, None)

    def test_defaults_request_whole_range(self):
        cfg = config_from_mapping(None)
        self.assertEqual(cfg.url, DEFAULT_URL)
        self.assertEqual(cfg.start_ts, 0.0)
        self.assertEqual(cfg.stop_ts, 0.0)
        self.assertIsNone(cfg.max_plot_points)
        self.assertEqual(cfg.selection, {})

    def test_stream_block_is_flattened_and_unknown_keys_ignored(self):
        payload = {
            "stream": {"url": "ws://example:9000/ws/", "selection": {"1": ["t", 0]}},
            "log_level": "debug",
            "colour": "blue",
        }
        cfg = config_from_mapping(payload)
        self.assertEqual(cfg.url, "ws://example:9000/ws/")
        self.assertEqual(cfg.selection, {1: ["t", "0"]})
        self.assertEqual(cfg.log_level, "DEBUG")

    def test_stream_block_wins_over_top_level_keys(self):
        cfg = config_from_mapping({"url": "ws://top/ws/", "stream": {"url": "ws://block/ws/"}})
        self.assertEqual(cfg.url, "ws://block/ws/")

    def test_unknown_keys_are_logged(self):
        with self.assertLogs("livetrace.config.runtime", level="WARNING") as logs:
            config_from_mapping({"stream": {"colour": "blue"}})
        self.assertIn("colour", logs.output[0])

    def test_stream_block_must_be_a_mapping(self):
        with self.assertRaises(ValueError):
            config_from_mapping({"stream": ["url"]})

    def test_sanitized_clamps_values(self):
        cfg = StreamConfig(
            max_plot_points=0,
            plot_window_seconds=-5,
            refresh_interval_ms=1,
            selection={2: "x"},
        ).sanitized()
        self.assertEqual(cfg.max_plot_points, 1)
        self.assertEqual(cfg.plot_window_seconds, 0.0)
        self.assertEqual(cfg.refresh_interval_ms, 10)
        self.assertEqual(cfg.selection, {2: ["x"]})

    def test_env_overrides_url(self):
        os.environ[URL_ENV_VAR] = "ws://override/ws/"
        cfg = config_from_mapping({"url": "ws://from-file/ws/"})
        self.assertEqual(cfg.url, "ws://override/ws/")

    def test_load_config_reads_yaml(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = pathlib.Path(tmp) / "livetrace.yaml"
            path.write_text(
                "stream:\n"
                "  url: ws://localhost:8080/ws/\n"
                "  verify_tls: false\n"
                "  max_plot_points: 1000\n"
                "  selection:\n"
                "    1: [t, h]\n",
                encoding="utf-8",
            )
            cfg = load_config(path)
        self.assertEqual(cfg.url, "ws://localhost:8080/ws/")
        self.assertFalse(cfg.verify_tls)
        self.assertEqual(cfg.max_plot_points, 1000)
        self.assertEqual(cfg.selection, {1: ["t", "h"]})

    def test_missing_file_falls_back_to_defaults(self):
        cfg = load_config("/nonexistent/livetrace.yaml")
        self.assertEqual(cfg.url, DEFAULT_URL)

    def test_non_mapping_yaml_is_rejected(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = pathlib.Path(tmp) / "bad.yaml"
            path.write_text("- just\n- a list\n", encoding="utf-8")
            with self.assertRaises(ValueError):
                load_config(path)

    def test_unparseable_yaml_is_rejected(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = pathlib.Path(tmp) / "broken.yaml"
            path.write_text("stream: [unclosed\n", encoding="utf-8")
            with self.assertRaises(ValueError):
                load_config(path)

    def test_empty_file_gives_defaults(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = pathlib.Path(tmp) / "empty.yaml"
            path.write_text("", encoding="utf-8")
            cfg = load_config(path)
        self.assertEqual(cfg.url, DEFAULT_URL)

    def test_example_config_is_loadable(self):
        cfg = load_config(ROOT / "livetrace.example.yaml")
        self.assertTrue(cfg.selection)


if __name__ == "__main__":
    unittest.main()
