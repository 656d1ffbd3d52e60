from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from cell_doctor.config import ConfigError, EngineConfig, load_config, starter_config_text


class EngineConfigTests(unittest.TestCase):
    def test_defaults(self):
        config = EngineConfig()
        self.assertEqual(config.max_history_entries, 20)
        self.assertEqual(config.chunk_rows, 1000)
        self.assertEqual(config.outlier_sigma, 3.0)
        self.assertEqual(config.outlier_min_values, 4)
        self.assertEqual(config.serial_range, (1, 80_000))
        self.assertTrue(config.queue_mutations)

    def test_load_json_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "cell-doctor.json"
            path.write_text(json.dumps({"chunk_rows": 250, "outlier_sigma": 2.5}), encoding="utf-8")
            config = load_config(path, environ={})
        self.assertEqual(config.chunk_rows, 250)
        self.assertEqual(config.outlier_sigma, 2.5)
        self.assertEqual(config.max_history_entries, 20)

    def test_environment_overrides_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "cell-doctor.json"
            path.write_text(json.dumps({"chunk_rows": 250}), encoding="utf-8")
            config = load_config(
                path,
                environ={"CELL_DOCTOR_CHUNK_ROWS": "500", "CELL_DOCTOR_QUEUE_MUTATIONS": "false"},
            )
        self.assertEqual(config.chunk_rows, 500)
        self.assertFalse(config.queue_mutations)

    def test_rejections(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            tmp = Path(tmpdir)
            (tmp / "config.yaml").write_text("chunk_rows: 5\n", encoding="utf-8")
            (tmp / "list.json").write_text("[1, 2]", encoding="utf-8")
            (tmp / "unknown.json").write_text('{"colour": "blue"}', encoding="utf-8")
            (tmp / "broken.json").write_text("{", encoding="utf-8")
            (tmp / "bad_value.json").write_text('{"chunk_rows": "many"}', encoding="utf-8")
            (tmp / "zero.json").write_text('{"max_history_entries": 0}', encoding="utf-8")
            cases = {
                "config.yaml": "YAML configs are not supported yet",
                "list.json": "Config root must be a JSON object",
                "unknown.json": "Unknown config keys: colour",
                "broken.json": "Could not read config",
                "bad_value.json": "Invalid value for chunk_rows",
                "zero.json": "max_history_entries must be at least 1",
                "missing.json": "Config not found",
            }
            for name, message in cases.items():
                with self.subTest(name=name):
                    with self.assertRaises(ConfigError) as ctx:
                        load_config(tmp / name, environ={})
                    self.assertIn(message, str(ctx.exception))

    def test_bad_environment_value(self):
        with self.assertRaises(ConfigError):
            load_config(environ={"CELL_DOCTOR_QUEUE_MUTATIONS": "maybe"})

    def test_starter_config_round_trips(self):
        payload = json.loads(starter_config_text())
        self.assertEqual(EngineConfig.from_mapping(payload), EngineConfig())


if __name__ == "__main__":
    unittest.main()
