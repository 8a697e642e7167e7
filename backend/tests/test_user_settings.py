import math
import os
import tempfile
import unittest

import yaml

from airtune.core.user_settings import (
    ENTRY_KEYS,
    SettingsEntry,
    UserSettings,
    load_user_settings,
    save_user_settings,
)
from airtune.engine.optimizer.models import PARAMETER_KEYS, STAGE_KEYS


class UserSettingsFileTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self._tmp.name, "settings.yaml")

    def tearDown(self):
        self._tmp.cleanup()

    def test_missing_file_yields_defaults(self):
        settings = load_user_settings(self.path)
        self.assertEqual(settings.ork_path, "")
        self.assertEqual(set(settings.entries), set(ENTRY_KEYS))
        self.assertTrue(all(settings.entries[key].enabled for key in PARAMETER_KEYS))
        self.assertFalse(any(settings.entries[key].enabled for key in STAGE_KEYS))

    def test_malformed_yaml_is_ignored(self):
        with open(self.path, "w", encoding="utf-8") as handle:
            handle.write("entries: [unterminated\n")
        with self.assertLogs("airtune.backend", level="WARNING"):
            settings = load_user_settings(self.path)
        self.assertEqual(settings.algorithm, "nelder_mead")

    def test_non_mapping_content_is_ignored(self):
        with open(self.path, "w", encoding="utf-8") as handle:
            handle.write("- just\n- a list\n")
        with self.assertLogs("airtune.backend", level="WARNING"):
            settings = load_user_settings(self.path)
        self.assertEqual(settings.ork_path, "")

    def test_round_trip(self):
        settings = UserSettings(ork_path="/data/rocket.ork", stability_min=1.0, stability_max=2.5)
        settings.algorithm = "grid"
        settings.entries["height"] = SettingsEntry(enabled=False, min=3.0, max=9.0)
        settings.entries["stage1_parachute"] = SettingsEntry(enabled=True)
        save_user_settings(settings, self.path)

        loaded = load_user_settings(self.path)
        self.assertEqual(loaded, settings)
        self.assertEqual(os.listdir(self._tmp.name), ["settings.yaml"])

    def test_non_numeric_bounds_are_dropped(self):
        with open(self.path, "w", encoding="utf-8") as handle:
            yaml.safe_dump(
                {
                    "stability_min": "abc",
                    "algorithm": "simulated_annealing",
                    "entries": {
                        "height": {"enabled": "false", "min": "two", "max": "8"},
                        "unknown_key": {"enabled": False},
                    },
                },
                handle,
            )
        settings = load_user_settings(self.path)
        self.assertIsNone(settings.stability_min)
        self.assertEqual(settings.algorithm, "nelder_mead")
        height = settings.entries["height"]
        self.assertFalse(height.enabled)
        self.assertIsNone(height.min)
        self.assertEqual(height.max, 8.0)
        self.assertNotIn("unknown_key", settings.entries)


class OptimizationConfigTests(unittest.TestCase):
    def test_builds_ranges_flags_and_bounds(self):
        settings = UserSettings(ork_path="saved.ork", stability_min=1.0, stability_max=2.0)
        settings.entries["altitude_score"] = SettingsEntry(min=200.0, max=250.0)
        settings.entries["duration_score"] = SettingsEntry(min=40.0)
        settings.entries["fin_count"] = SettingsEntry(enabled=False, min=3.0, max=4.0)

        config, bounds = settings.to_optimization_config()
        self.assertEqual(config.ork_path, "saved.ork")
        self.assertEqual((config.altitude_range.min, config.altitude_range.max), (200.0, 250.0))
        self.assertEqual(config.duration_range.min, 40.0)
        self.assertTrue(math.isinf(config.duration_range.max))
        self.assertEqual((config.stability_range.min, config.stability_range.max), (1.0, 2.0))
        self.assertFalse(config.is_enabled("fin_count"))
        self.assertFalse(config.is_enabled("stage1_parachute"))
        self.assertTrue(config.is_enabled("height"))
        self.assertEqual(bounds["fin_count"], (3.0, 4.0))
        self.assertEqual(bounds["height"], (None, None))
        self.assertEqual(set(bounds), set(PARAMETER_KEYS))

    def test_explicit_path_wins(self):
        config, _ = UserSettings(ork_path="saved.ork").to_optimization_config("other.ork")
        self.assertEqual(config.ork_path, "other.ork")


if __name__ == "__main__":
    unittest.main()
