import math
import unittest

from pydantic import ValidationError

from airtune.api.v1.schemas import AirframeOptimizationRequest, StabilityRange, UserSettingsModel
from airtune.core.user_settings import UserSettings


class SchemaTests(unittest.TestCase):
    def test_optimization_request_defaults(self):
        data = AirframeOptimizationRequest(ork_path="/tmp/rocket.ork")
        self.assertEqual(data.algorithm, "nelder_mead")
        self.assertEqual(data.enabled, {})
        self.assertIsNone(data.resolved_save_path())
        config = data.to_config()
        self.assertTrue(config.altitude_range.unbounded)
        self.assertTrue(config.is_enabled("height"))

    def test_optimization_request_requires_path(self):
        with self.assertRaises(ValidationError):
            AirframeOptimizationRequest(ork_path="")

    def test_target_range_order(self):
        with self.assertRaises(ValidationError):
            AirframeOptimizationRequest(ork_path="r.ork", altitude={"min": 300, "max": 200})

    def test_stability_window_must_be_open(self):
        with self.assertRaises(ValidationError):
            StabilityRange(min=1.5, max=1.5)
        self.assertEqual(StabilityRange(min=1.0, max=2.0).to_range().max, 2.0)

    def test_unknown_keys_rejected(self):
        with self.assertRaises(ValidationError):
            AirframeOptimizationRequest(ork_path="r.ork", enabled={"fin_sweep": True})
        with self.assertRaises(ValidationError):
            AirframeOptimizationRequest(ork_path="r.ork", bounds={"altitude_score": {"min": 1}})

    def test_save_targets_are_exclusive(self):
        with self.assertRaises(ValidationError):
            AirframeOptimizationRequest(ork_path="r.ork", save_path="out.ork", save_in_place=True)
        data = AirframeOptimizationRequest(ork_path="r.ork", save_in_place=True)
        self.assertEqual(data.resolved_save_path(), "r.ork")

    def test_request_to_config(self):
        data = AirframeOptimizationRequest(
            ork_path="r.ork",
            altitude={"min": 200, "max": 250},
            duration={"min": 40},
            stability={"min": 1.0, "max": 2.0},
            enabled={"fin_count": False, "stage1_parachute": True},
            algorithm="grid",
        )
        config = data.to_config()
        self.assertEqual(config.altitude_range.min, 200.0)
        self.assertTrue(math.isinf(config.duration_range.max))
        self.assertFalse(config.is_enabled("fin_count"))
        self.assertTrue(config.is_enabled("stage1_parachute"))
        self.assertEqual(config.algorithm, "grid")

    def test_request_from_user_settings(self):
        settings = UserSettings(ork_path="saved.ork", stability_min=1.0, stability_max=2.0)
        settings.entries["height"].min = 4.0
        data = AirframeOptimizationRequest.from_user_settings(settings)
        self.assertEqual(data.ork_path, "saved.ork")
        self.assertEqual(data.bounds["height"].min, 4.0)
        self.assertFalse(data.enabled["stage2_parachute"])

    def test_settings_model_round_trip(self):
        settings = UserSettings(ork_path="saved.ork", algorithm="grid")
        settings.entries["nose_length"].max = 30.0
        model = UserSettingsModel.from_settings(settings)
        self.assertEqual(model.to_settings(), settings)

    def test_settings_model_validation(self):
        with self.assertRaises(ValidationError):
            UserSettingsModel(entries={"wing_span": {"enabled": True}})
        with self.assertRaises(ValidationError):
            UserSettingsModel(entries={"height": {"min": 9, "max": 3}})


if __name__ == "__main__":
    unittest.main()
