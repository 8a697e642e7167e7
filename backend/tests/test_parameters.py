import itertools
import logging
import math
import unittest

from airtune.engine.optimizer.errors import InvalidBoundsError
from airtune.engine.optimizer.models import FIN_COUNT, HEIGHT, NOSE_LENGTH, OptimizationConfig
from airtune.engine.optimizer.parameters import ParameterSet, build_bindings

from fakes import make_airframe


def _parameter_set():
    messages = []
    params = ParameterSet(log=lambda message, level=logging.INFO: messages.append((message, level)))
    params.apply_physical_limits(
        nose_base_radius_cm=4.0, body_tube_length_cm=50.0, body_tube_radius_cm=4.0
    )
    return params, messages


class PhysicalLimitTests(unittest.TestCase):
    def test_limits_derive_from_geometry(self):
        params, messages = _parameter_set()
        self.assertEqual(params.get("nose_wall_thickness").absolute_max, 4.0)
        self.assertEqual(params.get("root_chord").absolute_max, 50.0)
        self.assertEqual(params.get(HEIGHT).absolute_max, 12.0)
        self.assertTrue(math.isinf(params.get(NOSE_LENGTH).absolute_max))
        self.assertEqual(params.get(FIN_COUNT).absolute_min, 1.0)
        self.assertIn("Updated height max bound to: 12.00 cm", [m for m, _ in messages])


class UpdateBoundsTests(unittest.TestCase):
    def setUp(self):
        self.params, self.messages = _parameter_set()

    def test_intersection_and_step(self):
        param = self.params.update_bounds(HEIGHT, 2.0, 8.0)
        self.assertEqual((param.current_min, param.current_max), (2.0, 8.0))
        self.assertAlmostEqual(param.step, 0.6)

    def test_user_max_above_absolute_is_capped(self):
        param = self.params.update_bounds(HEIGHT, None, 20.0)
        self.assertEqual((param.current_min, param.current_max), (0.0, 12.0))
        self.assertAlmostEqual(param.step, 1.2)

    def test_conflict_above_collapses_to_absolute_max(self):
        param = self.params.update_bounds(HEIGHT, 15.0, 20.0)
        self.assertEqual((param.current_min, param.current_max), (12.0, 12.0))
        self.assertEqual(param.step, 0.0)
        warnings = [m for m, level in self.messages if level == logging.WARNING]
        self.assertEqual(len(warnings), 1)
        self.assertIn("Bounds conflict", warnings[0])

    def test_conflict_below_collapses_to_absolute_min(self):
        param = self.params.update_bounds(FIN_COUNT, None, 0.0)
        self.assertEqual((param.current_min, param.current_max), (1.0, 1.0))

    def test_fin_count_rounds_inwards(self):
        param = self.params.update_bounds(FIN_COUNT, 2.3, 5.7)
        self.assertEqual((param.current_min, param.current_max), (3.0, 5.0))
        self.assertEqual(param.step, 1.0)

    def test_fin_count_empty_after_rounding_collapses_to_max(self):
        param = self.params.update_bounds(FIN_COUNT, 2.3, 2.7)
        self.assertEqual((param.current_min, param.current_max), (2.0, 2.0))

    def test_min_above_max_is_rejected(self):
        with self.assertRaises(InvalidBoundsError):
            self.params.update_bounds(HEIGHT, 5.0, 3.0)

    def test_one_sided_range_uses_bounded_side_for_step(self):
        param = self.params.update_bounds(NOSE_LENGTH, 10.0, None)
        self.assertEqual(param.current_min, 10.0)
        self.assertTrue(math.isinf(param.current_max))
        self.assertAlmostEqual(param.step, 1.0)

    def test_display_name_resolves_to_key(self):
        param = self.params.update_bounds("Fin Height (cm)", 1.0, 2.0)
        self.assertEqual(param.key, HEIGHT)
        self.assertIs(self.params.get("Number of Fins"), self.params.get(FIN_COUNT))

    def test_unknown_parameter(self):
        with self.assertRaises(InvalidBoundsError):
            self.params.update_bounds("wing_span", 1.0, 2.0)

    def test_current_range_always_inside_absolute_range(self):
        candidates = [None, -5.0, 0.0, 0.5, 2.5, 7.0, 12.0, 30.0]
        for key in self.params.keys():
            for lower, upper in itertools.product(candidates, repeat=2):
                if lower is not None and upper is not None and lower > upper:
                    continue
                param = self.params.update_bounds(key, lower, upper)
                with self.subTest(key=key, lower=lower, upper=upper):
                    self.assertLessEqual(param.current_min, param.current_max)
                    self.assertGreaterEqual(param.current_min, param.absolute_min)
                    self.assertLessEqual(param.current_max, param.absolute_max)
                    if param.integer:
                        self.assertEqual(param.current_min, math.floor(param.current_min))
                        if math.isfinite(param.current_max):
                            self.assertEqual(param.current_max, math.floor(param.current_max))
                        self.assertGreaterEqual(param.step, 1.0)


class ClampTests(unittest.TestCase):
    def setUp(self):
        self.params, _ = _parameter_set()

    def test_clamp_is_idempotent(self):
        param = self.params.update_bounds(HEIGHT, 2.0, 8.0)
        for value in (-3.0, 0.0, 2.0, 5.5, 8.0, 100.0):
            once = param.clamp(value)
            self.assertTrue(2.0 <= once <= 8.0)
            self.assertEqual(param.clamp(once), once)

    def test_fin_count_clamps_to_whole_numbers(self):
        param = self.params.get(FIN_COUNT)
        for value in (-1.0, 0.4, 2.5, 3.49, 3.6, 11.2):
            clamped = param.clamp(value)
            self.assertEqual(clamped, math.floor(clamped))
            self.assertGreaterEqual(clamped, 1.0)
        self.assertEqual(param.clamp(3.6), 4.0)


class EnabledAndBindingTests(unittest.TestCase):
    def test_enabled_defaults_to_true(self):
        params, _ = _parameter_set()
        config = OptimizationConfig(enabled={HEIGHT: False})
        keys = [p.key for p in params.enabled(config)]
        self.assertNotIn(HEIGHT, keys)
        self.assertEqual(len(keys), 5)

    def test_bindings_convert_between_cm_and_m(self):
        params, _ = _parameter_set()
        airframe = make_airframe()
        bindings = build_bindings(params, airframe.fin_set(), airframe.nose_cone())
        self.assertAlmostEqual(bindings[HEIGHT].read_raw(), 6.0)
        bindings[HEIGHT].write_raw(7.5)
        self.assertAlmostEqual(airframe.fin_set().values["height"], 0.075)
        bindings[FIN_COUNT].write_raw(4.0)
        self.assertEqual(airframe.fin_set().values["fin_count"], 4)
        self.assertIsInstance(airframe.fin_set().values["fin_count"], int)
        bindings["nose_length"].write_raw(25.0)
        self.assertAlmostEqual(airframe.nose_cone().values["length"], 0.25)


if __name__ == "__main__":
    unittest.main()
