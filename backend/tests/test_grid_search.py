import math
import unittest

from airtune.engine.optimizer.grid_search import PhasedGridSearch, grid_values
from airtune.engine.optimizer.models import FIN_COUNT, HEIGHT, NOSE_LENGTH, THICKNESS
from airtune.engine.optimizer.parameters import ParameterSet


def _params():
    params = ParameterSet()
    params.apply_physical_limits(4.0, 50.0, 4.0)
    return params


class GridValuesTests(unittest.TestCase):
    def test_bounded_range_steps_to_max(self):
        params = _params()
        param = params.update_bounds(HEIGHT, 2.0, 8.0)
        values = grid_values(param)
        self.assertEqual(values[0], 2.0)
        self.assertAlmostEqual(values[-1], 8.0)
        self.assertEqual(len(values), 11)

    def test_single_point(self):
        param = _params().update_bounds(HEIGHT, 5.0, 5.0)
        self.assertEqual(grid_values(param), [5.0])

    def test_fin_count_enumerates_integers_up_to_eight(self):
        params = _params()
        self.assertEqual(grid_values(params.get(FIN_COUNT)), [float(n) for n in range(1, 9)])
        param = params.update_bounds(FIN_COUNT, 3, 5)
        self.assertEqual(grid_values(param), [3.0, 4.0, 5.0])

    def test_one_sided_range_is_geometric(self):
        param = _params().update_bounds(NOSE_LENGTH, 10.0, None)
        values = grid_values(param)
        self.assertEqual(len(values), 5)
        self.assertEqual(values, [10.0, 20.0, 30.0, 50.0, 90.0])

    def test_unbounded_both_sides_uses_fixed_candidates(self):
        param = _params().get(NOSE_LENGTH)
        param.current_min = -math.inf
        self.assertEqual(grid_values(param), [0.1, 0.5, 1.0, 2.0, 5.0])


class PhasedGridSearchTests(unittest.TestCase):
    def test_refines_towards_minimum_and_restores_bounds(self):
        params = _params()
        height = params.update_bounds(HEIGHT, 0.0, 10.0)
        seen = []

        def objective(point):
            seen.append(float(point[0]))
            return (point[0] - 3.3) ** 2 * 10.0

        search = PhasedGridSearch(objective, [height], good_enough=1e-6)
        result = search.search()
        self.assertAlmostEqual(result.point[0], 3.3, delta=0.1)
        self.assertGreater(result.phases, 1)
        self.assertEqual((height.current_min, height.current_max), (0.0, 10.0))
        self.assertAlmostEqual(height.step, 1.0)
        self.assertTrue(all(0.0 <= value <= 10.0 for value in seen))

    def test_stops_once_good_enough(self):
        params = _params()
        height = params.update_bounds(HEIGHT, 0.0, 10.0)
        result = PhasedGridSearch(lambda p: 0.5, [height]).search()
        self.assertEqual(result.evaluations, 1)
        self.assertEqual(result.phases, 1)

    def test_enumerates_cartesian_product(self):
        params = _params()
        fins = params.update_bounds(FIN_COUNT, 3, 4)
        thickness = params.update_bounds(THICKNESS, 0.2, 0.4)
        points = []
        reports = []

        def objective(point):
            points.append(tuple(point))
            return 100.0

        PhasedGridSearch(
            objective, [fins, thickness], phases=1, progress_listener=lambda *a: reports.append(a)
        ).search()
        self.assertEqual(len(points), 2 * len(grid_values(thickness)))
        self.assertEqual(reports[-1][1], reports[-1][2])

    def test_cancellation_stops_enumeration(self):
        params = _params()
        height = params.update_bounds(HEIGHT, 0.0, 10.0)
        calls = []

        def objective(point):
            calls.append(1)
            return 100.0

        result = PhasedGridSearch(objective, [height], should_stop=lambda: len(calls) >= 3).search()
        self.assertTrue(result.stopped)
        self.assertEqual(len(calls), 3)


if __name__ == "__main__":
    unittest.main()
