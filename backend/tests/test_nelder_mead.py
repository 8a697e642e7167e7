import unittest

import numpy as np

from airtune.engine.optimizer.nelder_mead import NelderMead


def _bowl(point):
    return float((point[0] - 3.0) ** 2 + (point[1] + 1.0) ** 2)


class NelderMeadTests(unittest.TestCase):
    def test_minimises_two_dimensional_bowl(self):
        result = NelderMead(_bowl, 2).minimize([0.0, 0.0])
        self.assertTrue(result.converged)
        self.assertLess(result.value, 1e-3)
        self.assertAlmostEqual(result.point[0], 3.0, delta=0.05)
        self.assertAlmostEqual(result.point[1], -1.0, delta=0.05)

    def test_minimises_one_dimension(self):
        result = NelderMead(lambda p: float((p[0] - 7.0) ** 2), 1).minimize([1.0])
        self.assertAlmostEqual(result.point[0], 7.0, delta=0.05)

    def test_initial_simplex_perturbs_each_axis(self):
        seen = []

        def record(point):
            seen.append(point.tolist())
            return _bowl(point)

        NelderMead(record, 2, max_iterations=0).minimize([2.0, 0.0])
        self.assertEqual(seen[0], [2.0, 0.0])
        self.assertAlmostEqual(seen[1][0], 2.1)
        self.assertEqual(seen[1][1], 0.0)
        self.assertEqual(seen[2], [2.0, 0.05])

    def test_iteration_budget_is_respected(self):
        result = NelderMead(lambda p: -float(p[0]), 1, max_iterations=10).minimize([1.0])
        self.assertFalse(result.converged)
        self.assertFalse(result.stopped)
        self.assertEqual(result.iterations, 10)

    def test_progress_is_reported_relative_to_base(self):
        reports = []
        optimizer = NelderMead(lambda p: -float(p[0]), 1, max_iterations=5)
        optimizer.set_progress_listener(lambda *args: reports.append(args), base_step=100, total_steps=300)
        optimizer.minimize([1.0])
        self.assertEqual([r[1] for r in reports], [100, 101, 102, 103, 104])
        self.assertTrue(all(r[0] == 0 and r[2] == 300 and r[3] == 1 for r in reports))

    def test_stops_when_asked(self):
        calls = []

        def objective(point):
            calls.append(1)
            return -float(point[0])

        checks = iter([False, False, True])
        optimizer = NelderMead(objective, 1, should_stop=lambda: next(checks, True))
        result = optimizer.minimize([1.0])
        self.assertTrue(result.stopped)
        self.assertEqual(result.iterations, 2)
        self.assertLess(len(calls), 10)

    def test_objective_cannot_mutate_simplex(self):
        def vandal(point):
            value = _bowl(point)
            point[:] = 1e6
            return value

        result = NelderMead(vandal, 2, max_iterations=30).minimize([0.0, 0.0])
        self.assertTrue(np.all(np.abs(result.point) < 100.0))

    def test_rejects_bad_dimensions(self):
        with self.assertRaises(ValueError):
            NelderMead(_bowl, 0)
        with self.assertRaises(ValueError):
            NelderMead(_bowl, 2).minimize([1.0])


if __name__ == "__main__":
    unittest.main()
