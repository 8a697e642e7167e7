import unittest

from airtune.core.config import Settings
from airtune.services.airframe_optimization import (
    LOG_TAIL_LINES,
    JobProgressReporter,
    inspect_airframe,
    run_airframe_optimization,
)

from fakes import FakeCatalog, FakeParachute, FakePreset, FakeRepository, FakeSimulator, FakeStability, make_airframe


def _settings() -> Settings:
    return Settings(
        env="test",
        postgres_dsn="",
        redis_url="redis://localhost:6379/0",
        jar_dir="",
        openrocket_jar="",
        ork_upload_dir="",
        user_settings_path="",
        cors_origins=["*"],
        celery_task_soft_time_limit=60,
        celery_task_time_limit=120,
        simulation_timeout_ms=1000,
        simulation_attempts=2,
        simulation_backoff_ms=0,
        progress_flush_interval_s=0.0,
    )


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class StubController:
    def __init__(self):
        self.cancels = 0

    def cancel(self):
        self.cancels += 1


class JobProgressReporterTests(unittest.TestCase):
    def test_flushes_are_throttled(self):
        clock = FakeClock()
        flushed = []
        reporter = JobProgressReporter(flush=flushed.append, interval_s=1.0, clock=clock)

        reporter.on_progress(0, 1, 10, 1)
        clock.now = 0.5
        reporter.on_progress(0, 2, 10, 1)
        clock.now = 1.2
        reporter.on_progress(0, 3, 10, 1)
        self.assertEqual([doc["current"] for doc in flushed], [1, 3])
        self.assertAlmostEqual(flushed[-1]["fraction"], 0.3)

        reporter.flush(force=True)
        self.assertEqual(len(flushed), 3)

    def test_snapshot_collects_hooks(self):
        reporter = JobProgressReporter()
        hooks = reporter.hooks()
        hooks.log("first\nsecond")
        hooks.status("height=5.00 Err=0.00")
        hooks.interim({"apogee": 230.0})
        for index in range(LOG_TAIL_LINES + 5):
            reporter.on_log(f"line {index}")
        snapshot = reporter.snapshot()
        self.assertEqual(snapshot["status"], "height=5.00 Err=0.00")
        self.assertEqual(snapshot["interim"], {"apogee": 230.0})
        self.assertEqual(len(snapshot["log_tail"]), LOG_TAIL_LINES)
        self.assertEqual(snapshot["log_tail"][-1], f"line {LOG_TAIL_LINES + 4}")

    def test_cancel_poll_cancels_controller_once(self):
        controller = StubController()
        requested = iter([False, True, True])
        reporter = JobProgressReporter(should_cancel=lambda: next(requested), interval_s=0.0)
        reporter.bind(controller)
        for step in range(3):
            reporter.on_progress(0, step, 3, 1)
        self.assertTrue(reporter.cancel_requested)
        self.assertEqual(controller.cancels, 1)


class RunAirframeOptimizationTests(unittest.TestCase):
    def setUp(self):
        self.airframe = make_airframe()
        self.repository = FakeRepository(self.airframe)
        self.collaborators = (self.repository, FakeSimulator(), FakeStability(), FakeCatalog())
        self.params = {
            "ork_path": "rocket.ork",
            "altitude": {"min": 200, "max": 250},
            "duration": {"min": 40, "max": 45},
            "stability": {"min": 1.0, "max": 2.0},
            "bounds": {"height": {"min": 4, "max": 8}},
            "save_path": "rocket-optimized.ork",
        }

    def test_run_reports_and_saves(self):
        flushed = []
        reporter = JobProgressReporter(flush=flushed.append, interval_s=0.0)
        result = run_airframe_optimization(
            self.params, reporter=reporter, collaborators=self.collaborators, settings=_settings()
        )
        self.assertEqual(result["state"], "completed")
        self.assertTrue(result["improved"])
        self.assertEqual(result["best_values"]["total_score"], 0.0)
        self.assertAlmostEqual(result["initial_values"]["height"], 6.0)
        self.assertEqual(result["saved_path"], "rocket-optimized.ork")
        self.assertEqual(self.repository.saved[0][1], "rocket-optimized.ork")
        self.assertEqual(result["combinations"], 1)
        self.assertEqual(flushed[-1]["fraction"], 1.0)
        self.assertIn("=== Optimization Complete ===", "\n".join(flushed[-1]["log_tail"]))

    def test_cancel_request_stops_run_without_saving(self):
        reporter = JobProgressReporter(should_cancel=lambda: True, interval_s=0.0)
        result = run_airframe_optimization(
            self.params, reporter=reporter, collaborators=self.collaborators, settings=_settings()
        )
        self.assertEqual(result["state"], "cancelled")
        self.assertFalse(result["improved"])
        self.assertEqual(result["best_values"], {})
        self.assertIsNone(result["saved_path"])
        self.assertEqual(self.repository.saved, [])
        self.assertAlmostEqual(self.airframe.fin_set().values["height"], 0.06)

    def test_cancel_arriving_after_completion_still_saves(self):
        polls = []

        def late_cancel():
            polls.append(1)
            return len(polls) >= 2

        reporter = JobProgressReporter(should_cancel=late_cancel, interval_s=3600.0)
        params = dict(self.params, save_path="out.ork")
        result = run_airframe_optimization(
            params, reporter=reporter, collaborators=self.collaborators, settings=_settings()
        )
        self.assertEqual(len(polls), 2)
        self.assertTrue(reporter.cancel_requested)
        self.assertEqual(result["state"], "completed")
        self.assertTrue(result["improved"])
        self.assertEqual(result["best_values"]["total_score"], 0.0)
        self.assertEqual(result["saved_path"], "out.ork")
        self.assertEqual(self.repository.saved[0][1], "out.ork")

    def test_invalid_request_is_rejected(self):
        with self.assertRaises(ValueError):
            run_airframe_optimization(
                {"ork_path": "rocket.ork", "enabled": {"wing_span": True}},
                collaborators=self.collaborators,
                settings=_settings(),
            )


class InspectAirframeTests(unittest.TestCase):
    def test_reports_parameters_and_stages(self):
        airframe = make_airframe([FakeParachute(FakePreset("A"))])
        collaborators = (FakeRepository(airframe), FakeSimulator(), FakeStability(), FakeCatalog(["A"]))
        info = inspect_airframe("rocket.ork", collaborators=collaborators)
        by_key = {param["key"]: param for param in info["parameters"]}
        self.assertAlmostEqual(by_key["root_chord"]["initial_value"], 10.0)
        self.assertEqual(by_key["height"]["absolute_max"], 12.0)
        self.assertIsNone(by_key["thickness"]["absolute_max"])
        self.assertTrue(by_key["fin_count"]["integer"])
        self.assertEqual(
            info["parachute_stages"],
            [{"stage": 1, "present": True, "name": "A"}, {"stage": 2, "present": False, "name": ""}],
        )


if __name__ == "__main__":
    unittest.main()
