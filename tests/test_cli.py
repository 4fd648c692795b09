"""
Tests for the command line runner (argument parsing and exit codes).
"""
import unittest
import sys
import os
import tempfile
from datetime import timedelta
from unittest.mock import AsyncMock, patch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from cli import ingest_cli
from config import config
from fakes import FakeProvider
from exceptions import APIConfigurationError, QuotaExceededError

NO_ENV = ["--env-file", os.path.join(os.path.dirname(__file__), "missing.env")]


class TestParser(unittest.TestCase):

    def test_import_arguments(self):
        args = ingest_cli.build_parser().parse_args(["--no-pacing", "import", "@TrailTales", "-n", "7"])
        self.assertEqual((args.command, args.channel, args.count), ("import", "@TrailTales", 7))
        self.assertTrue(args.no_pacing)

    def test_retry_defaults_to_failed_only(self):
        args = ingest_cli.build_parser().parse_args(["retry", "v1", "v2"])
        self.assertEqual(args.video_ids, ["v1", "v2"])
        self.assertEqual(args.mode, "failed_only")

    def test_retry_rejects_unknown_mode(self):
        with self.assertRaises(SystemExit):
            ingest_cli.build_parser().parse_args(["retry", "v1", "--mode", "everything"])


class TestBuildServices(unittest.TestCase):
    """Services are built from the configuration as reloaded from the environment."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.addCleanup(vars(config).update, dict(vars(config)))
        env = patch.dict(os.environ, {"STATS_STALE_AFTER_HOURS": "1", "EXTRACTION_TIMEOUT_SECONDS": "5",
                                      "MAX_IMPORT_COUNT": "20"})
        env.start()
        self.addCleanup(env.stop)
        config.load_from_env()

    def build(self, *argv):
        store = os.path.join(self.tmp.name, "videos.json")
        args = ingest_cli.build_parser().parse_args(["--store", store, *argv])
        return ingest_cli.build_services(args, provider=FakeProvider())

    def test_environment_overrides_reach_services(self):
        pipeline = self.build("refresh-stats")
        self.assertEqual(pipeline.stats_refresher.stale_after, timedelta(hours=1))
        self.assertEqual(pipeline.extractor.timeout_seconds, 5.0)
        self.assertEqual(pipeline.orchestrator.max_import_count, 20)
        self.assertIs(pipeline.orchestrator.extractor, pipeline.extractor)

    def test_no_pacing_policy(self):
        pipeline = self.build("--no-pacing", "import", "@TrailTales")
        self.assertEqual(pipeline.orchestrator.policy, ingest_cli.PacingPolicy.immediate())


class TestExitCodes(unittest.TestCase):

    def run_main(self, outcome):
        with patch.object(ingest_cli, "run_command", AsyncMock(side_effect=outcome)), \
                patch.object(ingest_cli, "setup_logging_from_env"):
            return ingest_cli.main(NO_ENV + ["refresh-stats"])

    def test_success(self):
        self.assertEqual(self.run_main([ingest_cli.EXIT_OK]), ingest_cli.EXIT_OK)

    def test_quota(self):
        self.assertEqual(self.run_main(QuotaExceededError()), ingest_cli.EXIT_QUOTA)

    def test_systemic_failure(self):
        self.assertEqual(self.run_main(APIConfigurationError("no key")), ingest_cli.EXIT_ERROR)


if __name__ == '__main__':
    unittest.main()
