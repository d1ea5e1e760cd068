"""
Unit tests for the orchestrator command line.

Logging setup is patched out so runs do not create log files; every command
uses the in-memory store.
"""

import json
import logging
from unittest.mock import patch

import pytest

from scripts.orchestrator import ReconciliationOrchestrator, build_parser, main


@pytest.fixture(autouse=True)
def quiet_logging():
    test_logger = logging.getLogger("test_orchestrator")
    targets = [
        "setup_logging",
        "setup_ingestion_logging",
        "setup_sync_logging",
        "setup_transfer_logging",
    ]
    patchers = [
        patch(f"scripts.orchestrator.{name}", return_value=test_logger) for name in targets
    ]
    for patcher in patchers:
        patcher.start()
    yield test_logger
    for patcher in patchers:
        patcher.stop()


@pytest.fixture
def geojson_file(tmp_path, sample_feature):
    path = tmp_path / "parks.geojson"
    path.write_text(
        json.dumps({"type": "FeatureCollection", "features": [sample_feature]}),
        encoding="utf-8",
    )
    return path


class TestBuildParser:
    """Test cases for argument parsing."""

    def test_ingest_file_defaults(self):
        args = build_parser().parse_args(["ingest-file", "parks.geojson"])

        assert args.command == "ingest-file"
        assert args.source_type == "agency_upload"
        assert args.geometry_policy == "repair"
        assert args.collapse_parcels is False
        assert args.database is False

    def test_quality_report_options(self):
        args = build_parser().parse_args(
            ["--database", "quality-report", "--group-by", "state", "--max-quality-score", "40"]
        )

        assert args.database is True
        assert args.group_by == "state"
        assert args.max_quality_score == 40

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_invalid_geometry_policy(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["ingest-file", "x.geojson", "--geometry-policy", "drop"])


class TestOrchestrator:
    """Test cases for ReconciliationOrchestrator operations."""

    def test_ingest_file(self, geojson_file):
        orchestrator = ReconciliationOrchestrator()

        summary = orchestrator.ingest_file(str(geojson_file), "agency_upload")

        assert summary.added == 1
        assert orchestrator.store.query()[0].state == "NC"

    def test_upload_then_process(self, geojson_file, monkeypatch, tmp_path):
        from config.settings import config

        monkeypatch.setattr(config, "STORAGE_ROOT", str(tmp_path / "bucket"))
        orchestrator = ReconciliationOrchestrator()

        orchestrator.upload(str(geojson_file), "uploads/parks.geojson")
        summary = orchestrator.process_upload(
            "uploads/parks.geojson", None, "agency_upload"
        )

        assert summary.added == 1

    def test_process_upload_logs_to_transfer_logger(
        self, geojson_file, monkeypatch, tmp_path, quiet_logging
    ):
        from config.settings import config
        from scripts.storage.job_runner import ParkFileJobRunner

        monkeypatch.setattr(config, "STORAGE_ROOT", str(tmp_path / "bucket"))
        orchestrator = ReconciliationOrchestrator()
        orchestrator.upload(str(geojson_file), "uploads/parks.geojson")

        with patch(
            "scripts.orchestrator.ParkFileJobRunner", wraps=ParkFileJobRunner
        ) as runner_cls:
            orchestrator.process_upload("uploads/parks.geojson", None, "agency_upload")

        assert runner_cls.call_args.kwargs["logger"] is quiet_logging

    def test_sync_nps_uses_client(self, sample_nps_park):
        orchestrator = ReconciliationOrchestrator()

        with patch("scripts.orchestrator.NPSClient") as client_cls:
            client_cls.return_value.iter_parks.return_value = iter([sample_nps_park])
            summary = orchestrator.sync_nps(state_code="NC")

        assert summary.added == 1
        client_cls.return_value.iter_parks.assert_called_once_with(state_code="NC")
        stored = orchestrator.store.query()[0]
        assert stored.data_source_priority == 100


class TestMain:
    """Test cases for the main entry point."""

    def test_success_exit_code(self, geojson_file):
        assert main(["ingest-file", str(geojson_file), "--state", "NC"]) == 0

    def test_pipeline_error_exit_code(self, tmp_path):
        assert main(["ingest-file", str(tmp_path / "missing.geojson")]) == 1

    def test_quality_report_runs(self):
        assert main(["quality-report", "--name-keywords", "office,depot"]) == 0
