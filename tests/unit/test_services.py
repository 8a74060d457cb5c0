"""Unit tests for service implementations."""

import asyncio
import os
import threading

import pytest

from image_transform.core.error_handling import BatchOperationContextManager
from image_transform.core.exporter import ExportService
from image_transform.core.factories import TransformPipelineFactory
from image_transform.core.models import BatchResult, Profile, RunConfig
from image_transform.core.services import TransformOrchestrator, TransformService
from image_transform.core.sources import LocalFileDiscoveryService
from image_transform.testing.fakes import FakeImageEngine, FakeLogger, FakeWatchSource


def _make_source(directory, name, size=10_000):
    path = directory / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\0" * size)
    return str(path)


@pytest.fixture
def engine():
    return FakeImageEngine()


@pytest.fixture
def logger():
    return FakeLogger()


class _InFlightEngine(FakeImageEngine):
    """Tracks how many exports are between encode and write, per source."""

    def __init__(self):
        super().__init__()
        self._active = {}
        self.peak_per_source = {}
        self.peak_total = 0
        self._track = threading.Lock()

    def encode(self, handle, fmt, options):
        with self._track:
            self._active[handle.path] = self._active.get(handle.path, 0) + 1
            self.peak_per_source[handle.path] = max(
                self.peak_per_source.get(handle.path, 0), self._active[handle.path]
            )
            self.peak_total = max(self.peak_total, sum(self._active.values()))
        return super().encode(handle, fmt, options)

    def write_to_file(self, handle, path):
        try:
            return super().write_to_file(handle, path)
        finally:
            with self._track:
                self._active[handle.path] -= 1


def _orchestrator(engine, logger, base_dir, concurrency=1):
    run_config = RunConfig(concurrency=concurrency, base_dir=base_dir, stability_threshold=0)
    return TransformPipelineFactory.create_pipeline(engine=engine, logger=logger, run_config=run_config)


class TestTransformService:
    """Tests for TransformService.transform_file."""

    def _service(self, engine, logger):
        return TransformService(engine, ExportService(engine, logger), logger)

    def test_single_action_single_export(self, engine, logger, tmp_path):
        source = _make_source(tmp_path / "images", "photo.jpg")
        engine.register_image(source, 800, 600)
        profile = Profile.model_validate(
            {"transforms": [{"resize": {"width": 400}}], "export": {"webp": True}}
        )

        outcome = asyncio.run(self._service(engine, logger).transform_file(source, profile))

        (report,) = outcome.reports
        assert report.output_path == os.path.join(str(tmp_path / "images"), "photo.webp")
        assert (report.output.width, report.output.height) == (400, 300)
        assert outcome.planned_exports == 1
        assert outcome.failed_exports == 0
        assert any(message.startswith("Transforming ") for message in logger.messages("INFO"))

    def test_actions_are_cumulative_and_each_exports(self, engine, logger, tmp_path):
        """Each action works on the previous result and gets its own exports."""
        source = _make_source(tmp_path, "photo.jpg")
        engine.register_image(source, 800, 600)
        profile = Profile.model_validate(
            {
                "transforms": [
                    {"label": "half", "resize": {"width": 400}},
                    {"label": "turned", "rotate": {"angle": 90}},
                ],
                "export": {"jpeg": True},
                "output": {"fileNameFormat": "{name}-{label}"},
            }
        )

        outcome = asyncio.run(self._service(engine, logger).transform_file(source, profile))

        assert [report.label for report in outcome.reports] == ["half", "turned"]
        assert [os.path.basename(report.output_path) for report in outcome.reports] == [
            "photo-half.jpg",
            "photo-turned.jpg",
        ]
        assert (outcome.reports[1].output.width, outcome.reports[1].output.height) == (300, 400)
        assert engine.call_count("open") == 1

    def test_all_handles_released(self, engine, logger, tmp_path):
        source = _make_source(tmp_path, "photo.jpg")
        engine.register_image(source, 800, 600)
        profile = Profile.model_validate(
            {
                "transforms": [{"resize": {"width": 400}}, {"rotate": {"angle": 180}}],
                "export": {"jpeg": True, "png": True},
            }
        )

        asyncio.run(self._service(engine, logger).transform_file(source, profile))

        assert engine.created == len(engine.released)

    def test_directory_is_skipped(self, engine, logger, tmp_path):
        (tmp_path / "folder.jpg").mkdir()
        profile = Profile.model_validate({"export": {"jpeg": True}})

        outcome = asyncio.run(
            self._service(engine, logger).transform_file(str(tmp_path / "folder.jpg"), profile)
        )

        assert outcome.skipped
        assert engine.calls == []
        (warning,) = logger.get_logs("WARNING")
        assert warning["message"].startswith("Skip non file")
        assert warning["file"] == str(tmp_path / "folder.jpg")

    def test_file_lines_share_one_correlation_id(self, engine, logger, tmp_path):
        """Progress, report and export error lines of one file carry its context."""
        source = _make_source(tmp_path, "photo.jpg")
        engine.register_image(source, 80, 60)
        engine.set_format_failure("webp")
        profile = Profile.model_validate({"export": {"jpeg": True, "webp": True}})

        asyncio.run(self._service(engine, logger).transform_file(source, profile))

        logs = logger.get_logs()
        transforming = [log for log in logs if log["message"].startswith("Transforming ")]
        output_prefix = os.path.join(str(tmp_path), "photo.")
        reports = [log for log in logs if log["message"].startswith(output_prefix)]
        errors = logger.get_logs("ERROR")
        assert len(transforming) == 1 and len(reports) == 1 and len(errors) == 1
        for log in transforming + reports + errors:
            assert log["file"] == source
            assert log["correlation_id"] == transforming[0]["correlation_id"]

    def test_larger_output_logs_warning(self, engine, logger, tmp_path):
        source = _make_source(tmp_path, "tiny.jpg", size=10)
        engine.register_image(source, 100, 100)
        profile = Profile.model_validate({"export": {"png": True}})

        asyncio.run(self._service(engine, logger).transform_file(source, profile))

        assert any("tiny.png" in message for message in logger.messages("WARNING"))


class TestTransformOrchestrator:
    """Tests for TransformOrchestrator."""

    def test_run_batch_counts(self, engine, logger, tmp_path):
        good = _make_source(tmp_path, "good.jpg")
        _make_source(tmp_path, "broken.jpg")
        engine.register_image(good, 80, 60)
        (tmp_path / "dir.jpg").mkdir()
        profile = Profile.model_validate(
            {"source": ["good.jpg", "broken.jpg", "dir.jpg", "missing.jpg"], "export": {"jpeg": True}}
        )

        result = asyncio.run(_orchestrator(engine, logger, tmp_path).run_batch(profile))

        assert result.total_files == 4
        assert result.processed_files == 1
        assert result.skipped_files == 1
        assert result.failed_files == 2
        assert result.succeeded_exports == 1
        assert result.has_failures
        assert "Found 4 file(s)" in logger.messages("INFO")
        assert "Transformed" in logger.messages("INFO")
        assert any("1/1 exports succeeded" in message for message in logger.messages("WARNING"))

    def test_partial_export_failure_still_completes(self, engine, logger, tmp_path):
        source = _make_source(tmp_path, "photo.jpg")
        engine.register_image(source, 80, 60)
        engine.set_format_failure("webp")
        profile = Profile.model_validate(
            {"source": "photo.jpg", "export": {"jpeg": True, "webp": True}}
        )

        result = asyncio.run(_orchestrator(engine, logger, tmp_path).run_batch(profile))

        assert [report.format for report in result.reports] == ["jpeg"]
        assert result.planned_exports == 2
        assert result.failed_exports == 1
        assert result.processed_files == 1
        assert "Transformed" in logger.messages("INFO")

    def test_no_exports_warns(self, engine, logger, tmp_path):
        source = _make_source(tmp_path, "photo.jpg")
        engine.register_image(source, 80, 60)
        profile = Profile.model_validate({"source": "photo.jpg", "export": {}})

        result = asyncio.run(_orchestrator(engine, logger, tmp_path).run_batch(profile))

        assert result.reports == []
        assert not result.has_failures
        assert any("no export format" in message for message in logger.messages("WARNING"))

    def test_concurrency_is_bounded(self, engine, logger, tmp_path):
        engine.delay_seconds = 0.02
        names = [f"p{i}.jpg" for i in range(6)]
        for name in names:
            engine.register_image(_make_source(tmp_path, name), 10, 10)
        profile = Profile.model_validate({"source": "*.jpg", "export": {"jpeg": True}})
        orchestrator = _orchestrator(engine, logger, tmp_path, concurrency=3)

        active = {"now": 0, "peak": 0}
        original = orchestrator.process_file

        async def tracked(*args, **kwargs):
            active["now"] += 1
            active["peak"] = max(active["peak"], active["now"])
            try:
                await original(*args, **kwargs)
            finally:
                active["now"] -= 1

        orchestrator.process_file = tracked
        result = asyncio.run(orchestrator.run_batch(profile))

        assert result.processed_files == 6
        assert active["peak"] == 3

    def test_exports_of_one_source_run_one_at_a_time(self, logger, tmp_path):
        """Sources run side by side, but each source encodes and writes serially."""
        engine = _InFlightEngine()
        engine.delay_seconds = 0.02
        for name in ("a.jpg", "b.jpg"):
            engine.register_image(_make_source(tmp_path, name), 40, 30)
        profile = Profile.model_validate(
            {"source": "*.jpg", "export": {"jpeg": True, "png": True, "webp": True}}
        )

        result = asyncio.run(
            _orchestrator(engine, logger, tmp_path, concurrency=2).run_batch(profile)
        )

        assert result.succeeded_exports == 6
        assert engine.peak_per_source == {
            str(tmp_path / "a.jpg"): 1,
            str(tmp_path / "b.jpg"): 1,
        }
        assert engine.peak_total == 2

    def test_run_watch_processes_every_event(self, engine, logger, tmp_path):
        source = _make_source(tmp_path, "photo.jpg")
        engine.register_image(source, 80, 60)
        profile = Profile.model_validate({"source": "*.jpg", "export": {"png": True}})
        events = FakeWatchSource(
            [("change", source), ("change", source), ("unlink", source)]
        )

        result = asyncio.run(
            _orchestrator(engine, logger, tmp_path).run_watch(profile, events, initial=True)
        )

        assert result.total_files == 3
        assert result.processed_files == 3
        assert events.closed

    def test_process_file_records_source_failure(self, engine, logger, tmp_path):
        orchestrator = _orchestrator(engine, logger, tmp_path)
        profile = Profile.model_validate({"export": {"jpeg": True}})

        async def run():
            batch = BatchResult()
            with BatchOperationContextManager(logger, "t") as failures:
                await orchestrator.process_file(str(tmp_path / "nope.jpg"), profile, failures, batch)
            return batch, failures

        result, failures = asyncio.run(run())

        assert result.failed_files == 1
        assert failures.count("source") == 1
        (error,) = logger.get_logs("ERROR")
        assert "nope.jpg" in error["message"]
        assert error["file"] == str(tmp_path / "nope.jpg")
        assert error["correlation_id"]


class TestFactory:
    """Tests for TransformPipelineFactory."""

    def test_creates_orchestrator_with_run_config(self, tmp_path):
        orchestrator = TransformPipelineFactory.create_pipeline(
            engine=FakeImageEngine(),
            logger=FakeLogger(),
            run_config=RunConfig(concurrency=5, base_dir=tmp_path),
        )
        assert isinstance(orchestrator, TransformOrchestrator)
        assert orchestrator.concurrency == 5
        assert isinstance(orchestrator.file_discovery, LocalFileDiscoveryService)
        assert orchestrator.file_discovery.base_dir == tmp_path

    def test_defaults(self):
        orchestrator = TransformPipelineFactory.create_pipeline()
        assert orchestrator.concurrency == 1
