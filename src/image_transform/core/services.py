"""Service implementations tying discovery, transform and export together."""

import asyncio
import os
import stat as stat_module
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from .error_handling import BatchOperationContextManager
from .exporter import ExportService
from .job_queue import JobQueue
from .models import BatchResult, ExportReport, Profile, SourceDescriptor
from .observability import LogContext
from .pipeline import TransformJob
from .protocols import ImageEngineProtocol, LoggerProtocol, WatchSourceProtocol
from .reporting import format_report, format_size
from .sources import LocalFileDiscoveryService
from .watch import WatchBridge, WatchdogEventSource



def file_context(path: str) -> LogContext:
    """Log context shared by every line about one source file."""
    return LogContext(component="transform").with_metadata(file=path)


@dataclass
class FileOutcome:
    """What happened to one source file."""

    path: str
    reports: List[ExportReport] = field(default_factory=list)
    planned_exports: int = 0
    skipped: bool = False

    @property
    def failed_exports(self) -> int:
        return self.planned_exports - len(self.reports)


class TransformService:
    """Runs one source file through every transform action and its exports."""

    def __init__(
        self,
        engine: ImageEngineProtocol,
        exporter: ExportService,
        logger: LoggerProtocol,
    ):
        self._engine = engine
        self._exporter = exporter
        self._logger = logger

    async def describe_source(
        self, path: str, context: Optional[LogContext] = None
    ) -> Optional[Tuple[SourceDescriptor, Any]]:
        """
        Stat and open ``path``.

        Returns:
            The descriptor and opened handle, or ``None`` when ``path`` is
            not a regular file.
        """
        file_stat = await asyncio.to_thread(os.stat, path)
        if not stat_module.S_ISREG(file_stat.st_mode):
            self._logger.warning(f"Skip non file: {path}", context)
            return None

        handle = await asyncio.to_thread(self._engine.open, path)
        try:
            meta = await asyncio.to_thread(self._engine.metadata, handle)
        except Exception:
            self._engine.release(handle)
            raise

        descriptor = SourceDescriptor(
            file_path=path,
            file_extension=os.path.splitext(path)[1][1:].lower(),
            width=meta.width,
            height=meta.height,
            format=meta.format,
            byte_size=file_stat.st_size,
            stat=file_stat,
        )
        return descriptor, handle

    async def transform_file(
        self,
        path: str,
        profile: Profile,
        failures: Optional[BatchOperationContextManager] = None,
        context: Optional[LogContext] = None,
    ) -> FileOutcome:
        """
        Transform and export one file.

        Actions run in declared order, each on the result of the previous
        one; the exports of an action finish before the next action
        starts. Engine errors while opening or transforming propagate and
        abort this file only.
        """
        if context is None:
            context = file_context(path)
        outcome = FileOutcome(path=path)

        described = await self.describe_source(path, context)
        if described is None:
            outcome.skipped = True
            return outcome
        descriptor, opened = described

        self._logger.info(
            f"Transforming {path} {descriptor.format} "
            f"{descriptor.width}x{descriptor.height} {format_size(descriptor.byte_size)}",
            context,
        )

        actions = list(profile.transforms) or [None]
        base = opened
        previous: Optional[TransformJob] = None
        try:
            for action in actions:
                job = TransformJob(self._engine, descriptor, base, action)
                try:
                    handle = await job.transformed()
                finally:
                    if previous is not None:
                        previous.release()
                previous = job
                base = handle

                size = await asyncio.to_thread(self._engine.metadata, handle)
                export_jobs = self._exporter.plan_exports(
                    profile, job, (size.width, size.height)
                )
                outcome.planned_exports += len(export_jobs)
                reports = await self._exporter.run_exports(export_jobs, failures, context)
                self.log_reports(reports, context)
                outcome.reports.extend(reports)
        finally:
            if previous is not None:
                previous.release()
            self._engine.release(opened)

        return outcome

    def log_reports(
        self, reports: List[ExportReport], context: Optional[LogContext] = None
    ) -> None:
        for report in reports:
            message = format_report(report)
            if report.is_larger_than_source:
                self._logger.warning(message, context)
            else:
                self._logger.info(message, context)


class TransformOrchestrator:
    """Main orchestrator: batch runs and watch runs over a job queue."""

    def __init__(
        self,
        transform_service: TransformService,
        file_discovery: LocalFileDiscoveryService,
        logger: LoggerProtocol,
        concurrency: int = 1,
        stability_threshold: float = 2.0,
        poll_interval: float = 0.1,
    ):
        self._transform_service = transform_service
        self._file_discovery = file_discovery
        self._logger = logger
        self.concurrency = concurrency
        self.stability_threshold = stability_threshold
        self.poll_interval = poll_interval

    @property
    def file_discovery(self) -> LocalFileDiscoveryService:
        return self._file_discovery

    def create_queue(self) -> JobQueue:
        return JobQueue(self.concurrency, self._logger)

    async def process_file(
        self,
        path: str,
        profile: Profile,
        failures: BatchOperationContextManager,
        result: BatchResult,
    ) -> None:
        """Queue job body: transform one file and fold the outcome into ``result``."""
        context = file_context(path)
        try:
            outcome = await self._transform_service.transform_file(
                path, profile, failures, context
            )
        except Exception as exc:  # noqa: BLE001
            result.failed_files += 1
            failures.add_error(exc, item_identifier=path, kind="source")
            self._logger.error(f"Failed to transform {path}: {exc}", context)
            return

        if outcome.skipped:
            result.skipped_files += 1
            return
        result.processed_files += 1
        result.planned_exports += outcome.planned_exports
        result.failed_exports += outcome.failed_exports
        result.reports.extend(outcome.reports)

    async def run_batch(
        self, profile: Profile, files: Optional[List[str]] = None
    ) -> BatchResult:
        """Process every file of ``profile.source`` (or ``files``) and wait for the queue to drain."""
        start_time = time.time()
        if files is None:
            files = self._file_discovery.discover_files(profile.source)
        self._logger.info(f"Found {len(files)} file(s)")
        if not profile.export.has_exports:
            self._logger.warning("Profile requests no export format, nothing will be written")

        result = BatchResult(total_files=len(files))
        queue = self.create_queue()
        with BatchOperationContextManager(self._logger, "Transform batch") as failures:
            self._logger.info("Transforming...")
            for path in files:
                queue.add(
                    lambda path=path: self.process_file(path, profile, failures, result),
                    name=path,
                )
            await queue.on_idle()

        result.processing_time = time.time() - start_time
        self.log_summary(result)
        return result

    async def run_watch(
        self,
        profile: Profile,
        event_source: Optional[WatchSourceProtocol] = None,
        initial: bool = False,
    ) -> BatchResult:
        """
        Re-run the per-file pipeline for every matching watch event.

        Returns once ``event_source`` is exhausted or closed and the jobs
        it triggered have drained.
        """
        if event_source is None:
            event_source = WatchdogEventSource(
                profile.sources,
                base_dir=self._file_discovery.base_dir,
                stability_threshold=self.stability_threshold,
                poll_interval=self.poll_interval,
                logger=self._logger,
            )

        result = BatchResult()
        queue = self.create_queue()

        def enqueue(path: str) -> None:
            result.total_files += 1
            queue.add(lambda: self.process_file(path, profile, failures, result), name=path)

        with BatchOperationContextManager(self._logger, "Watch") as failures:
            bridge = WatchBridge(enqueue, self._logger, self._file_discovery, profile.sources)
            try:
                await bridge.run(event_source.events(), initial=initial)
            finally:
                event_source.close()
            await queue.on_idle()

        return result

    def log_summary(self, result: BatchResult) -> None:
        self._logger.info("Transformed")
        message = (
            f"{result.succeeded_exports}/{result.planned_exports} exports succeeded "
            f"from {result.processed_files}/{result.total_files} file(s) "
            f"in {result.processing_time:.1f}s"
        )
        if result.has_failures:
            self._logger.warning(message)
        else:
            self._logger.info(message)
