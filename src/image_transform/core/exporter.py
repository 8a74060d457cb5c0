"""Export fan-out: one export job per requested output format."""

import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .error_handling import BatchOperationContextManager
from .exceptions import ExportError, batch_error_handler
from .job_queue import Limiter
from .models import (
    FORMAT_EXTENSIONS,
    ExportReport,
    ExportSetting,
    Profile,
    ResolvedTarget,
)
from .naming import MissingTokenPolicy
from .observability import LogContext
from .paths import (
    DEFAULT_FILE_NAME_FORMAT,
    VERSIONED_FILE_NAME_FORMAT,
    PathLike,
    ensure_dir,
    resolve_target,
)
from .pipeline import TransformJob
from .protocols import ImageEngineProtocol, LoggerProtocol


@dataclass(frozen=True)
class ExportJob:
    """Encode one transformed source into one format at one path."""

    format: str
    setting: ExportSetting
    target: ResolvedTarget
    transform_job: TransformJob

    @property
    def source_file(self) -> str:
        return self.transform_job.descriptor.file_path


def template_data(
    profile: Profile,
    job: TransformJob,
    transformed_size: Optional[Tuple[int, int]] = None,
) -> Dict[str, str]:
    """Profile template data plus ``width``, ``height`` and ``label`` of the job."""
    data = dict(profile.output.file_name_data)
    width = height = ""
    resize = job.action.resize if job.action else None
    if resize is not None and resize.applies:
        if transformed_size is not None:
            width, height = str(transformed_size[0]), str(transformed_size[1])
        else:
            width = str(resize.width) if resize.width else ""
            height = str(resize.height) if resize.height else ""
    data.update(width=width, height=height, label=job.label or "")
    return data


def file_name_format(profile: Profile, data: Dict[str, str]) -> str:
    if profile.output.file_name_format:
        return profile.output.file_name_format
    return VERSIONED_FILE_NAME_FORMAT if "version" in data else DEFAULT_FILE_NAME_FORMAT


class ExportService:
    """Plans and runs the exports of transform jobs."""

    def __init__(
        self,
        engine: ImageEngineProtocol,
        logger: LoggerProtocol,
        base_dir: Optional[PathLike] = None,
        missing_tokens: MissingTokenPolicy = MissingTokenPolicy.KEEP,
    ):
        self._engine = engine
        self._logger = logger
        self._base_dir = base_dir
        self._missing_tokens = missing_tokens

    def plan_exports(
        self,
        profile: Profile,
        job: TransformJob,
        transformed_size: Optional[Tuple[int, int]] = None,
    ) -> List[ExportJob]:
        """One export job per truthy entry of ``profile.export``, in format order."""
        data = template_data(profile, job, transformed_size)
        fmt_string = file_name_format(profile, data)

        jobs: List[ExportJob] = []
        for fmt, setting in profile.export.settings().items():
            target = resolve_target(
                job.descriptor.file_path,
                ext=FORMAT_EXTENSIONS[fmt],
                dir=profile.output.dir,
                format=fmt_string,
                replace_map=profile.output.file_name_replace,
                format_data=data,
                base_dir=self._base_dir,
                missing=self._missing_tokens,
            )
            jobs.append(ExportJob(format=fmt, setting=setting, target=target, transform_job=job))
        return jobs

    async def run_export(self, export_job: ExportJob) -> ExportReport:
        """Clone the transformed handle, encode, write and report."""
        engine = self._engine
        target = export_job.target
        with batch_error_handler(ExportError):
            handle = await export_job.transform_job.tap()
            try:
                encoded = await asyncio.to_thread(
                    engine.encode, handle, export_job.format, export_job.setting.to_options()
                )
                await asyncio.to_thread(ensure_dir, target.dir)
                output = await asyncio.to_thread(engine.write_to_file, encoded, target.file)
            finally:
                engine.release(handle)

        return ExportReport(
            source_file=export_job.source_file,
            source_size=export_job.transform_job.descriptor.byte_size,
            format=export_job.format,
            output=output,
            target=target,
            label=export_job.transform_job.label,
        )

    async def run_exports(
        self,
        export_jobs: List[ExportJob],
        failures: Optional[BatchOperationContextManager] = None,
        context: Optional[LogContext] = None,
    ) -> List[ExportReport]:
        """
        Run export jobs one at a time.

        A failed job is logged and left out of the result; its siblings
        still run.
        """
        limiter = Limiter(1)

        def _guarded(export_job: ExportJob):
            async def _run() -> Optional[ExportReport]:
                try:
                    return await self.run_export(export_job)
                except Exception as exc:  # noqa: BLE001
                    self._logger.error(
                        f"Export {export_job.format} of {export_job.source_file} failed: {exc}",
                        context,
                    )
                    if failures is not None:
                        failures.add_error(
                            exc,
                            item_identifier=f"{export_job.source_file} -> {export_job.format}",
                            kind="export",
                        )
                    return None

            return _run

        results = await limiter.gather([_guarded(export_job) for export_job in export_jobs])
        return [report for report in results if report is not None]
