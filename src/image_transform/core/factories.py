"""Factory classes for creating configured service instances."""

from typing import Optional

from .exporter import ExportService
from .image_engine import PillowImageEngine
from .models import RunConfig
from .observability import StructuredLogger
from .protocols import ImageEngineProtocol, LoggerProtocol
from .services import TransformOrchestrator, TransformService
from .sources import LocalFileDiscoveryService


class LoggerFactory:
    """Factory for creating logger instances."""

    @staticmethod
    def create_logger(name: str = "image-transform", debug: bool = False) -> LoggerProtocol:
        return StructuredLogger(name, level="DEBUG" if debug else None)


class TransformPipelineFactory:
    """Factory for creating the complete transform pipeline."""

    @staticmethod
    def create_pipeline(
        engine: Optional[ImageEngineProtocol] = None,
        logger: Optional[LoggerProtocol] = None,
        run_config: Optional[RunConfig] = None,
    ) -> TransformOrchestrator:
        """Create a fully configured orchestrator."""
        run_config = run_config or RunConfig()

        # Create default dependencies if not provided
        if engine is None:
            engine = PillowImageEngine()
        if logger is None:
            logger = LoggerFactory.create_logger(debug=run_config.debug)

        base_dir = run_config.base_dir
        file_discovery = LocalFileDiscoveryService(logger, base_dir=base_dir)
        exporter = ExportService(engine, logger, base_dir=base_dir)
        transform_service = TransformService(engine, exporter, logger)

        return TransformOrchestrator(
            transform_service=transform_service,
            file_discovery=file_discovery,
            logger=logger,
            concurrency=run_config.concurrency,
            stability_threshold=run_config.stability_threshold,
            poll_interval=run_config.poll_interval,
        )
