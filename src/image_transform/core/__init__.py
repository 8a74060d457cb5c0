"""Core utilities and shared components for image-transform."""

from .exceptions import (
    ConfigurationError,
    ExportError,
    ImageProcessingError,
    ImageTransformError,
    ProfileNotFoundError,
    ProfileValidationError,
    TemplateError,
    batch_error_handler,
    with_error_handling,
)
from .logging_config import get_logger, setup_logger
from .models import (
    BatchResult,
    ExportReport,
    Profile,
    ResolvedTarget,
    RunConfig,
    SourceDescriptor,
    TransformAction,
    TransformConfig,
)
from .naming import MissingTokenPolicy, sanitize, substitute
from .paths import resolve_target

__all__ = [
    "BatchResult",
    "ExportReport",
    "Profile",
    "ResolvedTarget",
    "RunConfig",
    "SourceDescriptor",
    "TransformAction",
    "TransformConfig",
    "MissingTokenPolicy",
    "resolve_target",
    "sanitize",
    "substitute",
    "setup_logger",
    "get_logger",
    "ImageTransformError",
    "ConfigurationError",
    "ProfileNotFoundError",
    "ProfileValidationError",
    "ImageProcessingError",
    "ExportError",
    "TemplateError",
    "with_error_handling",
    "batch_error_handler",
]
