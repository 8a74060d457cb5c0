"""Custom exceptions and error handling utilities for image-transform."""

from __future__ import annotations

from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Iterator, Type, TypeVar

from .logging_config import get_logger


class ImageTransformError(Exception):
    """Base exception for all image-transform errors."""


class ConfigurationError(ImageTransformError):
    """Error raised for invalid configuration, profiles or CLI input."""


class ProfileNotFoundError(ConfigurationError):
    """Error raised when a named profile is missing from the config file."""


class ProfileValidationError(ConfigurationError):
    """Error raised when a profile fails schema validation."""


class ImageProcessingError(ImageTransformError):
    """Error raised when opening or transforming a single image fails."""


class ExportError(ImageTransformError):
    """Error raised when encoding or writing a single export fails."""


class TemplateError(ImageTransformError):
    """Error raised when a file name template references an unknown token."""


F = TypeVar("F", bound=Callable[..., Any])


def with_error_handling(func: F) -> F:
    """Wrap a function with standardized error handling."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:  # type: ignore[override]
        logger = get_logger("image-transform.engine")
        try:
            return func(*args, **kwargs)
        except ImageTransformError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.debug(f"Engine call {func.__name__} failed: {exc}", exc_info=True)
            raise ImageProcessingError(f"{func.__name__} failed: {exc}") from exc

    return wrapper  # type: ignore[return-value]


@contextmanager
def batch_error_handler(
    error_cls: Type[ImageTransformError] = ImageProcessingError,
) -> Iterator[None]:
    """Re-raise any failure inside the block as ``error_cls``, keeping the cause."""
    try:
        yield
    except error_cls:
        raise
    except Exception as exc:  # noqa: BLE001
        raise error_cls(str(exc)) from exc
