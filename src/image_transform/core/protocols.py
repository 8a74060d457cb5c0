"""Protocol definitions for dependency injection and testability."""

from typing import Any, AsyncIterator, Dict, Optional, Protocol

from .models import ImageMetadata, OutputInfo, ResizeOptions, RotateOptions


class ImageEngineProtocol(Protocol):
    """Decode/transform/encode capability consumed by the pipeline.

    Every operation returns a new handle; callers never rely on in-place
    mutation of a handle they passed in.
    """

    def open(self, path: str) -> Any:
        """Open an image file and return a handle."""
        ...

    def metadata(self, handle: Any) -> ImageMetadata:
        """Report width, height, format and byte size of a handle."""
        ...

    def clone(self, handle: Any) -> Any:
        """Return an independent copy of a handle."""
        ...

    def keep_metadata(self, handle: Any, keep: bool = True) -> Any:
        """Return a handle that preserves (or drops) embedded metadata on write."""
        ...

    def resize(self, handle: Any, options: ResizeOptions) -> Any:
        """Resize a handle."""
        ...

    def rotate(self, handle: Any, options: RotateOptions) -> Any:
        """Rotate a handle clockwise."""
        ...

    def encode(self, handle: Any, fmt: str, options: Dict[str, Any]) -> Any:
        """Select the output encoding of a handle."""
        ...

    def write_to_file(self, handle: Any, path: str) -> OutputInfo:
        """Encode a handle to ``path``."""
        ...

    def release(self, handle: Optional[Any]) -> None:
        """Free resources held by a handle."""
        ...


class LoggerProtocol(Protocol):
    """Protocol for logging operations."""

    def debug(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log debug message."""
        ...

    def info(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log info message."""
        ...

    def warning(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log warning message."""
        ...

    def error(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log error message."""
        ...


class WatchSourceProtocol(Protocol):
    """Stream of filesystem change notifications."""

    def events(self) -> AsyncIterator[Any]:
        """Yield ``WatchEvent`` values until closed."""
        ...

    def close(self) -> None:
        """Stop producing events."""
        ...
