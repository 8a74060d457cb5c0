"""Testing utilities and fakes for image-transform."""

from .fakes import (
    FakeHandle,
    FakeImageEngine,
    FakeLogger,
    FakeWatchSource,
    create_test_image,
)

__all__ = [
    "FakeHandle",
    "FakeImageEngine",
    "FakeLogger",
    "FakeWatchSource",
    "create_test_image",
]
