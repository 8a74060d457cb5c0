"""Failure bookkeeping for batch runs."""

from typing import Any, Dict, List, Optional

from .protocols import LoggerProtocol


class BatchOperationContextManager:
    """
    Context manager for batch operations to collect and summarize errors.

    Per-item failures (skipped sources, aborted sources, failed exports)
    are reported with ``add_error`` while the batch keeps running; the
    summary is logged when the block exits.
    """

    def __init__(self, logger: LoggerProtocol, operation_name: str = "Batch Operation"):
        self.operation_name = operation_name
        self.errors: List[Dict[str, Any]] = []
        self.logger = logger

    def __enter__(self) -> "BatchOperationContextManager":
        self.logger.debug(f"Starting {self.operation_name}.")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type:
            self.logger.error(
                f"{self.operation_name} failed due to an unhandled exception: {exc_val}"
            )
        elif self.errors:
            self.logger.warning(
                f"{self.operation_name} completed with {len(self.errors)} error(s)."
            )
            for i, error_detail in enumerate(self.errors):
                self.logger.warning(
                    f"  Error {i + 1}/{len(self.errors)} [{error_detail['kind']}] "
                    f"for '{error_detail['item']}': {error_detail['error']}"
                )
        else:
            self.logger.debug(f"{self.operation_name} completed successfully.")
        return False

    def add_error(
        self,
        error_message: Any,
        item_identifier: str = "Unknown item",
        kind: str = "error",
    ) -> None:
        """
        Report an error for a specific item.

        Args:
            error_message: The error message or exception.
            item_identifier: The file path (and format) that failed.
            kind: ``skipped``, ``source`` or ``export``.
        """
        self.errors.append({"item": item_identifier, "error": str(error_message), "kind": kind})
        self.logger.debug(f"Error added for item '{item_identifier}' in {self.operation_name}: {error_message}")

    def count(self, kind: Optional[str] = None) -> int:
        if kind is None:
            return len(self.errors)
        return sum(1 for error in self.errors if error["kind"] == kind)
