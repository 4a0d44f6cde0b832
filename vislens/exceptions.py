"""Exception hierarchy for vislens."""

from __future__ import annotations

from typing import Any


class VisLensError(Exception):
    """Base exception for all vislens errors.

    Carries the operation that failed, the target it ran against and the
    underlying cause so callers can log the failure without poking at
    engine internals.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        target: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.target = target
        self.cause = cause

    def context(self) -> dict[str, Any]:
        """Return a flat dict suitable for structured logging."""
        ctx: dict[str, Any] = {"error": type(self).__name__, "message": str(self)}
        if self.operation:
            ctx["operation"] = self.operation
        if self.target:
            ctx["target"] = self.target
        if self.cause is not None:
            ctx["cause"] = repr(self.cause)
        return ctx


class CaptureError(VisLensError):
    """Raised when a capture cannot be produced."""


class SurfaceUnavailableError(CaptureError):
    """Raised when the rendering surface is unreachable or not launched."""


class ElementNotFoundError(CaptureError):
    """Raised when a selector resolves to no visible element."""


class DiffError(VisLensError):
    """Raised when two buffers cannot be compared."""


class DimensionMismatchError(DiffError):
    """Raised when baseline and current buffers have different sizes."""

    def __init__(
        self,
        baseline_size: tuple[int, int],
        current_size: tuple[int, int],
        *,
        operation: str | None = "compare",
        target: str | None = None,
    ) -> None:
        super().__init__(
            f"Dimension mismatch: baseline {baseline_size[0]}x{baseline_size[1]}, "
            f"current {current_size[0]}x{current_size[1]}",
            operation=operation,
            target=target,
        )
        self.baseline_size = baseline_size
        self.current_size = current_size

    def context(self) -> dict[str, Any]:
        ctx = super().context()
        ctx["baseline_size"] = list(self.baseline_size)
        ctx["current_size"] = list(self.current_size)
        return ctx


class InvalidBufferError(DiffError):
    """Raised when pixel data does not match its declared dimensions."""


class StorageError(VisLensError):
    """Raised when storage operations fail."""


class BaselineWriteConflictError(StorageError):
    """Raised when a write for the same name is already in flight."""


class BaselineNotFoundError(StorageError):
    """Raised when a stored screenshot required for comparison is missing."""


class InvalidNameError(VisLensError, ValueError):
    """Raised when a test name is unsafe to use as a storage key."""


class ConfigError(VisLensError):
    """Raised when configuration is invalid."""
