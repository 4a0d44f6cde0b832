"""Public API of the visual regression engine.

``VisualRegressionEngine`` wires the capture service, baseline store, diff
engine and region clusterer together and is what callers such as the CLI
embed. Every test name is validated here before it reaches storage.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from vislens.capture.service import CaptureService
from vislens.config.settings import Settings, get_settings
from vislens.diff.engine import DiffEngine
from vislens.diff.regions import RegionClusterer
from vislens.exceptions import BaselineNotFoundError, SurfaceUnavailableError
from vislens.models.domain import DiffOptions
from vislens.regression.coordinator import RegressionCoordinator
from vislens.storage.artifacts import ArtifactStore
from vislens.storage.baselines import BaselineStore
from vislens.types import ArtifactRole
from vislens.utils.sanitize import validate_name

if TYPE_CHECKING:
    from collections.abc import Sequence

    from vislens.capture.surface import RenderSurface
    from vislens.models.buffer import PixelBuffer
    from vislens.models.domain import BaselineRecord, CaptureTarget, FormatOptions
    from vislens.models.results import RegressionVerdict
    from vislens.storage.object_store import ObjectStore

logger = structlog.get_logger(__name__)


class VisualRegressionEngine:
    def __init__(
        self,
        store: ObjectStore,
        surface: RenderSurface | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        s = self._settings
        self._capture = (
            CaptureService(surface, responsive_height=s.responsive_height, settle_ms=s.settle_ms)
            if surface is not None
            else None
        )
        self._baselines = BaselineStore(store, lock_timeout=s.lock_timeout_seconds)
        self._artifacts = ArtifactStore(store)
        self._default_options = DiffOptions(
            threshold=s.threshold,
            include_anti_aliasing=s.include_anti_aliasing,
            diff_color=s.diff_color,
        )
        self._coordinator = RegressionCoordinator(
            self._capture,
            self._baselines,
            engine=DiffEngine(self._default_options),
            clusterer=RegionClusterer(),
            artifacts=self._artifacts if s.save_artifacts else None,
        )

    @property
    def baselines(self) -> BaselineStore:
        return self._baselines

    @property
    def artifacts(self) -> ArtifactStore:
        return self._artifacts

    def _require_capture(self, operation: str) -> CaptureService:
        if self._capture is None:
            raise SurfaceUnavailableError("No render surface attached", operation=operation)
        return self._capture

    async def take_screenshot(
        self,
        target: CaptureTarget | None = None,
        fmt: FormatOptions | None = None,
        name: str | None = None,
    ) -> PixelBuffer:
        """Capture the target; with ``name`` also store it as a current screenshot."""
        if name is not None:
            validate_name(name)
        buffer = await self._require_capture("take_screenshot").capture(target, fmt)
        if name is not None:
            await self._artifacts.save_current(name, buffer)
        return buffer

    async def take_responsive_screenshots(
        self,
        target: CaptureTarget | None = None,
        breakpoints: Sequence[int] | None = None,
        fmt: FormatOptions | None = None,
        name: str | None = None,
    ) -> dict[int, PixelBuffer]:
        """Capture at each breakpoint; with ``name`` store each as ``<name>_<width>px``."""
        if name is not None:
            validate_name(name)
        widths = list(breakpoints) if breakpoints is not None else list(self._settings.breakpoints)
        shots = await self._require_capture("take_responsive_screenshots").capture_responsive(
            target, widths, fmt
        )
        if name is not None:
            for width, buffer in shots.items():
                await self._artifacts.save_current(f"{name}_{width}px", buffer)
        return shots

    async def compare_with_baseline(
        self,
        name: str,
        target: CaptureTarget | None = None,
        options: DiffOptions | None = None,
    ) -> RegressionVerdict:
        validate_name(name)
        self._require_capture("compare_with_baseline")
        return await self._coordinator.compare_with_baseline(
            name, target, options or self._default_options
        )

    async def compare_screenshots(
        self,
        baseline_name: str,
        current_name: str,
        options: DiffOptions | None = None,
    ) -> RegressionVerdict:
        """Compare a stored current screenshot with a stored baseline.

        A missing baseline is bootstrapped from the current screenshot.
        """
        validate_name(baseline_name)
        validate_name(current_name)
        current = await self._artifacts.load(ArtifactRole.CURRENT, current_name)
        if current is None:
            raise BaselineNotFoundError(
                f"Current screenshot not found: {current_name}",
                operation="compare_screenshots",
                target=current_name,
            )
        return await self._coordinator.evaluate(
            baseline_name, current, options or self._default_options
        )

    async def update_baseline(
        self, name: str, target: CaptureTarget | None = None
    ) -> BaselineRecord:
        """Capture the target and make it the new baseline for ``name``."""
        validate_name(name)
        buffer = await self._require_capture("update_baseline").capture(target)
        return await self._baselines.update(name, buffer)

    async def get_baseline(self, name: str) -> PixelBuffer | None:
        validate_name(name)
        return await self._baselines.get(name)

    async def list_baselines(self) -> list[str]:
        return sorted(await self._baselines.list_names())

    async def delete_baseline(self, name: str) -> bool:
        validate_name(name)
        return await self._baselines.delete(name)

    async def list_screenshots(self) -> dict[str, list[str]]:
        """Names stored in each namespace."""
        return {
            str(ArtifactRole.BASELINE): await self.list_baselines(),
            str(ArtifactRole.CURRENT): await self._artifacts.list_names(ArtifactRole.CURRENT),
            str(ArtifactRole.DIFF): await self._artifacts.list_names(ArtifactRole.DIFF),
        }

    async def delete_screenshot(
        self, name: str, role: ArtifactRole | str = ArtifactRole.CURRENT
    ) -> bool:
        validate_name(name)
        try:
            role = ArtifactRole(role)
        except ValueError:
            raise ValueError(
                f"Invalid type: {role}. Use 'baseline', 'current', or 'diff'."
            ) from None
        if role is ArtifactRole.BASELINE:
            return await self._baselines.delete(name)
        return await self._artifacts.delete(role, name)
