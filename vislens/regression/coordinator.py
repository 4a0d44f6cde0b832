"""Capture -> baseline -> diff -> cluster pipeline producing a verdict."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from vislens.diff.engine import DiffEngine
from vislens.diff.regions import RegionClusterer
from vislens.exceptions import SurfaceUnavailableError, VisLensError
from vislens.models.results import RegressionVerdict
from vislens.utils.timing import timed

if TYPE_CHECKING:
    from vislens.capture.service import CaptureService
    from vislens.models.buffer import PixelBuffer
    from vislens.models.domain import CaptureTarget, DiffOptions, FormatOptions
    from vislens.storage.artifacts import ArtifactStore
    from vislens.storage.baselines import BaselineStore

logger = structlog.get_logger(__name__)


class RegressionCoordinator:
    """Runs one baseline comparison end to end.

    Each stage either completes or the whole call fails with that stage's
    error; nothing is retried and no state is kept between calls beyond what
    the baseline store persists.
    """

    def __init__(
        self,
        capture: CaptureService | None,
        baselines: BaselineStore,
        engine: DiffEngine | None = None,
        clusterer: RegionClusterer | None = None,
        artifacts: ArtifactStore | None = None,
    ) -> None:
        self._capture = capture
        self._baselines = baselines
        self._engine = engine or DiffEngine()
        self._clusterer = clusterer or RegionClusterer()
        self._artifacts = artifacts

    async def compare_with_baseline(
        self,
        name: str,
        target: CaptureTarget | None = None,
        options: DiffOptions | None = None,
        fmt: FormatOptions | None = None,
    ) -> RegressionVerdict:
        """Capture ``target`` and compare it with the baseline stored as ``name``."""
        if self._capture is None:
            raise SurfaceUnavailableError(
                "No render surface attached", operation="compare_with_baseline", target=name
            )
        current = await self._capture.capture(target, fmt)
        if self._artifacts is not None:
            await self._artifacts.save_current(name, current)
        return await self.evaluate(name, current, options)

    async def evaluate(
        self, name: str, current: PixelBuffer, options: DiffOptions | None = None
    ) -> RegressionVerdict:
        """Compare an already captured buffer with the baseline for ``name``.

        A missing baseline is created from ``current`` and reported as no
        regression.
        """
        lookup = await self._baselines.get_or_create(name, current)
        if lookup.created:
            logger.info("regression_verdict", name=name, baseline_created=True)
            return RegressionVerdict.bootstrap()

        try:
            with timed("diff", name=name):
                diff = await asyncio.to_thread(
                    self._engine.compare, lookup.buffer, current, options, name
                )
            with timed("cluster", name=name):
                regions = await asyncio.to_thread(self._clusterer.cluster, diff.differences)
        except VisLensError as e:
            logger.warning("regression_failed", name=name, **e.context())
            raise

        verdict = RegressionVerdict(
            is_different=diff.different_pixels > 0,
            similarity_percent=diff.similarity_percent,
            total_pixels=diff.total_pixels,
            different_pixels=diff.different_pixels,
            regions=tuple(regions),
            diff_visualization=diff.diff_visualization,
        )
        if self._artifacts is not None and diff.diff_visualization is not None:
            await self._artifacts.save_diff(name, diff.diff_visualization)

        logger.info(
            "regression_verdict",
            name=name,
            is_different=verdict.is_different,
            similarity=round(verdict.similarity_percent, 2),
            different_pixels=verdict.different_pixels,
            regions=len(verdict.regions),
        )
        return verdict
