"""Connected-component clustering of differing pixels into regions."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from typing import Protocol

import structlog

from vislens.models.results import Region

logger = structlog.get_logger(__name__)

# 4-connectivity: no diagonals
_NEIGHBOURS = ((1, 0), (-1, 0), (0, 1), (0, -1))


class _Point(Protocol):
    x: int
    y: int


class RegionClusterer:
    """Groups differing pixels into bounding boxes.

    Works on the sparse set of difference coordinates only, so the cost is
    linear in the number of differing pixels rather than in image size.
    Components whose bounding box is a single pixel wide or tall are
    dropped as noise.
    """

    def cluster(self, differences: Iterable[_Point]) -> list[Region]:
        points = {(d.x, d.y) for d in differences}
        if not points:
            return []

        visited: set[tuple[int, int]] = set()
        regions: list[Region] = []
        dropped = 0

        for start in points:
            if start in visited:
                continue
            visited.add(start)
            queue = deque([start])
            min_x = max_x = start[0]
            min_y = max_y = start[1]

            while queue:
                x, y = queue.popleft()
                min_x, max_x = min(min_x, x), max(max_x, x)
                min_y, max_y = min(min_y, y), max(max_y, y)
                for dx, dy in _NEIGHBOURS:
                    neighbour = (x + dx, y + dy)
                    if neighbour in points and neighbour not in visited:
                        visited.add(neighbour)
                        queue.append(neighbour)

            width = max_x - min_x + 1
            height = max_y - min_y + 1
            if width > 1 and height > 1:
                regions.append(Region(x=min_x, y=min_y, width=width, height=height))
            else:
                dropped += 1

        regions.sort(key=lambda r: (r.y, r.x, r.height, r.width))
        logger.debug(
            "regions_clustered",
            points=len(points),
            regions=len(regions),
            dropped_as_noise=dropped,
        )
        return regions
