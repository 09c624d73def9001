from __future__ import annotations

import logging
import math
from typing import Any

from pyproj import Geod

logger = logging.getLogger(__name__)

_GEOD = Geod(ellps="WGS84")
BUFFER_SEGMENTS = 64
DEGENERATE_OFFSET_DEG = 0.001


def degenerate_triangle(center: tuple[float, float]) -> dict[str, Any]:
    x, y = center
    return {
        "type": "Polygon",
        "coordinates": [[[x, y], [x + DEGENERATE_OFFSET_DEG, y], [x, y + DEGENERATE_OFFSET_DEG], [x, y]]],
    }


def buffer_point(center: tuple[float, float], radius_m: float, *, segments: int = BUFFER_SEGMENTS) -> dict[str, Any]:
    """
    Approximate-area polygon: a geodesic circle of `radius_m` metres around a [lon, lat] point.

    Raises ValueError for non-finite input or a non-positive radius.
    """
    lon, lat = float(center[0]), float(center[1])
    radius = float(radius_m)
    if not all(math.isfinite(v) for v in (lon, lat, radius)):
        raise ValueError("non-finite buffer input")
    if radius <= 0:
        raise ValueError("buffer radius must be positive")
    if not (-180.0 <= lon <= 180.0 and -90.0 <= lat <= 90.0):
        raise ValueError(f"point out of range: {lon}, {lat}")

    azimuths = [360.0 * i / segments for i in range(segments)]
    lons, lats, _ = _GEOD.fwd([lon] * segments, [lat] * segments, azimuths, [radius] * segments)
    ring = [[float(x), float(y)] for x, y in zip(lons, lats)]
    ring.append(ring[0])
    return {"type": "Polygon", "coordinates": [ring]}


def safe_buffer(center: tuple[float, float], radius_m: float) -> dict[str, Any]:
    """Buffers the point, falling back to a degenerate triangle so one bad geometry never aborts a stage."""
    try:
        return buffer_point(center, radius_m)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Buffer failed for %s r=%s: %s; using degenerate triangle.", center, radius_m, exc)
        return degenerate_triangle(center)


def ring_centroid(geometry: dict[str, Any]) -> tuple[float, float]:
    """Vertex mean of a polygon's outer ring (closing vertex excluded)."""
    ring = geometry["coordinates"][0]
    pts = ring[:-1] if len(ring) > 1 and ring[0] == ring[-1] else ring
    xs = [p[0] for p in pts]
    ys = [p[1] for p in pts]
    return sum(xs) / len(xs), sum(ys) / len(ys)
