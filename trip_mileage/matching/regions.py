"""Regional endpoint selection for the map-matching service."""

from __future__ import annotations

import json
from typing import Any, Iterable, Mapping, Sequence, Tuple

from shapely.geometry import Point, box

from ..errors import ConfigurationError
from ..models import LatLon, ServiceRegion

Regions = Tuple[ServiceRegion, ...]

_REQUIRED_KEYS = ("name", "min_lat", "min_lon", "max_lat", "max_lon", "url")


def resolve_service_url(
    coord: LatLon, regions: Sequence[ServiceRegion], default_url: str
) -> str:
    """Return the endpoint for ``coord``.

    Regions are tested in order and the first bounding box containing the
    coordinate (edges included) wins; ``default_url`` is used when none does.
    """

    lat, lon = coord
    point = Point(lon, lat)
    for region in regions:
        if box(region.min_lon, region.min_lat, region.max_lon, region.max_lat).covers(
            point
        ):
            return region.url
    return default_url


def parse_regions(raw: str | Iterable[Mapping[str, Any]] | None) -> Regions:
    """Build an immutable region table from JSON text or decoded mappings."""

    if raw is None:
        return ()
    if isinstance(raw, str):
        if not raw.strip():
            return ()
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid region configuration: {exc}") from exc
    if not isinstance(raw, list):
        raise ConfigurationError("Region configuration must be a JSON list")
    return tuple(_parse_region(entry, index) for index, entry in enumerate(raw))


def _parse_region(entry: Any, index: int) -> ServiceRegion:
    if not isinstance(entry, Mapping):
        raise ConfigurationError(f"Region #{index} must be an object")
    missing = [key for key in _REQUIRED_KEYS if key not in entry]
    if missing:
        raise ConfigurationError(
            f"Region #{index} is missing keys: {', '.join(missing)}"
        )
    try:
        region = ServiceRegion(
            name=str(entry["name"]),
            min_lat=float(entry["min_lat"]),
            min_lon=float(entry["min_lon"]),
            max_lat=float(entry["max_lat"]),
            max_lon=float(entry["max_lon"]),
            url=str(entry["url"]).rstrip("/"),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Region #{index} has invalid bounds: {exc}") from exc
    if region.min_lat > region.max_lat or region.min_lon > region.max_lon:
        raise ConfigurationError(f"Region '{region.name}' has inverted bounds")
    if not region.url:
        raise ConfigurationError(f"Region '{region.name}' has an empty url")
    return region


__all__ = ["Regions", "parse_regions", "resolve_service_url"]
