"""Render a trip's raw fix trail and matched road route on a folium map."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence, Union

import folium
import polyline

from ..matching.matcher import POLYLINE_PRECISION
from ..models import GpsFix, LatLon, Trip

PathLike = Union[str, Path]

_FIX_COLOR = "#2c7bb6"
_ROUTE_COLOR = "#1a9641"
_START_COLOR = "#1a9641"
_END_COLOR = "#d73027"


def decode_route(encoded: Optional[str]) -> List[LatLon]:
    """Decode a polyline6 route geometry; an empty list when absent."""

    if not encoded:
        return []
    return [(float(lat), float(lon)) for lat, lon in polyline.decode(encoded, POLYLINE_PRECISION)]


def build_trip_map(
    trip: Trip,
    fixes: Sequence[GpsFix],
    *,
    output_html: Optional[PathLike] = None,
) -> folium.Map:
    """Create an interactive map for one trip.

    Args:
        trip: The persisted trip; its route geometry is drawn when present.
        fixes: The trip's fixes in trip order.
        output_html: Optional path where the rendered HTML map is saved.

    Returns:
        The :class:`folium.Map` containing the overlay.

    Raises:
        ValueError: If there is nothing to draw.
    """

    trail = [fix.coord for fix in fixes]
    route = decode_route(trip.route_geometry)
    if not trail and not route:
        raise ValueError(f"Trip {trip.id} has no fixes or route to draw")

    center = trail[0] if trail else route[0]
    folium_map = folium.Map(location=center, zoom_start=14, control_scale=True)

    if len(route) >= 2:
        folium.PolyLine(
            route,
            color=_ROUTE_COLOR,
            weight=5,
            opacity=0.8,
            tooltip=f"Matched route ({trip.road_distance_km or 0:.2f} km)",
        ).add_to(folium_map)
    if len(trail) >= 2:
        folium.PolyLine(
            trail,
            color=_FIX_COLOR,
            weight=3,
            opacity=0.6,
            dash_array="4 6",
            tooltip=f"GPS fixes ({trip.haversine_distance_km:.2f} km est.)",
        ).add_to(folium_map)
    for fix in fixes:
        folium.CircleMarker(
            location=fix.coord,
            radius=2,
            color=_FIX_COLOR,
            fill=True,
            tooltip=fix.captured_at.isoformat(),
        ).add_to(folium_map)

    start = trail[0] if trail else route[0]
    end = trail[-1] if trail else route[-1]
    for label, coord, color, stamp in (
        ("Start", start, _START_COLOR, trip.started_at),
        ("End", end, _END_COLOR, trip.ended_at),
    ):
        popup = folium.Popup(
            html=(
                f"<strong>{label}</strong> {stamp:%Y-%m-%d %H:%M:%S}<br>"
                f"{trip.classification.value}, {trip.match_status.value}"
            ),
            max_width=300,
        )
        folium.CircleMarker(
            location=coord,
            radius=7,
            color=color,
            fill=True,
            fill_color=color,
            tooltip=label,
            popup=popup,
        ).add_to(folium_map)

    if output_html is not None:
        output_path = Path(output_html)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        folium_map.save(str(output_path))

    return folium_map


__all__ = ["build_trip_map", "decode_route"]
