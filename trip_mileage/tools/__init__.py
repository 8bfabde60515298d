"""Supplementary tooling around persisted trips."""

from .fix_import import import_fixes, read_fixes_csv
from .trip_map import build_trip_map, decode_route

__all__ = ["build_trip_map", "decode_route", "import_fixes", "read_fixes_csv"]
