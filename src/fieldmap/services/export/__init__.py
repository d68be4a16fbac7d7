"""Export services."""

from .geojson import linestring_to_wkt, parsed_document_to_geojson, save_geojson

__all__ = [
    "linestring_to_wkt",
    "parsed_document_to_geojson",
    "save_geojson",
]
