"""KML parsing, validation and load coordination."""

from .parser import parse_kml
from .service import KMLService
from .validator import generate_validation_report, validate_kml, validate_single_route

__all__ = [
    "parse_kml",
    "validate_kml",
    "validate_single_route",
    "generate_validation_report",
    "KMLService",
]
