"""Structural and geometric validation of parsed KML documents."""

from __future__ import annotations

import logging
from typing import Any, Optional

from ...models.domain import ParsedDocument, Route, ValidationResult, ValidationStats
from ..geospatial import is_valid_coordinate, round_half_up

logger = logging.getLogger(__name__)

LONG_ROUTE_POINTS = 10_000
DENSE_ROUTE_POINTS = 20_000
LARGE_DOCUMENT_POINTS = 50_000
MAX_DOCUMENT_POINTS = 100_000
MAX_LISTED_INVALID_INDICES = 5


def _is_valid_point(point: Any) -> bool:
    if point is None:
        return False
    return is_valid_coordinate(getattr(point, "latitude", None), getattr(point, "longitude", None))


def _has_usable_path(route: Any) -> bool:
    path = getattr(route, "path", None)
    return isinstance(path, (list, tuple)) and len(path) >= 2


def _check_structure(document: Optional[ParsedDocument], result: ValidationResult) -> bool:
    """Return False when the document is too broken for per-route checks."""
    if document is None:
        result.errors.append("Parsed KML document is missing")
        return False
    if document.metadata is None:
        result.errors.append("KML metadata is missing")
        return False
    if not document.metadata.name or not document.metadata.name.strip():
        result.warnings.append("Document name is not set")
    if not isinstance(document.routes, (list, tuple)):
        result.errors.append("Routes collection is missing or not a list")
        return False
    if not document.routes:
        result.errors.append("No routes found in KML")
        return False
    return True


def _check_route_points(route: Route, prefix: str, result: ValidationResult) -> None:
    invalid_indices = [index for index, point in enumerate(route.path) if not _is_valid_point(point)]
    valid_points = len(route.path) - len(invalid_indices)

    if valid_points == 0:
        result.errors.append(f"{prefix}: no valid points found")
    elif invalid_indices:
        listed = ", ".join(str(i) for i in invalid_indices[:MAX_LISTED_INVALID_INDICES])
        more = "..." if len(invalid_indices) > MAX_LISTED_INVALID_INDICES else ""
        result.warnings.append(f"{prefix}: {len(invalid_indices)} invalid points (indices: {listed}{more})")

    if valid_points < 2:
        result.errors.append(f"{prefix}: fewer than 2 valid points")


def _check_routes(document: ParsedDocument, result: ValidationResult) -> None:
    for index, route in enumerate(document.routes):
        prefix = f"Route {index + 1}"
        if route is None:
            result.errors.append(f"{prefix}: route is null")
            continue
        if not route.name or not route.name.strip():
            result.warnings.append(f"{prefix}: name is missing")
        if not isinstance(route.path, (list, tuple)):
            result.errors.append(f"{prefix}: path is not a list")
            continue
        if len(route.path) < 2:
            result.errors.append(f"{prefix}: fewer than 2 points in path")
            continue

        _check_route_points(route, prefix, result)

        if len(route.path) > LONG_ROUTE_POINTS:
            result.warnings.append(
                f"{prefix}: long route ({len(route.path)} points) may cause performance problems"
            )


def _check_stops(document: ParsedDocument, result: ValidationResult) -> None:
    if not isinstance(document.stops, (list, tuple)):
        return
    for index, stop in enumerate(document.stops):
        prefix = f"Stop {index + 1}"
        if stop is None:
            result.errors.append(f"{prefix}: stop is null")
            continue
        if not stop.name or not stop.name.strip():
            result.warnings.append(f"{prefix}: name is missing")
        if not is_valid_coordinate(stop.latitude, stop.longitude):
            result.errors.append(f"{prefix}: invalid coordinates")


def _compute_stats(document: Optional[ParsedDocument]) -> ValidationStats:
    routes = list(document.routes) if document and isinstance(document.routes, (list, tuple)) else []
    stats = ValidationStats(route_count=len(routes))
    for route in routes:
        if route is not None and _has_usable_path(route):
            stats.valid_routes += 1
            stats.total_points += len(route.path)
    stats.average_points_per_route = round_half_up(stats.total_points / len(routes)) if routes else 0
    stops = document.stops if document and isinstance(document.stops, (list, tuple)) else []
    stats.stop_count = len(stops)
    return stats


def _check_size(document: Optional[ParsedDocument], result: ValidationResult) -> None:
    total_points = result.stats.total_points
    if total_points > LARGE_DOCUMENT_POINTS:
        result.warnings.append(f"Very large file ({total_points} points) may cause performance problems")
    if total_points > MAX_DOCUMENT_POINTS:
        result.errors.append(
            f"File too large ({total_points} points) exceeds the size limit of {MAX_DOCUMENT_POINTS} points"
        )

    routes = document.routes if document and isinstance(document.routes, (list, tuple)) else []
    for index, route in enumerate(routes):
        path = getattr(route, "path", None)
        if isinstance(path, (list, tuple)) and len(path) > DENSE_ROUTE_POINTS:
            result.warnings.append(
                f"Route {index + 1} is dense ({len(path)} points), consider simplification"
            )


def validate_kml(document: Optional[ParsedDocument]) -> ValidationResult:
    """Run every check and collect errors and warnings; never short-circuits between checks."""
    result = ValidationResult()

    if _check_structure(document, result):
        _check_routes(document, result)
    if document is not None:
        _check_stops(document, result)
    result.stats = _compute_stats(document)
    _check_size(document, result)

    result.is_valid = not result.errors
    return result


def validate_single_route(route: Optional[Route]) -> dict[str, Any]:
    """Validate one route in isolation; returns is_valid, errors, warnings and point stats."""
    errors: list[str] = []
    warnings: list[str] = []
    stats = {"point_count": 0, "valid_points": 0}

    if route is None:
        errors.append("Route is null")
    elif not isinstance(route.path, (list, tuple)):
        errors.append("Path is not a list")
    else:
        stats["point_count"] = len(route.path)
        if len(route.path) < 2:
            errors.append("Route has fewer than 2 points")
        else:
            stats["valid_points"] = sum(1 for point in route.path if _is_valid_point(point))
            if stats["valid_points"] < len(route.path):
                warnings.append(f"{len(route.path) - stats['valid_points']} invalid points")
            if stats["valid_points"] < 2:
                errors.append("Fewer than 2 valid points")

    return {"is_valid": not errors, "errors": errors, "warnings": warnings, "stats": stats}


def generate_validation_report(result: ValidationResult) -> str:
    lines = [
        "=== KML VALIDATION REPORT ===",
        f"Status: {'VALID' if result.is_valid else 'INVALID'}",
        "",
        "STATS:",
        f"- Routes: {result.stats.route_count}",
        f"- Valid routes: {result.stats.valid_routes}",
        f"- Total points: {result.stats.total_points}",
        f"- Points per route: {result.stats.average_points_per_route}",
        f"- Stops: {result.stats.stop_count}",
        "",
    ]
    if result.errors:
        lines.append(f"ERRORS ({len(result.errors)}):")
        lines.extend(f"{index}. {error}" for index, error in enumerate(result.errors, start=1))
        lines.append("")
    if result.warnings:
        lines.append(f"WARNINGS ({len(result.warnings)}):")
        lines.extend(f"{index}. {warning}" for index, warning in enumerate(result.warnings, start=1))
        lines.append("")
    lines.append("=== END OF REPORT ===")
    return "\n".join(lines) + "\n"
