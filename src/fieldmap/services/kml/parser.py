"""KML parsing into routes and document metadata."""

from __future__ import annotations

import logging
import re
import time
from typing import Iterator, Optional

from lxml import etree

from ...errors import KMLParseError
from ...models.domain import DocumentMetadata, ParsedDocument, Route, Stop
from ..geospatial import parse_coordinate_block

logger = logging.getLogger(__name__)

DEFAULT_NAME = "Percorso Sconosciuto"

_ZONE_PATTERN = re.compile(r"Zona\s*(\d+)", re.IGNORECASE)
_SUBZONE_PATTERN = re.compile(r"Sottozona\s*([AB])", re.IGNORECASE)

# Entities are never resolved and the network is never touched. Content arrives
# as decoded text and is re-encoded as UTF-8, so any declared encoding is ignored.
_XML_PARSER = etree.XMLParser(
    encoding="utf-8", resolve_entities=False, no_network=True, remove_comments=True, huge_tree=True
)


def _local_name(element: etree._Element) -> str:
    if not isinstance(element.tag, str):
        return ""
    return etree.QName(element).localname


def _children(element: etree._Element, name: str) -> list[etree._Element]:
    """All direct children with the given local name, namespace ignored.

    A single child and a repeated child come back the same way: as a list.
    """
    return [child for child in element if _local_name(child) == name]


def _child_text(element: etree._Element, name: str) -> Optional[str]:
    for child in _children(element, name):
        text = (child.text or "").strip()
        if text:
            return text
    return None


def extract_zone_metadata(name: str) -> tuple[Optional[int], Optional[str]]:
    """Pull the zone number and subzone letter out of a document name like 'Zona 9 Sottozona B'."""
    zone_match = _ZONE_PATTERN.search(name or "")
    subzone_match = _SUBZONE_PATTERN.search(name or "")
    zone = int(zone_match.group(1)) if zone_match else None
    subzone = subzone_match.group(1).upper() if subzone_match else None
    return zone, subzone


def generate_route_id(name: str, point_count: int) -> str:
    clean_name = re.sub(r"[^a-zA-Z0-9]", "", name).lower()
    return f"{clean_name}_{point_count}_{int(time.time() * 1000)}"


def find_placemarks(document: etree._Element) -> Iterator[etree._Element]:
    """Yield placemarks nested one level under Folder, then those directly under Document."""
    for folder in _children(document, "Folder"):
        yield from _children(folder, "Placemark")
    yield from _children(document, "Placemark")


def parse_route(placemark: etree._Element) -> Optional[Route]:
    """Build a route from a LineString placemark, or None if it has under two valid points."""
    name = _child_text(placemark, "name") or DEFAULT_NAME
    line_strings = _children(placemark, "LineString")
    if not line_strings:
        return None
    coordinates = _child_text(line_strings[0], "coordinates")
    if not coordinates:
        logger.warning(f"Placemark '{name}' has a LineString without coordinates, skipping")
        return None

    path = parse_coordinate_block(coordinates)
    if len(path) < 2:
        logger.warning(f"Route '{name}' has fewer than 2 valid points, skipping")
        return None

    return Route(
        id=generate_route_id(name, len(path)),
        name=name,
        path=path,
        style=_child_text(placemark, "styleUrl"),
        description=_child_text(placemark, "description"),
    )


def extract_routes(document: etree._Element) -> list[Route]:
    routes = []
    for placemark in find_placemarks(document):
        route = parse_route(placemark)
        if route is not None:
            routes.append(route)
    return routes


def extract_stops(document: etree._Element) -> list[Stop]:
    """Point placemarks are not part of the current KML files; always empty."""
    return []


def parse_kml(content: str) -> ParsedDocument:
    """Parse raw KML text.

    Raises:
        KMLParseError: the text is empty, not XML, or has no kml/Document root.
    """
    if not content or not isinstance(content, str) or not content.strip():
        raise KMLParseError("KML content is empty or not text")

    try:
        root = etree.fromstring(content.strip().encode("utf-8"), parser=_XML_PARSER)
    except etree.XMLSyntaxError as exc:
        raise KMLParseError(f"KML is not well-formed XML: {exc}") from exc

    documents = _children(root, "Document") if _local_name(root) == "kml" else []
    if not documents:
        raise KMLParseError("Invalid KML structure: missing kml/Document")
    document = documents[0]

    name = _child_text(document, "name") or DEFAULT_NAME
    zone, subzone = extract_zone_metadata(name)
    metadata = DocumentMetadata(
        name=name,
        description=_child_text(document, "description") or "",
        zone=zone,
        subzone=subzone,
    )

    return ParsedDocument(
        metadata=metadata,
        routes=extract_routes(document),
        stops=extract_stops(document),
    )
