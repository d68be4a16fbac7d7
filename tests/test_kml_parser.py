import pytest

from conftest import SAMPLE_KML
from fieldmap.errors import KMLParseError
from fieldmap.services.kml.parser import (
    DEFAULT_NAME,
    extract_zone_metadata,
    generate_route_id,
    parse_kml,
)


def test_parse_kml_reads_metadata_and_routes() -> None:
    document = parse_kml(SAMPLE_KML)

    assert document.metadata.name == "Zona 9 Sottozona B"
    assert document.metadata.description == "Castel San Giovanni"
    assert document.metadata.zone == 9
    assert document.metadata.subzone == "B"
    assert len(document.routes) == 1

    route = document.routes[0]
    assert route.name == "Giro Centro"
    assert route.style == "#line-1"
    assert route.point_count == 3
    assert route.path[0].latitude == 44.96544
    assert route.path[0].longitude == 9.58337
    assert route.id.startswith("girocentro_3_")
    assert document.stops == []
    assert document.total_points == 3


def test_parse_kml_without_namespace_and_loose_placemarks() -> None:
    content = """
    <kml>
      <Document>
        <name>Zona 12 sottozona a</name>
        <Placemark>
          <LineString><coordinates>9.1,45.1 9.2,45.2</coordinates></LineString>
        </Placemark>
        <Placemark>
          <name>Single point</name>
          <LineString><coordinates>9.1,45.1</coordinates></LineString>
        </Placemark>
        <Placemark>
          <name>A point placemark</name>
          <Point><coordinates>9.1,45.1</coordinates></Point>
        </Placemark>
      </Document>
    </kml>
    """
    document = parse_kml(content)

    assert document.metadata.zone == 12
    assert document.metadata.subzone == "A"
    assert [route.name for route in document.routes] == [DEFAULT_NAME]


def test_parse_kml_folder_routes_come_before_document_routes() -> None:
    content = """
    <kml xmlns="http://www.opengis.net/kml/2.2"><Document>
      <name>Zona 9 Sottozona A</name>
      <Placemark><name>Loose</name><LineString><coordinates>9.1,45.1 9.2,45.2</coordinates></LineString></Placemark>
      <Folder><Placemark><name>In folder</name>
        <LineString><coordinates>9.1,45.1 9.2,45.2</coordinates></LineString>
      </Placemark></Folder>
    </Document></kml>
    """
    assert [route.name for route in parse_kml(content).routes] == ["In folder", "Loose"]


@pytest.mark.parametrize(
    "content",
    [
        "",
        "   ",
        "<kml><Document>",
        "<kml><Folder/></kml>",
        "<gpx><Document/></gpx>",
    ],
)
def test_parse_kml_rejects_bad_documents(content: str) -> None:
    with pytest.raises(KMLParseError):
        parse_kml(content)


def test_parse_kml_does_not_resolve_external_entities() -> None:
    content = """<?xml version="1.0"?>
    <!DOCTYPE kml [<!ENTITY secret SYSTEM "file:///etc/passwd">]>
    <kml><Document><name>&secret;</name>
      <Placemark><LineString><coordinates>9.1,45.1 9.2,45.2</coordinates></LineString></Placemark>
    </Document></kml>
    """
    document = parse_kml(content)

    assert "root:" not in document.metadata.name
    assert len(document.routes) == 1


@pytest.mark.parametrize("declared", ["ISO-8859-1", "windows-1252"])
def test_parse_kml_ignores_declared_encoding_of_decoded_text(declared: str) -> None:
    content = f"""<?xml version="1.0" encoding="{declared}"?>
    <kml xmlns="http://www.opengis.net/kml/2.2"><Document><name>Zona 9 Sottozona B - Città</name>
      <Placemark><name>Giro Università</name>
        <LineString><coordinates>9.1,45.1 9.2,45.2</coordinates></LineString></Placemark>
    </Document></kml>
    """

    document = parse_kml(content)

    assert document.metadata.name == "Zona 9 Sottozona B - Città"
    assert (document.metadata.zone, document.metadata.subzone) == (9, "B")
    assert document.routes[0].name == "Giro Università"


def test_extract_zone_metadata() -> None:
    assert extract_zone_metadata("Zona 9 Sottozona B") == (9, "B")
    assert extract_zone_metadata("zona12") == (12, None)
    assert extract_zone_metadata("Percorsi") == (None, None)


def test_generate_route_id_strips_non_alphanumerics() -> None:
    assert generate_route_id("Giro: Centro-Nord!", 42).startswith("girocentronord_42_")
