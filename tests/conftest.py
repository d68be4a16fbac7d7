from pathlib import Path

import pytest

from fieldmap.models.domain import Stop
from fieldmap.persistence.filesystem import KMLFileStorage

SAMPLE_KML = """<?xml version="1.0" encoding="UTF-8"?>
<kml xmlns="http://www.opengis.net/kml/2.2">
  <Document>
    <name>Zona 9 Sottozona B</name>
    <description>Castel San Giovanni</description>
    <Folder>
      <name>Percorsi</name>
      <Placemark>
        <name>Giro Centro</name>
        <styleUrl>#line-1</styleUrl>
        <LineString>
          <coordinates>
            9.58337,44.96544,0 9.58331,44.96552,0 9.58320,44.96570,0
          </coordinates>
        </LineString>
      </Placemark>
    </Folder>
  </Document>
</kml>
"""

OTHER_PLAN_KML = SAMPLE_KML.replace("Sottozona B", "Sottozona A").replace("Giro Centro", "Giro Stazione")


def make_stop(stop_id, lat: float, lon: float, zone: int = 9, plan: str = "B", **kwargs) -> Stop:
    return Stop(
        id=stop_id,
        zone_id=zone,
        plan=plan,
        name=kwargs.pop("name", f"Stop {stop_id}"),
        latitude=lat,
        longitude=lon,
        **kwargs,
    )


@pytest.fixture
def kml_storage(tmp_path: Path) -> KMLFileStorage:
    storage = KMLFileStorage(root=tmp_path / "kml")
    storage.write_text(9, "B", SAMPLE_KML)
    storage.write_text(9, "A", OTHER_PLAN_KML)
    return storage
