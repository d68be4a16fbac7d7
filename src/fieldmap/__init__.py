"""Field route mapping core: KML zones, proximity, map state and work runs."""

__version__ = "0.1.0"
