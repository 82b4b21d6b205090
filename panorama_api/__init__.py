"""Panorama Gallery API: upload, search, bookmark and share panorama images."""

__version__ = "1.0.0"
