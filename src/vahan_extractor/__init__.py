"""Vahan Vehicle Extractor - bulk vehicle data extraction through a browser session."""

__version__ = "0.1.0"
