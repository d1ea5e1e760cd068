"""
Data Collection Scripts

This module contains everything that turns a raw source into park candidates:
- Pydantic schemas for NPS, Recreation.gov and uploaded GeoJSON records
- Field mapping and state normalization onto the canonical candidate shape
- NPS and Recreation.gov API clients
- GeoJSON / shapefile parsing
- Mapbox geocoding
"""
