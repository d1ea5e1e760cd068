"""
Parse uploaded park boundary files into GeoJSON feature dictionaries.

Supported inputs:
- .geojson / .json: a FeatureCollection or a single Feature
- .zip: an archive holding a shapefile (.shp, .shx, .dbf and ideally .prj)
- .shp: a shapefile with its sidecar files next to it

Shapefiles are read with geopandas and reprojected to EPSG:4326 when they
declare another CRS. Any unreadable file, or one with zero features, raises
FileParseError; everything per-feature is left to the ingestion pipeline.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import geopandas as gpd
from pydantic import ValidationError

from config.settings import config
from scripts.collectors.park_schemas import GeoJSONFeatureCollection

logger = logging.getLogger(__name__)

GEOJSON_SUFFIXES = {".geojson", ".json"}
SHAPEFILE_SUFFIXES = {".zip", ".shp"}


class FileParseError(Exception):
    """Raised when an uploaded file cannot be parsed or holds no features."""


def _parse_geojson(path: Path) -> list[dict[str, Any]]:
    try:
        with path.open(encoding="utf-8") as f:
            document = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise FileParseError(f"Failed to read GeoJSON file {path.name}: {e}") from e

    if not isinstance(document, dict):
        raise FileParseError(f"GeoJSON file {path.name} must contain a JSON object")

    try:
        collection = GeoJSONFeatureCollection(**document)
    except ValidationError as e:
        raise FileParseError(f"Invalid GeoJSON in {path.name}: {e}") from e

    return collection.iter_features()


def _parse_shapefile(path: Path) -> list[dict[str, Any]]:
    try:
        gdf = gpd.read_file(path)
    except Exception as e:  # GDAL/pyogrio raise a variety of error types
        raise FileParseError(
            f"Failed to parse shapefile {path.name}: {e}. Shapefiles require .shp, "
            ".shx and .dbf files; upload them together as a ZIP archive."
        ) from e

    if gdf.crs is None:
        logger.warning(f"{path.name} has no CRS; assuming {config.DEFAULT_CRS}")
    elif gdf.crs.to_string() != config.DEFAULT_CRS:
        logger.info(f"Reprojecting {path.name} from {gdf.crs.to_string()} to {config.DEFAULT_CRS}")
        gdf = gdf.to_crs(config.DEFAULT_CRS)

    # to_json yields plain lists and nulls, which the geometry pipeline expects
    return json.loads(gdf.to_json(na="null", drop_id=True)).get("features", [])


def parse_park_file(path: str | Path, file_name: str | None = None) -> list[dict[str, Any]]:
    """
    Parse an uploaded park file into GeoJSON feature dictionaries.

    Args:
        path: Local path to the file
        file_name: Original upload name; its suffix picks the parser when the
                   local path is a temp file without one

    Returns:
        list[dict]: Features with 'geometry' and 'properties'

    Raises:
        FileParseError: If the format is unsupported, the file is unreadable,
                        or it contains no features
    """
    path = Path(path)
    suffix = Path(file_name or path.name).suffix.lower()

    if suffix in GEOJSON_SUFFIXES:
        features = _parse_geojson(path)
    elif suffix in SHAPEFILE_SUFFIXES:
        features = _parse_shapefile(path)
    else:
        raise FileParseError(
            f"Unsupported file type '{suffix}'. Upload .geojson, .json, .zip or .shp files."
        )

    if not features:
        raise FileParseError(f"No features found in {file_name or path.name}")

    logger.info(f"Parsed {len(features)} features from {file_name or path.name}")
    return features
