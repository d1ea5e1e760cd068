"""Pydantic schemas for canonical park records and uploaded GeoJSON files.

ParkCandidate is the normalized shape every source is mapped onto before
reconciliation. ParkRecord is the stored, merged representation; it adds the
store-assigned identity, the provenance tier and quality score, and timestamps.
The GeoJSON models validate the top-level structure of uploaded files; the
per-feature geometry is checked later by the geometry pipeline.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PLACEHOLDER_NAME = "Unnamed Park"
PLACEHOLDER_NAMES = frozenset({PLACEHOLDER_NAME, "Unnamed Recreation Area"})
UNKNOWN_STATE = "N/A"

# Scalar fields a strictly higher-priority source may overwrite
PROTECTED_FIELDS = (
    "source_id",
    "agency",
    "agency_full_name",
    "description",
    "website",
    "phone",
    "email",
    "address",
    "county",
    "acres",
    "category",
    "designation_type",
    "public_access",
)
ARRAY_FIELDS = ("amenities", "activities")


def dedupe_case_insensitive(values: list[str]) -> list[str]:
    """Drop blank and case-insensitive duplicate entries, keeping the first spelling."""
    seen: set[str] = set()
    result = []
    for value in values:
        cleaned = str(value).strip()
        if not cleaned:
            continue
        key = cleaned.lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(cleaned)
    return result


def is_placeholder_name(name: str | None) -> bool:
    return not name or not name.strip() or name.strip() in PLACEHOLDER_NAMES


class ParkCandidate(BaseModel):
    """Normalized record produced from one raw source item.

    Candidates are never persisted directly; the merge policy turns them into
    a new ParkRecord or folds them into an existing one.
    """

    model_config = ConfigDict(extra="ignore")

    name: str = Field(default=PLACEHOLDER_NAME, description="Park display name")
    state: str = Field(
        default=UNKNOWN_STATE, description="2-letter state code or 'N/A'"
    )
    source_id: str | None = Field(default=None, description="Upstream identifier")
    agency: str | None = None
    agency_full_name: str | None = None
    description: str | None = None
    website: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    county: str | None = None
    acres: float | None = Field(default=None, ge=0)
    category: str | None = None
    designation_type: str | None = None
    public_access: str | None = None
    amenities: list[str] = Field(default_factory=list)
    activities: list[str] = Field(default_factory=list)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    boundary: str | None = Field(
        default=None, description="Boundary as EWKT, e.g. 'SRID=4326;POLYGON(...)'"
    )
    data_source: str | None = Field(default=None, description="Provenance label")

    @field_validator("state", mode="before")
    @classmethod
    def validate_state(cls, v: str | None) -> str:
        """Map a missing state onto the 'N/A' sentinel.

        Args:
            v: The state value from the mapper

        Returns:
            An upper-cased state code, or 'N/A' when empty
        """
        if v is None or not str(v).strip():
            return UNKNOWN_STATE
        return str(v).strip().upper() if len(str(v).strip()) == 2 else str(v).strip()

    @field_validator("amenities", "activities", mode="before")
    @classmethod
    def validate_string_sets(cls, v: list[str] | None) -> list[str]:
        if v is None:
            return []
        return dedupe_case_insensitive(list(v))

    @model_validator(mode="after")
    def validate_coordinate_pair(self):
        """Ensure latitude and longitude are either both present or both absent.

        Raises:
            ValueError: If only one of the coordinates is set
        """
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError(
                "latitude and longitude must be provided together "
                f"(got latitude={self.latitude}, longitude={self.longitude})"
            )
        return self

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class ParkRecord(ParkCandidate):
    """Canonical stored park record."""

    id: int | None = Field(default=None, description="Store-assigned identifier")
    data_source_priority: int = Field(default=0, ge=0)
    data_quality_score: int = Field(default=0, ge=0, le=100)
    created_at: datetime | None = None
    last_updated_at: datetime | None = None


# =============================================================================
# GEOJSON FILE SCHEMAS
# =============================================================================


class GeoJSONGeometry(BaseModel):
    """Validates a GeoJSON geometry object's type and coordinate container."""

    type: str = Field(..., description="Geometry type (e.g., Polygon, MultiPolygon)")
    coordinates: list = Field(..., description="Nested coordinate arrays")

    @field_validator("type")
    @classmethod
    def validate_geometry_type(cls, v: str) -> str:
        """Ensure geometry type is one of the valid GeoJSON types."""
        valid_types = {
            "Point",
            "MultiPoint",
            "LineString",
            "MultiLineString",
            "Polygon",
            "MultiPolygon",
        }
        if v not in valid_types:
            raise ValueError(
                f"Invalid geometry type '{v}'. Must be one of: {valid_types}"
            )
        return v


class GeoJSONFeatureCollection(BaseModel):
    """Top-level structure of an uploaded GeoJSON file.

    Features are kept as raw dictionaries. A malformed feature must only
    reject itself, so per-feature validation is left to the ingestion
    pipeline rather than failing the whole file here.
    """

    type: str = Field(..., description="GeoJSON type")
    features: list[dict] | None = Field(default=None)
    geometry: dict | None = Field(default=None)
    properties: dict | None = Field(default=None)

    @field_validator("type")
    @classmethod
    def validate_geojson_type(cls, v: str) -> str:
        """Ensure type is a valid GeoJSON container type."""
        valid_types = {"FeatureCollection", "Feature"}
        if v not in valid_types:
            raise ValueError(
                f"Top-level type must be 'FeatureCollection' or 'Feature', got '{v}'"
            )
        return v

    @model_validator(mode="after")
    def validate_structure(self):
        """Ensure the document has the appropriate fields for its type."""
        if self.type == "FeatureCollection" and self.features is None:
            raise ValueError("FeatureCollection must have 'features' array")
        return self

    def iter_features(self) -> list[dict]:
        if self.type == "Feature":
            return [
                {
                    "type": "Feature",
                    "geometry": self.geometry,
                    "properties": self.properties or {},
                }
            ]
        return list(self.features or [])
