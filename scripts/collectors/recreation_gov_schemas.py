"""Pydantic schemas for validating Recreation.gov (RIDB) facility responses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RecreationGovAddress(BaseModel):
    model_config = ConfigDict(extra="ignore")

    AddressType: str = ""
    AddressStateCode: str = ""
    StateCode: str = ""
    State: str = ""

    def state_value(self) -> str | None:
        return self.AddressStateCode or self.StateCode or self.State or None


class RecreationGovActivity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ActivityName: str = ""


class RecreationGovGeoJSON(BaseModel):
    model_config = ConfigDict(extra="ignore")

    TYPE: str = ""
    COORDINATES: list[float] | None = None


class RecreationGovFacility(BaseModel):
    """Schema for a facility record from the RIDB /facilities endpoint.

    Only the attributes the field mapper reads are declared; RIDB returns
    many more, which are ignored.
    """

    model_config = ConfigDict(extra="ignore")

    FacilityID: str = Field(..., min_length=1, description="RIDB facility identifier")
    FacilityName: str = ""
    FacilityDescription: str = ""
    FacilityTypeDescription: str = ""
    FacilityAccessibilityText: str = ""
    FacilityState: str = ""
    FacilityPhone: str = ""
    FacilityEmail: str = ""
    FacilityURL: str = ""
    FacilityLatitude: float | None = None
    FacilityLongitude: float | None = None
    OrgAbbrevName: str = ""
    OrgName: str = ""
    FACILITYADDRESS: list[RecreationGovAddress] = Field(default_factory=list)
    ACTIVITY: list[RecreationGovActivity] = Field(default_factory=list)
    CAMPSITE: list[dict] = Field(default_factory=list)
    GEOJSON: RecreationGovGeoJSON | None = None

    @field_validator("FacilityID", mode="before")
    @classmethod
    def coerce_facility_id(cls, v: str | int) -> str:
        return str(v) if v is not None else v

    @field_validator("FacilityLatitude", "FacilityLongitude", mode="before")
    @classmethod
    def blank_coordinate_to_none(cls, v: float | str | None) -> float | None:
        """RIDB reports unknown coordinates as 0 or an empty string."""
        if v in (None, "", 0, 0.0, "0"):
            return None
        return v

    def coordinates(self) -> tuple[float | None, float | None]:
        if self.FacilityLatitude is not None and self.FacilityLongitude is not None:
            return self.FacilityLatitude, self.FacilityLongitude
        if self.GEOJSON and self.GEOJSON.COORDINATES and len(self.GEOJSON.COORDINATES) >= 2:
            lon, lat = self.GEOJSON.COORDINATES[0], self.GEOJSON.COORDINATES[1]
            if lat or lon:
                return lat, lon
        return None, None
