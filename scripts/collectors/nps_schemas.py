"""Pydantic schemas for validating NPS API park responses."""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

LAT_LONG_PATTERN = re.compile(
    r"lat:\s*(-?\d+(?:\.\d+)?)\s*,\s*long:\s*(-?\d+(?:\.\d+)?)", re.IGNORECASE
)


class NPSPhoneNumber(BaseModel):
    model_config = ConfigDict(extra="ignore")

    phoneNumber: str = ""
    type: str = ""


class NPSEmailAddress(BaseModel):
    model_config = ConfigDict(extra="ignore")

    emailAddress: str = ""


class NPSContacts(BaseModel):
    model_config = ConfigDict(extra="ignore")

    phoneNumbers: list[NPSPhoneNumber] = Field(default_factory=list)
    emailAddresses: list[NPSEmailAddress] = Field(default_factory=list)


class NPSAddress(BaseModel):
    model_config = ConfigDict(extra="ignore")

    line1: str = ""
    line2: str = ""
    line3: str = ""
    city: str = ""
    stateCode: str = ""
    postalCode: str = ""
    type: str = ""


class NPSActivity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    name: str = ""


class NPSParkResponse(BaseModel):
    """Schema for validating NPS parks API response data.

    Validates the structure and content of park data returned from the
    NPS API /parks endpoint. Ensures required fields are present and
    coordinate data is valid before it enters the reconciliation pipeline.
    """

    model_config = ConfigDict(extra="ignore")

    parkCode: str = Field(..., min_length=1, description="NPS park code")
    fullName: str = Field(default="", description="Full park name")
    name: str = Field(default="", description="Short park name")
    states: str = Field(default="", description="State codes (comma-separated)")
    url: str = Field(default="", description="Park website URL")
    description: str = Field(default="", description="Park description")
    designation: str = Field(default="", description="Designation, e.g. 'National Park'")
    latLong: str = Field(default="", description="Coordinates as 'lat:X, long:Y'")
    latitude: str | None = Field(default=None, description="Latitude as string")
    longitude: str | None = Field(default=None, description="Longitude as string")
    addresses: list[NPSAddress] = Field(default_factory=list)
    contacts: NPSContacts = Field(default_factory=NPSContacts)
    activities: list[NPSActivity] = Field(default_factory=list)

    @field_validator("latitude", "longitude")
    @classmethod
    def validate_coordinate_strings(cls, v: str | None) -> str | None:
        """Ensure coordinate values can be converted to float if present.

        Args:
            v: The coordinate value from the API (or None)

        Returns:
            The validated coordinate string, or None

        Raises:
            ValueError: If the coordinate string cannot be converted to float
        """
        if v is None or v == "":
            return None
        try:
            float(v)
            return v
        except ValueError:
            raise ValueError(f"Coordinate value '{v}' cannot be converted to float")

    @model_validator(mode="after")
    def validate_coordinate_ranges(self):
        """Validate that coordinates are within valid geographic ranges.

        Returns:
            self: The validated model instance

        Raises:
            ValueError: If coordinates are outside valid geographic ranges
        """
        lat, lon = self.coordinates()
        if lat is not None and not (-90 <= lat <= 90):
            raise ValueError(f"Latitude {lat} out of valid range [-90, 90]")
        if lon is not None and not (-180 <= lon <= 180):
            raise ValueError(f"Longitude {lon} out of valid range [-180, 180]")
        return self

    def coordinates(self) -> tuple[float | None, float | None]:
        """Return (lat, lon) from latLong, falling back to latitude/longitude."""
        match = LAT_LONG_PATTERN.search(self.latLong or "")
        if match:
            return float(match.group(1)), float(match.group(2))
        if self.latitude is not None and self.longitude is not None:
            return float(self.latitude), float(self.longitude)
        return None, None
