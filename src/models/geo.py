"""Geographic primitives shared by every located entity.

Coordinates follow the GeoJSON convention: ``[longitude, latitude]``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class GeoPoint(BaseModel):
    """A single WGS84 position."""

    model_config = {"frozen": True}

    longitude: float = Field(ge=-180, le=180)
    latitude: float = Field(ge=-90, le=90)

    @classmethod
    def from_coordinates(cls, coordinates: list[float] | tuple[float, float]) -> GeoPoint:
        longitude, latitude = coordinates
        return cls(longitude=longitude, latitude=latitude)

    @property
    def coordinates(self) -> list[float]:
        return [self.longitude, self.latitude]

    @property
    def is_unset(self) -> bool:
        # Users start at (0, 0) until their first location update.
        return self.longitude == 0 and self.latitude == 0

    @staticmethod
    def midpoint(a: GeoPoint, b: GeoPoint) -> GeoPoint:
        """Arithmetic midpoint of two positions (not a great-circle midpoint)."""
        return GeoPoint(
            longitude=(a.longitude + b.longitude) / 2,
            latitude=(a.latitude + b.latitude) / 2,
        )


def _check_position(position: list[float]) -> None:
    if len(position) != 2:
        raise ValueError("a position is [longitude, latitude]")
    longitude, latitude = position
    if not (-180 <= longitude <= 180 and -90 <= latitude <= 90):
        raise ValueError("coordinates out of range")


class ServiceArea(BaseModel):
    """Coverage of an emergency contact: a point or a single-ring polygon."""

    type: Literal["Point", "Polygon"] = "Point"
    coordinates: list[float] | list[list[float]]

    @field_validator("coordinates")
    @classmethod
    def _check_shape(cls, value: list) -> list:
        if not value:
            raise ValueError("coordinates must not be empty")
        if isinstance(value[0], list):
            if len(value) < 3:
                raise ValueError("a polygon needs at least three vertices")
            for vertex in value:
                _check_position(vertex)
        else:
            _check_position(value)
        return value

    @model_validator(mode="after")
    def _type_matches_shape(self) -> ServiceArea:
        nested = isinstance(self.coordinates[0], list)
        if nested != self.is_polygon:
            raise ValueError(f"coordinates do not describe a {self.type}")
        return self

    @property
    def is_polygon(self) -> bool:
        return self.type == "Polygon"

    def points(self) -> list[GeoPoint]:
        if self.is_polygon:
            return [GeoPoint.from_coordinates(v) for v in self.coordinates]  # type: ignore[arg-type]
        return [GeoPoint.from_coordinates(self.coordinates)]  # type: ignore[arg-type]


class CurrentLocation(BaseModel):
    """A user's last known position."""

    point: GeoPoint = Field(default_factory=lambda: GeoPoint(longitude=0, latitude=0))
    address: str | None = None
    last_updated: datetime = Field(default_factory=lambda: datetime.now(UTC))
