"""
Raw, unscaled records produced by the system-description loader. The System
applies unit scaling when it consumes them.
"""

from typing import List, Optional

from pydantic import BaseModel, field_validator


class BodyRecord(BaseModel):
    name: str
    mass: float
    radius: float
    meshFile: Optional[str] = None
    textureFile: Optional[str] = None
    position: List[float]
    velocity: List[float]
    tilt: float = 0.0  # degrees
    rotationalSpeed: float = 0.0  # radians per second
    color: Optional[str] = None

    @field_validator("position", "velocity")
    @classmethod
    def _three_components(cls, value):
        if len(value) != 3:
            raise ValueError("expected exactly 3 components")
        return value

    @field_validator("mass")
    @classmethod
    def _non_negative_mass(cls, value):
        if value < 0:
            raise ValueError("mass must be non-negative")
        return value


class BackgroundRecord(BaseModel):
    meshFile: Optional[str] = None
    textureFile: Optional[str] = None
    radius: float = 1.0
    tilt: float = 0.0  # degrees


class SystemDescription(BaseModel):
    name: str = "Unnamed system"
    g: float
    scale: float = 1.0
    background: BackgroundRecord = BackgroundRecord()
    bodies: List[BodyRecord] = []

    @field_validator("scale")
    @classmethod
    def _positive_scale(cls, value):
        if value <= 0:
            raise ValueError("scale must be positive")
        return value
