from .body import OrbitalBody
from .config import SimulationSettings
from .loader import DescriptionError, load_description
from .system import DegenerateGeometryError, System
from .warp import WarpControl

__all__ = [
    "OrbitalBody",
    "System",
    "SimulationSettings",
    "WarpControl",
    "load_description",
    "DegenerateGeometryError",
    "DescriptionError",
]
