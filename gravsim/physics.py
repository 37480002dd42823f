"""
Utilities for constructing a System instance from a request payload and
sampling its trajectories for a client.
"""

from __future__ import annotations

import json
import math
from typing import Any, Dict, List, Optional

from .config import SimulationSettings, debug_enabled
from .diagnostics import total_energy
from .loader import description_from_dict
from .system import System


def circular_velocity(g: float, central_mass: float, radius: float) -> float:
    """Speed of a circular orbit at ``radius``: v = sqrt(G*M/r)."""
    if radius <= 0:
        return 0.0
    return math.sqrt(g * central_mass / radius)


def orbital_period(g: float, central_mass: float, semi_major_axis: float) -> float:
    # Kepler's third law: T = 2*pi*sqrt(a^3 / (G*M))
    if central_mass <= 0 or semi_major_axis <= 0:
        raise ValueError("central_mass and semi_major_axis must be positive")
    return 2.0 * math.pi * math.sqrt(semi_major_axis**3 / (g * central_mass))


def build_system(
    system_cfg: Dict[str, Any], settings: Optional[SimulationSettings] = None
) -> System:
    return System.from_description(description_from_dict(system_cfg), settings=settings)


def _body_metadata(system: System) -> List[Dict[str, Any]]:
    metadata: List[Dict[str, Any]] = []
    for body in system.bodies:
        metadata.append(
            {
                "name": body.name,
                "mass": body.mass,
                "radius": body.radius,
                "tilt": body.tilt,
                "meshFile": body.mesh_file,
                "textureFile": body.texture_file,
                "color": body.metadata.get("color"),
            }
        )
    return metadata


def samples_for_system(
    system_cfg: Dict[str, Any],
    duration_sec: float,
    dt_sec: float,
    warp_factor: float = 1.0,
    settings: Optional[SimulationSettings] = None,
) -> Dict[str, Any]:
    """
    Run the described system for ``duration_sec`` real seconds in frames of
    ``dt_sec``, recording positions (scaled units) after each frame.
    """
    if dt_sec <= 0:
        raise ValueError("dtSec must be positive")
    if duration_sec <= 0:
        raise ValueError("durationSec must be positive")

    system = build_system(system_cfg, settings)
    energy_start = total_energy(system)

    def capture() -> Dict[str, Any]:
        return {
            "t": system.t,
            "positions": [body.position.tolist() for body in system.bodies],
            "spins": [body.angular_position for body in system.bodies],
        }

    frames = max(1, math.ceil(duration_sec / dt_sec))
    samples: List[Dict[str, Any]] = [capture()]
    for _ in range(frames):
        system.advance(dt_sec, warp_factor)
        samples.append(capture())

    energy_end = total_energy(system)
    drift = 0.0 if energy_start == 0 else (energy_end - energy_start) / abs(energy_start)

    if debug_enabled():
        with open("trajectory_samples.json", "w") as f:
            json.dump(samples, f, indent=2)
        print(f"Sampled {len(samples)} frames for {len(system.bodies)} bodies")

    return {
        "bodyMetadata": _body_metadata(system),
        "samples": samples,
        "diagnostics": {
            "simulatedSeconds": system.t,
            "energyStart": energy_start,
            "energyEnd": energy_end,
            "relativeEnergyDrift": drift,
        },
    }
