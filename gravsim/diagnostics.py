"""
Conserved-quantity diagnostics for a System. Zero-mass bodies (including the
celestial sphere, which is never in ``system.bodies``) carry no energy or
momentum and are ignored.
"""

from __future__ import annotations

from typing import List

import numpy as np

from .body import OrbitalBody
from .system import System


def _massive(system: System) -> List[OrbitalBody]:
    return [body for body in system.bodies if body.mass > 0]


def kinetic_energy(system: System) -> float:
    return float(
        sum(0.5 * body.mass * np.dot(body.velocity, body.velocity) for body in _massive(system))
    )


def potential_energy(system: System) -> float:
    bodies = _massive(system)
    potential = 0.0
    for i, bi in enumerate(bodies):
        for bj in bodies[i + 1:]:
            r = bi.distance_to(bj)
            if r == 0:
                continue
            potential -= system.gravitational_constant * bi.mass * bj.mass / r
    return potential


def total_energy(system: System) -> float:
    return kinetic_energy(system) + potential_energy(system)


def angular_momentum(system: System) -> np.ndarray:
    """Total angular momentum about the origin."""
    total = np.zeros(3, dtype=float)
    for body in _massive(system):
        total += body.mass * np.cross(body.position, body.velocity)
    return total


def center_of_mass(system: System) -> np.ndarray:
    bodies = _massive(system)
    if not bodies:
        return np.zeros(3, dtype=float)
    masses = np.array([body.mass for body in bodies])
    positions = np.array([body.position for body in bodies])
    return masses @ positions / masses.sum()

