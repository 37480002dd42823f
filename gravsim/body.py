"""
Mutable representation of a body that belongs to a System.
"""

from __future__ import annotations

from typing import Iterable, TYPE_CHECKING, Optional, Dict, Any

import numpy as np
from scipy.spatial.transform import Rotation

from .constants import DEFAULT_ROT_AXIS, DEFAULT_TILT_AXIS, FULL_REVOLUTION

if TYPE_CHECKING:  # Avoid circular import during runtime
    from .system import System


def wrap_angle(angle: float) -> float:
    """Return the equivalent angle in [0, 2*pi)."""
    wrapped = float(angle) % FULL_REVOLUTION
    # Tiny negative inputs round up to exactly one revolution.
    if wrapped >= FULL_REVOLUTION:
        return 0.0
    return wrapped


def rotation_matrix(axis: Iterable[float], angle: float) -> np.ndarray:
    """4x4 homogeneous rotation of ``angle`` radians about ``axis``."""
    axis = np.asarray(axis, dtype=float)
    norm = np.linalg.norm(axis)
    matrix = np.identity(4)
    if norm == 0.0 or angle == 0.0:
        return matrix
    matrix[:3, :3] = Rotation.from_rotvec(axis / norm * angle).as_matrix()
    return matrix


def _vector3(values: Iterable[float], label: str) -> np.ndarray:
    vec = np.array(values, dtype=float)
    if vec.shape != (3,):
        raise ValueError(f"{label} must be a 3-element vector")
    return vec


class OrbitalBody:
    """
    A single mass tracked by a System, with linear and angular state.

    Linear state lives in scaled simulation units. Rotation is one degree of
    freedom: a spin angle about the body's own axis, which is the default
    axis tilted about X by ``tilt`` radians. The tilt is fixed once the body
    is built.

    The owning System is stored as ``self.system``; isolated bodies keep it
    as ``None``.
    """

    def __init__(
        self,
        name: str,
        mass: float,
        radius: float,
        position: Iterable[float] = (0.0, 0.0, 0.0),
        velocity: Iterable[float] = (0.0, 0.0, 0.0),
        tilt: float = 0.0,
        angular_velocity: float = 0.0,
        mesh_file: Optional[str] = None,
        texture_file: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        system: Optional[System] = None,
    ) -> None:
        if mass < 0:
            raise ValueError("mass must be non-negative")
        self.system = system
        self.name = name
        self.mass = float(mass)
        self.radius = float(radius)
        self.scale = np.full(3, self.radius)
        self.mesh_file = mesh_file
        self.texture_file = texture_file
        self.metadata: Dict[str, Any] = dict(metadata or {})

        self.position = _vector3(position, "position")
        self.velocity = _vector3(velocity, "velocity")
        self.acceleration = np.zeros(3, dtype=float)
        self.thrust = np.zeros(3, dtype=float)
        self.gravity_vector = np.zeros(3, dtype=float)

        self._tilt = float(tilt)
        self._rotational_axis = rotation_matrix(DEFAULT_TILT_AXIS, self._tilt)[
            :3, :3
        ] @ np.array(DEFAULT_ROT_AXIS)
        self._angular_position = 0.0
        self.angular_velocity = float(angular_velocity)
        self.angular_acceleration = 0.0
        self.angular_thrust = 0.0

    def __repr__(self) -> str:
        return (
            f"OrbitalBody(name={self.name!r}, mass={self.mass}, "
            f"position={self.position.tolist()}, velocity={self.velocity.tolist()})"
        )

    @property
    def tilt(self) -> float:
        return self._tilt

    @property
    def rotational_axis(self) -> np.ndarray:
        return self._rotational_axis.copy()

    @property
    def angular_position(self) -> float:
        return self._angular_position

    @angular_position.setter
    def angular_position(self, value: float) -> None:
        self._angular_position = wrap_angle(value)

    def model_to_world(self) -> np.ndarray:
        """
        Scale, then tilt and spin, then translate. Rebuilt on every call so it
        always reflects the current state.
        """
        scale_m = np.diag([*self.scale, 1.0])

        rot_m = np.identity(4)
        default_axis = np.array(DEFAULT_ROT_AXIS)
        if not np.allclose(self._rotational_axis, default_axis):
            rot_m = rotation_matrix(
                np.cross(default_axis, self._rotational_axis), self._tilt
            )
        rot_m = rot_m @ rotation_matrix(default_axis, self._angular_position)

        tran_m = np.identity(4)
        tran_m[:3, 3] = self.position

        return tran_m @ rot_m @ scale_m

    def advance_spin(self, dt: float) -> None:
        """Forward-Euler spin update used after each translational step."""
        if self.mass != 0 and self.angular_thrust != 0:
            self.angular_acceleration = self.angular_thrust / self.mass
            self.angular_velocity += dt * self.angular_acceleration
        self.angular_position = self._angular_position + self.angular_velocity * dt

    def increment(self, dt: float) -> None:
        """
        Step an isolated body forward by dt seconds using its stored thrust,
        acceleration and gravity vector. Massless bodies do not move.

        A System never calls this; running it on a body the System also
        integrates in the same tick advances the body twice.
        """
        if self.mass == 0:
            return

        self.acceleration += dt * (self.thrust / self.mass)
        self.velocity += dt * self.acceleration + self.gravity_vector / self.mass
        self.position += dt * self.velocity

        self.angular_acceleration += dt * (self.angular_thrust / self.mass)
        self.angular_velocity += dt * self.angular_acceleration
        self.angular_position = self._angular_position + dt * self.angular_velocity

    def distance_to(self, other: OrbitalBody) -> float:
        """Return Euclidean distance to another body."""
        return float(np.linalg.norm(self.position - other.position))

    def state(self) -> Dict[str, Any]:
        """Copy of the mutable state, enough to restore the body later."""
        return {
            "position": self.position.copy(),
            "velocity": self.velocity.copy(),
            "acceleration": self.acceleration.copy(),
            "gravity_vector": self.gravity_vector.copy(),
            "angular_position": self._angular_position,
            "angular_velocity": self.angular_velocity,
            "angular_acceleration": self.angular_acceleration,
        }

    def restore(self, state: Dict[str, Any]) -> None:
        self.position = state["position"].copy()
        self.velocity = state["velocity"].copy()
        self.acceleration = state["acceleration"].copy()
        self.gravity_vector = state["gravity_vector"].copy()
        self._angular_position = state["angular_position"]
        self.angular_velocity = state["angular_velocity"]
        self.angular_acceleration = state["angular_acceleration"]
