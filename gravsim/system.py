"""
Main class for handling an orbital system.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from fastquadtree import QuadTree

from .body import OrbitalBody
from .config import SimulationSettings
from .constants import (
    CELESTIAL_SPHERE_NAME,
    COINCIDENT_DISTANCE,
    DEFAULT_G,
    DEFAULT_SPHERE_RADIUS,
)
from .models import SystemDescription


class DegenerateGeometryError(ValueError):
    """Two bodies share a position, so the gravity field is undefined."""


def find_coincident_pairs(
    bodies: Sequence[OrbitalBody], tolerance: float = COINCIDENT_DISTANCE
) -> List[Tuple[OrbitalBody, OrbitalBody]]:
    """
    Return every pair of bodies closer than ``tolerance``. Candidates come
    from a QuadTree over the x/y plane; the 3-D distance decides.
    """
    if len(bodies) < 2:
        return []

    xs = [float(body.position[0]) for body in bodies]
    ys = [float(body.position[1]) for body in bodies]
    padding = 1.0 + tolerance
    qt_bounds = (min(xs) - padding, min(ys) - padding, max(xs) + padding, max(ys) + padding)
    quadtree = QuadTree(qt_bounds, capacity=8, track_objects=False)

    for x, y in zip(xs, ys):
        quadtree.insert((x, y))

    pairs: List[Tuple[OrbitalBody, OrbitalBody]] = []
    for idx, body in enumerate(bodies):
        # Widen by a relative margin so the rect never collapses at large coordinates.
        reach = tolerance + 1e-9 * max(1.0, abs(xs[idx]), abs(ys[idx]))
        query_rect = (
            xs[idx] - reach,
            ys[idx] - reach,
            xs[idx] + reach,
            ys[idx] + reach,
        )
        candidates = quadtree.query(query_rect, as_items=False)
        for candidate_id, _, _ in candidates:
            if candidate_id <= idx:
                continue  # ensure each pair once
            other = bodies[candidate_id]
            if body.distance_to(other) <= tolerance:
                pairs.append((body, other))
    return pairs


class System:
    """
    Container that owns OrbitalBody instances, evaluates their mutual gravity
    and integrates them forward with fourth-order Runge-Kutta.

    The celestial sphere is held apart from ``bodies``: it is drawn but
    never integrated and never attracts anything.
    """

    def __init__(
        self,
        name: str = "Unnamed system",
        gravitational_constant: float = DEFAULT_G,
        scale: float = 1.0,
        celestial_sphere: Optional[OrbitalBody] = None,
        initial_bodies: Optional[Sequence[dict]] = None,
        settings: Optional[SimulationSettings] = None,
    ):
        if scale <= 0:
            raise ValueError("scale must be positive")
        self.name = name
        self.gravitational_constant = float(gravitational_constant)
        self.scale = float(scale)
        self.settings = settings or SimulationSettings()
        self.clock = 0.0
        self.bodies: List[OrbitalBody] = []
        if celestial_sphere is None:
            celestial_sphere = OrbitalBody(
                CELESTIAL_SPHERE_NAME, mass=0.0, radius=DEFAULT_SPHERE_RADIUS
            )
        self.celestial_sphere: Optional[OrbitalBody] = celestial_sphere
        self.celestial_sphere.system = self
        if initial_bodies:
            self.add_bodies(initial_bodies)

    @classmethod
    def from_description(
        cls,
        description: SystemDescription,
        settings: Optional[SimulationSettings] = None,
    ) -> System:
        """
        Build a system from raw loader records, applying unit scaling: G,
        mass, radius and position are divided by the scale factor, velocity
        by its square root. Tilts arrive in degrees and are stored in radians.
        """
        s = description.scale
        background = description.background
        sphere = OrbitalBody(
            CELESTIAL_SPHERE_NAME,
            mass=0.0,
            radius=background.radius,
            tilt=math.radians(background.tilt),
            mesh_file=background.meshFile,
            texture_file=background.textureFile,
        )
        system = cls(
            name=description.name,
            gravitational_constant=description.g / s,
            scale=s,
            celestial_sphere=sphere,
            settings=settings,
        )
        root_s = math.sqrt(s)
        system.add_bodies(
            [
                {
                    "name": record.name,
                    "mass": record.mass / s,
                    "radius": record.radius / s,
                    "position": np.array(record.position, dtype=float) / s,
                    "velocity": np.array(record.velocity, dtype=float) / root_s,
                    "tilt": math.radians(record.tilt),
                    "angular_velocity": record.rotationalSpeed,
                    "mesh_file": record.meshFile,
                    "texture_file": record.textureFile,
                    "metadata": {"color": record.color} if record.color else None,
                }
                for record in description.bodies
            ]
        )
        system.validate_geometry()
        return system

    # Body management

    def add_body(
        self,
        name: str,
        mass: float,
        radius: float,
        position: Iterable[float],
        velocity: Iterable[float],
        tilt: float = 0.0,
        angular_velocity: float = 0.0,
        mesh_file: Optional[str] = None,
        texture_file: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> OrbitalBody:
        body = OrbitalBody(
            name,
            mass,
            radius,
            position,
            velocity,
            tilt=tilt,
            angular_velocity=angular_velocity,
            mesh_file=mesh_file,
            texture_file=texture_file,
            metadata=metadata,
            system=self,
        )
        self.bodies.append(body)
        return body

    def add_bodies(self, configs: Sequence[dict]) -> List[OrbitalBody]:
        created = []
        for cfg in configs:
            created.append(
                self.add_body(
                    name=cfg["name"],
                    mass=cfg["mass"],
                    radius=cfg.get("radius", 0.0),
                    position=cfg["position"],
                    velocity=cfg["velocity"],
                    tilt=cfg.get("tilt", 0.0),
                    angular_velocity=cfg.get("angular_velocity", 0.0),
                    mesh_file=cfg.get("mesh_file"),
                    texture_file=cfg.get("texture_file"),
                    metadata=cfg.get("metadata"),
                )
            )
        return created

    def remove_body(self, index: int) -> OrbitalBody:
        body = self.bodies.pop(index)
        body.system = None
        return body

    def get_body(self, index: int) -> OrbitalBody:
        return self.bodies[index]

    def find_body(self, name: str) -> Optional[OrbitalBody]:
        return next((b for b in self.bodies if b.name == name), None)

    def total_mass(self) -> float:
        return sum(body.mass for body in self.bodies)

    @property
    def t(self) -> float:
        """Elapsed simulated seconds."""
        return self.clock

    def drawables(self) -> List[OrbitalBody]:
        """Celestial sphere first, then every body in collection order."""
        drawables = [] if self.celestial_sphere is None else [self.celestial_sphere]
        drawables.extend(self.bodies)
        return drawables

    def validate_geometry(self) -> None:
        pairs = find_coincident_pairs(self.bodies)
        if pairs:
            names = ", ".join(f"{a.name}/{b.name}" for a, b in pairs)
            raise DegenerateGeometryError(f"Coincident bodies: {names}")

    def clean_up(self) -> None:
        """Release every body and the celestial sphere."""
        for body in self.bodies:
            body.system = None
        self.bodies = []
        if self.celestial_sphere is not None:
            self.celestial_sphere.system = None
            self.celestial_sphere = None

    # Gravity

    def gravity_vector(self, subject: OrbitalBody, position: Iterable[float]) -> np.ndarray:
        """
        Net gravitational acceleration felt at ``position`` from every body
        except ``subject``. Other bodies are read at their stored positions.
        """
        position = np.asarray(position, dtype=float)
        net_gravity = np.zeros(3, dtype=float)
        with np.errstate(divide="ignore", invalid="ignore"):
            for body in self.bodies:
                if body is subject or body.mass == 0:
                    continue
                offset = body.position - position
                distance = np.linalg.norm(offset)
                direction = offset / distance
                magnitude = self.gravitational_constant * body.mass / distance**2
                net_gravity += magnitude * direction
        return net_gravity

    def acceleration(
        self,
        subject: OrbitalBody,
        position: Iterable[float],
        dt: float = 0.0,
        include_thrust: Optional[bool] = None,
    ) -> np.ndarray:
        """
        Right-hand side of dv/dt for ``subject`` at ``position``. ``dt`` is the
        stage offset; the field does not depend on time. Thrust is added for
        massive subjects when folding is enabled.
        """
        acc = self.gravity_vector(subject, position)
        fold = self.settings.fold_thrust if include_thrust is None else include_thrust
        if fold and subject.mass != 0:
            acc = acc + subject.thrust / subject.mass
        return acc

    def _field(self, positions: np.ndarray, masses: np.ndarray) -> np.ndarray:
        """Gravitational acceleration on every row of ``positions`` at once."""
        offsets = positions[np.newaxis, :, :] - positions[:, np.newaxis, :]
        distances = np.linalg.norm(offsets, axis=2)
        np.fill_diagonal(distances, np.inf)
        with np.errstate(divide="ignore", invalid="ignore"):
            strength = np.where(
                masses[np.newaxis, :] == 0,
                0.0,
                self.gravitational_constant * masses[np.newaxis, :] / distances**3,
            )
            return np.einsum("ij,ijk->ik", strength, offsets)

    # Integration

    def _subjects(self) -> List[OrbitalBody]:
        # The celestial sphere lives outside self.bodies.
        return list(self.bodies)

    def _runge_kutta_estimate(
        self, subject: OrbitalBody, dt: float
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Classical RK4 for one body against the stored positions of the others.
        Thrust stays out of the stages, matching the legacy stepping.
        """
        r = subject.position
        v = subject.velocity

        def a(position: np.ndarray, offset: float) -> np.ndarray:
            return self.acceleration(subject, position, offset, include_thrust=False)

        k1 = dt * v
        l1 = dt * a(r, 0.0)
        k2 = dt * (v + 0.5 * l1)
        l2 = dt * a(r + 0.5 * k1, 0.5 * dt)
        k3 = dt * (v + 0.5 * l2)
        l3 = dt * a(r + 0.5 * k2, 0.5 * dt)
        k4 = dt * (v + l3)
        l4 = dt * a(r + k3, dt)

        r_new = r + (k1 + 2.0 * k2 + 2.0 * k3 + k4) / 6.0
        v_new = v + (l1 + 2.0 * l2 + 2.0 * l3 + l4) / 6.0
        return r_new, v_new

    def runge_kutta_step(self, subject: OrbitalBody, dt: float) -> None:
        """Advance a single body by ``dt`` with the per-body RK4 scheme."""
        r_new, v_new = self._runge_kutta_estimate(subject, dt)
        self._check_finite([subject], [r_new], [v_new])
        subject.position = r_new
        subject.velocity = v_new
        subject.gravity_vector = self.gravity_vector(subject, r_new)
        subject.advance_spin(dt)

    def _step_per_body(self, subjects: List[OrbitalBody], dt: float) -> None:
        estimates = [self._runge_kutta_estimate(subject, dt) for subject in subjects]
        self._check_finite(
            subjects, [r for r, _ in estimates], [v for _, v in estimates]
        )
        for subject, (r_new, v_new) in zip(subjects, estimates):
            subject.position = r_new
            subject.velocity = v_new
        for subject in subjects:
            subject.gravity_vector = self.gravity_vector(subject, subject.position)
            subject.acceleration = subject.gravity_vector.copy()
            subject.advance_spin(dt)

    def _step_joint(self, subjects: List[OrbitalBody], dt: float) -> None:
        positions = np.array([body.position for body in subjects], dtype=float)
        velocities = np.array([body.velocity for body in subjects], dtype=float)
        masses = np.array([body.mass for body in subjects], dtype=float)

        thrust = np.zeros_like(positions)
        if self.settings.fold_thrust:
            for idx, body in enumerate(subjects):
                if body.mass != 0:
                    thrust[idx] = body.thrust / body.mass

        def derivative(state_positions: np.ndarray) -> np.ndarray:
            return self._field(state_positions, masses) + thrust

        k1 = velocities
        l1 = derivative(positions)
        k2 = velocities + 0.5 * dt * l1
        l2 = derivative(positions + 0.5 * dt * k1)
        k3 = velocities + 0.5 * dt * l2
        l3 = derivative(positions + 0.5 * dt * k2)
        k4 = velocities + dt * l3
        l4 = derivative(positions + dt * k3)

        new_positions = positions + dt / 6.0 * (k1 + 2.0 * k2 + 2.0 * k3 + k4)
        new_velocities = velocities + dt / 6.0 * (l1 + 2.0 * l2 + 2.0 * l3 + l4)
        self._check_finite(subjects, new_positions, new_velocities)

        gravity = self._field(new_positions, masses)
        for idx, body in enumerate(subjects):
            body.position = new_positions[idx].copy()
            body.velocity = new_velocities[idx].copy()
            body.gravity_vector = gravity[idx].copy()
            body.acceleration = gravity[idx] + thrust[idx]
            body.advance_spin(dt)

    @staticmethod
    def _check_finite(
        subjects: Sequence[OrbitalBody],
        positions: Sequence[np.ndarray],
        velocities: Sequence[np.ndarray],
    ) -> None:
        bad = [
            subject.name
            for subject, r, v in zip(subjects, positions, velocities)
            if not (np.all(np.isfinite(r)) and np.all(np.isfinite(v)))
        ]
        if bad:
            raise DegenerateGeometryError(
                f"Non-finite state for {', '.join(bad)}; bodies are coincident"
            )

    def step(self, dt: float) -> None:
        """
        Advance the clock and every body except the celestial sphere by ``dt``
        simulated seconds, split into equal sub-steps no longer than
        ``settings.max_substep``.
        """
        if dt < 0:
            raise ValueError("dt must be non-negative")
        if dt == 0:
            return
        subjects = self._subjects()
        max_substep = self.settings.max_substep
        n_sub = 1 if max_substep is None else max(1, math.ceil(dt / max_substep))
        h = dt / n_sub
        integrate = (
            self._step_joint if self.settings.integrator == "joint" else self._step_per_body
        )
        preserved_state = [(body, body.state()) for body in subjects]
        preserved_clock = self.clock
        try:
            for _ in range(n_sub):
                if subjects:
                    integrate(subjects, h)
                self.clock += h
        except DegenerateGeometryError:
            # Earlier sub-steps are rolled back along with the failed one.
            for body, state in preserved_state:
                body.restore(state)
            self.clock = preserved_clock
            raise

    def advance(self, real_seconds: float, warp_factor: float = 1.0) -> float:
        """
        Advance by ``real_seconds`` of wall-clock time. The warp factor is
        clamped to the configured range. Returns the simulated seconds taken.
        """
        if real_seconds < 0:
            raise ValueError("real_seconds must be non-negative")
        dt = (
            real_seconds
            * self.settings.sim_seconds_per_real_second
            * self.settings.clamp_warp(warp_factor)
        )
        self.step(dt)
        return dt

    def sample_positions(
        self,
        duration_seconds: float = 300.0,
        sample_rate_hz: float = 10.0,
    ) -> List[dict]:
        """
        Return a list of samples representing each body's position during the
        requested simulated duration. Live state is restored afterwards.
        """
        if sample_rate_hz <= 0:
            raise ValueError("sample_rate_hz must be positive")
        if duration_seconds <= 0:
            raise ValueError("duration_seconds must be positive")
        if not self.bodies:
            return []

        dt = 1.0 / sample_rate_hz
        steps = max(1, math.ceil(duration_seconds * sample_rate_hz))

        # Preserve state so sampling does not mutate the live system.
        preserved_state = [(body, body.state()) for body in self.bodies]
        preserved_clock = self.clock

        def capture_sample(t: float) -> dict:
            bodies = []
            for body in self.bodies:
                bodies.append(
                    {
                        "name": body.name,
                        "position": body.position.copy().tolist(),
                        "angularPosition": body.angular_position,
                    }
                )
            return {"t": t, "bodies": bodies}

        samples: List[dict] = [capture_sample(0.0)]
        try:
            for idx in range(1, steps + 1):
                self.step(dt)
                samples.append(capture_sample(idx * dt))
        finally:
            for body, state in preserved_state:
                body.restore(state)
            self.clock = preserved_clock
        return samples
