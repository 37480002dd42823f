import math

import numpy as np
import pytest

from gravsim.config import SimulationSettings
from gravsim.diagnostics import angular_momentum, center_of_mass, total_energy
from gravsim.physics import circular_velocity, orbital_period
from gravsim.system import System


def _circular_orbit(integrator, satellite_mass=0.0, radius=1.0, central_mass=1.0):
    system = System(
        gravitational_constant=1.0, settings=SimulationSettings(integrator=integrator)
    )
    system.add_body("Star", central_mass, 0.1, [0.0, 0.0, 0.0], [0.0, 0.0, 0.0])
    speed = circular_velocity(1.0, central_mass, radius)
    satellite = system.add_body(
        "Satellite", satellite_mass, 0.01, [radius, 0.0, 0.0], [0.0, speed, 0.0]
    )
    return system, satellite


@pytest.mark.parametrize("integrator", ["joint", "per_body"])
def test_circular_orbit_closes_after_one_period(integrator):
    radius = 1.0
    system, satellite = _circular_orbit(integrator, radius=radius)
    start = satellite.position.copy()
    period = orbital_period(1.0, 1.0, radius)
    steps = 1000
    for _ in range(steps):
        system.step(period / steps)
    assert np.linalg.norm(satellite.position - start) < 0.01 * radius
    assert system.t == pytest.approx(period)


def test_integrators_agree_for_test_particle():
    joint, joint_sat = _circular_orbit("joint")
    legacy, legacy_sat = _circular_orbit("per_body")
    for _ in range(100):
        joint.step(0.01)
        legacy.step(0.01)
    assert np.allclose(joint_sat.position, legacy_sat.position, atol=1e-9)
    assert np.allclose(joint_sat.velocity, legacy_sat.velocity, atol=1e-9)


def test_joint_integration_conserves_energy_and_momentum():
    system, satellite = _circular_orbit("joint", satellite_mass=1e-3)
    energy_start = total_energy(system)
    momentum_start = angular_momentum(system)
    com_start = center_of_mass(system)
    period = orbital_period(1.0, 1.0, 1.0)
    for _ in range(1000):
        system.step(period / 1000)
    assert abs(total_energy(system) - energy_start) / abs(energy_start) < 1e-5
    assert np.allclose(angular_momentum(system), momentum_start, rtol=1e-5)
    # The pair drifts with the satellite's initial momentum.
    drift = center_of_mass(system) - com_start
    assert np.linalg.norm(drift) < 1e-2


def test_cached_gravity_vector_after_step():
    system, satellite = _circular_orbit("joint")
    system.step(0.01)
    expected = system.gravity_vector(satellite, satellite.position)
    assert np.allclose(satellite.gravity_vector, expected)
    assert math.isclose(np.linalg.norm(expected), 1.0 / np.dot(satellite.position, satellite.position))


def test_joint_integrator_folds_thrust():
    system = System(gravitational_constant=1.0)
    ship = system.add_body("Ship", 2.0, 1.0, [0.0, 0.0, 0.0], [0.0, 0.0, 0.0])
    ship.thrust = np.array([4.0, 0.0, 0.0])
    system.step(1.0)
    assert np.allclose(ship.velocity, [2.0, 0.0, 0.0])
    assert np.allclose(ship.position, [1.0, 0.0, 0.0])
    assert np.allclose(ship.acceleration, [2.0, 0.0, 0.0])


def test_per_body_integrator_ignores_thrust():
    system = System(
        gravitational_constant=1.0, settings=SimulationSettings(integrator="per_body")
    )
    ship = system.add_body("Ship", 2.0, 1.0, [0.0, 0.0, 0.0], [0.0, 0.0, 0.0])
    ship.thrust = np.array([4.0, 0.0, 0.0])
    system.step(1.0)
    assert np.array_equal(ship.position, np.zeros(3))


def test_per_body_update_order_does_not_matter():
    def build(order):
        system = System(
            gravitational_constant=1.0, settings=SimulationSettings(integrator="per_body")
        )
        configs = {
            "A": ([0.0, 0.0, 0.0], [0.0, -0.1, 0.0]),
            "B": ([1.0, 0.0, 0.0], [0.0, 0.5, 0.0]),
            "C": ([0.0, 2.0, 0.5], [-0.3, 0.0, 0.0]),
        }
        for name in order:
            position, velocity = configs[name]
            system.add_body(name, 1.0, 0.1, position, velocity)
        return system

    forward = build("ABC")
    backward = build("CBA")
    forward.step(0.05)
    backward.step(0.05)
    for name in "ABC":
        assert np.allclose(
            forward.find_body(name).position,
            backward.find_body(name).position,
            rtol=0.0,
            atol=1e-12,
        )


def test_system_step_spins_bodies():
    system = System(gravitational_constant=1.0)
    body = system.add_body("Spinner", 1.0, 1.0, [0, 0, 0], [0, 0, 0], angular_velocity=10.0)
    system.step(1.0)
    assert math.isclose(body.angular_position, 10.0 - 2 * math.pi)


def test_massless_subject_is_integrated_without_error():
    system, satellite = _circular_orbit("joint")
    satellite.thrust = np.array([1.0, 0.0, 0.0])
    satellite.angular_thrust = 1.0
    system.step(0.1)
    assert np.all(np.isfinite(satellite.position))
    assert satellite.angular_acceleration == 0.0


def test_single_body_runge_kutta_step():
    system, satellite = _circular_orbit("per_body")
    system.runge_kutta_step(satellite, 0.01)
    assert math.isclose(np.linalg.norm(satellite.position), 1.0, rel_tol=1e-8)
    assert np.allclose(satellite.gravity_vector, -satellite.position, atol=1e-6)
    assert system.find_body("Star").position.tolist() == [0.0, 0.0, 0.0]
    assert system.t == 0.0
