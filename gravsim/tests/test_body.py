import math

import numpy as np
import pytest

from gravsim.body import OrbitalBody, rotation_matrix, wrap_angle


def test_spin_wraps_within_one_revolution():
    body = OrbitalBody("Spinner", mass=1.0, radius=1.0, angular_velocity=7.0)
    body.advance_spin(1.0)
    assert math.isclose(body.angular_position, 7.0 - 2 * math.pi)
    assert 0.0 <= body.angular_position < 2 * math.pi


def test_spin_wraps_several_revolutions():
    body = OrbitalBody("Fast", mass=1.0, radius=1.0, angular_velocity=20.0)
    body.advance_spin(1.0)
    assert math.isclose(body.angular_position, 20.0 % (2 * math.pi))


def test_wrap_angle_negative_and_exact():
    assert math.isclose(wrap_angle(-0.5), 2 * math.pi - 0.5)
    assert wrap_angle(2 * math.pi) == 0.0
    assert 0.0 <= wrap_angle(-1e-18) < 2 * math.pi


def test_increment_skips_massless_body():
    body = OrbitalBody("Ghost", mass=0.0, radius=1.0, velocity=[1.0, 0.0, 0.0])
    body.thrust = np.array([1.0, 0.0, 0.0])
    body.increment(1.0)
    assert np.array_equal(body.position, np.zeros(3))
    assert np.array_equal(body.velocity, [1.0, 0.0, 0.0])


def test_increment_forward_euler():
    body = OrbitalBody("Ship", mass=2.0, radius=1.0, velocity=[0.0, 1.0, 0.0])
    body.thrust = np.array([2.0, 0.0, 0.0])
    body.increment(0.5)
    assert np.allclose(body.acceleration, [0.5, 0.0, 0.0])
    assert np.allclose(body.velocity, [0.25, 1.0, 0.0])
    assert np.allclose(body.position, [0.125, 0.5, 0.0])


def test_model_to_world_untilted():
    body = OrbitalBody("Box", mass=1.0, radius=2.0, position=[1.0, 2.0, 3.0])
    expected = np.array(
        [
            [2.0, 0.0, 0.0, 1.0],
            [0.0, 2.0, 0.0, 2.0],
            [0.0, 0.0, 2.0, 3.0],
            [0.0, 0.0, 0.0, 1.0],
        ]
    )
    assert np.allclose(body.model_to_world(), expected)


def test_tilt_inclines_rotation_axis():
    body = OrbitalBody("Tilted", mass=1.0, radius=1.0, tilt=math.pi / 2)
    assert np.allclose(body.rotational_axis, [0.0, 0.0, 1.0])
    local_up = np.array([0.0, 1.0, 0.0, 0.0])
    assert np.allclose(body.model_to_world() @ local_up, [0.0, 0.0, 1.0, 0.0])


def test_spin_keeps_axis_fixed():
    body = OrbitalBody("Top", mass=1.0, radius=1.0, tilt=0.3, angular_velocity=1.0)
    axis_before = body.rotational_axis
    body.advance_spin(2.0)
    assert np.allclose(body.rotational_axis, axis_before)
    assert body.tilt == 0.3


def test_rejects_negative_mass_and_bad_vectors():
    with pytest.raises(ValueError):
        OrbitalBody("Bad", mass=-1.0, radius=1.0)
    with pytest.raises(ValueError):
        OrbitalBody("Bad", mass=1.0, radius=1.0, position=[0.0, 0.0])


def test_state_restore_round_trip():
    body = OrbitalBody("Saved", mass=1.0, radius=1.0, velocity=[1.0, 0.0, 0.0])
    saved = body.state()
    body.position += 5.0
    body.angular_position = 1.0
    body.restore(saved)
    assert np.array_equal(body.position, np.zeros(3))
    assert body.angular_position == 0.0


def test_rotation_matrix_quarter_turn_about_z():
    matrix = rotation_matrix([0.0, 0.0, 2.0], math.pi / 2)
    assert np.allclose(matrix @ [1.0, 0.0, 0.0, 1.0], [0.0, 1.0, 0.0, 1.0])
    assert np.allclose(matrix[3], [0.0, 0.0, 0.0, 1.0])
    assert np.array_equal(rotation_matrix([0.0, 0.0, 0.0], 1.0), np.identity(4))
