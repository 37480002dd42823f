import json
import math

import numpy as np
import pytest
from pydantic import ValidationError

from gravsim.loader import SAMPLE_SYSTEM, DescriptionError, load_description
from gravsim.models import BodyRecord, SystemDescription
from gravsim.system import System


def test_load_sample_xml():
    description = load_description(SAMPLE_SYSTEM)
    assert description.name == "Sun-Earth-Moon"
    assert description.g == pytest.approx(6.67384e-20)
    assert description.scale == 1000.0
    assert description.background.tilt == 60.0
    assert [b.name for b in description.bodies] == ["Sun", "Earth", "Moon"]
    earth = description.bodies[1]
    assert earth.position == [1.496e8, 0.0, 0.0]
    assert earth.velocity == [0.0, 0.0, -29.78]
    assert earth.textureFile == "res/textures/earth.png"


def test_sample_xml_builds_scaled_system():
    system = System.from_description(load_description(SAMPLE_SYSTEM))
    earth = system.find_body("Earth")
    assert np.allclose(earth.position, [1.496e5, 0.0, 0.0])
    assert np.allclose(earth.velocity, [0.0, 0.0, -29.78 / math.sqrt(1000.0)])
    assert earth.tilt == pytest.approx(math.radians(23.44))
    assert system.celestial_sphere.texture_file == "res/textures/stars.png"
    system.advance(1.0, warp_factor=4.0)
    assert system.t == pytest.approx(4.0)


def test_json_skips_malformed_bodies(tmp_path):
    data = {
        "name": "Partial",
        "g": 1.0,
        "scale": 2.0,
        "bodies": [
            {"name": "Good", "mass": 1.0, "radius": 1.0, "position": [0, 0, 0], "velocity": [0, 0, 0]},
            {"name": "NoVelocity", "mass": 1.0, "radius": 1.0, "position": [1, 0, 0]},
            {"name": "Flat", "mass": 1.0, "radius": 1.0, "position": [1, 0], "velocity": [0, 0, 0]},
            {"name": "Negative", "mass": -3.0, "radius": 1.0, "position": [2, 0, 0], "velocity": [0, 0, 0]},
            "not a body",
        ],
    }
    path = tmp_path / "system.json"
    path.write_text(json.dumps(data))
    description = load_description(str(path))
    assert [b.name for b in description.bodies] == ["Good"]
    assert description.background.radius == 1.0


def test_xml_skips_body_missing_component(tmp_path):
    path = tmp_path / "system.xml"
    path.write_text(
        """
        <system>
            <g>1.0</g>
            <scale>1.0</scale>
            <bodies>
                <body>
                    <name>Whole</name><mass>1</mass><radius>1</radius>
                    <position><x>0</x><y>0</y><z>0</z></position>
                    <velocity><x>0</x><y>1</y><z>0</z></velocity>
                </body>
                <body>
                    <name>Broken</name><mass>1</mass><radius>1</radius>
                    <position><x>2</x><y>0</y></position>
                    <velocity><x>0</x><y>1</y><z>0</z></velocity>
                </body>
            </bodies>
        </system>
        """
    )
    description = load_description(str(path))
    assert [b.name for b in description.bodies] == ["Whole"]
    assert description.bodies[0].tilt == 0.0


def test_unreadable_files_raise(tmp_path):
    with pytest.raises(DescriptionError):
        load_description(str(tmp_path / "missing.xml"))

    bad_xml = tmp_path / "bad.xml"
    bad_xml.write_text("<system><g>")
    with pytest.raises(DescriptionError):
        load_description(str(bad_xml))

    other = tmp_path / "system.yaml"
    other.write_text("g: 1")
    with pytest.raises(DescriptionError):
        load_description(str(other))

    no_g = tmp_path / "no_g.json"
    no_g.write_text(json.dumps({"bodies": []}))
    with pytest.raises(DescriptionError):
        load_description(str(no_g))


def test_record_validators_reject_bad_fields():
    with pytest.raises(ValidationError):
        BodyRecord(name="Flat", mass=1.0, radius=1.0, position=[0, 0], velocity=[0, 0, 0])
    with pytest.raises(ValidationError):
        BodyRecord(name="Neg", mass=-1.0, radius=1.0, position=[0, 0, 0], velocity=[0, 0, 0])
    with pytest.raises(ValidationError):
        SystemDescription(g=1.0, scale=0.0)
    assert SystemDescription(g=1.0).scale == 1.0
