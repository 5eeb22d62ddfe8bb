"""
Tests for physics-asset JSON decoding.

Tests:
- Accepted document layouts
- Element decoding and tag precedence
- Data-integrity and load errors
"""

import json

import pytest

from hitboxview.errors import AssetLoadError, DataIntegrityError
from hitboxview.physics_asset import decode_physics_asset, load_physics_asset
from hitboxview.primitives import HIT_COMPONENT_TAG, Box, Capsule, SolidKind, Sphere
from hitboxview.rotation import Rotator, Vector3

PELVIS_BODY = {
    "BoneName": "pelvis",
    "AggGeom": {
        "SphylElems": [{
            "Center": {"X": 0.0, "Y": 1.5, "Z": 4.0},
            "Rotation": {"Pitch": 0.0, "Yaw": 90.0, "Roll": 0.0},
            "Radius": 14.0,
            "Length": 22.0,
        }],
        "BoxElems": [{
            "Center": {"X": 0.0, "Y": 0.0, "Z": -3.0},
            "Rotation": {"Pitch": 10.0, "Yaw": 0.0, "Roll": 5.0},
            "X": 12.0, "Y": 8.0, "Z": 6.0,
        }],
    },
}

HEAD_BODY = {
    "BoneName": "head",
    "Tag": HIT_COMPONENT_TAG,
    "AggGeom": {
        "SphereElems": [
            {"Center": {"X": 0.0, "Y": 0.0, "Z": 9.0}, "Radius": 11.0},
            {"Center": {"X": 0.0, "Y": 6.0, "Z": 0.0}, "Radius": 4.0, "Tag": ""},
        ],
    },
}


class TestLayouts:
    """Test the accepted document layouts."""

    def test_skeletal_body_setups_object(self):
        hitbox_set = decode_physics_asset({"SkeletalBodySetups": [PELVIS_BODY, HEAD_BODY]})
        assert hitbox_set.bones() == ['pelvis', 'head']
        assert len(hitbox_set) == 4

    def test_plain_list(self):
        hitbox_set = decode_physics_asset([HEAD_BODY])
        assert hitbox_set.bones() == ['head']

    def test_keyed_references(self):
        """First object lists its body setups by key."""
        document = {
            "Core_HitboxPhysicsAsset": {"SkeletalBodySetups": ["Body_1", "Body_0"]},
            "Body_0": PELVIS_BODY,
            "Body_1": HEAD_BODY,
        }
        hitbox_set = decode_physics_asset(document)
        assert hitbox_set.bones() == ['head', 'pelvis']

    def test_unknown_reference(self):
        document = {"Asset": {"SkeletalBodySetups": ["Body_9"]}}
        with pytest.raises(DataIntegrityError):
            decode_physics_asset(document)

    @pytest.mark.parametrize('document', [None, 42, {}, {"Asset": {"Other": []}}])
    def test_invalid_documents(self, document):
        with pytest.raises(DataIntegrityError):
            decode_physics_asset(document)


class TestElements:
    """Test element decoding."""

    def test_capsule_fields(self):
        capsule = decode_physics_asset([PELVIS_BODY]).primitives()[0]
        assert capsule == Capsule(
            bone='pelvis',
            center=Vector3(0.0, 1.5, 4.0),
            radius=14.0,
            length=22.0,
            rotation=Rotator(pitch=0.0, yaw=90.0, roll=0.0),
        )

    def test_box_fields(self):
        box = decode_physics_asset([PELVIS_BODY]).primitives()[1]
        assert isinstance(box, Box)
        assert box.extents == Vector3(12.0, 8.0, 6.0)
        assert box.rotation == Rotator(pitch=10.0, yaw=0.0, roll=5.0)

    def test_element_order_per_body(self):
        """Capsules, then spheres, then boxes."""
        body = dict(PELVIS_BODY, AggGeom=dict(PELVIS_BODY["AggGeom"], SphereElems=[{"Radius": 2.0}]))
        kinds = [p.kind for p in decode_physics_asset([body]).primitives()]
        assert kinds == [SolidKind.CAPSULE, SolidKind.SPHERE, SolidKind.BOX]

    def test_tag_precedence(self):
        """Element Tag overrides the body Tag."""
        spheres = decode_physics_asset([HEAD_BODY]).primitives()
        assert all(isinstance(s, Sphere) for s in spheres)
        assert spheres[0].tag == HIT_COMPONENT_TAG
        assert spheres[1].tag == ''

    def test_missing_center_defaults_to_origin(self):
        body = {"BoneName": "hand_l", "AggGeom": {"SphereElems": [{"Radius": 3.0}]}}
        assert decode_physics_asset([body]).primitives()[0].center == Vector3()

    def test_missing_arrays_are_empty(self):
        hitbox_set = decode_physics_asset([{"BoneName": "root"}])
        assert len(hitbox_set) == 0


class TestIntegrityErrors:
    """Test malformed bodies and elements."""

    @pytest.mark.parametrize('body', [
        {"AggGeom": {}},                                                    # no BoneName
        "pelvis",                                                           # not an object
        {"BoneName": "pelvis", "AggGeom": []},                              # AggGeom not an object
        {"BoneName": "pelvis", "AggGeom": {"SphereElems": {"Radius": 1}}},  # not a list
        {"BoneName": "pelvis", "AggGeom": {"SphereElems": [{}]}},           # missing Radius
        {"BoneName": "pelvis", "AggGeom": {"SphereElems": [{"Radius": "big"}]}},
        {"BoneName": "pelvis", "AggGeom": {"SphereElems": [{"Radius": -1.0}]}},
        {"BoneName": "pelvis", "AggGeom": {"SphereElems": [{"Radius": 1.0, "Center": [0, 0, 0]}]}},
        {"BoneName": "pelvis", "AggGeom": {"BoxElems": [{"X": 1.0, "Y": 1.0}]}},
        {"BoneName": "pelvis", "AggGeom": {"SphylElems": ["capsule"]}},
    ])
    def test_malformed_body(self, body):
        with pytest.raises(DataIntegrityError):
            decode_physics_asset([body])


class TestLoadPhysicsAsset:
    """Test file loading."""

    def test_load_file(self, tmp_path):
        path = tmp_path / "physics.json"
        path.write_text(json.dumps({"SkeletalBodySetups": [PELVIS_BODY, HEAD_BODY]}))

        hitbox_set = load_physics_asset(path)
        assert len(hitbox_set) == 4

    def test_missing_file(self, tmp_path):
        with pytest.raises(AssetLoadError):
            load_physics_asset(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(AssetLoadError):
            load_physics_asset(path)

    def test_structure_error_is_not_load_error(self, tmp_path):
        path = tmp_path / "wrong.json"
        path.write_text(json.dumps({"SkeletalBodySetups": [{"AggGeom": {}}]}))
        with pytest.raises(DataIntegrityError):
            load_physics_asset(path)
