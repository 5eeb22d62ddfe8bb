"""
Tests for hitbox primitive placement.

Tests:
- Capsule segment ends, orientation and the zero-length sphere fold
- Box orientation and half-extents
- Global scale invariance
- Critical/general filtering and bone-name predicates
"""

import math

import numpy as np
import pytest

from hitboxview.errors import MissingBoneError
from hitboxview.primitives import (
    HIT_COMPONENT_TAG,
    Box,
    Capsule,
    HitboxSet,
    SolidKind,
    Sphere,
    bone_name_predicate,
    build_solid,
    build_solids,
    capsule_between,
    is_critical,
    is_general,
)
from hitboxview.rotation import (
    Rotator,
    Vector3,
    axis_angle_quaternion,
    quaternion_to_matrix,
    rotate_vector_by_quaternion,
)
from hitboxview.skeleton import IDENTITY_CONVENTION, BoneFrameResolver, BoneHandle, SkeletonNode

from conftest import assert_vector_close, make_hitbox_set, make_skeleton


@pytest.fixture
def origin_bone():
    """Bone at the world origin with identity orientation and no unit mapping."""
    return BoneHandle(SkeletonNode(name='bone', is_bone=True), IDENTITY_CONVENTION)


class TestCapsule:
    """Test capsule placement."""

    def test_segment_along_bone_z(self, origin_bone):
        capsule = Capsule(bone='bone', center=Vector3(), radius=5.0, length=20.0)
        solid = build_solid(capsule, origin_bone)

        assert solid.kind is SolidKind.CAPSULE
        assert_vector_close(solid.start, (0.0, 0.0, 10.0))
        assert_vector_close(solid.end, (0.0, 0.0, -10.0))
        assert_vector_close(solid.position, (0.0, 0.0, 0.0))
        assert solid.dimensions == Vector3(5.0, 20.0, 5.0)

    def test_cylinder_axis_follows_segment(self, origin_bone):
        """The unit cylinder's +Y axis lies along the segment."""
        capsule = Capsule(bone='bone', center=Vector3(1.0, 2.0, 3.0), radius=4.0, length=12.0,
                          rotation=Rotator(yaw=30.0, pitch=40.0))
        solid = build_solid(capsule, origin_bone)

        axis = rotate_vector_by_quaternion(Vector3(0.0, 1.0, 0.0), solid.orientation)
        segment = (solid.end - solid.start).normalized()
        assert abs(axis.dot(segment)) == pytest.approx(1.0, abs=1e-6)

    def test_rotator_turns_segment(self, origin_bone):
        """Pitch 90 tilts the bone-space Z offset onto -X."""
        capsule = Capsule(bone='bone', center=Vector3(), radius=1.0, length=20.0,
                          rotation=Rotator(pitch=90.0))
        solid = build_solid(capsule, origin_bone)
        assert_vector_close(solid.start, (-10.0, 0.0, 0.0))
        assert_vector_close(solid.end, (10.0, 0.0, 0.0))

    def test_segment_centered_on_offset_center(self, origin_bone):
        capsule = Capsule(bone='bone', center=Vector3(3.0, -2.0, 7.0), radius=2.0, length=20.0,
                          rotation=Rotator(pitch=25.0, yaw=60.0, roll=10.0))
        solid = build_solid(capsule, origin_bone)

        assert_vector_close(solid.position, (3.0, -2.0, 7.0))
        assert (solid.end - solid.start).length() == pytest.approx(20.0)

    def test_zero_length_folds_into_sphere(self, origin_bone):
        center = Vector3(3.0, -1.0, 2.0)
        capsule = build_solid(Capsule(bone='bone', center=center, radius=7.0, length=0.0), origin_bone)
        sphere = build_solid(Sphere(bone='bone', center=center, radius=7.0), origin_bone)

        assert capsule == sphere
        assert capsule.kind is SolidKind.SPHERE

    def test_capsule_between_degenerate_axis(self):
        """A vertical segment (parallel to the look-at up) still gets a valid orientation."""
        solid = capsule_between(Vector3(0.0, -5.0, 0.0), Vector3(0.0, 5.0, 0.0), 2.0)
        assert solid.orientation.norm() == pytest.approx(1.0)
        assert solid.dimensions.y == pytest.approx(10.0)

    def test_negative_radius_rejected(self):
        with pytest.raises(ValueError):
            Capsule(bone='bone', center=Vector3(), radius=-1.0, length=5.0)


class TestBox:
    """Test box placement."""

    def test_unrotated_box_on_origin_bone(self, origin_bone):
        box = Box(bone='bone', center=Vector3(), extents=Vector3(10.0, 5.0, 5.0), rotation=Rotator())
        solid = build_solid(box, origin_bone, scale=1.0)

        assert solid.kind is SolidKind.BOX
        assert_vector_close(solid.position, (0.0, 0.0, 0.0))
        assert solid.dimensions == Vector3(10.0, 5.0, 5.0)

        expected = quaternion_to_matrix(axis_angle_quaternion(Vector3(1.0, 0.0, 0.0), math.pi / 2))
        np.testing.assert_allclose(quaternion_to_matrix(solid.orientation), expected, atol=1e-9)

    def test_box_follows_bone_orientation(self):
        node = SkeletonNode(name='bone', is_bone=True,
                            rotation=axis_angle_quaternion(Vector3(0.0, 0.0, 1.0), math.pi / 2))
        bone = BoneHandle(node, IDENTITY_CONVENTION)
        box = Box(bone='bone', center=Vector3(1.0, 0.0, 0.0), extents=Vector3(1.0, 1.0, 1.0),
                  rotation=Rotator())
        solid = build_solid(box, bone)

        # center is rotated with the bone
        assert_vector_close(solid.position, (0.0, 1.0, 0.0))
        expected = quaternion_to_matrix(node.rotation) @ quaternion_to_matrix(
            axis_angle_quaternion(Vector3(1.0, 0.0, 0.0), math.pi / 2))
        np.testing.assert_allclose(quaternion_to_matrix(solid.orientation), expected, atol=1e-9)

    def test_model_matrix_spans_extents(self, origin_bone):
        """The unit cube (-1..1) scaled by half-extents spans the full box."""
        box = Box(bone='bone', center=Vector3(), extents=Vector3(10.0, 5.0, 2.0), rotation=Rotator(pitch=-90.0))
        corner = build_solid(box, origin_bone).model_matrix() @ np.array([1.0, 1.0, 1.0, 1.0])
        np.testing.assert_allclose(corner[:3], [10.0, 5.0, 2.0], atol=1e-9)


class TestScale:
    """Global scale multiplies sizes and leaves orientation alone."""

    @pytest.mark.parametrize('primitive', [
        Capsule(bone='bone', center=Vector3(0.0, 1.0, 0.0), radius=5.0, length=20.0, rotation=Rotator(yaw=25.0)),
        Sphere(bone='bone', center=Vector3(2.0, 0.0, 0.0), radius=3.0),
        Box(bone='bone', center=Vector3(), extents=Vector3(4.0, 2.0, 1.0), rotation=Rotator(roll=15.0)),
    ])
    def test_doubling_scale(self, origin_bone, primitive):
        single = build_solid(primitive, origin_bone, scale=1.0)
        double = build_solid(primitive, origin_bone, scale=2.0)

        if single.kind is SolidKind.CAPSULE:
            assert double.radius == pytest.approx(2.0 * single.radius)
        else:
            assert_vector_close(double.dimensions, (single.dimensions * 2.0).as_array())
        assert double.orientation == single.orientation
        assert double.position == single.position


class TestFiltering:
    """Test critical/general split."""

    def test_predicates(self):
        critical = Sphere(bone='head', center=Vector3(), radius=1.0, tag=HIT_COMPONENT_TAG)
        general = Sphere(bone='head', center=Vector3(), radius=1.0)
        assert is_critical(critical) and not is_general(critical)
        assert is_general(general) and not is_critical(general)

    def test_critical_plus_general_is_total(self):
        hitbox_set = make_hitbox_set()
        resolver = BoneFrameResolver().resolve(make_skeleton())

        critical = build_solids(hitbox_set, resolver, predicate=is_critical)
        general = build_solids(hitbox_set, resolver, predicate=is_general)

        assert len(critical) == 1
        assert len(general) == 2
        assert len(critical) + len(general) == len(hitbox_set)
        assert all(solid.tag == HIT_COMPONENT_TAG for solid in critical)

    def test_bone_name_predicate(self):
        head_neck = bone_name_predicate(['Head', 'Neck'])
        assert head_neck(Sphere(bone='head', center=Vector3(), radius=1.0))
        assert head_neck(Sphere(bone='NECK', center=Vector3(), radius=1.0))
        assert not head_neck(Sphere(bone='pelvis', center=Vector3(), radius=1.0))

    def test_missing_bone_raises(self):
        hitbox_set = HitboxSet.from_primitives([
            Sphere(bone='tail', center=Vector3(), radius=1.0),
        ])
        resolver = BoneFrameResolver().resolve(make_skeleton())
        with pytest.raises(MissingBoneError):
            build_solids(hitbox_set, resolver)

    def test_hitbox_set_groups_by_bone(self):
        hitbox_set = make_hitbox_set()
        assert hitbox_set.bones() == ['pelvis', 'spine_01', 'head']
        assert [p.kind for p in hitbox_set.primitives()] == [
            SolidKind.CAPSULE, SolidKind.BOX, SolidKind.SPHERE,
        ]
