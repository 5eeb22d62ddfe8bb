"""
Tests for offscreen layers.

Tests:
- LayerState lifecycle (build, lazy target, resize, release) and misuse
- Solid instancing (capsule = cylinder + two caps)
- Hitbox layers built from a live skeleton
- Collision capsule geometry and edge-highlight composite
"""

import numpy as np
import pytest

from hitboxview.errors import LayerStateError, MissingBoneError
from hitboxview.primitives import SolidDescriptor, SolidKind, capsule_between, is_critical, is_general
from hitboxview.rotation import IDENTITY_QUATERNION, Vector3
from hitboxview.scene import (
    CollisionCapsuleLayer,
    HitboxLayer,
    LayerState,
    SolidLayer,
    collision_capsule,
    light_direction,
    solid_instances,
)
from hitboxview.camera import OrbitCamera
from hitboxview.skeleton import BoneFrameResolver

from conftest import assert_vector_close, make_hitbox_set, make_skeleton


def box_solid() -> SolidDescriptor:
    return SolidDescriptor(
        kind=SolidKind.BOX,
        position=Vector3(),
        orientation=IDENTITY_QUATERNION,
        dimensions=Vector3(1.0, 2.0, 3.0),
    )


@pytest.fixture
def camera():
    return OrbitCamera(width=320, height=240)


class TestLifecycle:
    """Test the layer state machine."""

    def test_initial_state(self):
        layer = SolidLayer('hitboxes', (0.0, 0.5, 1.0), 0.4)
        assert layer.state is LayerState.UNINITIALIZED
        assert layer.texture is None

    def test_draw_before_build(self, camera):
        layer = SolidLayer('hitboxes', (0.0, 0.5, 1.0), 0.4)
        with pytest.raises(LayerStateError):
            layer.draw(camera)

    def test_build_twice(self, gl_context):
        layer = SolidLayer('hitboxes', (0.0, 0.5, 1.0), 0.4)
        layer.build(gl_context, 320, 240)
        with pytest.raises(LayerStateError):
            layer.build(gl_context, 320, 240)

    def test_target_allocated_lazily(self, gl_context, camera):
        layer = SolidLayer('hitboxes', (0.0, 0.5, 1.0), 0.4)
        layer.build(gl_context, 320, 240)

        assert layer.state is LayerState.SCENE_BUILT
        gl_context.framebuffer.assert_not_called()

        layer.draw(camera)
        assert layer.state is LayerState.DRAWING
        gl_context.texture.assert_called_once_with((320, 240), 4)
        gl_context.framebuffer.assert_called_once()
        layer.fbo.clear.assert_called_once_with(0.0, 0.0, 0.0, 0.0)

    def test_target_reused_between_frames(self, gl_context, camera):
        layer = SolidLayer('hitboxes', (0.0, 0.5, 1.0), 0.4)
        layer.build(gl_context, 320, 240)
        layer.draw(camera)
        layer.draw(camera)
        assert gl_context.framebuffer.call_count == 1

    def test_resize_reallocates_and_keeps_opacity(self, gl_context, camera):
        layer = SolidLayer('hitboxes', (0.0, 0.5, 1.0), 0.4)
        layer.build(gl_context, 320, 240)
        layer.draw(camera)
        old_texture = layer.texture

        layer.resize(640, 480)
        assert layer.state is LayerState.SCENE_BUILT
        assert layer.texture is None
        old_texture.release.assert_called()

        layer.draw(camera)
        gl_context.texture.assert_called_with((640, 480), 4)
        assert layer.composite_quad().opacity == 0.4

    def test_composite_quad_requires_target(self, gl_context):
        layer = SolidLayer('hitboxes', (0.0, 0.5, 1.0), 0.4)
        layer.build(gl_context, 320, 240)
        with pytest.raises(LayerStateError):
            layer.composite_quad()

    def test_release(self, gl_context, camera):
        layer = SolidLayer('hitboxes', (0.0, 0.5, 1.0), 0.4)
        layer.build(gl_context, 320, 240)
        layer.draw(camera)

        layer.release()
        assert layer.state is LayerState.UNINITIALIZED
        assert layer.fbo is None
        with pytest.raises(LayerStateError):
            layer.draw(camera)

    def test_release_unbuilt_layer(self):
        layer = SolidLayer('hitboxes', (0.0, 0.5, 1.0), 0.4)
        layer.release()
        assert layer.state is LayerState.UNINITIALIZED


class TestSolidLayer:
    """Test solid instancing and drawing."""

    def test_capsule_instances(self):
        capsule = capsule_between(Vector3(0.0, 0.0, -10.0), Vector3(0.0, 0.0, 10.0), 3.0)
        instances = solid_instances(capsule)

        assert [key for key, _ in instances] == ['cylinder', 'sphere', 'sphere']
        cap_centers = sorted(matrix[2, 3] for _, matrix in instances[1:])
        assert cap_centers == pytest.approx([-10.0, 10.0])
        # caps use the capsule radius
        assert instances[1][1][0, 0] == pytest.approx(3.0)

    def test_box_and_sphere_instances(self):
        assert [key for key, _ in solid_instances(box_solid())] == ['cube']
        sphere = SolidDescriptor(SolidKind.SPHERE, Vector3(), IDENTITY_QUATERNION, Vector3(2.0, 2.0, 2.0))
        assert [key for key, _ in solid_instances(sphere)] == ['sphere']

    def test_draw_renders_every_instance(self, gl_context, camera):
        capsule = capsule_between(Vector3(0.0, 0.0, -10.0), Vector3(0.0, 0.0, 10.0), 3.0)
        layer = SolidLayer('hitboxes', (0.0, 0.5, 1.0), 0.4, solids=[capsule, box_solid()])
        layer.build(gl_context, 320, 240)

        gl_context.vertex_array.return_value.render.reset_mock()
        layer.draw(camera)

        assert gl_context.vertex_array.return_value.render.call_count == 4

    def test_light_direction_normalized(self):
        direction = np.array(light_direction())
        assert np.linalg.norm(direction) == pytest.approx(1.0)
        np.testing.assert_allclose(direction, [np.sqrt(0.5), 0.0, np.sqrt(0.5)])


class TestHitboxLayer:
    """Test hitbox layers."""

    def test_filtered_solids(self):
        resolver = BoneFrameResolver().resolve(make_skeleton())
        critical = HitboxLayer('critical', (1.0, 0.0, 1.0), 0.6, make_hitbox_set(), resolver, 1.0, is_critical)
        general = HitboxLayer('general', (0.0, 0.5, 1.0), 0.4, make_hitbox_set(), resolver, 1.0, is_general)

        assert len(critical.solids) == 1
        assert len(general.solids) == 2

    def test_refresh_follows_pose(self):
        root = make_skeleton()
        resolver = BoneFrameResolver().resolve(root)
        layer = HitboxLayer('critical', (1.0, 0.0, 1.0), 0.6, make_hitbox_set(), resolver, 1.0, is_critical)
        before = layer.solids[0].position

        root.translation = Vector3(0.0, 0.0, 1.0)
        layer.refresh()
        assert_vector_close(layer.solids[0].position - before, (0.0, 0.0, 1.0))

    def test_missing_bone_raises_on_construction(self):
        root = make_skeleton()
        root.children[0].children[0].children[0].is_bone = False  # drop 'Head'
        resolver = BoneFrameResolver().resolve(root)
        with pytest.raises(MissingBoneError):
            HitboxLayer('critical', (1.0, 0.0, 1.0), 0.6, make_hitbox_set(), resolver, 1.0, is_critical)


class TestCollisionCapsule:
    """Test the collision capsule layer."""

    def test_capsule_geometry(self):
        solid = collision_capsule(42.0, 184.0)
        assert solid.kind is SolidKind.CAPSULE
        assert_vector_close(solid.start, (0.0, 0.0, -50.0))
        assert_vector_close(solid.end, (0.0, 0.0, 50.0))
        assert solid.radius == 42.0
        # total height including the caps
        assert solid.end.z + solid.radius - (solid.start.z - solid.radius) == pytest.approx(184.0)

    def test_short_capsule_is_sphere(self):
        solid = collision_capsule(50.0, 80.0)
        assert solid.kind is SolidKind.SPHERE
        assert solid.dimensions == Vector3(50.0, 50.0, 50.0)

    def test_edge_composite_uniforms(self, gl_context, camera):
        layer = CollisionCapsuleLayer(42.0, 184.0)
        layer.build(gl_context, 320, 240)
        layer.draw(camera)

        quad = layer.composite_quad()
        assert quad.opacity == pytest.approx(0.9)
        assert quad.uniforms['u_aspect'] == pytest.approx(320 / 240)
        assert quad.uniforms['u_base_alpha'] == pytest.approx(1.0)

    def test_flat_shaded(self):
        assert CollisionCapsuleLayer(42.0, 184.0).lit is False

    def test_composite_pixels_outline_only(self, gl_context, camera, monkeypatch):
        layer = CollisionCapsuleLayer(42.0, 184.0)
        layer.build(gl_context, 400, 400)
        layer.draw(camera)

        silhouette = np.zeros((400, 400, 4), dtype=np.uint8)
        silhouette[100:300, 100:300] = 255
        monkeypatch.setattr(layer, 'read_pixels', lambda: silhouette)

        pixels = layer.composite_pixels()
        assert pixels.dtype == np.uint8
        assert pixels[200, 200, 3] == 0      # interior
        assert pixels[10, 10, 3] == 0        # outside
        assert pixels[100, 200, 3] > 0       # boundary
