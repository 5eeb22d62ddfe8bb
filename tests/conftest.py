"""
Shared fixtures.

GPU-free: a MagicMock stands in for the moderngl context, so layers and the
pipeline run their full lifecycle without a GL driver.
"""

from pathlib import Path
from unittest.mock import MagicMock

import numpy as np
import pytest

from hitboxview.assets import AnimationChannel, AnimationClip, CharacterAsset, MaterialData
from hitboxview.config import ArmorProfile
from hitboxview.primitives import HIT_COMPONENT_TAG, Box, Capsule, HitboxSet, Sphere
from hitboxview.rotation import Rotator, Vector3
from hitboxview.skeleton import SkeletonNode


@pytest.fixture
def gl_context():
    """Mock moderngl context."""
    return MagicMock(name='moderngl.Context')


def make_skeleton() -> SkeletonNode:
    """root -> pelvis (bone) -> spine (bone) -> head (bone), Y-up metres."""
    root = SkeletonNode(name='root')
    pelvis = root.add_child(SkeletonNode(name='pelvis', translation=Vector3(0.0, 0.9, 0.0), is_bone=True))
    spine = pelvis.add_child(SkeletonNode(name='spine_01', translation=Vector3(0.0, 0.3, 0.0), is_bone=True))
    spine.add_child(SkeletonNode(name='Head', translation=Vector3(0.0, 0.4, 0.0), is_bone=True))
    return root


def make_asset(animated: bool = False) -> CharacterAsset:
    root = make_skeleton()
    joints = [node for node in root.walk() if node.is_bone]
    animation = None
    if animated:
        head = joints[-1]
        animation = AnimationClip(name='idle', channels=[AnimationChannel(
            node=head,
            path='translation',
            times=np.array([0.0, 1.0]),
            values=np.array([[0.0, 0.4, 0.0], [0.0, 0.6, 0.0]]),
        )])
    return CharacterAsset(
        root=root,
        primitives=[],
        materials=[MaterialData(name='default')],
        joints=joints,
        inverse_bind_matrices=np.tile(np.eye(4), (len(joints), 1, 1)),
        animation=animation,
    )


def make_hitbox_set() -> HitboxSet:
    """One critical sphere on the head, two general bodies on the pelvis/spine."""
    return HitboxSet.from_primitives([
        Capsule(bone='pelvis', center=Vector3(0.0, 0.0, 5.0), radius=12.0, length=20.0),
        Box(bone='spine_01', center=Vector3(), extents=Vector3(10.0, 5.0, 5.0), rotation=Rotator()),
        Sphere(bone='head', center=Vector3(0.0, 0.0, 8.0), radius=11.0, tag=HIT_COMPONENT_TAG),
    ])


@pytest.fixture
def profiles():
    return [
        ArmorProfile(name='Light', mesh_path=Path('light.glb'), physics_path=Path('light.json'),
                     vertical_offset=-92.0, scale=0.94),
        ArmorProfile(name='Medium', mesh_path=Path('medium.glb'), physics_path=Path('medium.json'),
                     vertical_offset=-92.0, scale=1.0),
        ArmorProfile(name='Heavy', mesh_path=Path('heavy.glb'), physics_path=Path('heavy.json'),
                     vertical_offset=-92.0, scale=1.05, capsule_radius=46.0, capsule_height=190.0),
    ]


def assert_vector_close(actual: Vector3, expected, atol: float = 1e-6):
    np.testing.assert_allclose(actual.as_array(), np.asarray(expected, dtype=np.float64), atol=atol)


