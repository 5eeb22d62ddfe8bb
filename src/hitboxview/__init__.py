# Copyright (c) 2025 Jonathan Fontanez
# SPDX-License-Identifier: BUSL-1.1

"""
hitboxview - Interactive hitbox visualizer for skinned characters

Renders an armored character together with its physics-asset hitboxes as
stacked offscreen layers.

Architecture:
- Rotation math: engine rotators, quaternions, look-at orientation
- Skeleton: node tree + case-insensitive bone lookup
- Primitives: capsule/sphere/box hitboxes placed in world space
- Layers: offscreen render targets composited with per-layer opacity
- Pipeline: layer stack, resize, asynchronous armor-profile swaps

Example:
    from hitboxview import CompositePipeline, DEFAULT_PROFILES

    pipeline = CompositePipeline(DEFAULT_PROFILES)
    pipeline.create(ctx, 1280, 720)
    await pipeline.select_profile(0)
    pipeline.draw(frame)
"""

# Core math
from .rotation import (
    Vector3,
    Quaternion,
    Rotator,
    IDENTITY_QUATERNION,
    rotator_to_quaternion,
    hamilton_product,
    quaternion_inverse,
    rotate_vector_by_quaternion,
    look_at_quaternion,
)
from .skeleton import SkeletonNode, BoneHandle, BoneFrameResolver, BoneSpaceConvention
from .primitives import (
    Capsule,
    Sphere,
    Box,
    HitboxSet,
    SolidKind,
    SolidDescriptor,
    build_solid,
    build_solids,
    is_critical,
    is_general,
    bone_name_predicate,
)

# Errors
from .errors import (
    HitboxViewError,
    DataIntegrityError,
    MissingBoneError,
    AssetLoadError,
    LayerStateError,
)

# Loading
from .assets import CharacterAsset, load_glb
from .physics_asset import decode_physics_asset, load_physics_asset
from .config import ArmorProfile, DEFAULT_PROFILES, ViewerConfig, load_profiles

# Rendering
from .camera import OrbitCamera
from .clocks import FrameContext, SoftwareClock
from .scene import LayerState, LayerScene, SolidLayer, HitboxLayer, CollisionCapsuleLayer, CompositeQuad
from .character import CharacterLayer
from .edge import edge_highlight
from .pipeline import CompositePipeline, alpha_blend

__version__ = "0.1.0"
