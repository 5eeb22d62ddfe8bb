# Copyright (c) 2025 Jonathan Fontanez
# SPDX-License-Identifier: BUSL-1.1

"""
Hitbox primitives and the builder that places them in world space.

Each physics-asset element (capsule, sphere, box) is a small frozen record
tagged with its SolidKind. build_solid() is the single dispatch point that
turns one record plus its owning bone into a SolidDescriptor: world position,
orientation and dimensions ready for the layer renderer.

Builder conventions (all required to match the asset format):
- Capsule: segment endpoints are center +/- rotated (0, 0, length/2). The
  rendered cylinder's long axis is local +Y, so the look-at orientation is
  followed by a fixed +90 degree turn about local X. Zero length folds into a
  sphere.
- Box: bone world orientation, then local X by pitch + 90 degrees, local Y by
  yaw, local Z by -roll.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

import numpy as np

from .rotation import (
    IDENTITY_QUATERNION,
    Quaternion,
    Rotator,
    Vector3,
    axis_angle_quaternion,
    hamilton_product,
    look_at_quaternion,
    quaternion_to_matrix,
    rotate_vector_by_quaternion,
    rotator_to_quaternion,
    vector_add,
)
from .skeleton import BoneFrameResolver, BoneHandle

# Tag carried by the gameplay "critical hit" bodies
HIT_COMPONENT_TAG = 'hit_component'

X_AXIS = Vector3(1.0, 0.0, 0.0)
Y_AXIS = Vector3(0.0, 1.0, 0.0)
Z_AXIS = Vector3(0.0, 0.0, 1.0)

CAPSULE_AXIS_CORRECTION = axis_angle_quaternion(X_AXIS, math.pi / 2)
BOX_PITCH_OFFSET = math.pi / 2


class SolidKind(Enum):
    """Shape of a hitbox primitive or built solid."""
    CAPSULE = "capsule"
    SPHERE = "sphere"
    BOX = "box"


def _check_non_negative(**values: float) -> None:
    for name, value in values.items():
        if value < 0:
            raise ValueError(f"{name} must be >= 0, got {value}")


@dataclass(frozen=True)
class Capsule:
    """Capsule (sphyl) element: segment of `length` swept by `radius`."""
    bone: str
    center: Vector3
    radius: float
    length: float
    rotation: Rotator = Rotator()
    tag: str = ''
    kind: SolidKind = field(default=SolidKind.CAPSULE, init=False)

    def __post_init__(self):
        _check_non_negative(radius=self.radius, length=self.length)


@dataclass(frozen=True)
class Sphere:
    """Sphere element."""
    bone: str
    center: Vector3
    radius: float
    tag: str = ''
    kind: SolidKind = field(default=SolidKind.SPHERE, init=False)

    def __post_init__(self):
        _check_non_negative(radius=self.radius)


@dataclass(frozen=True)
class Box:
    """Oriented box element given by its half-extents."""
    bone: str
    center: Vector3
    extents: Vector3
    rotation: Rotator = Rotator()
    tag: str = ''
    kind: SolidKind = field(default=SolidKind.BOX, init=False)

    def __post_init__(self):
        _check_non_negative(x=self.extents.x, y=self.extents.y, z=self.extents.z)


HitboxPrimitive = Union[Capsule, Sphere, Box]
PrimitivePredicate = Callable[[HitboxPrimitive], bool]


@dataclass(frozen=True)
class HitboxSet:
    """
    Immutable, ordered hitbox primitives grouped by owning bone.

    Attributes:
        bodies: (bone name, primitives) pairs in physics-asset order
    """
    bodies: Tuple[Tuple[str, Tuple[HitboxPrimitive, ...]], ...] = ()

    @classmethod
    def from_primitives(cls, primitives: Iterable[HitboxPrimitive]) -> 'HitboxSet':
        """Group primitives by bone, keeping first-seen bone order."""
        grouped: Dict[str, List[HitboxPrimitive]] = {}
        for primitive in primitives:
            grouped.setdefault(primitive.bone, []).append(primitive)
        return cls(tuple((bone, tuple(items)) for bone, items in grouped.items()))

    def primitives(self) -> List[HitboxPrimitive]:
        return [primitive for _, items in self.bodies for primitive in items]

    def bones(self) -> List[str]:
        return [bone for bone, _ in self.bodies]

    def __len__(self) -> int:
        return sum(len(items) for _, items in self.bodies)


@dataclass(frozen=True)
class SolidDescriptor:
    """
    A primitive placed in world space.

    Attributes:
        kind: Shape to draw
        position: World center (capsule: segment midpoint)
        orientation: World orientation
        dimensions: Capsule (radius, length, radius); sphere (r, r, r);
            box half-extents
        start: Capsule segment start (world), None otherwise
        end: Capsule segment end (world), None otherwise
        tag: Filter tag copied from the primitive
    """
    kind: SolidKind
    position: Vector3
    orientation: Quaternion
    dimensions: Vector3
    start: Optional[Vector3] = None
    end: Optional[Vector3] = None
    tag: str = ''

    @property
    def radius(self) -> float:
        return self.dimensions.x

    def model_matrix(self) -> np.ndarray:
        """4x4 world matrix for the unit mesh of this kind, T @ R @ S."""
        T = np.eye(4, dtype=np.float64)
        T[:3, 3] = self.position.as_array()

        R = np.eye(4, dtype=np.float64)
        R[:3, :3] = quaternion_to_matrix(self.orientation)

        S = np.eye(4, dtype=np.float64)
        np.fill_diagonal(S[:3, :3], self.dimensions.as_array())

        return T @ R @ S


def capsule_between(start: Vector3, end: Vector3, radius: float, tag: str = '') -> SolidDescriptor:
    """Capsule solid swept between two world points."""
    direction = end - start
    orientation = hamilton_product(look_at_quaternion(direction), CAPSULE_AXIS_CORRECTION)
    return SolidDescriptor(
        kind=SolidKind.CAPSULE,
        position=start.lerp(end, 0.5),
        orientation=orientation,
        dimensions=Vector3(radius, direction.length(), radius),
        start=start,
        end=end,
        tag=tag,
    )


def _build_sphere(primitive: Sphere, bone: BoneHandle, scale: float) -> SolidDescriptor:
    radius = primitive.radius * scale
    return SolidDescriptor(
        kind=SolidKind.SPHERE,
        position=bone.local_to_world(primitive.center),
        orientation=IDENTITY_QUATERNION,
        dimensions=Vector3(radius, radius, radius),
        tag=primitive.tag,
    )


def _build_capsule(primitive: Capsule, bone: BoneHandle, scale: float) -> SolidDescriptor:
    if primitive.length == 0:
        sphere = Sphere(bone=primitive.bone, center=primitive.center,
                        radius=primitive.radius, tag=primitive.tag)
        return _build_sphere(sphere, bone, scale)

    rotation = rotator_to_quaternion(primitive.rotation)
    half = primitive.length / 2
    offset = rotate_vector_by_quaternion(Vector3(0.0, 0.0, half), rotation)
    offset_start = vector_add(offset, primitive.center)
    offset_end = vector_add(offset * -1.0, primitive.center)

    return capsule_between(
        bone.local_to_world(offset_start),
        bone.local_to_world(offset_end),
        primitive.radius * scale,
        tag=primitive.tag,
    )


def _build_box(primitive: Box, bone: BoneHandle, scale: float) -> SolidDescriptor:
    rotation = primitive.rotation
    orientation = bone.world_quaternion()
    orientation = hamilton_product(
        orientation, axis_angle_quaternion(X_AXIS, math.radians(rotation.pitch) + BOX_PITCH_OFFSET))
    orientation = hamilton_product(
        orientation, axis_angle_quaternion(Y_AXIS, math.radians(rotation.yaw)))
    orientation = hamilton_product(
        orientation, axis_angle_quaternion(Z_AXIS, -math.radians(rotation.roll)))

    return SolidDescriptor(
        kind=SolidKind.BOX,
        position=bone.local_to_world(primitive.center),
        orientation=orientation,
        dimensions=primitive.extents * scale,
        tag=primitive.tag,
    )


_BUILDERS = {
    SolidKind.CAPSULE: _build_capsule,
    SolidKind.SPHERE: _build_sphere,
    SolidKind.BOX: _build_box,
}


def build_solid(primitive: HitboxPrimitive, bone: BoneHandle, scale: float = 1.0) -> SolidDescriptor:
    """
    Place one hitbox primitive in world space.

    Args:
        primitive: Capsule, Sphere or Box record
        bone: Handle of the primitive's owning bone
        scale: Global uniform scale of the active armor profile

    Returns:
        SolidDescriptor for the layer renderer
    """
    return _BUILDERS[primitive.kind](primitive, bone, scale)


def build_solids(
    hitbox_set: HitboxSet,
    resolver: BoneFrameResolver,
    scale: float = 1.0,
    predicate: Optional[PrimitivePredicate] = None,
) -> List[SolidDescriptor]:
    """
    Build every primitive of a hitbox set that passes `predicate`.

    Raises:
        MissingBoneError: If a primitive references an unknown bone
    """
    solids = []
    for primitive in hitbox_set.primitives():
        if predicate is not None and not predicate(primitive):
            continue
        solids.append(build_solid(primitive, resolver.lookup(primitive.bone), scale))
    return solids


def is_critical(primitive: HitboxPrimitive) -> bool:
    """Critical-hit bodies (tag 'hit_component')."""
    return primitive.tag == HIT_COMPONENT_TAG


def is_general(primitive: HitboxPrimitive) -> bool:
    """Everything that is not a critical-hit body."""
    return not is_critical(primitive)


def bone_name_predicate(names: Iterable[str]) -> PrimitivePredicate:
    """Predicate selecting primitives owned by any of `names` (case-insensitive)."""
    wanted = {name.lower() for name in names}

    def predicate(primitive: HitboxPrimitive) -> bool:
        return primitive.bone.lower() in wanted

    return predicate
