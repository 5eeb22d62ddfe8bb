# Copyright (c) 2025 Jonathan Fontanez
# SPDX-License-Identifier: BUSL-1.1

"""
Skeleton node tree and bone lookup.

A skeleton is a tree of SkeletonNode objects, each with a local TRS transform
relative to its parent. World transforms are derived by walking the parent
chain every time they are requested, so an animated pose is always current.

BoneFrameResolver indexes every node flagged as a bone under its lower-cased
name and hands out BoneHandle objects that the primitive builder uses to map
physics-asset points into world space.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

import numpy as np

from .errors import MissingBoneError
from .rotation import (
    IDENTITY_QUATERNION,
    Quaternion,
    Vector3,
    quaternion_from_matrix,
    quaternion_to_matrix,
)

logger = logging.getLogger(__name__)


@dataclass
class SkeletonNode:
    """Joint or plain transform node in a skeleton hierarchy."""
    name: str
    translation: Vector3 = field(default_factory=Vector3)
    rotation: Quaternion = IDENTITY_QUATERNION
    scale: Vector3 = field(default_factory=lambda: Vector3(1.0, 1.0, 1.0))
    is_bone: bool = False
    children: List['SkeletonNode'] = field(default_factory=list)
    parent: Optional['SkeletonNode'] = field(default=None, repr=False)

    def add_child(self, child: 'SkeletonNode') -> 'SkeletonNode':
        child.parent = self
        self.children.append(child)
        return child

    def local_matrix(self) -> np.ndarray:
        """4x4 local transform, T @ R @ S."""
        T = np.eye(4, dtype=np.float64)
        T[:3, 3] = self.translation.as_array()

        R = np.eye(4, dtype=np.float64)
        R[:3, :3] = quaternion_to_matrix(self.rotation)

        S = np.eye(4, dtype=np.float64)
        np.fill_diagonal(S[:3, :3], self.scale.as_array())

        return T @ R @ S

    def world_matrix(self) -> np.ndarray:
        """4x4 world transform, derived from the live parent chain."""
        local = self.local_matrix()
        if self.parent is None:
            return local
        return self.parent.world_matrix() @ local

    def walk(self) -> Iterator['SkeletonNode']:
        """Depth-first iteration over this node and its descendants."""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass(frozen=True)
class BoneSpaceConvention:
    """
    Mapping from physics-asset coordinates into the mesh's bone space.

    Physics assets are authored in centimetres with Z up; the exported mesh
    uses metres with Y up. The default reproduces that mapping:
    (x, y, z) -> (x / 100, z / 100, y / 100).
    """
    unit_scale: float = 0.01
    swap_yz: bool = True

    def apply(self, point: Vector3) -> Vector3:
        if self.swap_yz:
            point = Vector3(point.x, point.z, point.y)
        return point * self.unit_scale


DEFAULT_CONVENTION = BoneSpaceConvention()
IDENTITY_CONVENTION = BoneSpaceConvention(unit_scale=1.0, swap_yz=False)


class BoneHandle:
    """Live view of one bone's world transform."""

    def __init__(self, node: SkeletonNode, convention: BoneSpaceConvention = DEFAULT_CONVENTION):
        self.node = node
        self.convention = convention

    @property
    def name(self) -> str:
        return self.node.name

    def world_matrix(self) -> np.ndarray:
        return self.node.world_matrix()

    def world_position(self) -> Vector3:
        return Vector3.from_array(self.world_matrix()[:3, 3])

    def world_quaternion(self) -> Quaternion:
        """World orientation with scale removed."""
        rotation = self.world_matrix()[:3, :3].copy()
        lengths = np.linalg.norm(rotation, axis=0)
        lengths[lengths == 0.0] = 1.0
        return quaternion_from_matrix(rotation / lengths)

    def local_to_world(self, point: Vector3) -> Vector3:
        """Transform a physics-asset point on this bone into world space."""
        local = self.convention.apply(point)
        world = self.world_matrix() @ np.array([local.x, local.y, local.z, 1.0])
        return Vector3(float(world[0]), float(world[1]), float(world[2]))

    def __repr__(self) -> str:
        return f"BoneHandle({self.node.name!r})"


class BoneFrameResolver:
    """
    Case-insensitive bone name -> BoneHandle table for one skeleton.

    Example:
        resolver = BoneFrameResolver().resolve(skeleton_root)
        spine = resolver.lookup('Spine')
        world = spine.local_to_world(Vector3(0, 0, 10))
    """

    def __init__(self, convention: BoneSpaceConvention = DEFAULT_CONVENTION):
        self.convention = convention
        self._bones: Dict[str, BoneHandle] = {}
        self._exact: Dict[str, BoneHandle] = {}

    def resolve(self, root: SkeletonNode) -> 'BoneFrameResolver':
        """
        Index every bone under `root`.

        Args:
            root: Root node of the skeleton hierarchy

        Returns:
            self, for chaining
        """
        self._bones.clear()
        self._exact.clear()
        self._visit(root)
        logger.debug(f"Resolved {len(self._bones)} bones under '{root.name}'")
        return self

    def _visit(self, node: SkeletonNode) -> None:
        for child in node.children:
            self._visit(child)

        if not node.is_bone:
            return

        handle = BoneHandle(node, self.convention)
        key = node.name.lower()
        if key in self._bones:
            logger.warning(f"Duplicate bone name '{node.name}' (case-insensitive), keeping first")
        else:
            self._bones[key] = handle
        self._exact.setdefault(node.name, handle)

    def lookup(self, name: str) -> BoneHandle:
        """
        Find a bone by exact or case-insensitive name.

        Raises:
            MissingBoneError: If the skeleton has no such bone
        """
        handle = self._exact.get(name)
        if handle is not None:
            return handle
        try:
            return self._bones[name.lower()]
        except KeyError:
            raise MissingBoneError(name) from None

    def names(self) -> List[str]:
        return [handle.name for handle in self._bones.values()]

    def __contains__(self, name: str) -> bool:
        return name in self._exact or name.lower() in self._bones

    def __len__(self) -> int:
        return len(self._bones)
