# Copyright (c) 2025 Jonathan Fontanez
# SPDX-License-Identifier: BUSL-1.1

"""Rotator-driven orbit camera.

The camera sits `distance` units from the world origin and is lifted by
`height` along +Z. Its orientation is the orbit rotator composed with a fixed
base rotation that turns a Y-up, -Z-forward camera into the Z-up world, so a
zero rotator looks down -X at the character's front.

View and projection matrices come from pyrr and are uploaded unchanged.
"""

import logging

import numpy as np
from pyrr import Matrix44

from . import config
from .rotation import (
    Quaternion,
    Rotator,
    Vector3,
    hamilton_product,
    rotate_vector_by_quaternion,
    rotator_to_quaternion,
)

logger = logging.getLogger(__name__)

# Maps camera X/Y/Z onto world Y/Z/X
CAMERA_BASE_ROTATION = Quaternion(0.5, 0.5, 0.5, 0.5)


class OrbitCamera:
    """Perspective camera orbiting the character."""

    def __init__(self, width: int = config.DEFAULT_WIDTH, height: int = config.DEFAULT_HEIGHT,
                 fov: float = config.CAMERA_FOV, near: float = config.CAMERA_NEAR,
                 far: float = config.CAMERA_FAR, distance: float = config.CAMERA_DISTANCE,
                 lift: float = config.CAMERA_HEIGHT,
                 sensitivity: float = config.ORBIT_SENSITIVITY):
        self.width = width
        self.height = height
        self.fov = fov
        self.near = near
        self.far = far
        self.distance = distance
        self.lift = lift
        self.sensitivity = sensitivity
        self.rotation = Rotator()

    @property
    def aspect(self) -> float:
        return self.width / max(self.height, 1)

    def resize(self, width: int, height: int):
        """Update viewport size."""
        self.width = width
        self.height = height

    def orbit(self, dx: float, dy: float):
        """
        Rotate around the character by a mouse drag.

        Args:
            dx: Horizontal movement in pixels (changes yaw)
            dy: Vertical movement in pixels (changes pitch)
        """
        self.rotation = Rotator(
            pitch=self.rotation.pitch + dy * self.sensitivity,
            yaw=self.rotation.yaw - dx * self.sensitivity,
            roll=self.rotation.roll,
        )

    def orientation(self) -> Quaternion:
        return hamilton_product(rotator_to_quaternion(self.rotation), CAMERA_BASE_ROTATION)

    def position(self) -> Vector3:
        offset = rotate_vector_by_quaternion(Vector3(0.0, 0.0, self.distance), self.orientation())
        return offset + Vector3(0.0, 0.0, self.lift)

    def get_view_matrix(self) -> np.ndarray:
        """Get view matrix from camera position and orientation."""
        orientation = self.orientation()
        eye = self.position()
        forward = rotate_vector_by_quaternion(Vector3(0.0, 0.0, -1.0), orientation)
        up = rotate_vector_by_quaternion(Vector3(0.0, 1.0, 0.0), orientation)
        return np.asarray(Matrix44.look_at(
            eye.as_array(),
            (eye + forward).as_array(),
            up.as_array(),
            dtype=np.float32,
        ))

    def get_projection_matrix(self) -> np.ndarray:
        """Get perspective projection matrix."""
        return np.asarray(Matrix44.perspective_projection(
            self.fov, self.aspect, self.near, self.far,
            dtype=np.float32,
        ))
