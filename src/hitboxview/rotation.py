# Copyright (c) 2025 Jonathan Fontanez
# SPDX-License-Identifier: BUSL-1.1

"""
Rotation math for physics-asset geometry.

Rotators follow the source engine's pitch/yaw/roll convention (degrees) and
are converted to quaternions with a fixed, convention-specific formula. The
axis signs are part of the asset format and must not be replaced by a generic
Euler conversion.

All quaternions here are (x, y, z, w) with w the scalar part.
"""

import math
from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class Vector3:
    """Plain float triple."""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __add__(self, other: 'Vector3') -> 'Vector3':
        return Vector3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: 'Vector3') -> 'Vector3':
        return Vector3(self.x - other.x, self.y - other.y, self.z - other.z)

    def __mul__(self, scalar: float) -> 'Vector3':
        return Vector3(self.x * scalar, self.y * scalar, self.z * scalar)

    __rmul__ = __mul__

    def dot(self, other: 'Vector3') -> float:
        return self.x * other.x + self.y * other.y + self.z * other.z

    def cross(self, other: 'Vector3') -> 'Vector3':
        return Vector3(
            self.y * other.z - self.z * other.y,
            self.z * other.x - self.x * other.z,
            self.x * other.y - self.y * other.x,
        )

    def length(self) -> float:
        return math.sqrt(self.dot(self))

    def normalized(self) -> 'Vector3':
        length = self.length()
        if length == 0.0:
            return Vector3()
        return self * (1.0 / length)

    def lerp(self, other: 'Vector3', t: float) -> 'Vector3':
        return self + (other - self) * t

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=np.float64)

    @classmethod
    def from_array(cls, values) -> 'Vector3':
        return cls(float(values[0]), float(values[1]), float(values[2]))


@dataclass(frozen=True)
class Quaternion:
    """Rotation quaternion (x, y, z, w)."""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    w: float = 1.0

    def norm(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z + self.w * self.w)

    def normalized(self) -> 'Quaternion':
        n = self.norm()
        return Quaternion(self.x / n, self.y / n, self.z / n, self.w / n)

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z, self.w], dtype=np.float64)


@dataclass(frozen=True)
class Rotator:
    """Pitch/yaw/roll in degrees (source engine convention)."""
    pitch: float = 0.0
    yaw: float = 0.0
    roll: float = 0.0


IDENTITY_QUATERNION = Quaternion(0.0, 0.0, 0.0, 1.0)


def rotator_to_quaternion(rotator: Rotator) -> Quaternion:
    """
    Convert a rotator to a unit quaternion.

    Args:
        rotator: Pitch/yaw/roll in degrees

    Returns:
        Unit quaternion in the asset's coordinate convention
    """
    sp = math.sin(rotator.pitch * math.pi / 360)
    cp = math.cos(rotator.pitch * math.pi / 360)
    sy = math.sin(rotator.yaw * math.pi / 360)
    cy = math.cos(rotator.yaw * math.pi / 360)
    sr = math.sin(rotator.roll * math.pi / 360)
    cr = math.cos(rotator.roll * math.pi / 360)

    return Quaternion(
        x=cr * sp * sy - sr * cp * cy,
        y=-cr * sp * cy - sr * cp * sy,
        z=cr * cp * sy - sr * sp * cy,
        w=cr * cp * cy + sr * sp * sy,
    )


def hamilton_product(a: Quaternion, b: Quaternion) -> Quaternion:
    """Quaternion product a * b (apply b first, then a)."""
    return Quaternion(
        x=a.w * b.x + a.x * b.w + a.y * b.z - a.z * b.y,
        y=a.w * b.y - a.x * b.z + a.y * b.w + a.z * b.x,
        z=a.w * b.z + a.x * b.y - a.y * b.x + a.z * b.w,
        w=a.w * b.w - a.x * b.x - a.y * b.y - a.z * b.z,
    )


def quaternion_inverse(q: Quaternion) -> Quaternion:
    """Inverse of a unit quaternion (its conjugate)."""
    return Quaternion(-q.x, -q.y, -q.z, q.w)


def rotate_vector_by_quaternion(vector: Vector3, rotation: Quaternion) -> Vector3:
    """Rotate a vector by computing q * v * q^-1."""
    point = Quaternion(vector.x, vector.y, vector.z, 0.0)
    rotated = hamilton_product(hamilton_product(rotation, point), quaternion_inverse(rotation))
    return Vector3(rotated.x, rotated.y, rotated.z)


def vector_add(a: Vector3, b: Vector3) -> Vector3:
    return a + b


def axis_angle_quaternion(axis: Vector3, angle: float) -> Quaternion:
    """Quaternion rotating by `angle` radians about `axis`."""
    axis = axis.normalized()
    s = math.sin(angle / 2)
    return Quaternion(axis.x * s, axis.y * s, axis.z * s, math.cos(angle / 2))


def quaternion_to_matrix(q: Quaternion) -> np.ndarray:
    """3x3 rotation matrix (column-vector convention) for a unit quaternion."""
    x, y, z, w = q.x, q.y, q.z, q.w
    return np.array([
        [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
        [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
        [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
    ], dtype=np.float64)


def quaternion_from_matrix(m: np.ndarray) -> Quaternion:
    """Unit quaternion from the rotation part of a 3x3 (or 4x4) matrix."""
    m00, m01, m02 = m[0][0], m[0][1], m[0][2]
    m10, m11, m12 = m[1][0], m[1][1], m[1][2]
    m20, m21, m22 = m[2][0], m[2][1], m[2][2]
    trace = m00 + m11 + m22

    if trace > 0:
        s = 0.5 / math.sqrt(trace + 1.0)
        q = Quaternion((m21 - m12) * s, (m02 - m20) * s, (m10 - m01) * s, 0.25 / s)
    elif m00 > m11 and m00 > m22:
        s = 2.0 * math.sqrt(1.0 + m00 - m11 - m22)
        q = Quaternion(0.25 * s, (m01 + m10) / s, (m02 + m20) / s, (m21 - m12) / s)
    elif m11 > m22:
        s = 2.0 * math.sqrt(1.0 + m11 - m00 - m22)
        q = Quaternion((m01 + m10) / s, 0.25 * s, (m12 + m21) / s, (m02 - m20) / s)
    else:
        s = 2.0 * math.sqrt(1.0 + m22 - m00 - m11)
        q = Quaternion((m02 + m20) / s, (m12 + m21) / s, 0.25 * s, (m10 - m01) / s)

    return q.normalized()


def look_at_quaternion(direction: Vector3, up: Vector3 = Vector3(0.0, 1.0, 0.0)) -> Quaternion:
    """
    Orientation whose local +Z axis points along `direction`.

    Args:
        direction: Target direction (need not be normalized)
        up: World up used to build the basis

    Returns:
        Unit quaternion; identity for a zero direction
    """
    z = direction.normalized()
    if z.length() == 0.0:
        return IDENTITY_QUATERNION

    x = up.cross(z)
    if x.length() == 0.0:
        # direction parallel to up: nudge it off the axis
        if abs(up.z) == 1.0:
            z = Vector3(z.x + 0.0001, z.y, z.z).normalized()
        else:
            z = Vector3(z.x, z.y, z.z + 0.0001).normalized()
        x = up.cross(z)

    x = x.normalized()
    y = z.cross(x)

    basis = np.array([
        [x.x, y.x, z.x],
        [x.y, y.y, z.y],
        [x.z, y.z, z.z],
    ], dtype=np.float64)
    return quaternion_from_matrix(basis)
