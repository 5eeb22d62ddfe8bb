# Copyright (c) 2025 Jonathan Fontanez
# SPDX-License-Identifier: BUSL-1.1

"""Procedural unit meshes used by the layer renderers.

Every mesh is returned as a float32 array of shape (N, 6): position xyz
followed by normal xyz, three rows per triangle, ready for a '3f 3f' buffer.

- unit_sphere: radius 1, centered at the origin
- unit_cylinder: radius 1, height 1 along +Y, centered at the origin, capped
- unit_cube: half-extent 1 (spans -1..1 on every axis)
"""

import math

import numpy as np


def _triangles(vertices: list) -> np.ndarray:
    return np.array(vertices, dtype=np.float32).reshape(-1, 6)


def unit_sphere(width_segments: int = 16, height_segments: int = 16) -> np.ndarray:
    """Latitude/longitude sphere."""
    def point(u: int, v: int):
        theta = math.pi * v / height_segments
        phi = 2.0 * math.pi * u / width_segments
        x = -math.cos(phi) * math.sin(theta)
        y = math.cos(theta)
        z = math.sin(phi) * math.sin(theta)
        # normal equals position on a unit sphere
        return (x, y, z, x, y, z)

    vertices = []
    for v in range(height_segments):
        for u in range(width_segments):
            a = point(u, v)
            b = point(u, v + 1)
            c = point(u + 1, v + 1)
            d = point(u + 1, v)
            if v != 0:
                vertices.extend([a, b, d])
            if v != height_segments - 1:
                vertices.extend([b, c, d])
    return _triangles(vertices)


def unit_cylinder(radial_segments: int = 32) -> np.ndarray:
    """Capped cylinder, long axis +Y."""
    vertices = []
    for i in range(radial_segments):
        a0 = 2.0 * math.pi * i / radial_segments
        a1 = 2.0 * math.pi * (i + 1) / radial_segments
        x0, z0 = math.sin(a0), math.cos(a0)
        x1, z1 = math.sin(a1), math.cos(a1)

        # side
        top0 = (x0, 0.5, z0, x0, 0.0, z0)
        top1 = (x1, 0.5, z1, x1, 0.0, z1)
        bottom0 = (x0, -0.5, z0, x0, 0.0, z0)
        bottom1 = (x1, -0.5, z1, x1, 0.0, z1)
        vertices.extend([top0, bottom0, top1])
        vertices.extend([bottom0, bottom1, top1])

        # caps
        vertices.extend([
            (0.0, 0.5, 0.0, 0.0, 1.0, 0.0),
            (x0, 0.5, z0, 0.0, 1.0, 0.0),
            (x1, 0.5, z1, 0.0, 1.0, 0.0),
        ])
        vertices.extend([
            (0.0, -0.5, 0.0, 0.0, -1.0, 0.0),
            (x1, -0.5, z1, 0.0, -1.0, 0.0),
            (x0, -0.5, z0, 0.0, -1.0, 0.0),
        ])
    return _triangles(vertices)


def unit_cube() -> np.ndarray:
    """Axis-aligned cube spanning -1..1."""
    vertices = []
    for axis in range(3):
        for sign in (-1.0, 1.0):
            normal = [0.0, 0.0, 0.0]
            normal[axis] = sign
            u_axis = (axis + 1) % 3
            v_axis = (axis + 2) % 3

            corners = []
            for du, dv in ((-1, -1), (1, -1), (1, 1), (-1, 1)):
                p = [0.0, 0.0, 0.0]
                p[axis] = sign
                p[u_axis] = du
                p[v_axis] = dv * sign  # keep counter-clockwise winding from outside
                corners.append(tuple(p) + tuple(normal))

            vertices.extend([corners[0], corners[1], corners[2]])
            vertices.extend([corners[0], corners[2], corners[3]])
    return _triangles(vertices)


def fullscreen_quad() -> np.ndarray:
    """Triangle-strip quad covering clip space: position xy, texcoord uv."""
    return np.array([
        # position   texcoord
        -1.0, -1.0,  0.0, 0.0,  # bottom-left
         1.0, -1.0,  1.0, 0.0,  # bottom-right
        -1.0,  1.0,  0.0, 1.0,  # top-left
         1.0,  1.0,  1.0, 1.0,  # top-right
    ], dtype='f4')
