# Copyright (c) 2025 Jonathan Fontanez
# SPDX-License-Identifier: BUSL-1.1

"""
Edge-highlight post-process for the collision-capsule layer.

The capsule is rendered as a filled, opaque silhouette into its own target.
When that target is composited, each pixel compares its own alpha with the
minimum alpha found on a small ring of neighbors:

- own alpha 0 (outside the silhouette): discarded
- every ring sample filled (deep inside): discarded
- otherwise: color with alpha = base_alpha * opacity * (1 - ring minimum)

which leaves a translucent outline exactly at the silhouette boundary.

Two implementations share the ring layout:
1. EDGE_HIGHLIGHT_FRAGMENT_SHADER - GLSL, used by the compositor on the GPU
2. edge_highlight() - numpy, used for snapshots and CPU-side checks
"""

import math
from typing import Tuple

import numpy as np

RING_SAMPLES = 8

# Ring radius in texture (UV) units, measured along the vertical axis
EDGE_RING_RADIUS = 0.004


FULLSCREEN_VERTEX_SHADER = """
#version 330 core
in vec2 in_position;
in vec2 in_texcoord;
out vec2 v_texcoord;

void main() {
    gl_Position = vec4(in_position, 0.0, 1.0);
    v_texcoord = in_texcoord;
}
"""

EDGE_HIGHLIGHT_FRAGMENT_SHADER = """
#version 330 core
in vec2 v_texcoord;

uniform sampler2D u_texture;
uniform vec3 u_color;
uniform float u_base_alpha;
uniform float u_opacity;
uniform float u_radius;
uniform float u_aspect;  // target width / height

out vec4 frag_color;

const int SAMPLES = 8;
const float TAU = 6.28318530718;

void main() {
    float alpha = texture(u_texture, v_texcoord).a;
    if (alpha == 0.0) {
        discard;
    }

    float neighbor = 1.0;
    for (int i = 0; i < SAMPLES; i++) {
        float angle = TAU * float(i) / float(SAMPLES);
        vec2 offset = vec2(cos(angle) * u_radius / u_aspect, sin(angle) * u_radius);
        neighbor = min(neighbor, texture(u_texture, v_texcoord + offset).a);
    }

    if (neighbor == 1.0) {
        discard;
    }

    frag_color = vec4(u_color, u_base_alpha * u_opacity * (1.0 - neighbor));
}
"""


def ring_offsets(radius: float, aspect: float, samples: int = RING_SAMPLES) -> np.ndarray:
    """
    UV offsets of the ring samples.

    Args:
        radius: Ring radius in UV units (vertical axis)
        aspect: Target width / height; the x offset is divided by it so the
            ring is circular in pixels
        samples: Number of evenly spaced samples

    Returns:
        (samples, 2) array of (du, dv)
    """
    angles = 2.0 * math.pi * np.arange(samples) / samples
    return np.stack([np.cos(angles) * radius / aspect, np.sin(angles) * radius], axis=1)


def edge_highlight(
    alpha: np.ndarray,
    color: Tuple[float, float, float],
    base_alpha: float = 1.0,
    opacity: float = 1.0,
    radius: float = EDGE_RING_RADIUS,
) -> np.ndarray:
    """
    CPU version of the edge-highlight shader.

    Sampling is nearest-texel with clamp-to-edge, matching the texture
    settings the compositor uses.

    Args:
        alpha: (H, W) silhouette alpha in 0..1
        color: RGB outline color in 0..1
        base_alpha: Outline alpha before layer opacity
        opacity: Layer opacity
        radius: Ring radius in UV units

    Returns:
        (H, W, 4) float32 RGBA; discarded pixels are (0, 0, 0, 0)
    """
    alpha = np.asarray(alpha, dtype=np.float32)
    height, width = alpha.shape

    rows, cols = np.mgrid[0:height, 0:width]
    u = (cols + 0.5) / width
    v = (rows + 0.5) / height

    neighbor = np.ones_like(alpha)
    for du, dv in ring_offsets(radius, width / height):
        sample_cols = np.clip(np.floor((u + du) * width), 0, width - 1).astype(np.intp)
        sample_rows = np.clip(np.floor((v + dv) * height), 0, height - 1).astype(np.intp)
        neighbor = np.minimum(neighbor, alpha[sample_rows, sample_cols])

    keep = (alpha > 0.0) & (neighbor < 1.0)

    output = np.zeros((height, width, 4), dtype=np.float32)
    output[keep, :3] = color
    output[keep, 3] = base_alpha * opacity * (1.0 - neighbor[keep])
    return output
