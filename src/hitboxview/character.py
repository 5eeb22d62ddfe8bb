# Copyright (c) 2025 Jonathan Fontanez
# SPDX-License-Identifier: BUSL-1.1

"""Character layer: GPU-skinned armor mesh.

The character's skeleton root is placed in the Z-up, centimetre world
(scale, +90 deg about X, vertical offset) and every joint matrix is derived
from the live skeleton, so the hitbox layers built from the same skeleton
line up with the mesh.

If the asset carries an animation clip, an animation clock advances it by
each frame's delta time.
"""

import logging
import math
from typing import List, Optional, Tuple

import moderngl
import numpy as np

from . import config
from .assets import CharacterAsset
from .config import ArmorProfile
from .rotation import Vector3, axis_angle_quaternion
from .scene import LayerScene, apply_lighting, write_camera, write_matrix
from .skeleton import SkeletonNode

logger = logging.getLogger(__name__)

# Maximum bones supported by GPU skinning shader
MAX_BONES = 128


# =============================================================================
# Shader Sources
# =============================================================================

SKINNED_VERTEX_SHADER = """
#version 330 core

// Vertex attributes
in vec3 in_position;
in vec3 in_normal;
in vec2 in_texcoord;
in vec4 in_joints;   // Bone indices (up to 4 bones per vertex)
in vec4 in_weights;  // Bone weights (must sum to 1.0)

// Uniforms
uniform mat4 u_model;
uniform mat4 u_view;
uniform mat4 u_projection;
uniform mat4 u_bone_matrices[128];
uniform bool u_skinned;

out vec3 v_normal;
out vec2 v_texcoord;

void main() {
    mat4 skin_matrix = mat4(1.0);
    if (u_skinned) {
        skin_matrix = u_bone_matrices[int(in_joints.x)] * in_weights.x
                    + u_bone_matrices[int(in_joints.y)] * in_weights.y
                    + u_bone_matrices[int(in_joints.z)] * in_weights.z
                    + u_bone_matrices[int(in_joints.w)] * in_weights.w;
    }

    vec4 world_position = u_model * skin_matrix * vec4(in_position, 1.0);
    gl_Position = u_projection * u_view * world_position;

    v_normal = normalize((u_model * skin_matrix * vec4(in_normal, 0.0)).xyz);
    v_texcoord = in_texcoord;
}
"""

CHARACTER_FRAGMENT_SHADER = """
#version 330 core

in vec3 v_normal;
in vec2 v_texcoord;

// Material uniforms
uniform vec4 u_base_color;
uniform sampler2D u_texture;
uniform bool u_has_texture;

// Lighting
uniform vec3 u_ambient;
uniform vec3 u_light_dir;
uniform vec3 u_light_color;

out vec4 frag_color;

void main() {
    vec4 base = u_has_texture ? texture(u_texture, v_texcoord) * u_base_color : u_base_color;
    float NdotL = max(dot(normalize(v_normal), normalize(u_light_dir)), 0.0);
    vec3 result = base.rgb * (u_ambient + u_light_color * NdotL);
    frag_color = vec4(result, 1.0);
}
"""


def place_model(root: SkeletonNode, profile: ArmorProfile):
    """Scale, stand up and lower the model root for `profile`."""
    scale = config.MODEL_UNIT_SCALE * profile.scale
    root.translation = Vector3(0.0, 0.0, profile.vertical_offset)
    root.rotation = axis_angle_quaternion(Vector3(1.0, 0.0, 0.0), math.pi / 2)
    root.scale = Vector3(scale, scale, scale)


class AnimationClock:
    """Accumulates frame time and poses the skeleton from a looping clip."""

    def __init__(self, asset: CharacterAsset):
        self.asset = asset
        self.time = 0.0

    @property
    def active(self) -> bool:
        clip = self.asset.animation
        return clip is not None and clip.duration > 0

    def reset(self):
        self.time = 0.0
        if self.active:
            self.asset.animation.apply(0.0)

    def advance(self, delta_time: float) -> bool:
        """
        Move the pose forward.

        Returns:
            True if the skeleton pose changed
        """
        if not self.active or delta_time <= 0:
            return False
        self.time += delta_time
        self.asset.animation.apply(self.time)
        return True


class CharacterLayer(LayerScene):
    """Opaque skinned character."""

    def __init__(self, asset: CharacterAsset, name: str = 'character',
                 opacity: float = config.CHARACTER_OPACITY):
        super().__init__(name, opacity)
        self.asset = asset
        self.clock = AnimationClock(asset)

        if len(asset.joints) > MAX_BONES:
            logger.warning(
                f"Character has {len(asset.joints)} joints, skinning uses the first {MAX_BONES}"
            )

        self.program: Optional[moderngl.Program] = None
        self._buffers: List[moderngl.Buffer] = []
        self._vaos: List[Tuple[moderngl.VertexArray, int]] = []
        self._textures: List[Optional[moderngl.Texture]] = []

    def advance(self, delta_time: float) -> bool:
        return self.clock.advance(delta_time)

    def gpu_bone_matrices(self) -> np.ndarray:
        """Bone matrices transposed for upload, padded with identity to MAX_BONES."""
        gpu_bone_matrices = np.tile(np.eye(4, dtype=np.float32), (MAX_BONES, 1, 1))
        bone_matrices = self.asset.bone_matrices()[:MAX_BONES]
        if len(bone_matrices):
            # NumPy row-major -> OpenGL column-major
            gpu_bone_matrices[:len(bone_matrices)] = np.transpose(bone_matrices, (0, 2, 1))
        return gpu_bone_matrices

    def _build_scene(self, ctx: moderngl.Context):
        self.program = ctx.program(
            vertex_shader=SKINNED_VERTEX_SHADER,
            fragment_shader=CHARACTER_FRAGMENT_SHADER,
        )

        for material in self.asset.materials:
            texture = None
            if material.texture_data is not None:
                texture = ctx.texture(material.texture_size, 4, material.texture_data)
                texture.filter = (moderngl.LINEAR_MIPMAP_LINEAR, moderngl.LINEAR)
                texture.build_mipmaps()
            self._textures.append(texture)

        for prim in self.asset.primitives:
            buffers = [
                ctx.buffer(prim.positions.astype('f4').tobytes()),
                ctx.buffer(prim.normals.astype('f4').tobytes()),
                ctx.buffer(prim.texcoords.astype('f4').tobytes()),
                ctx.buffer(prim.joints.astype('f4').tobytes()),
                ctx.buffer(prim.weights.astype('f4').tobytes()),
            ]
            ibo = ctx.buffer(prim.indices.astype('u4').tobytes())
            vao = ctx.vertex_array(
                self.program,
                [
                    (buffers[0], '3f', 'in_position'),
                    (buffers[1], '3f', 'in_normal'),
                    (buffers[2], '2f', 'in_texcoord'),
                    (buffers[3], '4f', 'in_joints'),
                    (buffers[4], '4f', 'in_weights'),
                ],
                ibo,
                index_element_size=4,
            )
            self._buffers.extend(buffers + [ibo])
            self._vaos.append((vao, len(prim.indices)))

        logger.info(
            f"Character layer ready: {len(self._vaos)} primitives, "
            f"{len(self.asset.joints)} joints"
        )

    def _render(self, camera, frame):
        write_camera(self.program, camera)
        apply_lighting(self.program)
        self.program['u_bone_matrices'].write(self.gpu_bone_matrices().tobytes())

        for prim, (vao, _) in zip(self.asset.primitives, self._vaos):
            if prim.skinned:
                # joint matrices already carry the full world placement
                write_matrix(self.program, 'u_model', np.eye(4))
            else:
                write_matrix(self.program, 'u_model', prim.node.world_matrix())
            self.program['u_skinned'].value = prim.skinned

            material_index = min(prim.material_index, len(self.asset.materials) - 1)
            material = self.asset.materials[material_index]
            texture = self._textures[material_index]

            # Set uniforms if they exist (driver may optimize out unused ones)
            if 'u_base_color' in self.program:
                self.program['u_base_color'].value = tuple(material.base_color)
            if 'u_has_texture' in self.program:
                self.program['u_has_texture'].value = texture is not None
            if texture is not None and 'u_texture' in self.program:
                texture.use(0)
                self.program['u_texture'].value = 0

            vao.render(moderngl.TRIANGLES)

    def _release_scene(self):
        for vao, _ in self._vaos:
            vao.release()
        for buffer in self._buffers:
            buffer.release()
        for texture in self._textures:
            if texture is not None:
                texture.release()
        self._vaos.clear()
        self._buffers.clear()
        self._textures.clear()
        if self.program is not None:
            self.program.release()
            self.program = None
