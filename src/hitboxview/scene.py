# Copyright (c) 2025 Jonathan Fontanez
# SPDX-License-Identifier: BUSL-1.1

"""
Offscreen render layers.

Every layer renders its own scene into a private RGBA target and hands the
compositor a CompositeQuad (texture + opacity + composite program). Drawing a
layer's content opaque into its own target and applying opacity only at
composite time keeps a layer uniformly translucent, even where its solids
overlap.

Lifecycle (LayerState):

    UNINITIALIZED --build()--> SCENE_BUILT --draw()--> TARGET_ALLOCATED --> DRAWING
                                   ^                                          |
                                   +------------------resize()----------------+

- build(ctx, width, height) compiles programs and uploads geometry
- draw() lazily allocates the target at the current size, then renders
- resize() drops the target; the next draw reallocates it
- release() frees every GPU object and returns to UNINITIALIZED
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import moderngl
import numpy as np

from . import config
from .edge import (
    EDGE_HIGHLIGHT_FRAGMENT_SHADER,
    EDGE_RING_RADIUS,
    FULLSCREEN_VERTEX_SHADER,
    edge_highlight,
)
from .errors import LayerStateError
from .geometry import fullscreen_quad, unit_cube, unit_cylinder, unit_sphere
from .primitives import (
    HitboxSet,
    PrimitivePredicate,
    SolidDescriptor,
    SolidKind,
    build_solids,
    capsule_between,
)
from .rotation import IDENTITY_QUATERNION, Vector3
from .skeleton import BoneFrameResolver

logger = logging.getLogger(__name__)


# =============================================================================
# Shader Sources
# =============================================================================

SOLID_VERTEX_SHADER = """
#version 330 core
in vec3 in_position;
in vec3 in_normal;

uniform mat4 u_model;
uniform mat4 u_view;
uniform mat4 u_projection;

out vec3 v_normal;

void main() {
    gl_Position = u_projection * u_view * u_model * vec4(in_position, 1.0);
    v_normal = normalize(mat3(transpose(inverse(u_model))) * in_normal);
}
"""

SOLID_FRAGMENT_SHADER = """
#version 330 core
in vec3 v_normal;

uniform vec3 u_color;
uniform bool u_lit;

// Lighting
uniform vec3 u_ambient;
uniform vec3 u_light_dir;
uniform vec3 u_light_color;

out vec4 frag_color;

void main() {
    if (!u_lit) {
        frag_color = vec4(u_color, 1.0);
        return;
    }
    float NdotL = max(dot(normalize(v_normal), normalize(u_light_dir)), 0.0);
    vec3 result = u_color * (u_ambient + u_light_color * NdotL);
    frag_color = vec4(result, 1.0);
}
"""

COMPOSITE_FRAGMENT_SHADER = """
#version 330 core
in vec2 v_texcoord;
uniform sampler2D u_texture;
uniform float u_opacity;
out vec4 frag_color;

void main() {
    vec4 color = texture(u_texture, v_texcoord);
    frag_color = vec4(color.rgb, color.a * u_opacity);
}
"""


def light_direction() -> Tuple[float, float, float]:
    """Direction towards the key light (directional light aimed at the origin)."""
    position = np.array(config.LIGHT_POSITION, dtype=np.float64)
    return tuple(float(c) for c in position / np.linalg.norm(position))


def apply_lighting(program: moderngl.Program):
    """Ambient fill plus one white directional key light."""
    if 'u_ambient' in program:
        program['u_ambient'].value = config.AMBIENT_COLOR
    if 'u_light_dir' in program:
        program['u_light_dir'].value = light_direction()
    if 'u_light_color' in program:
        program['u_light_color'].value = config.LIGHT_COLOR


def write_matrix(program: moderngl.Program, name: str, matrix: np.ndarray):
    """Upload a numpy (column-vector convention) matrix, transposed for OpenGL."""
    program[name].write(np.ascontiguousarray(matrix.T, dtype=np.float32).tobytes())


def write_camera(program: moderngl.Program, camera):
    """Upload pyrr view/projection matrices as-is."""
    program['u_view'].write(np.asarray(camera.get_view_matrix(), dtype=np.float32).tobytes())
    program['u_projection'].write(np.asarray(camera.get_projection_matrix(), dtype=np.float32).tobytes())


# =============================================================================
# Layer base
# =============================================================================

class LayerState(Enum):
    UNINITIALIZED = 'uninitialized'
    SCENE_BUILT = 'scene_built'
    TARGET_ALLOCATED = 'target_allocated'
    DRAWING = 'drawing'


@dataclass
class CompositeQuad:
    """Fullscreen quad that blends one layer's target onto the screen."""
    texture: moderngl.Texture
    opacity: float
    program: moderngl.Program
    vao: moderngl.VertexArray
    uniforms: Dict[str, Any] = field(default_factory=dict)

    def render(self):
        self.texture.use(0)
        self.program['u_texture'].value = 0
        self.program['u_opacity'].value = self.opacity
        for name, value in self.uniforms.items():
            if name in self.program:
                self.program[name].value = value
        self.vao.render(moderngl.TRIANGLE_STRIP)


class LayerScene(ABC):
    """
    Base class for offscreen layers.

    Subclasses implement _build_scene(), _render() and _release_scene();
    they may override the composite program and its uniforms.
    """

    composite_fragment_shader = COMPOSITE_FRAGMENT_SHADER

    def __init__(self, name: str, opacity: float = 1.0):
        """
        Args:
            name: Layer identifier
            opacity: Composite opacity (0.0 = transparent, 1.0 = opaque)
        """
        self.name = name
        self.opacity = opacity
        self.state = LayerState.UNINITIALIZED

        self.ctx: Optional[moderngl.Context] = None
        self.width = 0
        self.height = 0

        self.texture: Optional[moderngl.Texture] = None
        self.depth: Optional[moderngl.Texture] = None
        self.fbo: Optional[moderngl.Framebuffer] = None

        self.composite_program: Optional[moderngl.Program] = None
        self._quad_vbo: Optional[moderngl.Buffer] = None
        self._quad_vao: Optional[moderngl.VertexArray] = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, state={self.state.value})"

    def build(self, ctx: moderngl.Context, width: int, height: int):
        """
        Compile programs and upload geometry.

        Raises:
            LayerStateError: If the layer was already built
        """
        if self.state is not LayerState.UNINITIALIZED:
            raise LayerStateError(f"Layer '{self.name}' is already built")

        self.ctx = ctx
        self.width = width
        self.height = height

        self._build_scene(ctx)

        self.composite_program = ctx.program(
            vertex_shader=FULLSCREEN_VERTEX_SHADER,
            fragment_shader=self.composite_fragment_shader,
        )
        self._quad_vbo = ctx.buffer(fullscreen_quad().tobytes())
        self._quad_vao = ctx.vertex_array(
            self.composite_program,
            [(self._quad_vbo, '2f 2f', 'in_position', 'in_texcoord')],
        )

        self.state = LayerState.SCENE_BUILT
        logger.debug(f"Built layer '{self.name}' ({width}x{height})")

    def _create_target(self):
        """Create the layer's color + depth framebuffer at the current size."""
        self.texture = self.ctx.texture((self.width, self.height), 4)
        self.texture.filter = (moderngl.NEAREST, moderngl.NEAREST)
        self.texture.repeat_x = False
        self.texture.repeat_y = False
        self.depth = self.ctx.depth_texture((self.width, self.height))
        self.fbo = self.ctx.framebuffer(
            color_attachments=[self.texture],
            depth_attachment=self.depth,
        )
        self.state = LayerState.TARGET_ALLOCATED

    def _release_target(self):
        for resource in (self.fbo, self.texture, self.depth):
            if resource is not None:
                resource.release()
        self.fbo = None
        self.texture = None
        self.depth = None

    def resize(self, width: int, height: int):
        """Drop the target; it is recreated at the new size on the next draw."""
        self.width = width
        self.height = height
        self._release_target()
        if self.state is not LayerState.UNINITIALIZED:
            self.state = LayerState.SCENE_BUILT

    def draw(self, camera, frame=None):
        """
        Render the layer's scene into its own target.

        Args:
            camera: OrbitCamera supplying view/projection matrices
            frame: FrameContext of the current refresh

        Raises:
            LayerStateError: If the layer has not been built
        """
        if self.state is LayerState.UNINITIALIZED:
            raise LayerStateError(f"Layer '{self.name}' drawn before build()")

        if self.fbo is None:
            self._create_target()

        self.fbo.use()
        self.fbo.viewport = (0, 0, self.width, self.height)
        self.fbo.clear(0.0, 0.0, 0.0, 0.0)
        self.ctx.enable(moderngl.DEPTH_TEST)

        self._render(camera, frame)

        self.ctx.disable(moderngl.DEPTH_TEST)
        self.state = LayerState.DRAWING

    def composite_uniforms(self) -> Dict[str, Any]:
        """Extra uniforms for the composite program."""
        return {}

    def composite_quad(self) -> CompositeQuad:
        """
        Raises:
            LayerStateError: If the layer has no target yet
        """
        if self.texture is None:
            raise LayerStateError(f"Layer '{self.name}' has no render target")
        return CompositeQuad(
            texture=self.texture,
            opacity=self.opacity,
            program=self.composite_program,
            vao=self._quad_vao,
            uniforms=self.composite_uniforms(),
        )

    def read_pixels(self) -> np.ndarray:
        """Target contents as (H, W, 4) uint8, top row first."""
        if self.fbo is None:
            raise LayerStateError(f"Layer '{self.name}' has no render target")
        data = self.fbo.read(components=4, alignment=1)
        pixels = np.frombuffer(data, dtype=np.uint8).reshape(self.height, self.width, 4)
        return pixels[::-1].copy()

    def composite_pixels(self) -> np.ndarray:
        """
        CPU rendition of what composite_quad() blends onto the screen.

        Returns:
            (H, W, 4) uint8 with the layer opacity applied to alpha
        """
        result = self.read_pixels()
        result[:, :, 3] = (result[:, :, 3] * self.opacity).astype(np.uint8)
        return result

    def release(self):
        """Free every GPU object owned by this layer."""
        self._release_target()
        for resource in (self._quad_vao, self._quad_vbo, self.composite_program):
            if resource is not None:
                resource.release()
        self._quad_vao = None
        self._quad_vbo = None
        self.composite_program = None

        # also frees whatever a failed build() left behind
        self._release_scene()
        self.state = LayerState.UNINITIALIZED
        self.ctx = None

    @abstractmethod
    def _build_scene(self, ctx: moderngl.Context):
        pass

    @abstractmethod
    def _render(self, camera, frame):
        pass

    @abstractmethod
    def _release_scene(self):
        pass


# =============================================================================
# Solid layers
# =============================================================================

def solid_instances(solid: SolidDescriptor) -> List[Tuple[str, np.ndarray]]:
    """
    Unit meshes and model matrices drawing one solid.

    A capsule is a unit cylinder between its segment ends plus a sphere
    of the same radius on each end.
    """
    if solid.kind is SolidKind.SPHERE:
        return [('sphere', solid.model_matrix())]
    if solid.kind is SolidKind.BOX:
        return [('cube', solid.model_matrix())]

    instances = [('cylinder', solid.model_matrix())]
    for cap_center in (solid.start, solid.end):
        cap = SolidDescriptor(
            kind=SolidKind.SPHERE,
            position=cap_center,
            orientation=IDENTITY_QUATERNION,
            dimensions=Vector3(solid.radius, solid.radius, solid.radius),
        )
        instances.append(('sphere', cap.model_matrix()))
    return instances


class SolidLayer(LayerScene):
    """Lit, single-color solids (spheres, capsules, boxes)."""

    def __init__(self, name: str, color: Tuple[float, float, float], opacity: float,
                 solids: Optional[List[SolidDescriptor]] = None, lit: bool = True):
        super().__init__(name, opacity)
        self.color = color
        self.lit = lit
        self.solids: List[SolidDescriptor] = list(solids or [])

        self.program: Optional[moderngl.Program] = None
        self._meshes: Dict[str, Tuple[moderngl.Buffer, moderngl.VertexArray, int]] = {}

    def instances(self) -> List[Tuple[str, np.ndarray]]:
        result = []
        for solid in self.solids:
            result.extend(solid_instances(solid))
        return result

    def _build_scene(self, ctx: moderngl.Context):
        self.program = ctx.program(
            vertex_shader=SOLID_VERTEX_SHADER,
            fragment_shader=SOLID_FRAGMENT_SHADER,
        )
        for key, vertices in (('sphere', unit_sphere()), ('cylinder', unit_cylinder()), ('cube', unit_cube())):
            vbo = ctx.buffer(vertices.tobytes())
            vao = ctx.vertex_array(self.program, [(vbo, '3f 3f', 'in_position', 'in_normal')])
            self._meshes[key] = (vbo, vao, len(vertices))

    def _render(self, camera, frame):
        write_camera(self.program, camera)
        apply_lighting(self.program)
        self.program['u_color'].value = tuple(self.color)
        if 'u_lit' in self.program:
            self.program['u_lit'].value = self.lit

        for key, model in self.instances():
            _, vao, vertex_count = self._meshes[key]
            write_matrix(self.program, 'u_model', model)
            vao.render(moderngl.TRIANGLES, vertices=vertex_count)

    def _release_scene(self):
        for vbo, vao, _ in self._meshes.values():
            vao.release()
            vbo.release()
        self._meshes.clear()
        if self.program is not None:
            self.program.release()
            self.program = None


class HitboxLayer(SolidLayer):
    """
    Solid layer built from a hitbox set and a live skeleton.

    Solids are built on construction, so a missing bone surfaces before any
    GPU work; refresh() rebuilds them from the current pose.
    """

    def __init__(self, name: str, color: Tuple[float, float, float], opacity: float,
                 hitbox_set: HitboxSet, resolver: BoneFrameResolver, scale: float = 1.0,
                 predicate: Optional[PrimitivePredicate] = None):
        super().__init__(name, color, opacity)
        self.hitbox_set = hitbox_set
        self.resolver = resolver
        self.scale = scale
        self.predicate = predicate
        self.refresh()

    def refresh(self):
        """
        Raises:
            MissingBoneError: If a primitive references an unknown bone
        """
        self.solids = build_solids(self.hitbox_set, self.resolver, self.scale, self.predicate)


class CollisionCapsuleLayer(SolidLayer):
    """
    Upright collision capsule centered at the world origin, drawn as an outline.

    The silhouette is rendered flat and opaque; its composite quad runs the
    edge-highlight shader so only the boundary shows.
    """

    composite_fragment_shader = EDGE_HIGHLIGHT_FRAGMENT_SHADER

    def __init__(self, radius: float, height: float,
                 color: Tuple[float, float, float] = config.COLLISION_CAPSULE_COLOR,
                 opacity: float = config.COLLISION_CAPSULE_OPACITY,
                 base_alpha: float = config.COLLISION_CAPSULE_BASE_ALPHA,
                 name: str = 'collision'):
        super().__init__(name, color, opacity, solids=[collision_capsule(radius, height)], lit=False)
        self.radius = radius
        self.capsule_height = height
        self.base_alpha = base_alpha

    def composite_uniforms(self) -> Dict[str, Any]:
        return {
            'u_color': tuple(self.color),
            'u_base_alpha': self.base_alpha,
            'u_radius': EDGE_RING_RADIUS,
            'u_aspect': self.width / max(self.height, 1),
        }

    def composite_pixels(self) -> np.ndarray:
        alpha = self.read_pixels()[:, :, 3].astype(np.float32) / 255.0
        outline = edge_highlight(alpha, self.color, self.base_alpha, self.opacity)
        return np.clip(outline * 255.0 + 0.5, 0, 255).astype(np.uint8)


def collision_capsule(radius: float, height: float) -> SolidDescriptor:
    """
    Capsule of total height `height` (caps included) standing on the Z axis.

    A height of at most twice the radius leaves no cylinder: a sphere.
    """
    half_segment = max(height / 2 - radius, 0.0)
    if half_segment == 0.0:
        return SolidDescriptor(
            kind=SolidKind.SPHERE,
            position=Vector3(),
            orientation=IDENTITY_QUATERNION,
            dimensions=Vector3(radius, radius, radius),
        )
    return capsule_between(Vector3(0.0, 0.0, -half_segment), Vector3(0.0, 0.0, half_segment), radius)
