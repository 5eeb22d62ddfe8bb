# Copyright (c) 2025 Jonathan Fontanez
# SPDX-License-Identifier: BUSL-1.1

"""
Composite pipeline: ordered offscreen layers stacked onto the screen.

Layer order (bottom to top):
1. character           - skinned mesh, opaque
2. critical hitboxes   - magenta, 'hit_component' tagged bodies
3. general hitboxes    - azure, every other body
4. collision capsule   - yellow outline (edge-highlight composite)

Each frame every layer renders into its own target, then the screen
framebuffer blends the layers' composite quads in order (source-over).

Profile swaps are asynchronous: the mesh and the physics asset load
concurrently in worker threads, and only the most recent request may
install its layers (generation token). A failed load keeps the previous
profile on screen.

Example:
    pipeline = CompositePipeline(profiles)
    pipeline.create(ctx, 1280, 720)
    await pipeline.select_profile(0)
    pipeline.draw(frame)
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import moderngl
import numpy as np

from . import config
from .assets import CharacterAsset, load_glb
from .camera import OrbitCamera
from .character import CharacterLayer, place_model
from .clocks import FrameContext
from .config import ArmorProfile
from .errors import AssetLoadError, DataIntegrityError, LayerStateError
from .physics_asset import load_physics_asset
from .primitives import HitboxSet, is_critical, is_general
from .scene import CollisionCapsuleLayer, HitboxLayer, LayerScene
from .skeleton import BoneFrameResolver

logger = logging.getLogger(__name__)

MeshLoader = Callable[[Path], CharacterAsset]
PhysicsLoader = Callable[[Path], HitboxSet]


def alpha_blend(background: np.ndarray, overlay: np.ndarray) -> np.ndarray:
    """
    Alpha blend overlay onto background (source-over).

    Args:
        background: Background RGBA frame, uint8
        overlay: Overlay RGBA frame, uint8, same shape

    Returns:
        Blended RGBA frame
    """
    if overlay.shape != background.shape:
        raise ValueError(f"Layer shape {overlay.shape} does not match {background.shape}")

    # Extract alpha channel and normalize to 0.0-1.0
    alpha = overlay[:, :, 3:4].astype(np.float32) / 255.0

    # Formula: result = overlay_rgb * alpha + background_rgb * (1 - alpha)
    overlay_rgb = overlay[:, :, :3].astype(np.float32)
    background_rgb = background[:, :, :3].astype(np.float32)
    blended_rgb = overlay_rgb * alpha + background_rgb * (1.0 - alpha)

    # Formula: result_alpha = overlay_alpha + background_alpha * (1 - overlay_alpha)
    bg_alpha = background[:, :, 3:4].astype(np.float32) / 255.0
    result_alpha = (alpha + bg_alpha * (1.0 - alpha)) * 255.0

    result = np.dstack([blended_rgb, result_alpha])
    return np.clip(result + 0.5, 0, 255).astype(np.uint8)


class CompositePipeline:
    """Owns the layer stack and the profile swap logic for one GL context."""

    def __init__(
        self,
        profiles: Sequence[ArmorProfile] = config.DEFAULT_PROFILES,
        camera: Optional[OrbitCamera] = None,
        mesh_loader: MeshLoader = load_glb,
        physics_loader: PhysicsLoader = load_physics_asset,
    ):
        """
        Args:
            profiles: Selectable armor profiles
            camera: Camera shared by every layer (default: OrbitCamera)
            mesh_loader: Reads a character file (blocking, runs in a worker thread)
            physics_loader: Reads a physics asset (blocking, runs in a worker thread)
        """
        self.profiles = list(profiles)
        self.camera = camera or OrbitCamera()
        self._mesh_loader = mesh_loader
        self._physics_loader = physics_loader

        self.ctx: Optional[moderngl.Context] = None
        self.width = 0
        self.height = 0

        self._layers: List[LayerScene] = []
        self._active_profile: Optional[ArmorProfile] = None
        self._generation = 0

    @property
    def layers(self) -> List[LayerScene]:
        return list(self._layers)

    @property
    def active_profile(self) -> Optional[ArmorProfile]:
        return self._active_profile

    @property
    def generation(self) -> int:
        return self._generation

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def create(self, ctx: moderngl.Context, width: int, height: int):
        """Bind the pipeline to a GL context and a surface size."""
        self.ctx = ctx
        self.width = width
        self.height = height
        self.camera.resize(width, height)
        logger.info(f"Pipeline created ({width}x{height})")

    def resize(self, width: int, height: int):
        """Resize the surface; layer targets are reallocated on the next draw."""
        if width <= 0 or height <= 0:
            # minimized window
            return
        self.width = width
        self.height = height
        self.camera.resize(width, height)
        for layer in self._layers:
            layer.resize(width, height)
        logger.debug(f"Pipeline resized to {width}x{height}")

    def destroy(self):
        """Release every layer and detach from the context."""
        self._release_layers(self._layers)
        self._layers = []
        self._active_profile = None
        # Invalidate in-flight loads
        self._generation += 1
        self.ctx = None
        logger.info("Pipeline destroyed")

    # -------------------------------------------------------------------------
    # Per-frame
    # -------------------------------------------------------------------------

    def draw(self, frame: FrameContext):
        """
        Render every layer into its target, then composite onto the screen.

        Raises:
            LayerStateError: If called before create()
        """
        if self.ctx is None:
            raise LayerStateError("Pipeline drawn before create()")

        self._advance(frame)

        for layer in self._layers:
            layer.draw(self.camera, frame)

        screen = self.ctx.screen
        screen.use()
        screen.viewport = (0, 0, self.width, self.height)
        screen.clear(0.0, 0.0, 0.0, 1.0)

        if not self._layers:
            return

        self.ctx.disable(moderngl.DEPTH_TEST)
        self.ctx.enable(moderngl.BLEND)
        self.ctx.blend_func = moderngl.SRC_ALPHA, moderngl.ONE_MINUS_SRC_ALPHA
        for layer in self._layers:
            layer.composite_quad().render()
        self.ctx.disable(moderngl.BLEND)

    def _advance(self, frame: FrameContext):
        """Step the character animation; hitboxes follow the new pose."""
        character = self._character_layer()
        if character is None or not character.advance(frame.delta_time):
            return
        for layer in self._layers:
            if isinstance(layer, HitboxLayer):
                layer.refresh()

    def _character_layer(self) -> Optional[CharacterLayer]:
        for layer in self._layers:
            if isinstance(layer, CharacterLayer):
                return layer
        return None

    def snapshot(self) -> np.ndarray:
        """
        Composite the last drawn frame on the CPU.

        Returns:
            (H, W, 4) uint8 RGBA, top row first
        """
        result = np.zeros((self.height, self.width, 4), dtype=np.uint8)
        result[:, :, 3] = 255
        for layer in self._layers:
            result = alpha_blend(result, layer.composite_pixels())
        return result

    # -------------------------------------------------------------------------
    # Profile swap
    # -------------------------------------------------------------------------

    async def select_profile(self, index: int) -> bool:
        """
        Load an armor profile and swap it in.

        Args:
            index: Position in `profiles`

        Returns:
            True if this request installed its layers; False if it failed
            or was superseded by a newer request

        Raises:
            IndexError: If `index` is out of range
            LayerStateError: If called before create()
        """
        if not 0 <= index < len(self.profiles):
            raise IndexError(f"No armor profile #{index} ({len(self.profiles)} available)")
        if self.ctx is None:
            raise LayerStateError("Profile selected before create()")

        self._generation += 1
        generation = self._generation
        profile = self.profiles[index]
        logger.info(f"Loading profile '{profile.name}' (generation {generation})")

        try:
            asset, hitbox_set = await asyncio.gather(
                asyncio.to_thread(self._mesh_loader, profile.mesh_path),
                asyncio.to_thread(self._physics_loader, profile.physics_path),
            )
        except (AssetLoadError, DataIntegrityError) as e:
            if generation != self._generation:
                logger.debug(f"Ignoring failure of superseded profile '{profile.name}': {e}")
                return False
            logger.error(f"Failed to load profile '{profile.name}': {e}")
            return False

        if generation != self._generation:
            logger.debug(f"Discarding stale profile '{profile.name}' (generation {generation})")
            return False

        try:
            layers = self.compose_layers(profile, asset, hitbox_set)
        except DataIntegrityError as e:
            logger.error(f"Profile '{profile.name}' does not match its skeleton: {e}")
            return False

        try:
            for layer in layers:
                layer.build(self.ctx, self.width, self.height)
        except Exception as e:
            logger.error(f"Failed to build layers for profile '{profile.name}': {e}")
            self._release_layers(layers)
            return False

        previous = self._layers
        self._layers = layers
        self._active_profile = profile
        self._release_layers(previous)

        logger.info(
            f"Profile '{profile.name}' active: "
            + ", ".join(f"{layer.name}={len(getattr(layer, 'solids', []))}" for layer in layers[1:])
        )
        return True

    def compose_layers(self, profile: ArmorProfile, asset: CharacterAsset,
                       hitbox_set: HitboxSet) -> List[LayerScene]:
        """
        Create the four (unbuilt) layers of a profile.

        Raises:
            DataIntegrityError: If a hitbox references a bone the skeleton lacks
        """
        place_model(asset.root, profile)
        character = CharacterLayer(asset)
        character.clock.reset()

        resolver = BoneFrameResolver().resolve(asset.root)
        return [
            character,
            HitboxLayer('critical', config.CRITICAL_HITBOX_COLOR, config.CRITICAL_HITBOX_OPACITY,
                        hitbox_set, resolver, profile.scale, is_critical),
            HitboxLayer('general', config.GENERAL_HITBOX_COLOR, config.GENERAL_HITBOX_OPACITY,
                        hitbox_set, resolver, profile.scale, is_general),
            CollisionCapsuleLayer(profile.capsule_radius, profile.capsule_height),
        ]

    def _release_layers(self, layers: List[LayerScene]):
        for layer in layers:
            layer.release()
