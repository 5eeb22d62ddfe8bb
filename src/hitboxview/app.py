# Copyright (c) 2025 Jonathan Fontanez
# SPDX-License-Identifier: BUSL-1.1

"""
Window host: GLFW window + ModernGL context driving a CompositePipeline.

Controls:
    left mouse drag   orbit the camera
    1..9              select armor profile
    S                 save a PNG snapshot
    Esc               quit
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Set

import glfw
import moderngl
from PIL import Image

from .camera import OrbitCamera
from .clocks import SoftwareClock
from .config import ViewerConfig, WINDOW_TITLE
from .pipeline import CompositePipeline

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_PATH = Path("hitboxview.png")


class HitboxViewer:
    """Interactive viewer window."""

    def __init__(self, viewer_config: ViewerConfig):
        self.config = viewer_config
        self.camera = OrbitCamera(viewer_config.width, viewer_config.height)
        self.pipeline = CompositePipeline(viewer_config.profiles, camera=self.camera)
        self.clock = SoftwareClock(fps=viewer_config.fps)

        self.window = None
        self.ctx: Optional[moderngl.Context] = None
        self.running = False

        self._dragging = False
        self._last_cursor: Optional[tuple] = None
        self._tasks: Set[asyncio.Task] = set()
        self._snapshot_requested = False

    async def on_start(self):
        """Initialize GLFW window and OpenGL context."""
        if not glfw.init():
            raise RuntimeError("Failed to initialize GLFW")

        # Create window with OpenGL 3.3 core profile
        glfw.window_hint(glfw.CONTEXT_VERSION_MAJOR, 3)
        glfw.window_hint(glfw.CONTEXT_VERSION_MINOR, 3)
        glfw.window_hint(glfw.OPENGL_PROFILE, glfw.OPENGL_CORE_PROFILE)
        glfw.window_hint(glfw.OPENGL_FORWARD_COMPAT, glfw.TRUE)  # For macOS

        self.window = glfw.create_window(
            self.config.width, self.config.height, WINDOW_TITLE, None, None
        )
        if not self.window:
            glfw.terminate()
            raise RuntimeError("Failed to create GLFW window")

        glfw.make_context_current(self.window)
        glfw.swap_interval(1)

        glfw.set_framebuffer_size_callback(self.window, self._on_framebuffer_size)
        glfw.set_mouse_button_callback(self.window, self._on_mouse_button)
        glfw.set_cursor_pos_callback(self.window, self._on_cursor_pos)
        glfw.set_key_callback(self.window, self._on_key)

        self.ctx = moderngl.create_context()
        width, height = glfw.get_framebuffer_size(self.window)
        self.pipeline.create(self.ctx, width, height)

        logger.info(f"Window initialized: {width}x{height}, OpenGL {self.ctx.version_code}")

        self.select_profile(self.config.initial_profile)

    async def on_stop(self):
        """Cancel pending loads and release GPU resources."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        self.pipeline.destroy()
        if self.window:
            glfw.destroy_window(self.window)
            glfw.terminate()
            self.window = None
        logger.info("Viewer stopped")

    async def run(self):
        """Render until the window closes (or max_frames is reached)."""
        await self.on_start()
        self.running = True
        try:
            while self.running and not glfw.window_should_close(self.window):
                frame = await self.clock.next_tick()
                glfw.poll_events()

                self.pipeline.draw(frame)
                glfw.swap_buffers(self.window)

                if self._snapshot_requested and self.pipeline.active_profile is not None:
                    self._snapshot_requested = False
                    self.save_snapshot(self.config.snapshot_path or DEFAULT_SNAPSHOT_PATH)

                if self.config.max_frames is not None and frame.frame_number + 1 >= self.config.max_frames:
                    if self.config.snapshot_path is not None:
                        self.save_snapshot(self.config.snapshot_path)
                    break
        finally:
            self.running = False
            await self.on_stop()

    def select_profile(self, index: int):
        """Start loading a profile without blocking the render loop."""
        if not 0 <= index < len(self.pipeline.profiles):
            logger.warning(f"No armor profile #{index + 1}")
            return
        task = asyncio.get_running_loop().create_task(self.pipeline.select_profile(index))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def save_snapshot(self, path: Path):
        """Write the current composite as PNG."""
        pixels = self.pipeline.snapshot()
        Image.fromarray(pixels, 'RGBA').save(path)
        logger.info(f"Saved snapshot: {path}")

    # -------------------------------------------------------------------------
    # GLFW callbacks
    # -------------------------------------------------------------------------

    def _on_framebuffer_size(self, window, width: int, height: int):
        self.pipeline.resize(width, height)

    def _on_mouse_button(self, window, button: int, action: int, mods: int):
        if button != glfw.MOUSE_BUTTON_LEFT:
            return
        self._dragging = action == glfw.PRESS
        self._last_cursor = glfw.get_cursor_pos(window) if self._dragging else None

    def _on_cursor_pos(self, window, x: float, y: float):
        if not self._dragging:
            return
        if self._last_cursor is not None:
            last_x, last_y = self._last_cursor
            self.camera.orbit(x - last_x, y - last_y)
        self._last_cursor = (x, y)

    def _on_key(self, window, key: int, scancode: int, action: int, mods: int):
        if action != glfw.PRESS:
            return
        if key == glfw.KEY_ESCAPE:
            glfw.set_window_should_close(window, True)
        elif glfw.KEY_1 <= key <= glfw.KEY_9:
            self.select_profile(key - glfw.KEY_1)
        elif key == glfw.KEY_S:
            self._snapshot_requested = True
