# Copyright (c) 2025 Jonathan Fontanez
# SPDX-License-Identifier: BUSL-1.1

"""
Frame clock for the render loop.

SoftwareClock paces the loop at a fixed rate with asyncio.sleep() and yields
one FrameContext per display refresh. Sleeping between frames is what lets
profile loads awaiting on the same event loop make progress.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Optional


@dataclass
class FrameContext:
    """
    Timing information for one frame.

    Attributes:
        time: Seconds since the clock started
        delta_time: Seconds since the previous frame (0.0 on the first)
        frame_number: Monotonic frame counter (starts at 0)
    """
    time: float
    delta_time: float
    frame_number: int


class SoftwareClock:
    """Free-running software clock."""

    def __init__(self, fps: float = 60.0):
        """
        Args:
            fps: Frames per second (ticks per second)
        """
        if fps <= 0:
            raise ValueError(f"FPS must be positive, got {fps}")

        self.fps = fps
        self.period = 1.0 / fps
        self.frame_number = 0
        self.start_time = time.monotonic()
        self._last_time: Optional[float] = None

    async def next_tick(self) -> FrameContext:
        """
        Wait for the next frame slot.

        Note: Uses time.monotonic() for timing to avoid issues with
        system clock adjustments.
        """
        target_time = self.start_time + (self.frame_number * self.period)
        sleep_time = target_time - time.monotonic()

        # Always yield to the loop, even when late
        await asyncio.sleep(max(sleep_time, 0.0))

        now = time.monotonic() - self.start_time
        delta = 0.0 if self._last_time is None else now - self._last_time
        self._last_time = now

        tick = FrameContext(time=now, delta_time=delta, frame_number=self.frame_number)
        self.frame_number += 1
        return tick
