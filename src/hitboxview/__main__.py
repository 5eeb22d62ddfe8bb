# Copyright (c) 2025 Jonathan Fontanez
# SPDX-License-Identifier: BUSL-1.1

"""Command-line entry point: python -m hitboxview"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import DEFAULT_HEIGHT, DEFAULT_WIDTH, TARGET_FPS, ViewerConfig, load_profiles

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='hitboxview',
        description='Interactive hitbox visualizer for armor profiles',
    )
    parser.add_argument('--profiles', type=Path, default=None,
                        help='JSON armor profile table (default: built-in profiles)')
    parser.add_argument('--assets', type=Path, default=None,
                        help='Base directory for relative paths in the profile table')
    parser.add_argument('--profile', type=int, default=1,
                        help='Initial profile, 1-based (default: 1)')
    parser.add_argument('--width', type=int, default=DEFAULT_WIDTH, help='Window width')
    parser.add_argument('--height', type=int, default=DEFAULT_HEIGHT, help='Window height')
    parser.add_argument('--fps', type=float, default=TARGET_FPS, help='Target frame rate')
    parser.add_argument('--snapshot', type=Path, default=None,
                        help='PNG path for snapshots (S key, or on exit with --frames)')
    parser.add_argument('--frames', type=int, default=None,
                        help='Quit after this many frames')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ViewerConfig:
    viewer_config = ViewerConfig(
        width=args.width,
        height=args.height,
        fps=args.fps,
        initial_profile=args.profile - 1,
        snapshot_path=args.snapshot,
        max_frames=args.frames,
    )
    if args.profiles is not None:
        assets_dir = args.assets if args.assets is not None else args.profiles.parent
        viewer_config.profiles = load_profiles(args.profiles, assets_dir)
    return viewer_config


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(name)s: %(message)s",
    )

    try:
        viewer_config = build_config(args)
    except (OSError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    # Imported here so --help works without a GL stack
    from .app import HitboxViewer

    try:
        asyncio.run(HitboxViewer(viewer_config).run())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except RuntimeError as e:
        logger.error(str(e))
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
