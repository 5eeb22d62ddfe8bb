# Copyright (c) 2025 Jonathan Fontanez
# SPDX-License-Identifier: BUSL-1.1

"""
Configuration: asset paths, rendering constants and the armor profile table.

Profiles can be overridden with a JSON file (see load_profiles):

    [
        {"name": "Light", "mesh": "models/light.glb",
         "physics": "json/light_physics.json",
         "vertical_offset": -92.0, "scale": 0.94,
         "capsule_radius": 42.0, "capsule_height": 184.0}
    ]

Relative mesh/physics paths are resolved against the assets directory.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

# Assets configuration
ASSETS_DIR = Path(__file__).resolve().parents[2] / "assets"
MODELS_DIR = ASSETS_DIR / "models"
PHYSICS_DIR = ASSETS_DIR / "json"

# Window
DEFAULT_WIDTH = 1280
DEFAULT_HEIGHT = 720
WINDOW_TITLE = "hitboxview"
TARGET_FPS = 60.0

# Camera
CAMERA_FOV = 74.0
CAMERA_NEAR = 0.1
CAMERA_FAR = 1000.0
CAMERA_DISTANCE = 200.0
CAMERA_HEIGHT = 100.0
ORBIT_SENSITIVITY = 0.3  # degrees per pixel of mouse movement

# Lighting
AMBIENT_COLOR = (0x40 / 255, 0x40 / 255, 0x40 / 255)
LIGHT_COLOR = (1.0, 1.0, 1.0)
LIGHT_POSITION = (200.0, 0.0, 200.0)

# Character model placement: exported meshes are Y-up metres, world is Z-up centimetres
MODEL_UNIT_SCALE = 100.0

# Layers: RGB color in 0..1 and composite opacity
CHARACTER_OPACITY = 1.0
CRITICAL_HITBOX_COLOR = (1.0, 0.0, 1.0)           # #FF00FF
CRITICAL_HITBOX_OPACITY = 0.6
GENERAL_HITBOX_COLOR = (0.0, 0x7F / 255, 1.0)     # #007FFF
GENERAL_HITBOX_OPACITY = 0.4
COLLISION_CAPSULE_COLOR = (1.0, 0.85, 0.0)
COLLISION_CAPSULE_OPACITY = 0.9
COLLISION_CAPSULE_BASE_ALPHA = 1.0


@dataclass(frozen=True)
class ArmorProfile:
    """
    One selectable armor variant.

    Attributes:
        name: Display name
        mesh_path: GLB file with the skinned character
        physics_path: Physics-asset JSON with the hitboxes
        vertical_offset: Z offset applied to the character model (world units)
        scale: Uniform scale of the model and its hitboxes
        capsule_radius: Collision capsule radius (world units)
        capsule_height: Collision capsule total height, caps included
    """
    name: str
    mesh_path: Path
    physics_path: Path
    vertical_offset: float = 0.0
    scale: float = 1.0
    capsule_radius: float = 42.0
    capsule_height: float = 184.0


DEFAULT_PROFILES: Tuple[ArmorProfile, ...] = (
    ArmorProfile(
        name="Light",
        mesh_path=MODELS_DIR / "MESH_PC_BloodEagleLight_A.glb",
        physics_path=PHYSICS_DIR / "Core_HitboxPhysicsAsset2.json",
        vertical_offset=-92.0,
        scale=0.94,
        capsule_radius=42.0,
        capsule_height=184.0,
    ),
    ArmorProfile(
        name="Medium",
        mesh_path=MODELS_DIR / "MESH_PC_BloodEagleMedium_A.glb",
        physics_path=PHYSICS_DIR / "Core_HitboxPhysicsAsset2.json",
        vertical_offset=-92.0,
        scale=1.0,
        capsule_radius=42.0,
        capsule_height=184.0,
    ),
    ArmorProfile(
        name="Heavy",
        mesh_path=MODELS_DIR / "MESH_PC_BloodEagleHeavy_A.glb",
        physics_path=PHYSICS_DIR / "Core_HitboxPhysicsAsset2.json",
        vertical_offset=-92.0,
        scale=1.05,
        capsule_radius=46.0,
        capsule_height=190.0,
    ),
)


@dataclass
class ViewerConfig:
    """Runtime settings for the viewer host."""
    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    fps: float = TARGET_FPS
    profiles: List[ArmorProfile] = field(default_factory=lambda: list(DEFAULT_PROFILES))
    initial_profile: int = 0
    snapshot_path: Optional[Path] = None
    max_frames: Optional[int] = None


def load_profiles(path: Path, assets_dir: Path = ASSETS_DIR) -> List[ArmorProfile]:
    """
    Load an armor profile table from JSON.

    Args:
        path: JSON file holding a list of profile objects
        assets_dir: Base directory for relative mesh/physics paths

    Returns:
        Profiles in file order

    Raises:
        ValueError: If the file is not a non-empty list of valid profiles
    """
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    if not isinstance(data, list) or not data:
        raise ValueError(f"Profile table must be a non-empty list: {path}")

    profiles = []
    for i, entry in enumerate(data):
        try:
            profiles.append(ArmorProfile(
                name=str(entry['name']),
                mesh_path=assets_dir / entry['mesh'],
                physics_path=assets_dir / entry['physics'],
                vertical_offset=float(entry.get('vertical_offset', 0.0)),
                scale=float(entry.get('scale', 1.0)),
                capsule_radius=float(entry.get('capsule_radius', 42.0)),
                capsule_height=float(entry.get('capsule_height', 184.0)),
            ))
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid profile #{i} in {path}: {e}") from e

    logger.info(f"Loaded {len(profiles)} armor profiles from {path}")
    return profiles
