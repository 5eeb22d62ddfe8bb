# Copyright (c) 2025 Jonathan Fontanez
# SPDX-License-Identifier: BUSL-1.1

"""
Exception types for hitboxview.

Taxonomy:
- DataIntegrityError: the loaded data is inconsistent (hitbox references a
  bone the skeleton does not have, malformed physics asset). Unrecoverable
  for the profile being built.
- AssetLoadError: a mesh or physics file could not be read or parsed.
- LayerStateError: a layer was used outside its lifecycle.
"""


class HitboxViewError(Exception):
    """Base class for all hitboxview errors."""


class DataIntegrityError(HitboxViewError):
    """Loaded skeleton/hitbox data is inconsistent."""


class MissingBoneError(DataIntegrityError, KeyError):
    """A hitbox references a bone that is not present in the skeleton."""

    def __init__(self, bone: str):
        super().__init__(bone)
        self.bone = bone

    def __str__(self) -> str:
        return f"Bone not found in skeleton: {self.bone!r}"


class AssetLoadError(HitboxViewError):
    """A mesh or physics asset failed to load."""


class LayerStateError(HitboxViewError):
    """A layer operation was invoked in the wrong lifecycle state."""
