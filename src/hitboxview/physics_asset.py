# Copyright (c) 2025 Jonathan Fontanez
# SPDX-License-Identifier: BUSL-1.1

"""
Physics-asset JSON decoding.

Accepted layouts (engine export):
1. {"SkeletalBodySetups": [body, ...]}
2. [body, ...]
3. {"PhysAsset": {"SkeletalBodySetups": ["Body0", ...]}, "Body0": body, ...}
   where the first object lists its body setups by key

Each body:
    {
        "BoneName": "spine_01",
        "Tag": "hit_component",            # optional discriminator
        "AggGeom": {
            "SphylElems":  [{"Center": {...}, "Rotation": {...}, "Radius": r, "Length": l}],
            "SphereElems": [{"Center": {...}, "Radius": r}],
            "BoxElems":    [{"Center": {...}, "Rotation": {...}, "X": x, "Y": y, "Z": z}]
        }
    }

A per-element "Tag" overrides the body tag. Missing element arrays are empty.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from .errors import AssetLoadError, DataIntegrityError
from .primitives import Box, Capsule, HitboxPrimitive, HitboxSet, Sphere
from .rotation import Rotator, Vector3

logger = logging.getLogger(__name__)


def _vector(data: Any, where: str) -> Vector3:
    if data is None:
        return Vector3()
    try:
        return Vector3(float(data.get('X', 0.0)), float(data.get('Y', 0.0)), float(data.get('Z', 0.0)))
    except (AttributeError, TypeError, ValueError) as e:
        raise DataIntegrityError(f"{where}: invalid vector {data!r}") from e


def _rotator(data: Any, where: str) -> Rotator:
    if data is None:
        return Rotator()
    try:
        return Rotator(
            pitch=float(data.get('Pitch', 0.0)),
            yaw=float(data.get('Yaw', 0.0)),
            roll=float(data.get('Roll', 0.0)),
        )
    except (AttributeError, TypeError, ValueError) as e:
        raise DataIntegrityError(f"{where}: invalid rotator {data!r}") from e


def _number(elem: Dict[str, Any], key: str, where: str) -> float:
    try:
        return float(elem[key])
    except KeyError:
        raise DataIntegrityError(f"{where}: missing '{key}'") from None
    except (TypeError, ValueError) as e:
        raise DataIntegrityError(f"{where}: invalid '{key}' {elem[key]!r}") from e


def _elements(agg_geom: Dict[str, Any], key: str, where: str) -> List[Dict[str, Any]]:
    elems = agg_geom.get(key) or []
    if not isinstance(elems, list):
        raise DataIntegrityError(f"{where}: '{key}' must be a list")
    return elems


def _decode_body(body: Any, index: int) -> List[HitboxPrimitive]:
    if not isinstance(body, dict):
        raise DataIntegrityError(f"body #{index}: expected an object, got {type(body).__name__}")

    bone = body.get('BoneName')
    if not isinstance(bone, str) or not bone:
        raise DataIntegrityError(f"body #{index}: missing BoneName")

    agg_geom = body.get('AggGeom')
    if agg_geom is None:
        agg_geom = {}
    if not isinstance(agg_geom, dict):
        raise DataIntegrityError(f"body '{bone}': AggGeom must be an object")

    body_tag = str(body.get('Tag', '') or '')
    primitives: List[HitboxPrimitive] = []

    try:
        for i, elem in enumerate(_elements(agg_geom, 'SphylElems', bone)):
            where = f"{bone}.SphylElems[{i}]"
            primitives.append(Capsule(
                bone=bone,
                center=_vector(elem.get('Center'), where),
                radius=_number(elem, 'Radius', where),
                length=_number(elem, 'Length', where),
                rotation=_rotator(elem.get('Rotation'), where),
                tag=str(elem.get('Tag', body_tag) or ''),
            ))

        for i, elem in enumerate(_elements(agg_geom, 'SphereElems', bone)):
            where = f"{bone}.SphereElems[{i}]"
            primitives.append(Sphere(
                bone=bone,
                center=_vector(elem.get('Center'), where),
                radius=_number(elem, 'Radius', where),
                tag=str(elem.get('Tag', body_tag) or ''),
            ))

        for i, elem in enumerate(_elements(agg_geom, 'BoxElems', bone)):
            where = f"{bone}.BoxElems[{i}]"
            primitives.append(Box(
                bone=bone,
                center=_vector(elem.get('Center'), where),
                extents=Vector3(
                    _number(elem, 'X', where),
                    _number(elem, 'Y', where),
                    _number(elem, 'Z', where),
                ),
                rotation=_rotator(elem.get('Rotation'), where),
                tag=str(elem.get('Tag', body_tag) or ''),
            ))
    except AttributeError as e:
        raise DataIntegrityError(f"body '{bone}': element must be an object") from e
    except ValueError as e:
        # negative radius/length/extents
        raise DataIntegrityError(f"body '{bone}': {e}") from e

    return primitives


def _body_setups(data: Any) -> List[Any]:
    if isinstance(data, list):
        return data

    if not isinstance(data, dict) or not data:
        raise DataIntegrityError("Physics asset must be an object or a list of bodies")

    if 'SkeletalBodySetups' in data:
        return data['SkeletalBodySetups']

    first = next(iter(data.values()))
    if isinstance(first, dict) and 'SkeletalBodySetups' in first:
        setups = first['SkeletalBodySetups']
        if not isinstance(setups, list):
            raise DataIntegrityError("SkeletalBodySetups must be a list")
        try:
            return [data[key] if isinstance(key, str) else key for key in setups]
        except KeyError as e:
            raise DataIntegrityError(f"Unknown body setup reference: {e.args[0]!r}") from None

    raise DataIntegrityError("Physics asset has no SkeletalBodySetups")


def decode_physics_asset(data: Any) -> HitboxSet:
    """
    Decode a parsed physics-asset document.

    Args:
        data: Parsed JSON

    Returns:
        HitboxSet in document order

    Raises:
        DataIntegrityError: If the document structure is malformed
    """
    setups = _body_setups(data)
    if not isinstance(setups, list):
        raise DataIntegrityError("SkeletalBodySetups must be a list")

    primitives: List[HitboxPrimitive] = []
    for index, body in enumerate(setups):
        primitives.extend(_decode_body(body, index))

    hitbox_set = HitboxSet.from_primitives(primitives)
    logger.debug(f"Decoded {len(hitbox_set)} primitives on {len(hitbox_set.bodies)} bones")
    return hitbox_set


def load_physics_asset(path: Path) -> HitboxSet:
    """
    Read and decode a physics-asset JSON file.

    Raises:
        AssetLoadError: If the file cannot be read or is not valid JSON
        DataIntegrityError: If the document structure is malformed
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise AssetLoadError(f"Failed to load physics asset {path}: {e}") from e

    hitbox_set = decode_physics_asset(data)
    logger.info(f"Loaded physics asset: {path} ({len(hitbox_set)} primitives)")
    return hitbox_set
