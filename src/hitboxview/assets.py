# Copyright (c) 2025 Jonathan Fontanez
# SPDX-License-Identifier: BUSL-1.1

"""glTF/GLB character reader.

Extracts, on the CPU only, everything the character layer needs:
- the node hierarchy as a SkeletonNode tree (skin joints flagged as bones)
- skinned mesh primitives as numpy arrays
- material base colors and base-color textures (decoded with Pillow)
- the first animation clip, sampled by the character layer's animation clock

GPU uploads happen later, on the render thread, in character.py.
"""

import base64
import io
import json
import logging
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
from PIL import Image

from .errors import AssetLoadError
from .rotation import Quaternion, Vector3, quaternion_from_matrix
from .skeleton import SkeletonNode

logger = logging.getLogger(__name__)

GLB_MAGIC = b'glTF'
CHUNK_JSON = 0x4E4F534A
CHUNK_BIN = 0x004E4942

COMPONENT_DTYPES = {
    5120: np.int8, 5121: np.uint8,
    5122: np.int16, 5123: np.uint16,
    5125: np.uint32, 5126: np.float32,
}
TYPE_SIZES = {'SCALAR': 1, 'VEC2': 2, 'VEC3': 3, 'VEC4': 4, 'MAT4': 16}


@dataclass
class MeshPrimitive:
    """One drawable submesh."""
    positions: np.ndarray
    normals: np.ndarray
    texcoords: np.ndarray
    joints: np.ndarray
    weights: np.ndarray
    indices: np.ndarray
    material_index: int = 0
    skinned: bool = False
    node: Optional[SkeletonNode] = None


@dataclass
class MaterialData:
    """Base color and optional RGBA texture."""
    name: str
    base_color: Tuple[float, float, float, float] = (0.8, 0.8, 0.8, 1.0)
    texture_size: Optional[Tuple[int, int]] = None
    texture_data: Optional[bytes] = None


@dataclass
class AnimationChannel:
    """Keyframes driving one node property ('translation', 'rotation' or 'scale')."""
    node: SkeletonNode
    path: str
    times: np.ndarray
    values: np.ndarray
    interpolation: str = 'LINEAR'

    def sample(self, t: float) -> np.ndarray:
        times = self.times
        if t <= times[0]:
            return self.values[0]
        if t >= times[-1]:
            return self.values[-1]

        i = int(np.searchsorted(times, t, side='right')) - 1
        if self.interpolation == 'STEP':
            return self.values[i]

        t0, t1 = times[i], times[i + 1]
        alpha = (t - t0) / (t1 - t0) if t1 > t0 else 0.0
        a, b = self.values[i], self.values[i + 1]

        if self.path != 'rotation':
            return a + (b - a) * alpha
        return _slerp(a, b, alpha)

    def apply(self, t: float) -> None:
        value = self.sample(t)
        if self.path == 'translation':
            self.node.translation = Vector3.from_array(value)
        elif self.path == 'rotation':
            self.node.rotation = Quaternion(*(float(c) for c in value)).normalized()
        elif self.path == 'scale':
            self.node.scale = Vector3.from_array(value)


@dataclass
class AnimationClip:
    """Looping keyframe animation over skeleton nodes."""
    name: str
    channels: List[AnimationChannel] = field(default_factory=list)

    @property
    def duration(self) -> float:
        if not self.channels:
            return 0.0
        return max(float(channel.times[-1]) for channel in self.channels)

    def apply(self, t: float) -> None:
        """Pose the skeleton at time `t` seconds (wrapped to the clip length)."""
        duration = self.duration
        if duration > 0:
            t = t % duration
        for channel in self.channels:
            channel.apply(t)


@dataclass
class CharacterAsset:
    """Everything read from one character file."""
    root: SkeletonNode
    primitives: List[MeshPrimitive]
    materials: List[MaterialData]
    joints: List[SkeletonNode]
    inverse_bind_matrices: np.ndarray
    animation: Optional[AnimationClip] = None

    def bone_matrices(self) -> np.ndarray:
        """Current skinning matrices, joint world @ inverse bind, shape (J, 4, 4)."""
        matrices = np.empty((len(self.joints), 4, 4), dtype=np.float64)
        for i, joint in enumerate(self.joints):
            matrices[i] = joint.world_matrix() @ self.inverse_bind_matrices[i]
        return matrices


def _slerp(a: np.ndarray, b: np.ndarray, t: float) -> np.ndarray:
    dot = float(np.dot(a, b))
    if dot < 0.0:
        b = -b
        dot = -dot
    if dot > 0.9995:
        result = a + (b - a) * t
        return result / np.linalg.norm(result)
    theta = np.arccos(dot)
    return (np.sin((1 - t) * theta) * a + np.sin(t * theta) * b) / np.sin(theta)


class GLBLoader:
    """Loads glTF/GLB files and extracts skeleton, mesh and animation data."""

    def __init__(self):
        self.gltf_json: Dict = {}
        self.buffers: List[bytes] = []
        self.base_dir = Path('.')
        self.nodes: List[SkeletonNode] = []

    def load(self, path: Path) -> CharacterAsset:
        """
        Load a .glb (or .gltf) file.

        Raises:
            AssetLoadError: If the file cannot be read or parsed
        """
        path = Path(path)
        self.base_dir = path.parent
        try:
            with open(path, 'rb') as f:
                raw = f.read()
            if raw[:4] == GLB_MAGIC:
                self._parse_glb(raw)
            else:
                self.gltf_json = json.loads(raw.decode('utf-8'))
                if not isinstance(self.gltf_json, dict):
                    raise ValueError("glTF document must be a JSON object")
                self.buffers = [self._read_uri_buffer(b) for b in self.gltf_json.get('buffers', [])]

            root = self._build_nodes()
            joints, inverse_bind = self._load_skin()
            materials = self._load_materials()
            primitives = self._load_meshes()
            animation = self._load_animation()
        except (OSError, ValueError, KeyError, IndexError, TypeError, AttributeError, struct.error) as e:
            raise AssetLoadError(f"Failed to load character {path}: {e}") from e

        logger.info(
            f"Loaded character: {path.name} ({len(primitives)} primitives, "
            f"{len(joints)} joints, animation={animation.name if animation else None})"
        )
        return CharacterAsset(
            root=root,
            primitives=primitives,
            materials=materials,
            joints=joints,
            inverse_bind_matrices=inverse_bind,
            animation=animation,
        )

    def _parse_glb(self, raw: bytes):
        magic, version, total_length = struct.unpack_from('<4sII', raw, 0)
        if version != 2:
            raise ValueError(f"Unsupported GLB version {version}")

        offset = 12
        binary = b''
        while offset < min(total_length, len(raw)):
            chunk_length, chunk_type = struct.unpack_from('<II', raw, offset)
            chunk = raw[offset + 8:offset + 8 + chunk_length]
            if chunk_type == CHUNK_JSON:
                self.gltf_json = json.loads(chunk.decode('utf-8'))
            elif chunk_type == CHUNK_BIN:
                binary = chunk
            offset += 8 + chunk_length

        if not isinstance(self.gltf_json, dict) or not self.gltf_json:
            raise ValueError("GLB has no JSON object chunk")

        self.buffers = []
        for buffer in self.gltf_json.get('buffers', []):
            if 'uri' in buffer:
                self.buffers.append(self._read_uri_buffer(buffer))
            else:
                self.buffers.append(binary)

    def _read_uri_buffer(self, buffer: Dict) -> bytes:
        uri = buffer['uri']
        if uri.startswith('data:'):
            return base64.b64decode(uri.split(',', 1)[1])
        with open(self.base_dir / uri, 'rb') as f:
            return f.read()

    def _buffer_view_bytes(self, view_index: int) -> Tuple[bytes, Dict]:
        view = self.gltf_json['bufferViews'][view_index]
        data = self.buffers[view.get('buffer', 0)]
        offset = view.get('byteOffset', 0)
        return data[offset:offset + view['byteLength']], view

    def _get_accessor_data(self, accessor_index: int) -> np.ndarray:
        """Extract numpy array from accessor."""
        accessor = self.gltf_json['accessors'][accessor_index]
        dtype = np.dtype(COMPONENT_DTYPES[accessor['componentType']])
        components = TYPE_SIZES[accessor['type']]
        count = accessor['count']

        view_bytes, view = self._buffer_view_bytes(accessor['bufferView'])
        offset = accessor.get('byteOffset', 0)
        element_size = components * dtype.itemsize
        stride = view.get('byteStride', element_size)

        if stride == element_size:
            data = np.frombuffer(view_bytes, dtype=dtype, count=count * components, offset=offset)
        else:
            rows = [
                np.frombuffer(view_bytes, dtype=dtype, count=components, offset=offset + i * stride)
                for i in range(count)
            ]
            data = np.concatenate(rows) if rows else np.zeros(0, dtype=dtype)

        if accessor.get('normalized') and np.issubdtype(dtype, np.integer):
            data = data.astype(np.float32) / np.iinfo(dtype).max

        if components > 1:
            data = data.reshape(count, components)
        return data

    def _build_nodes(self) -> SkeletonNode:
        """Create SkeletonNodes for every glTF node and attach scene roots to a synthetic root."""
        self.nodes = []
        for i, node in enumerate(self.gltf_json.get('nodes', [])):
            skeleton_node = SkeletonNode(name=node.get('name', f'node_{i}'))
            if 'matrix' in node:
                m = np.array(node['matrix'], dtype=np.float64).reshape(4, 4).T
                scale = np.linalg.norm(m[:3, :3], axis=0)
                scale[scale == 0.0] = 1.0
                skeleton_node.translation = Vector3.from_array(m[:3, 3])
                skeleton_node.rotation = quaternion_from_matrix(m[:3, :3] / scale)
                skeleton_node.scale = Vector3.from_array(scale)
            else:
                if 'translation' in node:
                    skeleton_node.translation = Vector3.from_array(node['translation'])
                if 'rotation' in node:
                    skeleton_node.rotation = Quaternion(*(float(c) for c in node['rotation'])).normalized()
                if 'scale' in node:
                    skeleton_node.scale = Vector3.from_array(node['scale'])
            self.nodes.append(skeleton_node)

        has_parent = set()
        for i, node in enumerate(self.gltf_json.get('nodes', [])):
            for child_index in node.get('children', []):
                self.nodes[i].add_child(self.nodes[child_index])
                has_parent.add(child_index)

        scenes = self.gltf_json.get('scenes', [])
        if scenes:
            root_indices = scenes[self.gltf_json.get('scene', 0)].get('nodes', [])
        else:
            root_indices = [i for i in range(len(self.nodes)) if i not in has_parent]

        root = SkeletonNode(name='root')
        for index in root_indices:
            root.add_child(self.nodes[index])
        return root

    def _load_skin(self) -> Tuple[List[SkeletonNode], np.ndarray]:
        """Flag skin joints as bones and read their inverse bind matrices."""
        skins = self.gltf_json.get('skins', [])
        if not skins:
            return [], np.zeros((0, 4, 4), dtype=np.float64)

        skin = skins[0]  # Use first skin
        joints = [self.nodes[j] for j in skin.get('joints', [])]
        for joint in joints:
            joint.is_bone = True

        inverse_bind = np.tile(np.eye(4, dtype=np.float64), (len(joints), 1, 1))
        if 'inverseBindMatrices' in skin:
            ibm_data = self._get_accessor_data(skin['inverseBindMatrices'])
            for i in range(len(joints)):
                inverse_bind[i] = ibm_data[i].reshape(4, 4).T  # Column-major to row-major

        return joints, inverse_bind

    def _load_texture(self, texture_index: int) -> Optional[Image.Image]:
        textures = self.gltf_json.get('textures', [])
        if texture_index >= len(textures):
            return None
        source_index = textures[texture_index].get('source')
        images = self.gltf_json.get('images', [])
        if source_index is None or source_index >= len(images):
            return None

        image_info = images[source_index]
        if 'bufferView' in image_info:
            image_bytes, _ = self._buffer_view_bytes(image_info['bufferView'])
        elif 'uri' in image_info:
            image_bytes = self._read_uri_buffer(image_info)
        else:
            return None

        try:
            img = Image.open(io.BytesIO(image_bytes)).convert('RGBA')
        except OSError as e:
            logger.warning(f"Failed to decode texture {texture_index}: {e}")
            return None
        return img.transpose(Image.FLIP_TOP_BOTTOM)  # OpenGL expects flipped

    def _load_materials(self) -> List[MaterialData]:
        materials = []
        for i, mat_data in enumerate(self.gltf_json.get('materials', [])):
            pbr = mat_data.get('pbrMetallicRoughness', {})
            material = MaterialData(
                name=mat_data.get('name', f'material_{i}'),
                base_color=tuple(pbr.get('baseColorFactor', [0.8, 0.8, 0.8, 1.0])),
            )
            if 'baseColorTexture' in pbr:
                img = self._load_texture(pbr['baseColorTexture'].get('index', 0))
                if img is not None:
                    material.texture_size = img.size
                    material.texture_data = img.tobytes()
            materials.append(material)

        # Ensure at least one material
        if not materials:
            materials.append(MaterialData(name='default'))
        return materials

    def _load_meshes(self) -> List[MeshPrimitive]:
        primitives = []
        meshes = self.gltf_json.get('meshes', [])
        for node_index, node in enumerate(self.gltf_json.get('nodes', [])):
            if 'mesh' not in node:
                continue
            skinned = 'skin' in node
            for prim_data in meshes[node['mesh']].get('primitives', []):
                primitive = self._load_primitive(prim_data, skinned)
                if primitive is not None:
                    primitive.node = self.nodes[node_index]
                    primitives.append(primitive)
        return primitives

    def _load_primitive(self, prim_data: Dict, skinned: bool) -> Optional[MeshPrimitive]:
        attrs = prim_data.get('attributes', {})
        if 'POSITION' not in attrs:
            return None

        positions = self._get_accessor_data(attrs['POSITION']).astype(np.float32)
        vertex_count = len(positions)

        if 'NORMAL' in attrs:
            normals = self._get_accessor_data(attrs['NORMAL']).astype(np.float32)
        else:
            normals = np.zeros_like(positions)
            normals[:, 1] = 1.0  # Default up

        if 'TEXCOORD_0' in attrs:
            texcoords = self._get_accessor_data(attrs['TEXCOORD_0']).astype(np.float32)
        else:
            texcoords = np.zeros((vertex_count, 2), dtype=np.float32)

        if skinned and 'JOINTS_0' in attrs and 'WEIGHTS_0' in attrs:
            joints = self._get_accessor_data(attrs['JOINTS_0']).astype(np.float32)
            weights = self._get_accessor_data(attrs['WEIGHTS_0']).astype(np.float32)
        else:
            skinned = False
            joints = np.zeros((vertex_count, 4), dtype=np.float32)
            weights = np.zeros((vertex_count, 4), dtype=np.float32)
            weights[:, 0] = 1.0

        if 'indices' in prim_data:
            indices = self._get_accessor_data(prim_data['indices']).astype(np.uint32)
        else:
            indices = np.arange(vertex_count, dtype=np.uint32)

        return MeshPrimitive(
            positions=positions,
            normals=normals,
            texcoords=texcoords,
            joints=joints,
            weights=weights,
            indices=indices,
            material_index=prim_data.get('material', 0),
            skinned=skinned,
        )

    def _load_animation(self) -> Optional[AnimationClip]:
        animations = self.gltf_json.get('animations', [])
        if not animations:
            return None

        anim = animations[0]  # Idle clip
        clip = AnimationClip(name=anim.get('name', 'animation_0'))
        samplers = anim.get('samplers', [])
        for channel in anim.get('channels', []):
            target = channel.get('target', {})
            path = target.get('path')
            if path not in ('translation', 'rotation', 'scale') or 'node' not in target:
                continue

            sampler = samplers[channel['sampler']]
            times = self._get_accessor_data(sampler['input']).astype(np.float64).reshape(-1)
            values = self._get_accessor_data(sampler['output']).astype(np.float64)
            interpolation = sampler.get('interpolation', 'LINEAR')
            if interpolation == 'CUBICSPLINE':
                # keep the keyframe values, drop the tangents
                values = values.reshape(len(times), 3, -1)[:, 1, :]
                interpolation = 'LINEAR'

            clip.channels.append(AnimationChannel(
                node=self.nodes[target['node']],
                path=path,
                times=times,
                values=values,
                interpolation=interpolation,
            ))
        return clip


def load_glb(path: Path) -> CharacterAsset:
    """Read a character file; see GLBLoader.load."""
    return GLBLoader().load(path)
