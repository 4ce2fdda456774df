"""Triangle meshes: validation, normal and tangent generation, and a builder."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np
from numpy.typing import ArrayLike

from rendkit.types import MAX_VERTEX_COUNT, Handedness


class VertexBufferType(Enum):
    """The semantic use of a vertex buffer."""

    POSITION = "Position"
    NORMAL = "Normal"
    TANGENT = "Tangent"
    UV0 = "Uv0"
    UV1 = "Uv1"
    COLORS = "Colors"


class MeshValidationError(ValueError):
    """Base class for everything mesh validation can report."""


class MismatchedVertexCount(MeshValidationError):
    """A vertex buffer's length differs from the position buffer's."""

    def __init__(self, ty: VertexBufferType, expected: int, actual: int) -> None:
        self.ty = ty
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Mesh's {ty.value} buffer has {actual} vertices "
            f"but the position buffer has {expected}"
        )


class ExceededMaxVertexCount(MeshValidationError):
    """The mesh has more vertices than allowed."""

    def __init__(self, count: int) -> None:
        self.count = count
        super().__init__(f"Mesh has {count} vertices when the vertex limit is {MAX_VERTEX_COUNT}")


class IndexCountNotMultipleOfThree(MeshValidationError):
    """The index buffer does not describe whole triangles."""

    def __init__(self, count: int) -> None:
        self.count = count
        super().__init__(
            f"Mesh has {count} indices which is not a multiple of three. "
            "Meshes are always composed of triangles"
        )


class IndexOutOfBounds(MeshValidationError):
    """An index points past the end of the vertex buffers."""

    def __init__(self, index: int, value: int, max: int) -> None:  # noqa: A002
        self.index = index
        self.value = value
        self.max = max
        super().__init__(
            f"Index at position {index} has the value {value} "
            f"which is out of bounds for vertex buffers of {max} length"
        )


def _rows(data: ArrayLike, dtype: type, width: int) -> np.ndarray:
    return np.asarray(data, dtype=dtype).reshape(-1, width)


def _triangles(indices: np.ndarray) -> np.ndarray:
    whole = len(indices) // 3 * 3
    return indices[:whole].reshape(-1, 3).astype(np.intp)


def _normalize_or_zero(vectors: np.ndarray) -> np.ndarray:
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        length = np.sqrt(np.sum(vectors * vectors, axis=1))
        rcp = 1.0 / length
        ok = np.isfinite(rcp) & (rcp > 0)
        scaled = vectors * rcp[:, None]
    return np.where(ok[:, None], scaled, 0).astype(vectors.dtype, copy=False)


def calculate_normals_for_buffers(
    normals: ArrayLike,
    positions: ArrayLike,
    indices: ArrayLike,
    left_handed: bool,
    zeroed: bool,
) -> np.ndarray:
    """Compute smooth per-vertex normals and return them.

    A float32 ``(N, 3)`` array passed as ``normals`` is filled in place. When
    ``zeroed`` is true the normals are assumed to be zero already.
    """
    normals = _rows(normals, np.float32, 3)
    positions = _rows(positions, np.float32, 3)
    if len(normals) != len(positions):
        raise ValueError(
            f"normals ({len(normals)}) and positions ({len(positions)}) differ in length"
        )
    if not zeroed:
        normals[...] = 0.0

    tris = _triangles(np.asarray(indices, dtype=np.uint32).ravel())
    if len(tris):
        p0, p1, p2 = (positions[tris[:, k]] for k in range(3))
        edge1 = p1 - p0
        edge2 = p2 - p0
        face = np.cross(edge1, edge2) if left_handed else np.cross(edge2, edge1)
        for k in range(3):
            np.add.at(normals, tris[:, k], face)

    normals[...] = _normalize_or_zero(normals)
    return normals


def calculate_tangents_for_buffers(
    tangents: ArrayLike,
    positions: ArrayLike,
    normals: ArrayLike,
    uvs: ArrayLike,
    indices: ArrayLike,
    zeroed: bool,
) -> np.ndarray:
    """Compute per-vertex tangents from normals and texture coordinates and return them.

    A float32 ``(N, 3)`` array passed as ``tangents`` is filled in place. When
    ``zeroed`` is true the tangents are assumed to be zero already.
    """
    tangents = _rows(tangents, np.float32, 3)
    positions = _rows(positions, np.float32, 3)
    normals = _rows(normals, np.float32, 3)
    uvs = _rows(uvs, np.float32, 2)
    if len(tangents) != len(positions) or len(uvs) != len(positions):
        raise ValueError("tangents, uvs and positions must all have the same length")
    if not zeroed:
        tangents[...] = 0.0

    tris = _triangles(np.asarray(indices, dtype=np.uint32).ravel())
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        if len(tris):
            p0, p1, p2 = (positions[tris[:, k]] for k in range(3))
            t0, t1, t2 = (uvs[tris[:, k]] for k in range(3))
            edge1 = p1 - p0
            edge2 = p2 - p0
            uv1 = t1 - t0
            uv2 = t2 - t0
            r = np.float32(1.0) / (uv1[:, 0] * uv2[:, 1] - uv1[:, 1] * uv2[:, 0])
            face = (edge1 * uv2[:, 1:2] - edge2 * uv1[:, 1:2]) * r[:, None]
            for k in range(3):
                np.add.at(tangents, tris[:, k], face)

        count = min(len(tangents), len(normals))
        tan = tangents[:count]
        norm = normals[:count]
        projected = tan - norm * np.sum(norm * tan, axis=1)[:, None]
    tangents[:count] = _normalize_or_zero(projected)
    return tangents


@dataclass(eq=False)
class Mesh:
    """A mesh in structure-of-arrays form; every vertex buffer has one row per vertex."""

    vertex_positions: np.ndarray
    vertex_normals: np.ndarray
    vertex_tangents: np.ndarray
    vertex_uv0: np.ndarray
    vertex_uv1: np.ndarray
    vertex_colors: np.ndarray
    vertex_joint_indices: np.ndarray
    vertex_joint_weights: np.ndarray
    indices: np.ndarray

    def __post_init__(self) -> None:
        self.vertex_positions = _rows(self.vertex_positions, np.float32, 3)
        self.vertex_normals = _rows(self.vertex_normals, np.float32, 3)
        self.vertex_tangents = _rows(self.vertex_tangents, np.float32, 3)
        self.vertex_uv0 = _rows(self.vertex_uv0, np.float32, 2)
        self.vertex_uv1 = _rows(self.vertex_uv1, np.float32, 2)
        self.vertex_colors = _rows(self.vertex_colors, np.uint8, 4)
        self.vertex_joint_indices = _rows(self.vertex_joint_indices, np.uint16, 4)
        self.vertex_joint_weights = _rows(self.vertex_joint_weights, np.float32, 4)
        self.indices = np.asarray(self.indices, dtype=np.uint32).ravel()

    def validate(self) -> None:
        """Raise a :class:`MeshValidationError` if the mesh is malformed."""
        position_length = len(self.vertex_positions)
        indices_length = len(self.indices)

        if position_length > MAX_VERTEX_COUNT:
            raise ExceededMaxVertexCount(position_length)

        for buffer, ty in (
            (self.vertex_normals, VertexBufferType.NORMAL),
            (self.vertex_tangents, VertexBufferType.TANGENT),
            (self.vertex_uv0, VertexBufferType.UV0),
            (self.vertex_uv1, VertexBufferType.UV1),
            (self.vertex_colors, VertexBufferType.COLORS),
        ):
            if len(buffer) != position_length:
                raise MismatchedVertexCount(ty, expected=position_length, actual=len(buffer))

        if indices_length % 3 != 0:
            raise IndexCountNotMultipleOfThree(indices_length)

        out_of_bounds = np.flatnonzero(self.indices >= position_length)
        if len(out_of_bounds):
            first = int(out_of_bounds[0])
            raise IndexOutOfBounds(first, int(self.indices[first]), position_length)

    def calculate_normals(self, handedness: Handedness, zeroed: bool) -> None:
        """Recompute smooth per-vertex normals for the given handedness."""
        self.vertex_normals = calculate_normals_for_buffers(
            self.vertex_normals,
            self.vertex_positions,
            self.indices,
            handedness is Handedness.LEFT,
            zeroed,
        )

    def calculate_tangents(self, zeroed: bool) -> None:
        """Recompute tangents from normals and the first uv set."""
        self.vertex_tangents = calculate_tangents_for_buffers(
            self.vertex_tangents,
            self.vertex_positions,
            self.vertex_normals,
            self.vertex_uv0,
            self.indices,
            zeroed,
        )

    def double_side(self) -> None:
        """Follow every triangle with a copy of opposite winding."""
        whole = len(self.indices) // 3 * 3
        tris = self.indices[:whole].reshape(-1, 3)
        doubled = np.concatenate([tris, tris[:, ::-1]], axis=1).ravel()
        self.indices = np.concatenate([doubled, self.indices[whole:]]).astype(np.uint32)

    def flip_winding_order(self) -> None:
        """Swap the first and last index of every triangle. Normals are left alone."""
        whole = len(self.indices) // 3 * 3
        tris = self.indices[:whole].reshape(-1, 3)
        tris[:, [0, 2]] = tris[:, [2, 0]]


class MeshBuilder:
    """Builds a :class:`Mesh`, filling in whatever buffers were not supplied."""

    def __init__(self, vertex_positions: ArrayLike, handedness: Handedness = Handedness.LEFT) -> None:
        self._positions = _rows(vertex_positions, np.float32, 3)
        self._vertex_count = len(self._positions)
        self._handedness = handedness
        self._normals: Optional[ArrayLike] = None
        self._tangents: Optional[ArrayLike] = None
        self._uv0: Optional[ArrayLike] = None
        self._uv1: Optional[ArrayLike] = None
        self._colors: Optional[ArrayLike] = None
        self._joint_indices: Optional[ArrayLike] = None
        self._joint_weights: Optional[ArrayLike] = None
        self._indices: Optional[ArrayLike] = None
        self._validate = True
        self._flip_winding_order = False
        # Recorded only: building does not duplicate faces.
        self.double_sided = False

    def with_vertex_normals(self, normals: ArrayLike) -> "MeshBuilder":
        self._normals = normals
        return self

    def with_vertex_tangents(self, tangents: ArrayLike) -> "MeshBuilder":
        self._tangents = tangents
        return self

    def with_vertex_uv0(self, uvs: ArrayLike) -> "MeshBuilder":
        self._uv0 = uvs
        return self

    def with_vertex_uv1(self, uvs: ArrayLike) -> "MeshBuilder":
        self._uv1 = uvs
        return self

    def with_vertex_colors(self, colors: ArrayLike) -> "MeshBuilder":
        self._colors = colors
        return self

    def with_vertex_joint_indices(self, joint_indices: ArrayLike) -> "MeshBuilder":
        self._joint_indices = joint_indices
        return self

    def with_vertex_joint_weights(self, joint_weights: ArrayLike) -> "MeshBuilder":
        self._joint_weights = joint_weights
        return self

    def with_indices(self, indices: ArrayLike) -> "MeshBuilder":
        self._indices = indices
        return self

    def with_flip_winding_order(self) -> "MeshBuilder":
        """Flip every triangle's winding order when building."""
        self._flip_winding_order = True
        return self

    def with_double_sided(self) -> "MeshBuilder":
        """Mark the mesh as double sided."""
        self.double_sided = True
        return self

    def without_validation(self) -> "MeshBuilder":
        """Skip validation; the caller vouches that the buffers are consistent."""
        self._validate = False
        return self

    def build(self) -> Mesh:
        """Build the mesh, generating normals and (when uvs exist) tangents if absent."""
        length = self._vertex_count
        has_normals = self._normals is not None
        has_tangents = self._tangents is not None
        has_uvs = self._uv0 is not None

        def pick(value: Optional[ArrayLike], default: np.ndarray) -> ArrayLike:
            return default if value is None else np.array(value)

        mesh = Mesh(
            vertex_positions=self._positions.copy(),
            vertex_normals=pick(self._normals, np.zeros((length, 3), np.float32)),
            vertex_tangents=pick(self._tangents, np.zeros((length, 3), np.float32)),
            vertex_uv0=pick(self._uv0, np.zeros((length, 2), np.float32)),
            vertex_uv1=pick(self._uv1, np.zeros((length, 2), np.float32)),
            vertex_colors=pick(self._colors, np.full((length, 4), 255, np.uint8)),
            vertex_joint_indices=pick(self._joint_indices, np.zeros((length, 4), np.uint16)),
            vertex_joint_weights=pick(self._joint_weights, np.zeros((length, 4), np.float32)),
            indices=pick(self._indices, np.arange(length, dtype=np.uint32)),
        )

        if self._validate:
            mesh.validate()

        # Flip first so generated normals face the right way.
        if self._flip_winding_order:
            mesh.flip_winding_order()

        if not has_normals:
            mesh.calculate_normals(self._handedness, True)

        if not has_tangents and has_uvs:
            mesh.calculate_tangents(True)

        return mesh