"""GPU vertex skinning: per-skeleton input records, joint matrix upload and dispatch sizing."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Iterable, Sequence

import numpy as np

WORKGROUP_SIZE = 64
"""Number of vertices one compute workgroup skins."""

JOINT_MATRIX_SIZE = 64
"""Size in bytes of one column-major 4x4 f32 joint matrix."""

# Two uvec2 ranges and a u32 joint index, padded to 16-byte alignment.
_INPUT_FORMAT = struct.Struct("<2I2II12x")


def _check_range(name: str, bounds: Sequence[int]) -> tuple[int, int]:
    start, end = (int(v) for v in bounds)
    if start < 0 or end < 0:
        raise ValueError(f"{name} must not be negative, got {(start, end)}")
    if end < start:
        raise ValueError(f"{name} ends before it starts: {(start, end)}")
    return start, end


@dataclass(frozen=True)
class GpuSkinningInput:
    """The per-skeleton record read by the skinning compute shader."""

    mesh_range: tuple[int, int]
    skeleton_range: tuple[int, int]
    joint_idx: int

    SIZE = _INPUT_FORMAT.size

    def to_bytes(self) -> bytes:
        """Pack as the shader expects: mesh range, skeleton range, joint index, padding."""
        return _INPUT_FORMAT.pack(
            self.mesh_range[0],
            self.mesh_range[1],
            self.skeleton_range[0],
            self.skeleton_range[1],
            self.joint_idx,
        )


@dataclass(eq=False)
class SkinnedSkeleton:
    """A skeleton as known to the renderer: its vertex ranges and joint matrices.

    ``mesh_range`` is the source mesh's vertex range and ``skeleton_range``
    the range of the skeleton's own copy of those vertices.
    """

    mesh_range: tuple[int, int]
    skeleton_range: tuple[int, int]
    joint_matrices: list[np.ndarray] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.mesh_range = _check_range("mesh_range", self.mesh_range)
        self.skeleton_range = _check_range("skeleton_range", self.skeleton_range)
        matrices = []
        for matrix in self.joint_matrices:
            m = np.asarray(matrix, dtype=np.float32)
            if m.shape != (4, 4):
                raise ValueError(f"joint matrices must be 4x4, got shape {m.shape}")
            matrices.append(m)
        self.joint_matrices = matrices

    @property
    def vertex_count(self) -> int:
        """Number of vertices this skeleton deforms."""
        return self.mesh_range[1] - self.mesh_range[0]


@dataclass(frozen=True)
class PreSkinningBuffers:
    """The two buffers uploaded before skinning runs."""

    gpu_skinning_inputs: bytes
    joint_matrices: bytes

    @property
    def input_count(self) -> int:
        return len(self.gpu_skinning_inputs) // GpuSkinningInput.SIZE

    @property
    def joint_count(self) -> int:
        return len(self.joint_matrices) // JOINT_MATRIX_SIZE


def build_skinning_input_buffers(skeletons: Iterable[SkinnedSkeleton]) -> PreSkinningBuffers:
    """Lay out one input record per skeleton and all joint matrices back to back.

    Each record's ``joint_idx`` is the index of its skeleton's first matrix in
    the shared joint matrix buffer. Matrices are stored column-major.
    """
    inputs = bytearray()
    matrices = bytearray()
    joint_idx = 0
    for skeleton in skeletons:
        record = GpuSkinningInput(
            mesh_range=skeleton.mesh_range,
            skeleton_range=skeleton.skeleton_range,
            joint_idx=joint_idx,
        )
        inputs += record.to_bytes()
        for matrix in skeleton.joint_matrices:
            matrices += np.asarray(matrix, dtype=np.float32).tobytes(order="F")
            joint_idx += 1
    return PreSkinningBuffers(gpu_skinning_inputs=bytes(inputs), joint_matrices=bytes(matrices))


def workgroup_count(num_verts: int) -> int:
    """Workgroups needed to cover ``num_verts`` vertices."""
    if num_verts < 0:
        raise ValueError(f"vertex count must not be negative, got {num_verts}")
    return -(-num_verts // WORKGROUP_SIZE)


def dispatch_plan(skeletons: Iterable[SkinnedSkeleton]) -> list[tuple[int, int]]:
    """One ``(dynamic_offset, workgroups)`` pair per skeleton, in upload order.

    The offset selects the skeleton's record in the input buffer. An empty
    list means the skinning pass is skipped.
    """
    return [
        (i * GpuSkinningInput.SIZE, workgroup_count(skeleton.vertex_count))
        for i, skeleton in enumerate(skeletons)
    ]