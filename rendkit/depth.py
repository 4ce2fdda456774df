"""Material-agnostic depth rendering: alpha-cutout data layout and depth pipeline settings."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from rendkit.types import Handedness, SampleCount

NO_UV_TRANSFORM = 0xFFFFFFFF
"""Marker in :attr:`AlphaDataAbi.uv_transform_offset` meaning "no uv transform"."""

_ABI_FORMAT = struct.Struct("<4I")


class RendererProfile(Enum):
    """Whether per-object work is driven from the CPU or the GPU."""

    CPU_DRIVEN = "cpu_driven"
    GPU_DRIVEN = "gpu_driven"


@dataclass(frozen=True)
class AlphaCutoutSpec:
    """How a material's data is read for alpha cutouts.

    ``index`` is the texture slot holding alpha and must currently be 0.
    ``cutoff_offset`` is the byte offset of the f32 cutoff value, and
    ``uv_transform_offset`` the byte offset of a mat3 uv transform, if any.
    """

    index: int
    cutoff_offset: int
    uv_transform_offset: Optional[int] = None


@dataclass(frozen=True)
class AlphaDataAbi:
    """The uniform block the cutout shaders read; every offset counts 4-byte floats."""

    stride: int
    texture_offset: int
    cutoff_offset: int
    uv_transform_offset: int

    SIZE = _ABI_FORMAT.size

    def to_bytes(self) -> bytes:
        """Pack as four little-endian u32 values."""
        return _ABI_FORMAT.pack(
            self.stride, self.texture_offset, self.cutoff_offset, self.uv_transform_offset
        )


def round_up_pot(value: int, multiple: int) -> int:
    """Round ``value`` up to a multiple of ``multiple``, which must be a power of two."""
    if multiple <= 0 or multiple & (multiple - 1):
        raise ValueError(f"multiple must be a power of two, got {multiple}")
    return (value + multiple - 1) & ~(multiple - 1)


def compute_alpha_data_abi(
    texture_count: int,
    data_size: int,
    alpha: Optional[AlphaCutoutSpec],
    profile: RendererProfile,
) -> Optional[AlphaDataAbi]:
    """Work out the cutout uniform for a material layout, or ``None`` without cutouts."""
    if alpha is None:
        return None

    if profile is RendererProfile.GPU_DRIVEN:
        data_base_offset = round_up_pot(texture_count * 4, 16)
        stride = data_base_offset + round_up_pot(data_size, 16)
        uv = (
            NO_UV_TRANSFORM
            if alpha.uv_transform_offset is None
            else (data_base_offset + alpha.uv_transform_offset) // 4
        )
        return AlphaDataAbi(
            stride=stride // 4,
            texture_offset=0,
            cutoff_offset=(data_base_offset + alpha.cutoff_offset) // 4,
            uv_transform_offset=uv,
        )

    texture_enable_offset = round_up_pot(data_size, 16)
    uv = NO_UV_TRANSFORM if alpha.uv_transform_offset is None else alpha.uv_transform_offset // 4
    return AlphaDataAbi(
        stride=0,
        texture_offset=texture_enable_offset // 4,
        cutoff_offset=alpha.cutoff_offset // 4,
        uv_transform_offset=uv,
    )


class DepthPassType(Enum):
    """Kind of depth pass, which determines the pipeline settings."""

    SHADOW = "shadow"
    """Shadow-acne bias, front-face culling and no colour target."""
    PREPASS = "prepass"
    """An unused colour target and back-face culling."""


@dataclass(frozen=True)
class DepthPipelineState:
    """Fixed-function settings of a depth-only render pipeline."""

    topology: str
    front_face: str
    cull_mode: str
    unclipped_depth: bool
    depth_format: str
    depth_write_enabled: bool
    depth_compare: str
    depth_bias_constant: int
    depth_bias_slope_scale: float
    depth_bias_clamp: float
    sample_count: int
    color_targets: tuple[str, ...]
    color_write_mask: int


def depth_pipeline_state(
    ty: DepthPassType,
    samples: SampleCount,
    handedness: Handedness,
    unclipped_depth_supported: bool,
) -> DepthPipelineState:
    """Describe the pipeline used for a depth pass of the given type."""
    samples = SampleCount(samples)
    shadow = ty is DepthPassType.SHADOW
    return DepthPipelineState(
        topology="TriangleList",
        front_face="Cw" if handedness is Handedness.LEFT else "Ccw",
        cull_mode="Front" if shadow else "Back",
        unclipped_depth=shadow and unclipped_depth_supported,
        depth_format="Depth32Float",
        depth_write_enabled=True,
        depth_compare="GreaterEqual",
        depth_bias_constant=-2 if shadow else 0,
        depth_bias_slope_scale=-2.0 if shadow else 0.0,
        depth_bias_clamp=0.0,
        sample_count=int(samples),
        color_targets=() if shadow else ("Rgba16Float",),
        color_write_mask=0,
    )