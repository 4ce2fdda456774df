"""The physically based material: its components, flags and shader data layout."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import Enum, IntEnum, IntFlag
from typing import Generic, Optional, Sequence, TypeVar, Union

import numpy as np

from rendkit.depth import AlphaCutoutSpec
from rendkit.sorting import Sorting
from rendkit.types import ResourceHandle

T = TypeVar("T")

Vec3 = tuple[float, float, float]
Vec4 = tuple[float, float, float, float]


def _vec(value: Sequence[float], size: int) -> tuple[float, ...]:
    items = tuple(float(v) for v in value)
    if len(items) != size:
        raise ValueError(f"expected {size} components, got {len(items)}")
    return items


class MaterialFlags(IntFlag):
    """Flags the shaders use to determine properties of a material."""

    ALBEDO_ACTIVE = 1 << 0
    ALBEDO_BLEND = 1 << 1
    ALBEDO_VERTEX_SRGB = 1 << 2
    BICOMPONENT_NORMAL = 1 << 3
    SWIZZLED_NORMAL = 1 << 4
    YDOWN_NORMAL = 1 << 5
    AOMR_COMBINED = 1 << 6
    AOMR_SWIZZLED_SPLIT = 1 << 7
    AOMR_SPLIT = 1 << 8
    AOMR_BW_SPLIT = 1 << 9
    CC_GLTF_COMBINED = 1 << 10
    CC_GLTF_SPLIT = 1 << 11
    CC_BW_SPLIT = 1 << 12
    UNLIT = 1 << 13
    NEAREST = 1 << 14


_ONES: Vec4 = (1.0, 1.0, 1.0, 1.0)


@dataclass(frozen=True)
class AlbedoComponent:
    """How the albedo colour is determined.

    Any combination of a texture, a constant value and the vertex colour may
    be multiplied together; with none of them there is no albedo. ``srgb``
    says the vertex colour must be converted from sRGB to linear first.
    """

    texture: Optional[ResourceHandle] = None
    value: Optional[Vec4] = None
    vertex: bool = False
    srgb: bool = False

    def __post_init__(self) -> None:
        if self.srgb and not self.vertex:
            raise ValueError("srgb only applies when the vertex colour is used")
        if self.value is not None:
            object.__setattr__(self, "value", _vec(self.value, 4))

    def to_value(self) -> Vec4:
        """The constant colour handed to the shader."""
        # A texture combined with both vertex colour and value uploads ones.
        if self.value is None or (self.texture is not None and self.vertex):
            return _ONES
        return self.value  # type: ignore[return-value]

    def to_flags(self) -> MaterialFlags:
        if self.texture is None and self.value is None and not self.vertex:
            return MaterialFlags(0)
        if not self.vertex:
            return MaterialFlags.ALBEDO_ACTIVE
        flags = MaterialFlags.ALBEDO_ACTIVE | MaterialFlags.ALBEDO_BLEND
        if self.srgb:
            flags |= MaterialFlags.ALBEDO_VERTEX_SRGB
        return flags

    def is_texture(self) -> bool:
        return self.texture is not None

    def to_texture(self) -> Optional[ResourceHandle]:
        return self.texture


@dataclass(frozen=True)
class MaterialComponent(Generic[T]):
    """A material property taken from a texture, a fixed value, both, or neither."""

    texture: Optional[ResourceHandle] = None
    value: Optional[T] = None

    def to_value(self, default: T) -> T:
        """The fixed value, or ``default`` when none was given."""
        return default if self.value is None else self.value

    def is_texture(self) -> bool:
        return self.texture is not None

    def to_texture(self) -> Optional[ResourceHandle]:
        return self.texture


class NormalTextureYDirection(Enum):
    """Direction of the green channel in a normal map."""

    UP = "up"
    """X right, Y up: the OpenGL convention."""
    DOWN = "down"
    """X right, Y down: the DirectX convention."""


_NORMAL_KINDS = ("none", "tricomponent", "bicomponent", "bicomponent_swizzled")


@dataclass(frozen=True)
class NormalTexture:
    """How normals are read from a texture.

    ``kind`` is ``"none"``, ``"tricomponent"`` (RGB), ``"bicomponent"`` (RG,
    third reconstructed) or ``"bicomponent_swizzled"`` (green and alpha).
    """

    kind: str = "none"
    texture: Optional[ResourceHandle] = None
    direction: NormalTextureYDirection = NormalTextureYDirection.UP

    def __post_init__(self) -> None:
        if self.kind not in _NORMAL_KINDS:
            raise ValueError(f"unknown normal texture kind {self.kind!r}")
        if (self.kind == "none") != (self.texture is None):
            raise ValueError("a normal texture is required exactly when kind is not 'none'")

    @classmethod
    def tricomponent(
        cls, texture: ResourceHandle, direction: NormalTextureYDirection = NormalTextureYDirection.UP
    ) -> "NormalTexture":
        return cls("tricomponent", texture, direction)

    @classmethod
    def bicomponent(
        cls, texture: ResourceHandle, direction: NormalTextureYDirection = NormalTextureYDirection.UP
    ) -> "NormalTexture":
        return cls("bicomponent", texture, direction)

    @classmethod
    def bicomponent_swizzled(
        cls, texture: ResourceHandle, direction: NormalTextureYDirection = NormalTextureYDirection.UP
    ) -> "NormalTexture":
        return cls("bicomponent_swizzled", texture, direction)

    def to_texture(self) -> Optional[ResourceHandle]:
        return self.texture

    def to_flags(self) -> MaterialFlags:
        flags = MaterialFlags(0)
        if self.kind == "bicomponent":
            flags = MaterialFlags.BICOMPONENT_NORMAL
        elif self.kind == "bicomponent_swizzled":
            flags = MaterialFlags.BICOMPONENT_NORMAL | MaterialFlags.SWIZZLED_NORMAL
        if self.kind != "none" and self.direction is NormalTextureYDirection.DOWN:
            flags |= MaterialFlags.YDOWN_NORMAL
        return flags


_AOMR_FLAGS = {
    "none": MaterialFlags.AOMR_COMBINED,
    "combined": MaterialFlags.AOMR_COMBINED,
    "swizzled_split": MaterialFlags.AOMR_SWIZZLED_SPLIT,
    "split": MaterialFlags.AOMR_SPLIT,
    "bw_split": MaterialFlags.AOMR_BW_SPLIT,
}


@dataclass(frozen=True)
class AoMRTextures:
    """How ambient occlusion, metallic and roughness are read from textures.

    Layouts: ``"combined"`` (AO in R, roughness in G, metallic in B, one
    texture kept in ``roughness_texture``), ``"swizzled_split"`` (AO in R;
    roughness G / metallic B), ``"split"`` (AO in R; roughness R / metallic G)
    and ``"bw_split"`` (three single-channel textures).
    """

    layout: str = "none"
    ao_texture: Optional[ResourceHandle] = None
    roughness_texture: Optional[ResourceHandle] = None
    metallic_texture: Optional[ResourceHandle] = None

    def __post_init__(self) -> None:
        if self.layout not in _AOMR_FLAGS:
            raise ValueError(f"unknown AO/metallic/roughness layout {self.layout!r}")
        if self.layout == "none" and (
            self.ao_texture or self.roughness_texture or self.metallic_texture
        ):
            raise ValueError("layout 'none' takes no textures")
        if self.layout == "combined" and self.ao_texture is not None:
            raise ValueError("the combined layout uses a single texture")
        if self.layout != "bw_split" and self.metallic_texture is not None:
            raise ValueError("a separate metallic texture needs the 'bw_split' layout")

    @classmethod
    def combined(cls, texture: Optional[ResourceHandle] = None) -> "AoMRTextures":
        return cls("combined", roughness_texture=texture)

    @classmethod
    def swizzled_split(
        cls, ao_texture: Optional[ResourceHandle] = None, mr_texture: Optional[ResourceHandle] = None
    ) -> "AoMRTextures":
        return cls("swizzled_split", ao_texture=ao_texture, roughness_texture=mr_texture)

    @classmethod
    def split(
        cls, ao_texture: Optional[ResourceHandle] = None, mr_texture: Optional[ResourceHandle] = None
    ) -> "AoMRTextures":
        return cls("split", ao_texture=ao_texture, roughness_texture=mr_texture)

    @classmethod
    def bw_split(
        cls,
        ao_texture: Optional[ResourceHandle] = None,
        m_texture: Optional[ResourceHandle] = None,
        r_texture: Optional[ResourceHandle] = None,
    ) -> "AoMRTextures":
        return cls("bw_split", ao_texture, r_texture, m_texture)

    def to_roughness_texture(self) -> Optional[ResourceHandle]:
        return self.roughness_texture

    def to_metallic_texture(self) -> Optional[ResourceHandle]:
        return self.metallic_texture

    def to_ao_texture(self) -> Optional[ResourceHandle]:
        return self.ao_texture

    def to_flags(self) -> MaterialFlags:
        # With no textures the combined flag makes the shader check one slot and stop.
        return _AOMR_FLAGS[self.layout]


_CLEARCOAT_FLAGS = {
    "none": MaterialFlags.CC_GLTF_COMBINED,
    "gltf_combined": MaterialFlags.CC_GLTF_COMBINED,
    "gltf_split": MaterialFlags.CC_GLTF_SPLIT,
    "bw_split": MaterialFlags.CC_BW_SPLIT,
}


@dataclass(frozen=True)
class ClearcoatTextures:
    """How clearcoat and clearcoat roughness are read from textures.

    Layouts: ``"gltf_combined"`` (clearcoat R, roughness G in one texture),
    ``"gltf_split"`` (clearcoat R; roughness G) and ``"bw_split"``
    (clearcoat R; roughness R).
    """

    layout: str = "none"
    clearcoat_texture: Optional[ResourceHandle] = None
    clearcoat_roughness_texture: Optional[ResourceHandle] = None

    def __post_init__(self) -> None:
        if self.layout not in _CLEARCOAT_FLAGS:
            raise ValueError(f"unknown clearcoat layout {self.layout!r}")
        if self.layout == "none" and (self.clearcoat_texture or self.clearcoat_roughness_texture):
            raise ValueError("layout 'none' takes no textures")
        if self.layout == "gltf_combined" and self.clearcoat_roughness_texture is not None:
            raise ValueError("the combined layout uses a single texture")

    @classmethod
    def gltf_combined(cls, texture: Optional[ResourceHandle] = None) -> "ClearcoatTextures":
        return cls("gltf_combined", clearcoat_texture=texture)

    @classmethod
    def gltf_split(
        cls,
        clearcoat_texture: Optional[ResourceHandle] = None,
        clearcoat_roughness_texture: Optional[ResourceHandle] = None,
    ) -> "ClearcoatTextures":
        return cls("gltf_split", clearcoat_texture, clearcoat_roughness_texture)

    @classmethod
    def bw_split(
        cls,
        clearcoat_texture: Optional[ResourceHandle] = None,
        clearcoat_roughness_texture: Optional[ResourceHandle] = None,
    ) -> "ClearcoatTextures":
        return cls("bw_split", clearcoat_texture, clearcoat_roughness_texture)

    def to_clearcoat_texture(self) -> Optional[ResourceHandle]:
        return self.clearcoat_texture

    def to_clearcoat_roughness_texture(self) -> Optional[ResourceHandle]:
        return self.clearcoat_roughness_texture

    def to_flags(self) -> MaterialFlags:
        return _CLEARCOAT_FLAGS[self.layout]


class SampleType(Enum):
    """How textures are sampled."""

    NEAREST = "nearest"
    LINEAR = "linear"


class TransparencyType(IntEnum):
    """The kind of transparency of a material; also its object key."""

    OPAQUE = 0
    """Alpha is ignored."""
    CUTOUT = 1
    """Alpha below a threshold is discarded."""
    BLEND = 2
    """Alpha is blended."""

    def to_debug_str(self) -> str:
        return self.name.lower()

    def to_sorting(self) -> Optional[Sorting]:
        """Blended objects are drawn back to front; the rest need no order."""
        return Sorting.BACK_TO_FRONT if self is TransparencyType.BLEND else None


@dataclass(frozen=True, eq=False)
class Transparency:
    """How transparency is handled; ``cutout`` is the threshold for cutouts.

    Compares equal to the :class:`TransparencyType` of the same kind.
    """

    kind: TransparencyType = TransparencyType.OPAQUE
    cutout: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", TransparencyType(self.kind))
        if self.kind is not TransparencyType.CUTOUT and self.cutout != 0.0:
            raise ValueError("only cutout transparency has a cutout threshold")

    @classmethod
    def opaque(cls) -> "Transparency":
        return cls(TransparencyType.OPAQUE)

    @classmethod
    def cutout_at(cls, cutout: float) -> "Transparency":
        return cls(TransparencyType.CUTOUT, float(cutout))

    @classmethod
    def blend(cls) -> "Transparency":
        return cls(TransparencyType.BLEND)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Transparency):
            return self.kind is other.kind and self.cutout == other.cutout
        if isinstance(other, TransparencyType):
            return self.kind is other
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.kind, self.cutout))


def transparency_type_of(transparency: Transparency) -> TransparencyType:
    """The kind of a transparency setting."""
    return transparency.kind


_SHADER_OFFSETS = {
    "uv_transform0": 0,
    "uv_transform1": 48,
    "albedo": 96,
    "emissive": 112,
    "roughness": 124,
    "metallic": 128,
    "reflectance": 132,
    "clear_coat": 136,
    "clear_coat_roughness": 140,
    "anisotropy": 144,
    "ambient_occlusion": 148,
    "alpha_cutout": 152,
    "material_flags": 156,
}

_SHADER_TAIL = struct.Struct("<4f3f8fI")
_SHADER_SIZE = 160


def shader_field_offset(name: str) -> int:
    """Byte offset of a field in the material data the shaders read."""
    try:
        return _SHADER_OFFSETS[name]
    except KeyError:
        raise KeyError(f"no shader material field named {name!r}") from None


def _mat3a_bytes(matrix: np.ndarray) -> bytes:
    m = np.asarray(matrix, dtype=np.float32)
    if m.shape != (3, 3):
        raise ValueError(f"uv transforms must be 3x3, got shape {m.shape}")
    # Column-major, each column padded to 16 bytes.
    padded = np.zeros((3, 4), dtype="<f4")
    padded[:, :3] = m.T
    return padded.tobytes()


def _identity3() -> np.ndarray:
    return np.identity(3, dtype=np.float32)


@dataclass(eq=False)
class PbrMaterial:
    """Textures and values that determine how an object interacts with light."""

    TEXTURE_COUNT = 10
    DATA_SIZE = _SHADER_SIZE
    ALPHA_CUTOUT = AlphaCutoutSpec(index=0, cutoff_offset=152, uv_transform_offset=0)

    albedo: AlbedoComponent = field(default_factory=AlbedoComponent)
    transparency: Transparency = field(default_factory=Transparency)
    normal: NormalTexture = field(default_factory=NormalTexture)
    aomr_textures: AoMRTextures = field(default_factory=AoMRTextures)
    ao_factor: Optional[float] = None
    metallic_factor: Optional[float] = None
    roughness_factor: Optional[float] = None
    clearcoat_textures: ClearcoatTextures = field(default_factory=ClearcoatTextures)
    clearcoat_factor: Optional[float] = None
    clearcoat_roughness_factor: Optional[float] = None
    emissive: MaterialComponent[Vec3] = field(default_factory=MaterialComponent)
    reflectance: MaterialComponent[float] = field(default_factory=MaterialComponent)
    anisotropy: MaterialComponent[float] = field(default_factory=MaterialComponent)
    uv_transform0: np.ndarray = field(default_factory=_identity3)
    uv_transform1: np.ndarray = field(default_factory=_identity3)
    unlit: bool = False
    sample_type: SampleType = SampleType.LINEAR

    def object_key(self) -> int:
        """Archetype key: the transparency kind."""
        return int(transparency_type_of(self.transparency))

    def to_textures(self) -> list[Optional[ResourceHandle]]:
        """The material's texture slots in shader order."""
        return [
            self.albedo.to_texture(),
            self.normal.to_texture(),
            self.aomr_textures.to_roughness_texture(),
            self.aomr_textures.to_metallic_texture(),
            self.reflectance.to_texture(),
            self.clearcoat_textures.to_clearcoat_texture(),
            self.clearcoat_textures.to_clearcoat_roughness_texture(),
            self.emissive.to_texture(),
            self.anisotropy.to_texture(),
            self.aomr_textures.to_ao_texture(),
        ]

    def _flags(self) -> MaterialFlags:
        flags = (
            self.albedo.to_flags()
            | self.normal.to_flags()
            | self.aomr_textures.to_flags()
            | self.clearcoat_textures.to_flags()
        )
        if self.unlit:
            flags |= MaterialFlags.UNLIT
        if self.sample_type is SampleType.NEAREST:
            flags |= MaterialFlags.NEAREST
        return flags

    def to_data(self) -> bytes:
        """The :attr:`DATA_SIZE` bytes of material data the shaders read."""
        emissive = _vec(self.emissive.to_value((0.0, 0.0, 0.0)), 3)
        cutout = (
            self.transparency.cutout
            if self.transparency.kind is TransparencyType.CUTOUT
            else 0.0
        )
        tail = _SHADER_TAIL.pack(
            *self.albedo.to_value(),
            *emissive,
            _or(self.roughness_factor, 0.0),
            _or(self.metallic_factor, 0.0),
            float(self.reflectance.to_value(0.5)),
            _or(self.clearcoat_factor, 0.0),
            _or(self.clearcoat_roughness_factor, 0.0),
            float(self.anisotropy.to_value(0.0)),
            _or(self.ao_factor, 1.0),
            cutout,
            int(self._flags()),
        )
        return _mat3a_bytes(self.uv_transform0) + _mat3a_bytes(self.uv_transform1) + tail


def _or(value: Union[float, None], default: float) -> float:
    return default if value is None else float(value)