"""Core scene types: resource handles, textures, objects, cameras, lights and skeletons."""

from __future__ import annotations

import dataclasses
import weakref
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Generic, Optional, Sequence, TypeVar, Union

import numpy as np

T = TypeVar("T")

MAX_VERTEX_COUNT = 1 << 24
"""The maximum amount of vertices any one mesh can have.

Leaves 8 bits free in the high byte of an index for object recombination.
"""


@dataclass(frozen=True)
class RawResourceHandle(Generic[T]):
    """Non-owning handle to a resource, identified by its index."""

    idx: int


class _RefToken:
    """Shared marker whose lifetime tracks the owning handles."""

    __slots__ = ("__weakref__",)


class ResourceHandle(Generic[T]):
    """Owning, reference-counted handle to a resource.

    Copies share the same reference token; equality and hashing use the index only.
    """

    __slots__ = ("_token", "idx")

    def __init__(self, idx: int) -> None:
        self.idx = idx
        self._token = _RefToken()

    def __copy__(self) -> "ResourceHandle[T]":
        other = ResourceHandle.__new__(ResourceHandle)
        other.idx = self.idx
        other._token = self._token
        return other

    def __deepcopy__(self, memo: dict) -> "ResourceHandle[T]":
        return self.__copy__()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResourceHandle):
            return NotImplemented
        return self.idx == other.idx

    def __hash__(self) -> int:
        return hash(self.idx)

    def __repr__(self) -> str:
        return f"ResourceHandle(idx={self.idx})"

    def get_raw(self) -> RawResourceHandle[T]:
        """Return the equivalent non-owning handle."""
        return RawResourceHandle(self.idx)

    def get_weak_refcount(self) -> weakref.ref:
        """Return a weak reference that dies once every copy of this handle is gone."""
        return weakref.ref(self._token)


class SampleCount(IntEnum):
    """The sample count when multisampling."""

    ONE = 1
    FOUR = 4

    def needs_resolve(self) -> bool:
        """Whether a resolve texture is needed for this sample count."""
        return self is not SampleCount.ONE


class Handedness(Enum):
    """Handedness of a coordinate system."""

    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class MipmapCount:
    """Number of mip levels; ``count=None`` means the maximum possible."""

    count: Optional[int] = 1

    def __post_init__(self) -> None:
        if self.count is not None and self.count < 1:
            raise ValueError(f"mipmap count must be non-zero, got {self.count}")

    @property
    def is_maximum(self) -> bool:
        return self.count is None


MipmapCount.ONE = MipmapCount(1)  # type: ignore[attr-defined]
MipmapCount.MAXIMUM = MipmapCount(None)  # type: ignore[attr-defined]


class MipmapSource(Enum):
    """How texture mipmaps are obtained."""

    UPLOADED = "uploaded"
    GENERATED = "generated"


@dataclass
class Texture:
    """A bitmap image used as a data source for a texture."""

    label: Optional[str]
    data: bytes
    format: str
    size: tuple[int, int]
    mip_count: MipmapCount = field(default_factory=lambda: MipmapCount(1))
    mip_source: MipmapSource = MipmapSource.UPLOADED


@dataclass
class TextureFromTexture:
    """A texture made from the mipmaps of another texture."""

    label: Optional[str]
    src: ResourceHandle
    start_mip: int
    mip_count: Optional[int] = None

    def __post_init__(self) -> None:
        if self.mip_count is not None and self.mip_count < 1:
            raise ValueError(f"mipmap count must be non-zero, got {self.mip_count}")


@dataclass(frozen=True)
class AnimatedMesh:
    """Object mesh source driven by a skeleton."""

    skeleton: ResourceHandle


@dataclass(frozen=True)
class StaticMesh:
    """Object mesh source that is a plain mesh."""

    mesh: ResourceHandle


ObjectMeshKind = Union[AnimatedMesh, StaticMesh]


def _identity() -> np.ndarray:
    return np.identity(4, dtype=np.float32)


def _apply_changes(target: object, change: object) -> None:
    for f in dataclasses.fields(change):
        value = getattr(change, f.name)
        if value is not None:
            setattr(target, f.name, value)


@dataclass(eq=False)
class Object:
    """An object in the world composed of a mesh and a material."""

    mesh_kind: ObjectMeshKind
    material: ResourceHandle
    transform: np.ndarray = field(default_factory=_identity)

    def update_from_changes(self, change: "ObjectChange") -> None:
        """Overwrite every field that the change sets."""
        _apply_changes(self, change)


@dataclass(eq=False)
class ObjectChange:
    """A modification to an :class:`Object`; ``None`` fields are left alone."""

    mesh_kind: Optional[ObjectMeshKind] = None
    material: Optional[ResourceHandle] = None
    transform: Optional[np.ndarray] = None


@dataclass(eq=False)
class OrthographicProjection:
    """Orthographic projection; size assumes the location is the centre of the view."""

    size: np.ndarray


@dataclass(frozen=True)
class PerspectiveProjection:
    """Perspective projection with an infinite far plane."""

    vfov: float = 60.0
    near: float = 0.1


@dataclass(eq=False)
class RawProjection:
    """A projection given directly as a matrix."""

    matrix: np.ndarray


CameraProjection = Union[OrthographicProjection, PerspectiveProjection, RawProjection]


@dataclass(eq=False)
class Camera:
    """How the camera looks at the scene."""

    projection: CameraProjection = field(default_factory=PerspectiveProjection)
    view: np.ndarray = field(default_factory=_identity)


@dataclass(eq=False)
class DirectionalLight:
    """A directional (sun) light and its shadow distance."""

    color: np.ndarray
    intensity: float
    direction: np.ndarray
    distance: float

    def update_from_changes(self, change: "DirectionalLightChange") -> None:
        """Overwrite every field that the change sets."""
        _apply_changes(self, change)


@dataclass(eq=False)
class DirectionalLightChange:
    """A modification to a :class:`DirectionalLight`; ``None`` fields are left alone."""

    color: Optional[np.ndarray] = None
    intensity: Optional[float] = None
    direction: Optional[np.ndarray] = None
    distance: Optional[float] = None


@dataclass(eq=False)
class Skeleton:
    """Joint matrices applied to a mesh's vertices during skinning."""

    joint_matrices: list[np.ndarray]
    mesh: ResourceHandle


def compute_joint_matrices(
    joint_global_transforms: Sequence[np.ndarray],
    inverse_bind_transforms: Sequence[np.ndarray],
) -> list[np.ndarray]:
    """Multiply each global joint transform by its inverse bind matrix."""
    return [
        np.asarray(glob) @ np.asarray(inv)
        for glob, inv in zip(joint_global_transforms, inverse_bind_transforms)
    ]


def skeleton_from_joint_transforms(
    mesh: ResourceHandle,
    joint_global_transforms: Sequence[np.ndarray],
    inverse_bind_transforms: Sequence[np.ndarray],
) -> Skeleton:
    """Build a skeleton from global joint transforms and inverse bind matrices."""
    return Skeleton(
        joint_matrices=compute_joint_matrices(joint_global_transforms, inverse_bind_transforms),
        mesh=mesh,
    )