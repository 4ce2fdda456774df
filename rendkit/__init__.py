"""Scene types, mesh processing, PBR material packing and GPU data layout helpers for 3D rendering."""

__version__ = "0.1.0"

__all__ = ["depth", "material", "mesh", "skinning", "sorting", "types"]