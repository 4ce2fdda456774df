# rendkit

The CPU-side building blocks of a 3D renderer: scene types, mesh validation
and normal and tangent generation, PBR material packing, depth-pass
settings and the byte layout of GPU skinning input. Matrices and vectors
are numpy arrays.

## Install

    pip install rendkit

## Modules

- `rendkit.types`: resource handles (`ResourceHandle`, `RawResourceHandle`),
  `SampleCount` (with `needs_resolve`), `Handedness`, `MipmapCount`,
  `MipmapSource`, `Texture`, `TextureFromTexture`, `Object` and
  `ObjectChange`, camera projections (`PerspectiveProjection`,
  `OrthographicProjection`, `RawProjection`) and `Camera`,
  `DirectionalLight` and `DirectionalLightChange`, and `Skeleton` with
  `compute_joint_matrices` and `skeleton_from_joint_transforms`. The
  `update_from_changes` methods overwrite only the fields that a change sets.
- `rendkit.mesh`: `Mesh` and `MeshBuilder`. `Mesh.validate` raises a
  subclass of `MeshValidationError` (`MismatchedVertexCount`,
  `ExceededMaxVertexCount`, `IndexCountNotMultipleOfThree`,
  `IndexOutOfBounds`). `Mesh` also computes smooth normals and tangents,
  doubles every triangle with `double_side`, and flips winding with
  `flip_winding_order`. `MeshBuilder.build` fills in any missing buffers,
  generates normals when none were given, and generates tangents when uvs
  were given but tangents were not. `with_double_sided` only sets the
  builder's `double_sided` attribute. It does not duplicate faces, so call
  `Mesh.double_side` on the result to do that.
- `rendkit.sorting`: `Sorting` and `sort_objects`. Objects are ordered by
  squared distance to a camera location, using a callable that returns
  each object's position.
- `rendkit.material`: `PbrMaterial` and its components (`AlbedoComponent`,
  `MaterialComponent`, `NormalTexture`, `AoMRTextures`, `ClearcoatTextures`,
  `Transparency`, `TransparencyType`, `SampleType`). `PbrMaterial.to_data`
  packs the 160-byte shader block, and `to_textures` lists the ten texture
  slots in shader order. `MaterialFlags` holds the flag bits, and
  `shader_field_offset` gives a field's byte offset in the block.
- `rendkit.depth`: `RendererProfile`, `AlphaCutoutSpec`, `AlphaDataAbi`,
  `round_up_pot`, and `compute_alpha_data_abi`, which gives the cutout
  uniform for a material layout. `depth_pipeline_state` describes the
  settings of a shadow or prepass pipeline as a `DepthPipelineState`.
- `rendkit.skinning`: `GpuSkinningInput`, `SkinnedSkeleton` and
  `build_skinning_input_buffers`. The last one packs per-skeleton records
  and column-major joint matrices into a `PreSkinningBuffers`.
  `workgroup_count` and `dispatch_plan` size the compute dispatches at 64
  vertices per workgroup.

## Example

    import numpy as np
    from rendkit.mesh import MeshBuilder
    from rendkit.material import PbrMaterial, Transparency
    from rendkit.types import Handedness

    positions = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0]], dtype=np.float32)
    mesh = MeshBuilder(positions, Handedness.LEFT).build()
    mesh.double_side()
    print(mesh.indices)          # [0 1 2 2 1 0]

    material = PbrMaterial(transparency=Transparency.cutout_at(0.5))
    print(material.object_key())  # 1
    print(len(material.to_data()))  # 160

## What it does not do

rendkit opens no GPU device and does not record commands. It has no render
graph, compiles no shaders and creates no pipelines. It also does not
perform culling, skinning or drawing. It produces the data and settings
that such a renderer consumes: validated meshes, packed material and
skinning bytes, sort orders and pipeline descriptions.

## Tests

    pip install -e ".[test]"
    pytest