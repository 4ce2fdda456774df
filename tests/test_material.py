import struct

import numpy as np
import pytest

from rendkit.depth import RendererProfile, compute_alpha_data_abi
from rendkit.material import (
    AlbedoComponent,
    AoMRTextures,
    ClearcoatTextures,
    MaterialComponent,
    MaterialFlags,
    NormalTexture,
    NormalTextureYDirection,
    PbrMaterial,
    SampleType,
    Transparency,
    TransparencyType,
    shader_field_offset,
    transparency_type_of,
)
from rendkit.sorting import Sorting
from rendkit.types import ResourceHandle


def _float_at(data: bytes, name: str) -> float:
    return struct.unpack_from("<f", data, shader_field_offset(name))[0]


def _flags_of(material: PbrMaterial) -> MaterialFlags:
    return MaterialFlags(struct.unpack_from("<I", material.to_data(), shader_field_offset("material_flags"))[0])


def test_cutout_offset():
    assert shader_field_offset("alpha_cutout") == 152
    assert shader_field_offset("uv_transform0") == 0


def test_unknown_field_offset():
    with pytest.raises(KeyError):
        shader_field_offset("nonexistent")


def test_data_size_and_alpha_spec():
    assert PbrMaterial.DATA_SIZE == 160
    assert len(PbrMaterial().to_data()) == 160
    assert PbrMaterial.ALPHA_CUTOUT.cutoff_offset == 152
    assert PbrMaterial.ALPHA_CUTOUT.uv_transform_offset == 0


def test_alpha_abi_cpu_and_gpu():
    cpu = compute_alpha_data_abi(
        PbrMaterial.TEXTURE_COUNT, PbrMaterial.DATA_SIZE, PbrMaterial.ALPHA_CUTOUT, RendererProfile.CPU_DRIVEN
    )
    assert (cpu.stride, cpu.texture_offset, cpu.cutoff_offset, cpu.uv_transform_offset) == (0, 40, 38, 0)
    gpu = compute_alpha_data_abi(
        PbrMaterial.TEXTURE_COUNT, PbrMaterial.DATA_SIZE, PbrMaterial.ALPHA_CUTOUT, RendererProfile.GPU_DRIVEN
    )
    assert (gpu.stride, gpu.texture_offset, gpu.cutoff_offset, gpu.uv_transform_offset) == (52, 0, 50, 12)


def test_default_material_data():
    material = PbrMaterial()
    data = material.to_data()
    assert _float_at(data, "reflectance") == pytest.approx(0.5)
    assert _float_at(data, "ambient_occlusion") == pytest.approx(1.0)
    assert _float_at(data, "roughness") == 0.0
    assert _float_at(data, "alpha_cutout") == 0.0
    assert struct.unpack_from("<4f", data, shader_field_offset("albedo")) == (1.0, 1.0, 1.0, 1.0)
    assert _flags_of(material) == MaterialFlags.AOMR_COMBINED | MaterialFlags.CC_GLTF_COMBINED


def test_uv_transform_is_column_major_padded():
    m = np.array([[1, 2, 3], [4, 5, 6], [7, 8, 9]], dtype=np.float32)
    data = PbrMaterial(uv_transform0=m).to_data()
    first = struct.unpack_from("<12f", data, 0)
    assert first == (1, 4, 7, 0, 2, 5, 8, 0, 3, 6, 9, 0)
    identity = struct.unpack_from("<4f", data, shader_field_offset("uv_transform1"))
    assert identity == (1.0, 0.0, 0.0, 0.0)


def test_cutout_value_in_data():
    material = PbrMaterial(transparency=Transparency.cutout_at(0.25))
    assert _float_at(material.to_data(), "alpha_cutout") == pytest.approx(0.25)
    assert material.object_key() == 1


def test_object_keys():
    assert PbrMaterial().object_key() == 0
    assert PbrMaterial(transparency=Transparency.blend()).object_key() == 2


def test_flags_unlit_and_nearest():
    flags = _flags_of(PbrMaterial(unlit=True, sample_type=SampleType.NEAREST))
    assert MaterialFlags.UNLIT in flags
    assert MaterialFlags.NEAREST in flags


def test_albedo_flags():
    tex = ResourceHandle(1)
    assert AlbedoComponent().to_flags() == MaterialFlags(0)
    assert AlbedoComponent(value=(1, 0, 0, 1)).to_flags() == MaterialFlags.ALBEDO_ACTIVE
    assert AlbedoComponent(texture=tex).to_flags() == MaterialFlags.ALBEDO_ACTIVE
    assert AlbedoComponent(vertex=True).to_flags() == MaterialFlags.ALBEDO_ACTIVE | MaterialFlags.ALBEDO_BLEND
    assert AlbedoComponent(texture=tex, vertex=True, srgb=True).to_flags() == (
        MaterialFlags.ALBEDO_ACTIVE | MaterialFlags.ALBEDO_BLEND | MaterialFlags.ALBEDO_VERTEX_SRGB
    )


def test_albedo_values():
    tex = ResourceHandle(2)
    assert AlbedoComponent(value=(0.5, 0.5, 0.5, 1)).to_value() == (0.5, 0.5, 0.5, 1.0)
    assert AlbedoComponent(value=(0.5, 0, 0, 1), vertex=True).to_value() == (0.5, 0.0, 0.0, 1.0)
    assert AlbedoComponent(texture=tex, value=(0.2, 0, 0, 1)).to_value() == (0.2, 0.0, 0.0, 1.0)
    assert AlbedoComponent(texture=tex, value=(0.2, 0, 0, 1), vertex=True).to_value() == (1.0, 1.0, 1.0, 1.0)
    assert AlbedoComponent(texture=tex).is_texture() is True
    assert AlbedoComponent(value=(1, 1, 1, 1)).to_texture() is None


def test_albedo_srgb_requires_vertex():
    with pytest.raises(ValueError):
        AlbedoComponent(srgb=True)


def test_material_component():
    tex = ResourceHandle(3)
    assert MaterialComponent().to_value(0.5) == 0.5
    assert MaterialComponent(value=0.1).to_value(0.5) == 0.1
    assert MaterialComponent(texture=tex).to_value(7) == 7
    both = MaterialComponent(texture=tex, value=0.3)
    assert both.to_value(0.0) == 0.3
    assert both.is_texture() is True
    assert both.to_texture() == tex
    assert MaterialComponent(value=1.0).is_texture() is False


def test_normal_flags():
    tex = ResourceHandle(4)
    down = NormalTextureYDirection.DOWN
    assert NormalTexture().to_flags() == MaterialFlags(0)
    assert NormalTexture.tricomponent(tex).to_flags() == MaterialFlags(0)
    assert NormalTexture.tricomponent(tex, down).to_flags() == MaterialFlags.YDOWN_NORMAL
    assert NormalTexture.bicomponent(tex).to_flags() == MaterialFlags.BICOMPONENT_NORMAL
    assert NormalTexture.bicomponent_swizzled(tex, down).to_flags() == (
        MaterialFlags.BICOMPONENT_NORMAL | MaterialFlags.SWIZZLED_NORMAL | MaterialFlags.YDOWN_NORMAL
    )
    assert NormalTexture.bicomponent(tex).to_texture() == tex


def test_normal_requires_texture():
    with pytest.raises(ValueError):
        NormalTexture("bicomponent")


def test_aomr_textures():
    ao, m, r, mr = (ResourceHandle(i) for i in (10, 11, 12, 13))
    combined = AoMRTextures.combined(mr)
    assert combined.to_roughness_texture() == mr
    assert combined.to_metallic_texture() is None
    assert combined.to_ao_texture() is None
    assert combined.to_flags() == MaterialFlags.AOMR_COMBINED
    split = AoMRTextures.split(ao, mr)
    assert split.to_ao_texture() == ao
    assert split.to_roughness_texture() == mr
    assert split.to_metallic_texture() is None
    assert split.to_flags() == MaterialFlags.AOMR_SPLIT
    assert AoMRTextures.swizzled_split(ao, mr).to_flags() == MaterialFlags.AOMR_SWIZZLED_SPLIT
    bw = AoMRTextures.bw_split(ao, m, r)
    assert (bw.to_ao_texture(), bw.to_metallic_texture(), bw.to_roughness_texture()) == (ao, m, r)
    assert bw.to_flags() == MaterialFlags.AOMR_BW_SPLIT
    assert AoMRTextures().to_flags() == MaterialFlags.AOMR_COMBINED


def test_aomr_rejects_metallic_outside_bw_split():
    with pytest.raises(ValueError):
        AoMRTextures("split", metallic_texture=ResourceHandle(1))


def test_clearcoat_textures():
    cc, ccr = ResourceHandle(20), ResourceHandle(21)
    combined = ClearcoatTextures.gltf_combined(cc)
    assert combined.to_clearcoat_texture() == cc
    assert combined.to_clearcoat_roughness_texture() is None
    assert combined.to_flags() == MaterialFlags.CC_GLTF_COMBINED
    split = ClearcoatTextures.gltf_split(cc, ccr)
    assert split.to_clearcoat_roughness_texture() == ccr
    assert split.to_flags() == MaterialFlags.CC_GLTF_SPLIT
    assert ClearcoatTextures.bw_split(cc, ccr).to_flags() == MaterialFlags.CC_BW_SPLIT
    assert ClearcoatTextures().to_flags() == MaterialFlags.CC_GLTF_COMBINED


def test_transparency_types():
    assert transparency_type_of(Transparency.cutout_at(0.5)) is TransparencyType.CUTOUT
    assert Transparency.cutout_at(0.5) == TransparencyType.CUTOUT
    assert TransparencyType.BLEND == Transparency.blend()
    assert Transparency.opaque() != TransparencyType.BLEND
    assert Transparency.cutout_at(0.5) != Transparency.cutout_at(0.6)
    assert TransparencyType.BLEND.to_sorting() is Sorting.BACK_TO_FRONT
    assert TransparencyType.OPAQUE.to_sorting() is None
    assert TransparencyType.CUTOUT.to_sorting() is None
    assert [t.to_debug_str() for t in TransparencyType] == ["opaque", "cutout", "blend"]


def test_transparency_rejects_stray_cutout():
    with pytest.raises(ValueError):
        Transparency(TransparencyType.OPAQUE, 0.5)


def test_to_textures_order():
    albedo, normal, rough, metal, refl, cc, ccr, emis, aniso, ao = (ResourceHandle(i) for i in range(10))
    material = PbrMaterial(
        albedo=AlbedoComponent(texture=albedo),
        normal=NormalTexture.tricomponent(normal),
        aomr_textures=AoMRTextures.bw_split(ao, metal, rough),
        reflectance=MaterialComponent(texture=refl),
        clearcoat_textures=ClearcoatTextures.bw_split(cc, ccr),
        emissive=MaterialComponent(texture=emis),
        anisotropy=MaterialComponent(texture=aniso),
    )
    assert material.to_textures() == [albedo, normal, rough, metal, refl, cc, ccr, emis, aniso, ao]
    assert PbrMaterial().to_textures() == [None] * PbrMaterial.TEXTURE_COUNT


def test_factors_in_data():
    material = PbrMaterial(
        roughness_factor=0.3,
        metallic_factor=0.7,
        ao_factor=0.4,
        emissive=MaterialComponent(value=(1.0, 2.0, 3.0)),
    )
    data = material.to_data()
    assert _float_at(data, "roughness") == pytest.approx(0.3)
    assert _float_at(data, "metallic") == pytest.approx(0.7)
    assert _float_at(data, "ambient_occlusion") == pytest.approx(0.4)
    assert struct.unpack_from("<3f", data, shader_field_offset("emissive")) == (1.0, 2.0, 3.0)