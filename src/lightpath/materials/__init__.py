"""Surface scattering models.

Components:
    lambertian: Ideal diffuse reflection
    conductor: GGX microfacet reflection with Schlick Fresnel (mirror at roughness 0)
    dielectric: Smooth glass with exact Fresnel
    bsdf: Unified material ids and eval / pdf / sample dispatch
"""

from .bsdf import (
    MAX_MATERIALS,
    BSDFSample,
    MaterialType,
    Measure,
    clear_material_table,
    eval_bsdf,
    is_diffuse,
    pdf_bsdf,
    register_material,
    sample_bsdf,
)
from .conductor import add_conductor_material, clear_conductor_materials
from .dielectric import DEFAULT_EXT_IOR, DEFAULT_INT_IOR, add_dielectric_material, clear_dielectric_materials
from .lambertian import add_lambertian_material, clear_lambertian_materials

__all__ = [
    "MAX_MATERIALS",
    "DEFAULT_EXT_IOR",
    "DEFAULT_INT_IOR",
    "BSDFSample",
    "MaterialType",
    "Measure",
    "add_conductor_material",
    "add_dielectric_material",
    "add_lambertian_material",
    "clear_conductor_materials",
    "clear_dielectric_materials",
    "clear_lambertian_materials",
    "clear_material_table",
    "eval_bsdf",
    "is_diffuse",
    "pdf_bsdf",
    "register_material",
    "sample_bsdf",
]
