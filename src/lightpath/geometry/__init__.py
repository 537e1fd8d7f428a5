"""Geometric primitives: ray intersection and uniform surface sampling."""

from .quad import Quad, hit_quad, quad_area, quad_normal, sample_quad_surface
from .sphere import HitRecord, Sphere, hit_sphere, sample_sphere_surface, sphere_area, sphere_uv

__all__ = [
    "HitRecord",
    "Quad",
    "Sphere",
    "hit_quad",
    "hit_sphere",
    "quad_area",
    "quad_normal",
    "sample_quad_surface",
    "sample_sphere_surface",
    "sphere_area",
    "sphere_uv",
]
