"""Isotropic point light.

A delta position light: it can only be reached by explicit sampling, its
sample pdf is reported as 1 and the incident radiance scale is

    Le = power / (4 pi d^2)
"""

import taichi as ti
import taichi.math as tm

from ..core.ray import make_segment
from ..core.warp import square_to_uniform_sphere
from .base import SHADOW_EPSILON, EmitterSample, EmitterType, emitter_positions, emitter_radiance, register_emitter

vec2 = tm.vec2
vec3 = tm.vec3


def add_point_emitter(position: tuple[float, float, float], power: tuple[float, float, float]) -> int:
    """Register a point light with RGB ``power`` at ``position``."""
    return register_emitter(EmitterType.POINT, power, position)


@ti.func
def sample_point(emitter_id: ti.i32, ref: vec3) -> EmitterSample:
    position = emitter_positions[emitter_id]
    d = position - ref
    dist2 = tm.dot(d, d)
    dist = ti.sqrt(dist2)
    wi = vec3(0.0, 0.0, 1.0)
    weight = vec3(0.0, 0.0, 0.0)
    if dist > 0.0:
        wi = d / dist
        weight = emitter_radiance[emitter_id] / (4.0 * tm.pi * dist2)

    return EmitterSample(
        point=position,
        normal=-wi,
        wi=wi,
        distance=dist,
        pdf=1.0,
        weight=weight,
        is_delta=1,
        shadow_ray=make_segment(ref, wi, SHADOW_EPSILON, dist - SHADOW_EPSILON),
    )


@ti.func
def sample_point_photon(emitter_id: ti.i32, sample_dir: vec2):
    """Photon leaving the light in a uniformly random direction.

    Returns:
        Tuple (origin, direction, power) carrying the light's full power.
    """
    return emitter_positions[emitter_id], square_to_uniform_sphere(sample_dir), emitter_radiance[emitter_id]
