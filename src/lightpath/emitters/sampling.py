"""Uniform interface over all emitter kinds.

Integrators only use these functions; they never branch on emitter kinds
themselves. ``choose_emitter`` picks an emitter uniformly, and callers
account for the selection probability by dividing the sample pdf by the
emitter count (or multiplying the weight by it).
"""

import taichi as ti
import taichi.math as tm

from ..core.ray import make_segment
from .area import eval_area, pdf_area_emitter, sample_area, sample_area_photon
from .base import SHADOW_EPSILON, EmitterSample, EmitterType, emitter_types, environment_emitter_id, num_emitters
from .environment import (
    eval_environment,
    pdf_environment,
    sample_environment,
    sample_environment_photon,
)
from .point import sample_point, sample_point_photon

vec2 = tm.vec2
vec3 = tm.vec3


@ti.func
def choose_emitter(u: ti.f32) -> ti.i32:
    """Uniformly select an emitter id with a uniform number ``u``.

    Returns -1 when the scene has no emitters.
    """
    n = num_emitters[None]
    result = -1
    if n > 0:
        result = ti.min(ti.cast(u * n, ti.i32), n - 1)
    return result


@ti.func
def sample_emitter(emitter_id: ti.i32, ref: vec3, sample: vec2) -> EmitterSample:
    """Sample emitter ``emitter_id`` as seen from ``ref``.

    Returns a zero-pdf record for invalid ids.
    """
    kind = emitter_types[ti.max(emitter_id, 0)]
    rec = EmitterSample(
        point=ref,
        normal=vec3(0.0, 0.0, 1.0),
        wi=vec3(0.0, 0.0, 1.0),
        distance=0.0,
        pdf=0.0,
        weight=vec3(0.0, 0.0, 0.0),
        is_delta=0,
        shadow_ray=make_segment(ref, vec3(0.0, 0.0, 1.0), SHADOW_EPSILON, SHADOW_EPSILON),
    )
    if 0 <= emitter_id < num_emitters[None]:
        if kind == int(EmitterType.AREA):
            rec = sample_area(emitter_id, ref, sample)
        elif kind == int(EmitterType.POINT):
            rec = sample_point(emitter_id, ref)
        elif kind == int(EmitterType.ENVIRONMENT):
            rec = sample_environment(emitter_id, ref, sample)
    return rec


@ti.func
def eval_emitter(emitter_id: ti.i32, normal: vec3, wi: vec3) -> vec3:
    """Radiance reaching a receiver from emitter ``emitter_id`` along ``wi``.

    Args:
        emitter_id: The emitter that was hit (or the environment on escape).
        normal: Outward normal at the emitter point (ignored for the environment).
        wi: Direction from the receiver toward the emitter.
    """
    kind = emitter_types[ti.max(emitter_id, 0)]
    result = vec3(0.0, 0.0, 0.0)
    if 0 <= emitter_id < num_emitters[None]:
        if kind == int(EmitterType.AREA):
            result = eval_area(emitter_id, normal, wi)
        elif kind == int(EmitterType.ENVIRONMENT):
            result = eval_environment(wi)
    return result


@ti.func
def pdf_emitter(emitter_id: ti.i32, ref: vec3, point: vec3, normal: vec3, wi: vec3) -> ti.f32:
    """Solid-angle density with which sample_emitter() would produce ``wi``.

    Delta emitters cannot be hit and report 0.
    """
    kind = emitter_types[ti.max(emitter_id, 0)]
    pdf = 0.0
    if 0 <= emitter_id < num_emitters[None]:
        if kind == int(EmitterType.AREA):
            pdf = pdf_area_emitter(emitter_id, ref, point, normal, wi)
        elif kind == int(EmitterType.ENVIRONMENT):
            pdf = pdf_environment(wi)
    return pdf


@ti.func
def sample_photon(emitter_id: ti.i32, sample_pos: vec2, sample_dir: vec2):
    """Emit a photon from emitter ``emitter_id``.

    Returns:
        Tuple (origin, direction, power).
    """
    kind = emitter_types[ti.max(emitter_id, 0)]
    origin = vec3(0.0, 0.0, 0.0)
    direction = vec3(0.0, 0.0, 1.0)
    power = vec3(0.0, 0.0, 0.0)
    if 0 <= emitter_id < num_emitters[None]:
        if kind == int(EmitterType.AREA):
            origin, direction, power = sample_area_photon(emitter_id, sample_pos, sample_dir)
        elif kind == int(EmitterType.POINT):
            origin, direction, power = sample_point_photon(emitter_id, sample_dir)
        elif kind == int(EmitterType.ENVIRONMENT):
            origin, direction, power = sample_environment_photon(emitter_id, sample_pos, sample_dir)
    return origin, direction, power


@ti.func
def has_environment() -> ti.i32:
    result = 0
    if environment_emitter_id[None] >= 0:
        result = 1
    return result


@ti.func
def eval_escaped(direction: vec3) -> vec3:
    """Environment radiance for a ray leaving the scene (0 without one)."""
    result = vec3(0.0, 0.0, 0.0)
    if has_environment() == 1:
        result = eval_environment(direction)
    return result
