"""Diffuse area light bound to a sphere or quad.

Emission is one-sided: radiance leaves only through the outward side of
the shape (the side the geometric normal points to). Points are sampled
uniformly by area and converted to solid angle at the reference point:

    pdf(wi) = pdf_area * d^2 / |cos(theta_light)|
"""

import taichi as ti
import taichi.math as tm

from ..core.ray import make_segment, to_world
from ..core.warp import square_to_cosine_hemisphere
from ..errors import ConfigurationError
from ..geometry.quad import Quad, sample_quad_surface
from ..geometry.sphere import Sphere, sample_sphere_surface
from ..scene.intersection import (
    get_quad_count,
    get_sphere_count,
    quad_corners,
    quad_edge_u,
    quad_edge_v,
    quad_emitter_ids,
    sphere_centers,
    sphere_emitter_ids,
    sphere_radii,
)
from .base import (
    SHADOW_EPSILON,
    EmitterSample,
    EmitterType,
    ShapeKind,
    emitter_radiance,
    emitter_shape_indices,
    emitter_shape_kinds,
    emitter_types,
    get_emitter_count,
    register_emitter,
)

vec2 = tm.vec2
vec3 = tm.vec3


def add_area_emitter(radiance: tuple[float, float, float]) -> int:
    """Register an area emitter. Bind it to a shape with attach_area_shape()."""
    return register_emitter(EmitterType.AREA, radiance)


def attach_area_shape(emitter_id: int, kind: ShapeKind, shape_index: int) -> None:
    """Bind an area emitter to an existing sphere or quad.

    Raises:
        ConfigurationError: If the emitter is not an area emitter, the shape
            index is out of range, or the emitter already has a shape.
    """
    if not 0 <= emitter_id < get_emitter_count():
        raise ConfigurationError(f"Invalid emitter_id: {emitter_id}")
    if emitter_types[emitter_id] != int(EmitterType.AREA):
        raise ConfigurationError(f"Emitter {emitter_id} is not an area emitter")
    if emitter_shape_kinds[emitter_id] >= 0:
        raise ConfigurationError(f"Area emitter {emitter_id} already has a shape")

    if kind == ShapeKind.SPHERE:
        if not 0 <= shape_index < get_sphere_count():
            raise ConfigurationError(f"Invalid sphere index: {shape_index}")
        sphere_emitter_ids[shape_index] = emitter_id
    elif kind == ShapeKind.QUAD:
        if not 0 <= shape_index < get_quad_count():
            raise ConfigurationError(f"Invalid quad index: {shape_index}")
        quad_emitter_ids[shape_index] = emitter_id
    else:
        raise ConfigurationError(f"Unsupported shape kind for area emitter: {kind!r}")

    emitter_shape_kinds[emitter_id] = int(kind)
    emitter_shape_indices[emitter_id] = shape_index


@ti.func
def _sample_shape(emitter_id: ti.i32, sample: vec2):
    kind = emitter_shape_kinds[emitter_id]
    idx = emitter_shape_indices[emitter_id]
    point = vec3(0.0, 0.0, 0.0)
    normal = vec3(0.0, 0.0, 1.0)
    pdf_area = 0.0
    if kind == int(ShapeKind.SPHERE):
        sphere = Sphere(center=sphere_centers[idx], radius=sphere_radii[idx])
        point, normal, pdf_area = sample_sphere_surface(sphere, sample)
    elif kind == int(ShapeKind.QUAD):
        quad = Quad(Q=quad_corners[idx], u=quad_edge_u[idx], v=quad_edge_v[idx])
        point, normal, pdf_area = sample_quad_surface(quad, sample)
    return point, normal, pdf_area


@ti.func
def sample_area(emitter_id: ti.i32, ref: vec3, sample: vec2) -> EmitterSample:
    """Sample a point on the emitter's shape as seen from ``ref``."""
    point, normal, pdf_area = _sample_shape(emitter_id, sample)
    d = point - ref
    dist2 = tm.dot(d, d)
    dist = ti.sqrt(dist2)
    wi = vec3(0.0, 0.0, 1.0)
    if dist > 0.0:
        wi = d / dist
    cos_light = -tm.dot(normal, wi)

    pdf = 0.0
    weight = vec3(0.0, 0.0, 0.0)
    if pdf_area > 0.0 and cos_light > 0.0 and dist > 0.0:
        pdf = pdf_area * dist2 / cos_light
        weight = emitter_radiance[emitter_id] / pdf

    return EmitterSample(
        point=point,
        normal=normal,
        wi=wi,
        distance=dist,
        pdf=pdf,
        weight=weight,
        is_delta=0,
        shadow_ray=make_segment(ref, wi, SHADOW_EPSILON, dist - SHADOW_EPSILON),
    )


@ti.func
def eval_area(emitter_id: ti.i32, normal: vec3, wi: vec3) -> vec3:
    """Radiance leaving the emitter toward ``-wi``.

    Args:
        emitter_id: The area emitter.
        normal: Outward geometric normal at the emitter point.
        wi: Direction from the receiver toward the emitter point.
    """
    result = vec3(0.0, 0.0, 0.0)
    if tm.dot(normal, wi) < 0.0:
        result = emitter_radiance[emitter_id]
    return result


@ti.func
def _shape_area_pdf(emitter_id: ti.i32) -> ti.f32:
    kind = emitter_shape_kinds[emitter_id]
    idx = emitter_shape_indices[emitter_id]
    pdf_area = 0.0
    if kind == int(ShapeKind.SPHERE):
        r = sphere_radii[idx]
        pdf_area = 1.0 / (4.0 * tm.pi * r * r)
    elif kind == int(ShapeKind.QUAD):
        area = tm.length(tm.cross(quad_edge_u[idx], quad_edge_v[idx]))
        if area > 0.0:
            pdf_area = 1.0 / area
    return pdf_area


@ti.func
def pdf_area_emitter(emitter_id: ti.i32, ref: vec3, point: vec3, normal: vec3, wi: vec3) -> ti.f32:
    """Solid-angle density with which sample_area() produces ``wi``."""
    d = point - ref
    cos_light = -tm.dot(normal, wi)
    pdf = 0.0
    if cos_light > 0.0:
        pdf = _shape_area_pdf(emitter_id) * tm.dot(d, d) / cos_light
    return pdf


@ti.func
def sample_area_photon(emitter_id: ti.i32, sample_pos: vec2, sample_dir: vec2):
    """Emit a photon from the shape's outward side.

    Returns:
        Tuple (origin, direction, power) with ``power = pi * area * Le``.
    """
    point, normal, pdf_area = _sample_shape(emitter_id, sample_pos)
    direction = to_world(square_to_cosine_hemisphere(sample_dir), normal)
    power = vec3(0.0, 0.0, 0.0)
    if pdf_area > 0.0:
        power = tm.pi * emitter_radiance[emitter_id] / pdf_area
    return point, direction, power
