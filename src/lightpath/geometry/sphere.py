"""Analytic sphere: intersection, parameterization and area sampling.

Intersection uses the cancellation-free quadratic from Ray Tracing Gems,
so grazing rays do not produce spurious roots. Area sampling is uniform
over the whole surface and is what area emitters attached to a sphere use.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from lightpath.geometry.sphere import Sphere, hit_sphere
    >>> sphere = Sphere(center=ti.math.vec3(0, 0, -1), radius=0.5)
    >>> # Use hit_sphere within a Taichi kernel
"""

import taichi as ti
import taichi.math as tm

from ..core.ray import spherical_coordinates
from ..core.warp import square_to_uniform_sphere

vec2 = tm.vec2
vec3 = tm.vec3


@ti.dataclass
class Sphere:
    """A sphere given by its center and (positive) radius."""

    center: vec3
    radius: ti.f32


@ti.dataclass
class HitRecord:
    """Closest intersection of a ray with a single primitive.

    Attributes:
        hit: 1 if the ray intersected the primitive inside its interval.
        t: Ray parameter of the intersection.
        point: World-space intersection point.
        normal: Unit normal facing the incoming ray.
        geo_normal: Unit outward geometric normal of the surface.
        front_face: 1 when the ray arrived from the outward side.
        uv: Surface parameterization in [0, 1]^2.
    """

    hit: ti.i32
    t: ti.f32
    point: vec3
    normal: vec3
    geo_normal: vec3
    front_face: ti.i32
    uv: vec2


@ti.func
def _solve_quadratic_robust(h: ti.f32, a: ti.f32, c: ti.f32, sqrt_d: ti.f32):
    """Ordered roots of ``a t^2 + 2 h t + c = 0``."""
    sign_h = ti.select(h < 0.0, -1.0, 1.0)
    q = -(h + sign_h * sqrt_d)

    t0 = 0.0
    t1 = 0.0
    if ti.abs(q) < 1e-10:
        t0 = (-h - sqrt_d) / a
        t1 = (-h + sqrt_d) / a
    else:
        t0 = q / a
        t1 = c / q

    if t0 > t1:
        temp = t0
        t0 = t1
        t1 = temp
    return t0, t1


@ti.func
def sphere_uv(outward: vec3) -> vec2:
    """Spherical parameterization of a point given its outward normal."""
    theta, phi = spherical_coordinates(outward)
    return vec2(phi / (2.0 * tm.pi), theta / tm.pi)


@ti.func
def hit_sphere(
    ray_origin: vec3,
    ray_direction: vec3,
    sphere: Sphere,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Intersect a ray with a sphere over the open interval ``(t_min, t_max)``.

    Solves ``|o + t d - c|^2 = r^2`` in half-b form and returns the nearest
    root inside the interval.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray (need not be normalized).
        sphere: The sphere to test intersection against.
        t_min: Lower bound on t (exclusive).
        t_max: Upper bound on t (exclusive).

    Returns:
        A HitRecord; check ``hit`` before reading the other fields.
    """
    oc = ray_origin - sphere.center
    a = tm.dot(ray_direction, ray_direction)
    h = tm.dot(ray_direction, oc)
    c = tm.dot(oc, oc) - sphere.radius * sphere.radius
    discriminant = h * h - a * c

    did_hit = 0
    hit_t = 0.0
    hit_point = vec3(0.0, 0.0, 0.0)
    hit_normal = vec3(0.0, 0.0, 0.0)
    outward = vec3(0.0, 0.0, 0.0)
    is_front_face = 0
    uv = vec2(0.0, 0.0)

    if discriminant >= 0.0:
        t0, t1 = _solve_quadratic_robust(h, a, c, ti.sqrt(discriminant))

        t = t0
        valid = (t > t_min) and (t < t_max)
        if not valid:
            t = t1
            valid = (t > t_min) and (t < t_max)

        if valid:
            did_hit = 1
            hit_t = t
            hit_point = ray_origin + t * ray_direction
            outward = (hit_point - sphere.center) / sphere.radius
            uv = sphere_uv(outward)

            if tm.dot(ray_direction, outward) > 0.0:
                is_front_face = 0
                hit_normal = -outward
            else:
                is_front_face = 1
                hit_normal = outward

    return HitRecord(
        hit=did_hit,
        t=hit_t,
        point=hit_point,
        normal=hit_normal,
        geo_normal=outward,
        front_face=is_front_face,
        uv=uv,
    )


@ti.func
def sphere_area(sphere: Sphere) -> ti.f32:
    return 4.0 * tm.pi * sphere.radius * sphere.radius


@ti.func
def sample_sphere_surface(sphere: Sphere, sample: vec2):
    """Uniformly sample a point on the sphere's surface.

    Args:
        sphere: The sphere to sample.
        sample: Uniform sample in [0, 1]^2.

    Returns:
        Tuple (point, outward_normal, pdf_area) with ``pdf_area = 1 / area``.
    """
    n = square_to_uniform_sphere(sample)
    return sphere.center + sphere.radius * n, n, 1.0 / sphere_area(sphere)
